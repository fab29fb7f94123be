"""
ConfigManager / 설정 스키마 단위 테스트

검증 항목:
- YAML 로드 및 기본값 채움
- 스키마 검증 실패 → ConfigValidationError
- 파일 없음 → ConfigFileNotFoundError, load_or_default()는 기본 설정 사용
- SRS_ 환경변수 오버라이드
- dot-notation get() (리스트 인덱스 포함)
- reload() 성공 시 구독자 통보, 실패 시 이전 설정 유지
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from srs_recorder.config.config_manager import (
    ConfigFileNotFoundError,
    ConfigLoadError,
    ConfigManager,
    ConfigValidationError,
)
from srs_recorder.config.schema import AppConfig

_BASE_YAML = """
system:
  log_level: debug
  log_format: text
recorder:
  recording_file: session.raw
  sample_rate: 16000
transmitters:
  - guid: abcdefghijklmnopqrstuv
    name: 편대장
    allow_record: false
"""


def _write_config(tmp_path: Path, content: str = _BASE_YAML) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content, encoding="utf-8")
    return config_path


@pytest.fixture(autouse=True)
def clear_srs_env(monkeypatch):
    """외부 SRS_ 환경변수가 테스트에 영향을 주지 않도록 제거합니다."""
    for key in list(os.environ):
        if key.startswith("SRS_"):
            monkeypatch.delenv(key)


# =============================================================================
# 스키마 기본값 / 검증 테스트
# =============================================================================

class TestSchema:
    def test_defaults(self):
        config = AppConfig()
        assert config.recorder.recording_file == "recorded_audio.raw"
        assert config.recorder.sample_rate == 48000
        assert config.recorder.channel_count == 1
        assert config.recorder.poll_interval_ms == 10
        assert config.transmitters == []

    def test_log_level_normalized(self):
        assert AppConfig(**{"system": {"log_level": "warning"}}).system.log_level == "WARNING"

    @pytest.mark.parametrize("section, values", [
        ("recorder", {"sample_rate": 0}),
        ("recorder", {"channel_count": 9}),
        ("recorder", {"poll_interval_ms": 0}),
        ("dump", {"playback_speed": 0}),
        ("replay", {"playback_speed": -1}),
        ("system", {"log_format": "xml"}),
    ])
    def test_invalid_values_rejected(self, section, values):
        with pytest.raises(ValueError):
            AppConfig(**{section: values})

    def test_blank_guid_rejected(self):
        with pytest.raises(ValueError):
            AppConfig(**{"transmitters": [{"guid": "   "}]})


# =============================================================================
# 로드 테스트
# =============================================================================

class TestLoad:
    def test_load_yaml(self, tmp_path):
        config = ConfigManager().load(_write_config(tmp_path))
        assert config.system.log_level == "DEBUG"
        assert config.recorder.recording_file == "session.raw"
        assert config.recorder.sample_rate == 16000
        # 누락 필드는 기본값
        assert config.recorder.channel_count == 1
        assert config.transmitters[0].allow_record is False

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            ConfigManager().load(tmp_path / "missing.yaml")

    def test_load_or_default_when_missing(self, tmp_path):
        manager = ConfigManager()
        config = manager.load_or_default(tmp_path / "missing.yaml")
        assert config == AppConfig()
        assert manager.config is config

    def test_load_or_default_propagates_invalid_file(self, tmp_path):
        config_path = _write_config(tmp_path, "recorder:\n  sample_rate: -5\n")
        with pytest.raises(ConfigValidationError):
            ConfigManager().load_or_default(config_path)

    def test_empty_file_uses_defaults(self, tmp_path):
        config = ConfigManager().load(_write_config(tmp_path, ""))
        assert config == AppConfig()

    def test_invalid_yaml_raises_load_error(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            ConfigManager().load(_write_config(tmp_path, "recorder: [unclosed"))

    def test_non_mapping_root_raises(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            ConfigManager().load(_write_config(tmp_path, "- a\n- b\n"))

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SRS_RECORDER_RECORDING_FILE", "from_env.raw")
        monkeypatch.setenv("SRS_RECORDER_POLL_INTERVAL_MS", "25")
        monkeypatch.setenv("SRS_DUMP_LOOP", "true")
        config = ConfigManager().load(_write_config(tmp_path))
        assert config.recorder.recording_file == "from_env.raw"
        assert config.recorder.poll_interval_ms == 25
        assert config.dump.loop is True

    def test_env_override_ignores_list_section(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SRS_TRANSMITTERS_GUID", "x")
        config = ConfigManager().load(_write_config(tmp_path))
        assert len(config.transmitters) == 1


# =============================================================================
# 조회 / 핫스왑 테스트
# =============================================================================

class TestGetAndReload:
    def test_get_dot_notation(self, tmp_path):
        manager = ConfigManager()
        manager.load(_write_config(tmp_path))
        assert manager.get("recorder.sample_rate") == 16000
        assert manager.get("transmitters.0.name") == "편대장"
        assert manager.get("transmitters.5.name", "없음") == "없음"
        assert manager.get("recorder.unknown", 1) == 1

    def test_get_before_load_raises(self):
        with pytest.raises(RuntimeError):
            ConfigManager().get("recorder.sample_rate")

    def test_reload_notifies_subscribers(self, tmp_path):
        config_path = _write_config(tmp_path)
        manager = ConfigManager()
        manager.load(config_path)

        changes = []
        manager.subscribe(lambda old, new: changes.append((old, new)))

        config_path.write_text(
            _BASE_YAML.replace("allow_record: false", "allow_record: true"),
            encoding="utf-8",
        )
        assert manager.reload() is True

        assert len(changes) == 1
        old, new = changes[0]
        assert old.transmitters[0].allow_record is False
        assert new.transmitters[0].allow_record is True

    def test_reload_failure_keeps_previous(self, tmp_path):
        config_path = _write_config(tmp_path)
        manager = ConfigManager()
        previous = manager.load(config_path)

        config_path.write_text("recorder:\n  channel_count: 99\n", encoding="utf-8")
        assert manager.reload() is False
        assert manager.config is previous

    def test_subscriber_error_does_not_block_others(self, tmp_path):
        config_path = _write_config(tmp_path)
        manager = ConfigManager()
        manager.load(config_path)

        def _broken(old, new):
            raise RuntimeError("구독자 실패")

        called = []
        manager.subscribe(_broken)
        manager.subscribe(lambda old, new: called.append(True))
        assert manager.reload() is True
        assert called == [True]

    def test_unsubscribe(self, tmp_path):
        config_path = _write_config(tmp_path)
        manager = ConfigManager()
        manager.load(config_path)

        called = []
        def callback(old, new):
            called.append(True)

        manager.subscribe(callback)
        manager.unsubscribe(callback)
        manager.reload()
        assert called == []

    def test_watch_and_stop_watch(self, tmp_path):
        manager = ConfigManager()
        manager.load(_write_config(tmp_path))
        manager.watch()
        assert manager._observer is not None
        manager.stop_watch()
        assert manager._observer is None
