"""
구조화 로깅 모듈 단위 테스트

검증 조건:
- JSON 포맷 로그에 session_id, level, module 필드 포함
- 레코더 extra 필드(packet_id 등)가 JSON 키로 기록
- RotatingFileHandler (app.log, 10MB x 5) 생성
- 재설정 시 핸들러 중복 없음
- text 포맷 세션 접두어
- record_fields(): 레코드 식별 필드를 extra로 변환 (페이로드 제외)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from io import StringIO

import pytest

from srs_recorder.capture import TransmissionRecord
from srs_recorder.config.schema import AppConfig
from srs_recorder.logging.structured_logger import (
    LOG_BACKUP_COUNT,
    LOG_MAX_BYTES,
    _JsonFormatter,
    _TextFormatter,
    record_fields,
    setup_logging,
)


# =========================================================================
# 픽스처
# =========================================================================

@pytest.fixture(autouse=True)
def reset_root_logger():
    """각 테스트 후 root logger 핸들러 초기화."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def _make_config(tmp_path, log_format: str = "json", session_id: str = "rec-session-001") -> AppConfig:
    return AppConfig(**{
        "system": {
            "log_level": "DEBUG",
            "log_format": log_format,
            "log_dir": str(tmp_path / "logs"),
            "session_id": session_id,
        },
    })


def _emit(formatter: logging.Formatter, level: int, message: str, **extra) -> str:
    """지정한 포맷터로 로그 한 줄을 메모리 스트림에 출력합니다."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger = logging.getLogger(f"test.emit.{id(stream)}")
    logger.propagate = False
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.log(level, message, extra=extra or None)
    logger.removeHandler(handler)
    return stream.getvalue().strip()


# =========================================================================
# setup_logging 테스트
# =========================================================================

class TestSetupLogging:
    def test_returns_session_id_from_config(self, tmp_path):
        assert setup_logging(_make_config(tmp_path)) == "rec-session-001"

    def test_explicit_session_id_wins(self, tmp_path):
        assert setup_logging(_make_config(tmp_path), session_id="custom") == "custom"

    def test_auto_uuid_when_empty(self, tmp_path):
        sid = setup_logging(_make_config(tmp_path, session_id=""))
        assert len(sid) == 36
        assert sid.count("-") == 4

    def test_log_level_applied(self, tmp_path):
        config = _make_config(tmp_path)
        config.system.log_level = "WARNING"
        setup_logging(config)
        assert logging.getLogger().level == logging.WARNING

    def test_rotating_file_handler(self, tmp_path):
        setup_logging(_make_config(tmp_path))
        rotating = [
            handler for handler in logging.getLogger().handlers
            if isinstance(handler, logging.handlers.RotatingFileHandler)
        ]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == LOG_MAX_BYTES == 10 * 1024 * 1024
        assert rotating[0].backupCount == LOG_BACKUP_COUNT == 5
        assert (tmp_path / "logs" / "app.log").exists()

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        config = _make_config(tmp_path)
        setup_logging(config)
        handler_count = len(logging.getLogger().handlers)
        setup_logging(config)
        assert len(logging.getLogger().handlers) == handler_count

    def test_console_stream_receives_json(self, tmp_path):
        stream = StringIO()
        setup_logging(_make_config(tmp_path), console_stream=stream)
        logging.getLogger("srs_recorder.test").info("녹음 시작", extra={"packet_id": 3})

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        record = next(line for line in lines if line["message"] == "녹음 시작")
        assert record["packet_id"] == 3
        assert record["module"] == "srs_recorder.test"

    def test_log_file_written(self, tmp_path):
        setup_logging(_make_config(tmp_path), console_stream=StringIO())
        logging.getLogger("srs_recorder.test").warning("파일 기록 확인")
        for handler in logging.getLogger().handlers:
            handler.flush()
        content = (tmp_path / "logs" / "app.log").read_text(encoding="utf-8")
        assert "파일 기록 확인" in content


# =========================================================================
# 포맷터 테스트
# =========================================================================

class TestFormatters:
    def test_json_fields(self):
        data = json.loads(_emit(_JsonFormatter(session_id="abc"), logging.WARNING, "경고"))
        assert data["session_id"] == "abc"
        assert data["level"] == "WARNING"
        assert data["message"] == "경고"
        assert "module" in data

    def test_json_extra_fields(self):
        output = _emit(
            _JsonFormatter(session_id="abc"),
            logging.ERROR,
            "쓰기 실패",
            packet_id=42,
            required_size=55,
        )
        data = json.loads(output)
        assert data["packet_id"] == 42
        assert data["required_size"] == 55

    def test_text_session_prefix(self):
        output = _emit(_TextFormatter(session_id="text-session-002"), logging.INFO, "텍스트 로그")
        assert "[text-ses]" in output
        assert "텍스트 로그" in output

    def test_text_without_session(self):
        output = _emit(_TextFormatter(), logging.ERROR, "오류")
        assert "[no-sid]" in output
        assert "ERROR" in output


# =========================================================================
# record_fields 테스트
# =========================================================================

class TestRecordFields:
    def _make_record(self) -> TransmissionRecord:
        return TransmissionRecord(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            frequency=251_000_000.0,
            modulation=0,
            encryption=0,
            unit_id=7,
            packet_id=99,
            transmitter_guid="abcdefghijklmnopqrstuv",
            coalition=2,
            audio_payload=b"\x01" * 12,
        )

    def test_fields(self):
        assert record_fields(self._make_record()) == {
            "packet_id": 99,
            "frequency": 251_000_000.0,
            "transmitter": "abcdefghijklmnopqrstuv",
            "coalition": 2,
            "payload_size": 12,
        }

    def test_fields_in_json_output(self):
        output = _emit(
            _JsonFormatter(session_id="abc"),
            logging.INFO,
            "패킷 수신",
            **record_fields(self._make_record()),
        )
        data = json.loads(output)
        assert data["transmitter"] == "abcdefghijklmnopqrstuv"
        assert data["payload_size"] == 12
