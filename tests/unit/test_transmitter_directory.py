"""
TransmitterDirectory 단위 테스트

검증 항목:
- 알 수 없는 송신자는 녹음 허용
- 설정 목록으로 초기화, 중복 GUID는 마지막 항목 사용
- set_allow_record() 갱신 시 이름 유지
- 설정 핫스왑 콜백으로 목록 교체
"""

from __future__ import annotations

import threading

from srs_recorder.capture.transmitter_directory import TransmitterDirectory
from srs_recorder.config.schema import AppConfig, TransmitterEntry


def _make_config(*entries: dict) -> AppConfig:
    return AppConfig(**{"transmitters": list(entries)})


def test_unknown_transmitter_allowed():
    directory = TransmitterDirectory()
    assert len(directory) == 0
    assert directory.is_recording_allowed("nobody")


def test_from_config():
    directory = TransmitterDirectory.from_config(_make_config(
        {"guid": "alpha", "allow_record": False},
        {"guid": "bravo", "allow_record": True},
    ))
    assert len(directory) == 2
    assert "alpha" in directory
    assert not directory.is_recording_allowed("alpha")
    assert directory.is_recording_allowed("bravo")


def test_duplicate_guid_last_entry_wins():
    directory = TransmitterDirectory([
        TransmitterEntry(guid="alpha", allow_record=True),
        TransmitterEntry(guid="alpha", allow_record=False),
    ])
    assert len(directory) == 1
    assert not directory.is_recording_allowed("alpha")


def test_set_allow_record_keeps_name():
    directory = TransmitterDirectory([TransmitterEntry(guid="alpha", name="편대장")])
    directory.set_allow_record("alpha", False)
    assert not directory.is_recording_allowed("alpha")

    directory.set_allow_record("charlie", False, name="신규")
    assert "charlie" in directory
    assert not directory.is_recording_allowed("charlie")


def test_config_change_replaces_entries():
    old_config = _make_config({"guid": "alpha", "allow_record": False})
    new_config = _make_config({"guid": "bravo", "allow_record": False})
    directory = TransmitterDirectory.from_config(old_config)

    directory.on_config_changed(old_config, new_config)

    assert "alpha" not in directory
    assert directory.is_recording_allowed("alpha")
    assert not directory.is_recording_allowed("bravo")


def test_concurrent_lookup_and_replace():
    directory = TransmitterDirectory([TransmitterEntry(guid="alpha", allow_record=False)])
    errors: list[Exception] = []

    def _lookup():
        try:
            for _ in range(2000):
                directory.is_recording_allowed("alpha")
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_lookup) for _ in range(4)]
    for thread in threads:
        thread.start()
    for i in range(200):
        directory.replace([TransmitterEntry(guid="alpha", allow_record=bool(i % 2))])
    for thread in threads:
        thread.join()

    assert errors == []
