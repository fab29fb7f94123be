"""
송신자 녹음 허용 목록 모듈입니다.

역할:
- 송신자 GUID → 녹음 허용 여부 조회 (알 수 없는 송신자는 허용)
- 설정 파일의 transmitters 섹션으로 초기화
- 설정 핫스왑 시 목록 전체 교체
- 수신 스레드와 설정 감시 스레드에서 동시에 접근 가능 (thread-safe)

사용 예시:
    >>> directory = TransmitterDirectory.from_config(config)
    >>> directory.is_recording_allowed("abcdefghijklmnopqrstuv")
    True
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from srs_recorder.config.schema import AppConfig, TransmitterEntry

logger = logging.getLogger(__name__)


class TransmitterDirectory:
    """알려진 송신자 목록과 녹음 허용 여부를 관리합니다."""

    def __init__(self, entries: Iterable[TransmitterEntry] = ()) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, TransmitterEntry] = {}
        self.replace(entries)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TransmitterDirectory":
        """AppConfig.transmitters로 목록을 생성합니다."""
        return cls(config.transmitters)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, guid: str) -> bool:
        with self._lock:
            return guid in self._entries

    def is_recording_allowed(self, guid: str) -> bool:
        """
        송신자의 녹음 허용 여부를 반환합니다.

        목록에 없는 송신자는 허용(True)으로 간주합니다.
        """
        with self._lock:
            entry = self._entries.get(guid)
        return True if entry is None else entry.allow_record

    def set_allow_record(self, guid: str, allow_record: bool, name: str = "") -> None:
        """송신자 한 명의 허용 여부를 추가하거나 갱신합니다."""
        with self._lock:
            previous = self._entries.get(guid)
            self._entries[guid] = TransmitterEntry(
                guid=guid,
                name=name or (previous.name if previous else ""),
                allow_record=allow_record,
            )
        logger.info(f"송신자 녹음 허용 갱신: guid={guid}, allow_record={allow_record}")

    def replace(self, entries: Iterable[TransmitterEntry]) -> None:
        """목록 전체를 교체합니다. 같은 GUID가 여러 번 나오면 마지막 항목을 사용합니다."""
        new_entries = {entry.guid: entry for entry in entries}
        with self._lock:
            self._entries = new_entries
        denied = sum(1 for entry in new_entries.values() if not entry.allow_record)
        logger.debug(f"송신자 목록 교체: 총 {len(new_entries)}명, 녹음 불허 {denied}명")

    def on_config_changed(self, old_config: AppConfig, new_config: AppConfig) -> None:
        """ConfigManager.subscribe()용 콜백: transmitters 섹션으로 목록을 교체합니다."""
        self.replace(new_config.transmitters)
        logger.info(f"설정 핫스왑으로 송신자 목록 갱신: {len(new_config.transmitters)}명")
