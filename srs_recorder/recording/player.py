"""
녹음 로그 재생 모듈입니다.

역할:
- LogReader가 읽은 레코드를 순서대로 소비자 콜백에 전달
- 녹음 시각 간격 / playback_speed 로 재생 속도 조절 (0이면 대기 없음)
- 레코드 사이에서 취소 가능 (threading.Event)

사용 예시:
    >>> player = LogPlayer(LogReader(path), playback_speed=1.0)
    >>> played = player.play(lambda record: print(record.describe()))
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from srs_recorder.capture import TransmissionRecord
from srs_recorder.config.schema import AppConfig
from srs_recorder.recording.reader import LogReader, ReplayEnd

logger = logging.getLogger(__name__)


class LogPlayer:
    """LogReader 위에서 동작하는 순차 재생기입니다."""

    def __init__(
        self,
        reader: LogReader,
        playback_speed: float = 0.0,
        max_records: int = 0,
    ) -> None:
        """
        파라미터:
            reader: 재생할 로그 리더
            playback_speed: 1.0 = 녹음 속도, 2.0 = 2배속, 0 = 대기 없이 최대 속도
            max_records: 재생할 최대 레코드 수 (0 = 전체)
        """
        if playback_speed < 0:
            raise ValueError(f"playback_speed는 0 이상이어야 합니다: {playback_speed}")
        self._reader = reader
        self._playback_speed = playback_speed
        self._max_records = max_records

    @classmethod
    def from_config(cls, reader: LogReader, config: AppConfig) -> "LogPlayer":
        return cls(
            reader,
            playback_speed=config.replay.playback_speed,
            max_records=config.replay.max_records,
        )

    @property
    def end_reason(self) -> Optional[ReplayEnd]:
        return self._reader.end_reason

    def play(
        self,
        consumer: Callable[[TransmissionRecord], None],
        cancel: Optional[threading.Event] = None,
    ) -> int:
        """
        로그를 재생하여 각 레코드를 consumer에 전달합니다.

        반환값:
            int: consumer에 전달한 레코드 수

        에러:
            CorruptRecordError: 손상된 레코드 (이전 레코드는 모두 전달된 뒤)
            IoFailureError: 로그 파일 읽기 실패
        """
        # 대기 중 취소를 즉시 반영하기 위해 Event.wait()로 대기
        cancel = cancel if cancel is not None else threading.Event()
        previous_timestamp: Optional[datetime] = None
        played = 0

        records = self._reader.read_all(cancel=cancel)
        try:
            for record in records:
                if previous_timestamp is not None and self._playback_speed > 0:
                    gap_sec = (record.timestamp - previous_timestamp).total_seconds()
                    if gap_sec > 0 and cancel.wait(gap_sec / self._playback_speed):
                        break
                previous_timestamp = record.timestamp

                consumer(record)
                played += 1

                if self._max_records and played >= self._max_records:
                    logger.info(f"최대 재생 레코드 수 도달: {self._max_records}")
                    break
        finally:
            records.close()

        logger.info(f"로그 재생 종료: {played}개 레코드, reason={self._describe_end(cancel)}")
        return played

    def _describe_end(self, cancel: threading.Event) -> str:
        if self._reader.end_reason is not None:
            return self._reader.end_reason.value
        return ReplayEnd.CANCELLED.value if cancel.is_set() else "limit"
