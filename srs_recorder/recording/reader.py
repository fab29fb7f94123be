"""
녹음 로그 리더 모듈입니다.

역할:
- 로그 파일을 처음부터 순차적으로 읽어 TransmissionRecord를 지연(lazy) 생성
- 정상 종료 / 잘린 마지막 레코드 / 손상 레코드 / 취소를 ReplayEnd로 구분
- read_all()을 다시 호출하면 파일을 새로 열어 처음부터 재생

종료 규칙:
- 파일 끝 → 조용히 종료 (COMPLETE)
- 마지막 레코드가 중간에서 잘림 → 경고 로그 후 종료 (TRUNCATED)
- 손상 레코드 → 그 이전 레코드를 모두 넘겨준 뒤 CorruptRecordError 전파 (CORRUPT)
- cancel 이벤트 → 레코드 사이에서만 확인 후 종료 (CANCELLED)

사용 예시:
    >>> reader = LogReader("recorded_audio.raw")
    >>> for record in reader.read_all():
    ...     print(record.describe())
    >>> reader.end_reason
    <ReplayEnd.COMPLETE: 'complete'>
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from srs_recorder.capture import (
    DEFAULT_CHANNEL_COUNT,
    DEFAULT_SAMPLE_RATE,
    TransmissionRecord,
)
from srs_recorder.errors import CorruptRecordError, EndOfStreamError, IoFailureError
from srs_recorder.recording.codec import RecordCodec

logger = logging.getLogger(__name__)


class ReplayEnd(str, Enum):
    """재생 종료 사유입니다."""
    COMPLETE = "complete"
    TRUNCATED = "truncated"
    CORRUPT = "corrupt"
    CANCELLED = "cancelled"


class LogReader:
    """로그 파일 순차 리더입니다."""

    def __init__(
        self,
        path: str | Path,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channel_count: int = DEFAULT_CHANNEL_COUNT,
    ) -> None:
        """
        파라미터:
            path: 녹음 로그 파일 경로
            sample_rate: 재생 레코드에 채울 세션 샘플레이트 (로그에 기록되지 않음)
            channel_count: 재생 레코드에 채울 세션 채널 수
        """
        self._path = Path(path)
        self._codec = RecordCodec(sample_rate=sample_rate, channel_count=channel_count)
        self._end_reason: Optional[ReplayEnd] = None
        self._records_read = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def end_reason(self) -> Optional[ReplayEnd]:
        """마지막 read_all()의 종료 사유 (진행 중이거나 시작 전이면 None)."""
        return self._end_reason

    @property
    def records_read(self) -> int:
        """마지막 read_all()에서 넘겨준 레코드 수."""
        return self._records_read

    def read_all(self, cancel: Optional[threading.Event] = None) -> Iterator[TransmissionRecord]:
        """
        로그의 모든 레코드를 순서대로 생성합니다.

        파라미터:
            cancel: set되면 다음 레코드를 읽기 전에 재생을 멈춥니다

        에러:
            IoFailureError: 파일을 열거나 읽을 수 없을 때
            CorruptRecordError: 손상된 레코드를 만났을 때 (이전 레코드는 모두 생성된 뒤)
        """
        self._end_reason = None
        self._records_read = 0

        try:
            log_file = open(self._path, "rb")
        except OSError as exc:
            raise IoFailureError(f"로그 파일 열기 실패: {self._path}: {exc}") from exc

        logger.info(f"로그 재생 시작: file={self._path}")

        with log_file:
            while True:
                if cancel is not None and cancel.is_set():
                    self._end_reason = ReplayEnd.CANCELLED
                    logger.info(f"로그 재생 취소: {self._records_read}개 레코드 재생 후")
                    return

                try:
                    record = self._codec.read(log_file)
                except EndOfStreamError as exc:
                    if exc.truncated:
                        self._end_reason = ReplayEnd.TRUNCATED
                        logger.warning(
                            f"마지막 레코드가 잘려 재생 종료: {exc} "
                            f"(재생 {self._records_read}개)"
                        )
                    else:
                        self._end_reason = ReplayEnd.COMPLETE
                        logger.info(f"로그 재생 완료: {self._records_read}개 레코드")
                    return
                except CorruptRecordError as exc:
                    self._end_reason = ReplayEnd.CORRUPT
                    logger.error(
                        f"손상된 레코드로 재생 중단: {exc} "
                        f"(offset={log_file.tell()}, 재생 {self._records_read}개)"
                    )
                    raise

                self._records_read += 1
                yield record
