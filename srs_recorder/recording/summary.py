"""
녹음 로그 요약 모듈입니다.

역할:
- LogReader로 로그 전체를 읽어 통계 계산
- 주파수별 / 송신자별 레코드 수, 음성 제거 레코드 수, 녹음 시간 범위
- 페이로드 크기 평균 / P95 (numpy)

사용 예시:
    >>> summary = LogSummary.from_log("recorded_audio.raw")
    >>> print(summary.format_report())
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import numpy as np

from srs_recorder.capture import TransmissionRecord
from srs_recorder.errors import CorruptRecordError
from srs_recorder.recording.reader import LogReader, ReplayEnd

logger = logging.getLogger(__name__)


@dataclass
class LogSummary:
    """로그 한 개의 요약 통계입니다."""
    record_count: int = 0
    suppressed_count: int = 0
    total_payload_bytes: int = 0
    payload_mean_bytes: float = 0.0
    payload_p95_bytes: float = 0.0
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    by_frequency: dict[float, int] = field(default_factory=dict)
    by_transmitter: dict[str, int] = field(default_factory=dict)
    end_reason: Optional[ReplayEnd] = None

    @property
    def duration_sec(self) -> float:
        if self.first_timestamp is None or self.last_timestamp is None:
            return 0.0
        return (self.last_timestamp - self.first_timestamp).total_seconds()

    @classmethod
    def from_records(cls, records: Iterable[TransmissionRecord]) -> "LogSummary":
        """레코드 시퀀스로 요약을 계산합니다."""
        builder = _SummaryBuilder()
        for record in records:
            builder.add(record)
        return builder.build()

    @classmethod
    def from_log(
        cls,
        path: str | Path,
        sample_rate: int = 48000,
        channel_count: int = 1,
        cancel: Optional[threading.Event] = None,
    ) -> "LogSummary":
        """
        로그 파일을 끝까지 읽어 요약을 계산합니다.

        레코드는 읽는 즉시 집계하고 버리므로 페이로드를 메모리에 쌓지 않습니다.
        손상된 레코드를 만나면 그 이전까지의 레코드로 요약하고
        end_reason=CORRUPT로 표시합니다.
        """
        reader = LogReader(path, sample_rate=sample_rate, channel_count=channel_count)
        builder = _SummaryBuilder()
        try:
            for record in reader.read_all(cancel=cancel):
                builder.add(record)
        except CorruptRecordError as exc:
            logger.warning(f"손상 레코드 이전까지만 요약합니다: {exc}")

        summary = builder.build()
        summary.end_reason = reader.end_reason
        return summary

    def format_report(self) -> str:
        """콘솔 출력용 여러 줄 보고서를 반환합니다."""
        lines = [
            f"레코드: {self.record_count}개 (음성 제거 {self.suppressed_count}개)",
            f"기간: {self.first_timestamp} ~ {self.last_timestamp} ({self.duration_sec:.3f}s)",
            f"페이로드: 합계 {self.total_payload_bytes}B, "
            f"평균 {self.payload_mean_bytes:.1f}B, P95 {self.payload_p95_bytes:.1f}B",
            "주파수별:",
        ]
        lines += [f"  {frequency:.0f} Hz: {count}" for frequency, count in self.by_frequency.items()]
        lines.append("송신자별:")
        lines += [f"  {guid or '(없음)'}: {count}" for guid, count in self.by_transmitter.items()]
        if self.end_reason is not None:
            lines.append(f"종료 사유: {self.end_reason.value}")
        return "\n".join(lines)


class _SummaryBuilder:
    """레코드를 하나씩 받아 카운터와 페이로드 크기만 누적합니다."""

    def __init__(self) -> None:
        self._frequencies: Counter[float] = Counter()
        self._transmitters: Counter[str] = Counter()
        self._payload_sizes: list[int] = []
        self._suppressed = 0
        self._first: Optional[datetime] = None
        self._last: Optional[datetime] = None

    def add(self, record: TransmissionRecord) -> None:
        self._frequencies[record.frequency] += 1
        self._transmitters[record.transmitter_guid] += 1
        self._payload_sizes.append(len(record.audio_payload))
        if record.is_suppressed:
            self._suppressed += 1
        if self._first is None or record.timestamp < self._first:
            self._first = record.timestamp
        if self._last is None or record.timestamp > self._last:
            self._last = record.timestamp

    def build(self) -> LogSummary:
        summary = LogSummary(
            record_count=len(self._payload_sizes),
            suppressed_count=self._suppressed,
            first_timestamp=self._first,
            last_timestamp=self._last,
            by_frequency=dict(self._frequencies.most_common()),
            by_transmitter=dict(self._transmitters.most_common()),
        )

        if self._payload_sizes:
            sizes = np.asarray(self._payload_sizes, dtype=np.int64)
            summary.total_payload_bytes = int(sizes.sum())
            summary.payload_mean_bytes = float(np.mean(sizes))
            summary.payload_p95_bytes = float(np.percentile(sizes, 95))

        return summary
