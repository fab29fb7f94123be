"""
공유 메트릭 저장소 모듈입니다.

역할:
- 수신 스레드, 라이터 태스크, 콘솔 출력이 공유하는 thread-safe 카운터
- 수신/손상/음성 제거/큐 삽입/기록/쓰기 실패/중지 시 폐기 건수를 중앙 관리
- 세션 시작 시 초기화, 종료 시 요약 로그에 사용

사용 예시:
    >>> store = MetricsStore()
    >>> store.record_received(suppressed=False)
    >>> stats = store.get_capture_stats()
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass


@dataclass
class CaptureStats:
    """캡처 파이프라인 카운터 스냅샷입니다."""
    packets_received: int = 0
    packets_malformed: int = 0
    payloads_suppressed: int = 0
    records_enqueued: int = 0
    records_written: int = 0
    bytes_written: int = 0
    write_errors: int = 0
    records_discarded: int = 0
    session_started_at_ns: int = 0
    updated_at_ns: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class MetricsStore:
    """
    캡처 파이프라인 메트릭을 관리하는 thread-safe 저장소입니다.

    모든 공개 메서드는 RLock으로 보호되며, get_capture_stats()는 복사본을 반환합니다.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._stats = CaptureStats()

    def reset(self) -> None:
        """새 녹음 세션 시작 시 카운터를 초기화합니다."""
        with self._lock:
            now_ns = time.time_ns()
            self._stats = CaptureStats(session_started_at_ns=now_ns, updated_at_ns=now_ns)

    # =========================================================================
    # 수신 경로 (프로듀서)
    # =========================================================================

    def record_received(self, suppressed: bool) -> None:
        """디코딩에 성공한 패킷 1개를 기록합니다."""
        with self._lock:
            self._stats.packets_received += 1
            if suppressed:
                self._stats.payloads_suppressed += 1
            self._stats.updated_at_ns = time.time_ns()

    def record_malformed(self) -> None:
        """디코딩에 실패해 드롭한 패킷 1개를 기록합니다."""
        with self._lock:
            self._stats.packets_malformed += 1
            self._stats.updated_at_ns = time.time_ns()

    def record_enqueued(self) -> None:
        with self._lock:
            self._stats.records_enqueued += 1
            self._stats.updated_at_ns = time.time_ns()

    # =========================================================================
    # 쓰기 경로 (라이터)
    # =========================================================================

    def record_written(self, byte_count: int) -> None:
        """로그에 기록된 레코드 1개와 바이트 수를 기록합니다."""
        with self._lock:
            self._stats.records_written += 1
            self._stats.bytes_written += byte_count
            self._stats.updated_at_ns = time.time_ns()

    def record_write_error(self) -> None:
        with self._lock:
            self._stats.write_errors += 1
            self._stats.updated_at_ns = time.time_ns()

    def record_discarded(self, count: int) -> None:
        """stop() 시점에 큐에 남아 폐기된 레코드 수를 기록합니다."""
        with self._lock:
            self._stats.records_discarded += count
            self._stats.updated_at_ns = time.time_ns()

    # =========================================================================
    # 조회
    # =========================================================================

    def get_capture_stats(self) -> CaptureStats:
        """현재 카운터의 복사본을 반환합니다."""
        with self._lock:
            return CaptureStats(**asdict(self._stats))
