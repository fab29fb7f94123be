"""
메트릭 모듈 패키지

- MetricsStore: 캡처 파이프라인 공유 카운터 저장소
- CaptureStats: 카운터 스냅샷
"""

from srs_recorder.metrics.metrics_store import CaptureStats, MetricsStore

__all__ = ["CaptureStats", "MetricsStore"]
