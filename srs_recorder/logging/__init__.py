"""
구조화 로깅 패키지

setup_logging / record_fields를 외부에서 임포트하기 위한 패키지 초기화입니다.
"""

from srs_recorder.logging.structured_logger import record_fields, setup_logging

__all__ = ["record_fields", "setup_logging"]
