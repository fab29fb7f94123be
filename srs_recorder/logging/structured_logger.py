"""
구조화 로깅 모듈입니다.

역할:
- root 로거에 콘솔 + 순환 파일(app.log, 10MB x 5) 핸들러 구성
- json 포맷: python-json-logger로 session_id/module/level 필드를 붙여 출력
- text 포맷: 세션 ID 앞 8자를 접두어로 출력
- record_fields(): 송신 레코드를 로그 extra 필드로 변환

사용 예시:
    >>> session_id = setup_logging(config)
    >>> logger.info("패킷 수신", extra=record_fields(record))
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
import uuid
from pathlib import Path
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger

from srs_recorder.capture import TransmissionRecord
from srs_recorder.config.schema import AppConfig

LOG_FILE_NAME = "app.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def setup_logging(
    config: AppConfig,
    session_id: Optional[str] = None,
    console_stream: Optional[TextIO] = None,
) -> str:
    """
    root 로거를 설정 값으로 다시 구성하고 적용된 세션 ID를 반환합니다.

    세션 ID 우선순위: 인자 → config.system.session_id → 새 UUID.
    재호출해도 핸들러가 중복되지 않습니다.
    로그 디렉토리를 만들 수 없으면 콘솔 핸들러만으로 계속합니다.
    """
    resolved_id = session_id or config.system.session_id or str(uuid.uuid4())
    log_level = getattr(logging, config.system.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = _make_formatter(config.system.log_format, resolved_id)
    for handler in _build_handlers(Path(config.system.log_dir), console_stream):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger(__name__).info(
        f"로깅 초기화: level={config.system.log_level}, "
        f"format={config.system.log_format}, session={resolved_id}"
    )
    return resolved_id


def record_fields(record: TransmissionRecord) -> dict:
    """송신 레코드의 식별 필드를 로그 extra 딕셔너리로 반환합니다 (페이로드 제외)."""
    return {
        "packet_id": record.packet_id,
        "frequency": record.frequency,
        "transmitter": record.transmitter_guid,
        "coalition": record.coalition,
        "payload_size": len(record.audio_payload),
    }


def _build_handlers(log_dir: Path, console_stream: Optional[TextIO]) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(console_stream or sys.stderr)]
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_dir / LOG_FILE_NAME,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )
    except OSError as exc:
        logging.getLogger(__name__).warning(f"로그 파일 핸들러 생성 실패: {exc}")
    return handlers


def _make_formatter(log_format: str, session_id: str) -> logging.Formatter:
    if log_format == "json":
        return _JsonFormatter(session_id=session_id)
    return _TextFormatter(session_id=session_id)


class _JsonFormatter(jsonlogger.JsonFormatter):
    """
    session_id, module, level 필드를 자동 추가하는 JSON 포맷터입니다.

    extra로 전달한 필드(packet_id, transmitter 등)는 그대로 JSON 키가 됩니다.
    """

    def __init__(self, session_id: str = "") -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
        self._session_id = session_id

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["session_id"] = self._session_id
        log_record["module"] = record.name
        log_record["level"] = record.levelname


class _TextFormatter(logging.Formatter):
    """세션 ID 앞 8자(없으면 no-sid)를 접두어로 붙입니다."""

    def __init__(self, session_id: str = "") -> None:
        prefix = session_id[:8] if session_id else "no-sid"
        super().__init__(
            fmt=f"%(asctime)s [{prefix}] %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
