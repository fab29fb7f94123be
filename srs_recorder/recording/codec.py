"""
녹음 로그 레코드 코덱 모듈입니다.

역할:
- TransmissionRecord ↔ 로그 파일 바이너리 레코드 변환 (비트 단위 동일)
- 로그 쓰기(CapturePipeline)와 재생(LogReader)이 같은 코덱을 사용
- 정상 파일 끝(EndOfStreamError)과 손상 데이터(CorruptRecordError)를 구분

레코드 레이아웃 (리틀엔디안, 파일 헤더/체크섬 없음):
    int64    timestamp (.NET ticks: 0001-01-01T00:00:00Z 기준 100ns 단위)
    float64  frequency
    uint8    modulation
    uint8    encryption
    uint32   transmitterUnitId
    uint64   packetId
    22 bytes transmitterIdentity (ASCII, NUL 패딩/절단)
    int32    payloadLength
    N bytes  payload (길이 0이면 생략)
    int32    coalition

사용 예시:
    >>> codec = RecordCodec()
    >>> data = codec.encode(record)
    >>> codec.decode(data) == record
    True
"""

from __future__ import annotations

import io
import logging
import struct
from datetime import datetime, timedelta, timezone
from typing import BinaryIO

from srs_recorder.capture import (
    DEFAULT_CHANNEL_COUNT,
    DEFAULT_SAMPLE_RATE,
    IDENTITY_LENGTH,
    TransmissionRecord,
    pack_identity,
    unpack_identity,
)
from srs_recorder.errors import CorruptRecordError, EndOfStreamError, IoFailureError

logger = logging.getLogger(__name__)

# 페이로드 앞 고정 필드 (timestamp ~ payloadLength)
_RECORD_HEAD = struct.Struct(f"<qdBBIQ{IDENTITY_LENGTH}si")
# 페이로드 뒤 고정 필드 (coalition)
_RECORD_TAIL = struct.Struct("<i")

RECORD_HEAD_SIZE = _RECORD_HEAD.size    # 56
RECORD_TAIL_SIZE = _RECORD_TAIL.size    # 4

# 이보다 긴 페이로드 길이는 손상된 레코드로 간주 (UDP 패킷 최대 크기의 수백 배)
MAX_PAYLOAD_LENGTH = 16 * 1024 * 1024

# .NET DateTime 틱 기준 (100ns 단위)
TICKS_EPOCH = datetime(1, 1, 1, tzinfo=timezone.utc)
TICKS_PER_SECOND = 10_000_000
TICKS_PER_MICROSECOND = 10
MAX_TICKS = 3_155_378_975_999_999_999  # 9999-12-31T23:59:59.9999999


def datetime_to_ticks(value: datetime) -> int:
    """
    datetime을 .NET 틱(0001-01-01 UTC 기준 100ns 단위)으로 변환합니다.

    timezone 정보가 없는 datetime은 UTC로 간주합니다.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - TICKS_EPOCH
    return (
        (delta.days * 86_400 + delta.seconds) * TICKS_PER_SECOND
        + delta.microseconds * TICKS_PER_MICROSECOND
    )


def ticks_to_datetime(ticks: int) -> datetime:
    """
    .NET 틱을 UTC datetime으로 변환합니다.

    datetime 정밀도(1µs) 미만의 틱은 버려집니다.

    에러:
        CorruptRecordError: 틱 값이 표현 가능한 범위를 벗어날 때
    """
    if not 0 <= ticks <= MAX_TICKS:
        raise CorruptRecordError(f"타임스탬프 범위 초과: ticks={ticks}")
    return TICKS_EPOCH + timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)


class RecordCodec:
    """
    TransmissionRecord 바이너리 인코더/디코더입니다.

    샘플레이트/채널 수는 로그에 기록되지 않으므로,
    디코딩 시 생성자에 전달한 세션 값으로 채웁니다.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channel_count: int = DEFAULT_CHANNEL_COUNT,
    ) -> None:
        self._sample_rate = sample_rate
        self._channel_count = channel_count

    # =========================================================================
    # 인코딩
    # =========================================================================

    def encode(self, record: TransmissionRecord) -> bytes:
        """
        레코드를 로그 바이트열로 변환합니다.

        에러:
            ValueError: 필드 값이 로그 타입 범위를 벗어나거나 타입이 맞지 않을 때 (잘못 구성된 레코드)
        """
        try:
            payload = record.audio_payload or b""
            head = _RECORD_HEAD.pack(
                datetime_to_ticks(record.timestamp),
                record.frequency,
                record.modulation,
                record.encryption,
                record.unit_id,
                record.packet_id,
                pack_identity(record.transmitter_guid),
                len(payload),
            )
            tail = _RECORD_TAIL.pack(record.coalition)
            return head + payload + tail
        except (struct.error, TypeError, AttributeError, OverflowError) as exc:
            raise ValueError(f"레코드 인코딩 실패 (packet_id={record.packet_id}): {exc}") from exc

    def write(self, stream: BinaryIO, record: TransmissionRecord) -> int:
        """
        레코드를 인코딩하여 스트림에 씁니다.

        반환값:
            int: 기록한 바이트 수

        에러:
            IoFailureError: 스트림 쓰기 실패 (닫힌 파일 포함)
            ValueError: 잘못 구성된 레코드
        """
        data = self.encode(record)
        try:
            stream.write(data)
        except (OSError, ValueError) as exc:
            raise IoFailureError(f"레코드 쓰기 실패 (packet_id={record.packet_id}): {exc}") from exc
        return len(data)

    # =========================================================================
    # 디코딩
    # =========================================================================

    def read(self, stream: BinaryIO) -> TransmissionRecord:
        """
        스트림의 현재 위치에서 레코드 1개를 읽습니다.

        에러:
            EndOfStreamError: 스트림이 끝남 (truncated=True면 레코드 중간에서 잘림)
            CorruptRecordError: 레코드 구조가 유효하지 않음
            IoFailureError: 스트림 읽기 실패
        """
        head = self._read_exact(stream, RECORD_HEAD_SIZE, at_boundary=True)
        (
            ticks,
            frequency,
            modulation,
            encryption,
            unit_id,
            packet_id,
            guid_bytes,
            payload_length,
        ) = _RECORD_HEAD.unpack(head)

        if payload_length < 0:
            raise CorruptRecordError(
                f"음수 페이로드 길이: {payload_length} (packet_id={packet_id})"
            )
        if payload_length > MAX_PAYLOAD_LENGTH:
            raise CorruptRecordError(
                f"비정상적인 페이로드 길이: {payload_length} (packet_id={packet_id})"
            )

        timestamp = ticks_to_datetime(ticks)
        payload = self._read_exact(stream, payload_length) if payload_length else b""
        (coalition,) = _RECORD_TAIL.unpack(self._read_exact(stream, RECORD_TAIL_SIZE))

        return TransmissionRecord(
            timestamp=timestamp,
            frequency=frequency,
            modulation=modulation,
            encryption=encryption,
            unit_id=unit_id,
            packet_id=packet_id,
            transmitter_guid=unpack_identity(guid_bytes),
            sample_rate=self._sample_rate,
            channel_count=self._channel_count,
            coalition=coalition,
            audio_payload=payload,
        )

    def decode(self, data: bytes) -> TransmissionRecord:
        """메모리 버퍼의 맨 앞 레코드 1개를 디코딩합니다."""
        return self.read(io.BytesIO(data))

    @staticmethod
    def _read_exact(stream: BinaryIO, size: int, at_boundary: bool = False) -> bytes:
        """
        정확히 size 바이트를 읽습니다.

        레코드 경계(at_boundary=True)에서 0바이트가 읽히면 정상 종료,
        그 외에 부족하면 잘린 레코드로 EndOfStreamError(truncated=True)를 발생시킵니다.
        """
        chunks = []
        remaining = size
        try:
            while remaining > 0:
                chunk = stream.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        except OSError as exc:
            raise IoFailureError(f"로그 읽기 실패: {exc}") from exc

        data = b"".join(chunks)
        if len(data) == size:
            return data
        if at_boundary and not data:
            raise EndOfStreamError("로그 파일 끝", truncated=False)
        raise EndOfStreamError(
            f"레코드가 잘림: {size}바이트 중 {len(data)}바이트만 남음",
            truncated=True,
        )
