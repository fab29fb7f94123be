"""
SRS UDP 음성 패킷 디코더 모듈입니다.

역할:
- 원시 UDP 페이로드 1개를 고정 오프셋 규칙으로 파싱하여 TransmissionRecord 생성
- 세션 설정의 샘플레이트/채널 수 채움 (와이어 포맷에 없음)
- 송신자 허용 목록 조회 후 녹음 불허 송신자의 페이로드 제거
- 짧은 패킷은 MalformedFrameError로 거부 (범위 밖 읽기 없음)

와이어 레이아웃 (리틀엔디안):
    uint16  전체 패킷 길이 (참고용, 검증하지 않음)
    uint16  오디오 세그먼트 길이 L
    uint16  주파수 세그먼트 길이 (예약, 사용 안 함)
    L bytes 오디오 페이로드
    float64 주파수 (Hz)
    uint8   변조 코드
    uint8   암호화 코드
    uint32  송신 유닛 ID
    uint64  패킷 ID
    uint8   홉 카운트 (사용 안 함)
    22 bytes 송신자 GUID (ASCII, NUL 패딩)
    int32   진영 식별자

사용 예시:
    >>> decoder = WireFrameDecoder(directory, sample_rate=48000, channel_count=1)
    >>> record = decoder.try_decode(packet)
    >>> if record is None:
    ...     pass  # 손상된 패킷은 로그 후 드롭
"""

from __future__ import annotations

import logging
import struct
from datetime import datetime
from typing import Callable, Optional

from srs_recorder.capture import (
    DEFAULT_CHANNEL_COUNT,
    DEFAULT_SAMPLE_RATE,
    IDENTITY_LENGTH,
    TransmissionRecord,
    pack_identity,
    unpack_identity,
    utc_now,
)
from srs_recorder.capture.transmitter_directory import TransmitterDirectory
from srs_recorder.config.schema import AppConfig
from srs_recorder.errors import MalformedFrameError

logger = logging.getLogger(__name__)

# 헤더: 전체 길이, 오디오 길이, 주파수 세그먼트 길이
_HEADER = struct.Struct("<HHH")
# 오디오 뒤 고정 필드: 주파수, 변조, 암호화, 유닛 ID, 패킷 ID, 홉 카운트, GUID, 진영
_TRAILER = struct.Struct(f"<dBBIQB{IDENTITY_LENGTH}si")

HEADER_SIZE = _HEADER.size      # 6
TRAILER_SIZE = _TRAILER.size    # 49


def minimum_frame_size(audio_length: int) -> int:
    """오디오 길이 L인 프레임을 디코딩하는 데 필요한 최소 바이트 수 (6 + L + 49)."""
    return HEADER_SIZE + audio_length + TRAILER_SIZE


def encode_wire_frame(
    audio_payload: bytes,
    frequency: float,
    modulation: int,
    encryption: int,
    unit_id: int,
    packet_id: int,
    transmitter_guid: str,
    coalition: int,
    hop_count: int = 0,
    frequency_segment_length: int = 0,
) -> bytes:
    """
    와이어 레이아웃대로 UDP 패킷을 조립합니다.

    덤프 파일 생성과 테스트 픽스처에서 사용합니다.
    """
    trailer = _TRAILER.pack(
        frequency,
        modulation,
        encryption,
        unit_id,
        packet_id,
        hop_count,
        pack_identity(transmitter_guid),
        coalition,
    )
    total_length = HEADER_SIZE + len(audio_payload) + len(trailer)
    header = _HEADER.pack(total_length, len(audio_payload), frequency_segment_length)
    return header + audio_payload + trailer


class WireFrameDecoder:
    """
    UDP 패킷 → TransmissionRecord 변환기입니다.

    상태를 갖지 않으므로 여러 수신 스레드에서 동시에 호출해도 안전합니다.
    (허용 목록 조회는 TransmitterDirectory 내부 락으로 보호됩니다.)
    """

    def __init__(
        self,
        directory: Optional[TransmitterDirectory] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channel_count: int = DEFAULT_CHANNEL_COUNT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = directory if directory is not None else TransmitterDirectory()
        self._sample_rate = sample_rate
        self._channel_count = channel_count
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        directory: Optional[TransmitterDirectory] = None,
    ) -> "WireFrameDecoder":
        """세션 설정(recorder 섹션)으로 디코더를 생성합니다."""
        return cls(
            directory=directory if directory is not None else TransmitterDirectory.from_config(config),
            sample_rate=config.recorder.sample_rate,
            channel_count=config.recorder.channel_count,
        )

    @property
    def directory(self) -> TransmitterDirectory:
        return self._directory

    def decode(self, packet: bytes) -> TransmissionRecord:
        """
        UDP 패킷 1개를 디코딩합니다.

        파라미터:
            packet: 원시 UDP 페이로드

        반환값:
            TransmissionRecord: 수신 시각과 세션 상수가 채워진 레코드

        에러:
            MalformedFrameError: 선언된 필드를 모두 읽기에 버퍼가 짧을 때
        """
        packet_size = len(packet)
        if packet_size < HEADER_SIZE:
            raise MalformedFrameError(
                f"패킷 헤더 부족: {packet_size}바이트 (최소 {HEADER_SIZE}바이트)",
                packet_size=packet_size,
                required_size=HEADER_SIZE,
            )

        # 전체 길이/주파수 세그먼트 길이는 읽기만 하고 검증하지 않음
        _total_length, audio_length, _freq_segment_length = _HEADER.unpack_from(packet, 0)

        required_size = minimum_frame_size(audio_length)
        if packet_size < required_size:
            raise MalformedFrameError(
                f"패킷 길이 부족: {packet_size}바이트 "
                f"(오디오 {audio_length}바이트 기준 최소 {required_size}바이트)",
                packet_size=packet_size,
                required_size=required_size,
            )

        audio_payload = bytes(packet[HEADER_SIZE:HEADER_SIZE + audio_length])
        (
            frequency,
            modulation,
            encryption,
            unit_id,
            packet_id,
            _hop_count,
            guid_bytes,
            coalition,
        ) = _TRAILER.unpack_from(packet, HEADER_SIZE + audio_length)

        transmitter_guid = unpack_identity(guid_bytes)

        if not self._directory.is_recording_allowed(transmitter_guid):
            # 메타데이터는 유지하고 음성만 제거
            audio_payload = b""

        return TransmissionRecord(
            timestamp=self._clock(),
            frequency=frequency,
            modulation=modulation,
            encryption=encryption,
            unit_id=unit_id,
            packet_id=packet_id,
            transmitter_guid=transmitter_guid,
            sample_rate=self._sample_rate,
            channel_count=self._channel_count,
            coalition=coalition,
            audio_payload=audio_payload,
        )

    def try_decode(self, packet: bytes) -> Optional[TransmissionRecord]:
        """
        decode()의 경계용 버전입니다.

        손상된 패킷은 경고 로그를 남기고 None을 반환하므로
        수신 경로로 예외가 전파되지 않습니다.
        """
        try:
            return self.decode(packet)
        except MalformedFrameError as exc:
            logger.warning(
                f"손상된 패킷 드롭: {exc}",
                extra={"packet_size": exc.packet_size, "required_size": exc.required_size},
            )
            return None
