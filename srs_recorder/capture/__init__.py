"""
캡처 모듈 패키지

공통 데이터 타입 정의:
- TransmissionRecord: 디코딩된 무전 송신 한 건의 컨테이너
- pack_identity / unpack_identity: 22바이트 고정폭 송신자 식별자 변환
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

# 송신자 식별자(SRS ShortGuid)의 고정 폭 (바이트)
IDENTITY_LENGTH = 22

# 세션 설정이 없을 때 사용하는 기본값 (SRS 음성: 48kHz 모노)
DEFAULT_SAMPLE_RATE = 48000
DEFAULT_CHANNEL_COUNT = 1


def pack_identity(identity: str) -> bytes:
    """
    송신자 식별자를 22바이트 ASCII로 변환합니다.

    22바이트보다 짧으면 NUL로 채우고, 길면 앞 22바이트만 남깁니다.
    ASCII 범위 밖의 문자는 '?'로 치환됩니다.
    """
    raw = (identity or "").encode("ascii", errors="replace")
    return raw[:IDENTITY_LENGTH].ljust(IDENTITY_LENGTH, b"\x00")


def unpack_identity(raw: bytes) -> str:
    """
    22바이트 식별자 필드를 문자열로 복원합니다.

    뒤쪽 NUL 바이트만 제거하며, 중간에 있는 NUL은 그대로 유지합니다.
    """
    return raw.rstrip(b"\x00").decode("ascii", errors="replace")


@dataclass
class TransmissionRecord:
    """
    무전 송신 한 건(UDP 패킷 1개)의 메타데이터와 음성 페이로드입니다.

    필드:
        timestamp: 수신 시각 (UTC, timezone-aware datetime)
        frequency: 무전 주파수 (Hz)
        modulation: 변조 방식 코드 (0~255)
        encryption: 암호화 모드 코드 (0~255)
        unit_id: 송신 유닛 식별자 (uint32)
        packet_id: 송신측이 부여한 패킷 순번 (uint64)
        transmitter_guid: 송신자 식별자 (ASCII, 최대 22바이트)
        sample_rate: 세션 샘플레이트 (와이어/로그에 없음, 세션 설정값)
        channel_count: 세션 채널 수 (와이어/로그에 없음, 세션 설정값)
        coalition: 진영 식별자 (int32)
        audio_payload: 음성 페이로드 (녹음 불허 송신자는 빈 bytes)
    """
    timestamp: datetime
    frequency: float
    modulation: int
    encryption: int
    unit_id: int
    packet_id: int
    transmitter_guid: str
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channel_count: int = DEFAULT_CHANNEL_COUNT
    coalition: int = 0
    audio_payload: bytes = field(default=b"", repr=False)

    @property
    def is_suppressed(self) -> bool:
        """페이로드가 비어있으면 True (녹음 불허 또는 무음 패킷)."""
        return len(self.audio_payload) == 0

    def describe(self) -> str:
        """실시간 콘솔 출력용 한 줄 요약을 반환합니다."""
        return (
            f"Time={self.timestamp.isoformat()}, Freq={self.frequency}, "
            f"Mod={self.modulation}, TxGuid={self.transmitter_guid}, "
            f"Size={len(self.audio_payload)}, Coalition={self.coalition}"
        )


def utc_now() -> datetime:
    """현재 UTC 시각을 timezone-aware datetime으로 반환합니다."""
    return datetime.now(timezone.utc)
