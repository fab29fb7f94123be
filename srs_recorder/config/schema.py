"""
SRS 레코더 설정 스키마 정의 모듈입니다.

역할:
- Pydantic v2 BaseModel 기반으로 config.yaml의 전체 구조를 타입 안전하게 정의
- 각 섹션(system, recorder, dump, replay, transmitters)을
  독립적인 중첩 모델로 분리하여 유지보수성 확보
- 필드별 기본값, 허용 범위, 유효성 검증(validator)을 포함

사용 예시:
    >>> from srs_recorder.config.schema import AppConfig
    >>> config = AppConfig(**yaml_data)
    >>> print(config.recorder.recording_file)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

# 모듈 로거 설정
logger = logging.getLogger(__name__)


# =============================================================================
# system 섹션: 시스템 전역 설정
# =============================================================================

class SystemConfig(BaseModel):
    """
    시스템 전역 설정을 정의하는 모델입니다.

    역할:
    - 로깅 레벨 및 포맷 지정
    - 세션 식별자 관리
    """
    # 로그 출력 레벨
    log_level: str = Field(default="INFO", description="로그 레벨 (DEBUG | INFO | WARNING | ERROR)")
    # 로그 출력 포맷
    log_format: str = Field(default="json", description="로그 포맷 (json | text)")
    # 로그 파일 저장 디렉토리 경로
    log_dir: str = Field(default="output/logs", description="로그 저장 디렉토리")
    # 세션 고유 식별자 (빈 문자열이면 UUID로 자동 생성)
    session_id: str = Field(default="", description="세션 ID (비어있으면 UUID 자동생성)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """로그 레벨이 유효한 Python 로깅 레벨인지 검증합니다."""
        allowed_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        # 대소문자 구분 없이 비교 후 대문자로 정규화
        upper_value = value.upper()
        if upper_value not in allowed_levels:
            error_message = f"log_level은 {allowed_levels} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return upper_value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        """로그 포맷이 지원되는 형식인지 검증합니다."""
        allowed_formats = ("json", "text")
        if value not in allowed_formats:
            error_message = f"log_format은 {allowed_formats} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value


# =============================================================================
# recorder 섹션: 캡처 세션 설정
# =============================================================================

class RecorderConfig(BaseModel):
    """
    녹음 세션 설정을 정의하는 모델입니다.

    역할:
    - 기본 녹음 파일 경로
    - 와이어 포맷에 없는 세션 상수(샘플레이트/채널 수)
    - 라이터 폴링 주기
    """
    # start()에 경로가 주어지지 않았을 때 사용할 녹음 파일
    recording_file: str = Field(default="recorded_audio.raw", description="기본 녹음 파일 경로")
    # 세션 샘플레이트 (와이어 포맷에 포함되지 않음)
    sample_rate: int = Field(default=48000, description="세션 샘플레이트 (Hz)")
    # 세션 채널 수 (SRS 음성은 모노)
    channel_count: int = Field(default=1, description="세션 채널 수")
    # 라이터 큐 폴링 주기 (밀리초)
    poll_interval_ms: int = Field(default=10, description="라이터 큐 폴링 주기 (ms)")
    # 패킷 소스 큐 대기 타임아웃 (밀리초)
    packet_timeout_ms: int = Field(default=100, description="패킷 큐 대기 타임아웃 (ms)")

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, value: int) -> int:
        """샘플레이트가 양수인지 검증합니다."""
        if value <= 0:
            raise ValueError(f"sample_rate는 양수여야 합니다. 입력값: {value}")
        return value

    @field_validator("channel_count")
    @classmethod
    def validate_channel_count(cls, value: int) -> int:
        """채널 수가 1~8 범위인지 검증합니다."""
        if not 1 <= value <= 8:
            raise ValueError(f"channel_count는 1~8 범위여야 합니다. 입력값: {value}")
        return value

    @field_validator("poll_interval_ms")
    @classmethod
    def validate_poll_interval(cls, value: int) -> int:
        """
        폴링 주기가 1~1000ms 범위인지 검증합니다.

        너무 길면 stop() 요청이 늦게 반영되고, 0이면 busy-wait가 됩니다.
        """
        if not 1 <= value <= 1000:
            raise ValueError(f"poll_interval_ms는 1~1000 범위여야 합니다. 입력값: {value}")
        return value


# =============================================================================
# dump 섹션: 패킷 덤프 파일 재생 소스 설정
# =============================================================================

class DumpConfig(BaseModel):
    """
    원시 UDP 패킷 덤프 파일을 패킷 소스로 사용할 때의 설정입니다.

    역할:
    - 덤프 파일 경로 지정
    - 재생 속도 및 반복 재생 제어
    """
    # 덤프 파일 경로 (비어있으면 사용 안 함)
    path: str = Field(default="", description="원시 패킷 덤프 파일 경로")
    # 재생 속도 배율 (1.0 = 실시간)
    playback_speed: float = Field(default=1.0, description="재생 속도 (1.0 = 실시간)")
    # 실시간 재생 시 패킷 간 간격 (SRS 음성 프레임 20ms)
    packet_interval_ms: int = Field(default=20, description="패킷 간 간격 (ms)")
    # 파일 반복 재생 여부
    loop: bool = Field(default=False, description="파일 반복 재생 여부")

    @field_validator("playback_speed")
    @classmethod
    def validate_playback_speed(cls, value: float) -> float:
        """재생 속도가 양수인지 검증합니다."""
        if value <= 0:
            raise ValueError(f"playback_speed는 양수여야 합니다. 입력값: {value}")
        return value


# =============================================================================
# replay 섹션: 로그 재생 설정
# =============================================================================

class ReplayConfig(BaseModel):
    """
    녹음 로그 재생 설정입니다.

    역할:
    - 기록된 타임스탬프 기준 재생 속도 (0 = 대기 없이 즉시)
    - 출력할 최대 레코드 수 제한
    """
    # 재생 속도 배율 (0 = 대기 없음)
    playback_speed: float = Field(default=0.0, description="재생 속도 (0 = 대기 없음)")
    # 최대 재생 레코드 수 (0 = 전체)
    max_records: int = Field(default=0, description="최대 재생 레코드 수 (0 = 전체)")

    @field_validator("playback_speed")
    @classmethod
    def validate_playback_speed(cls, value: float) -> float:
        """재생 속도가 음수가 아닌지 검증합니다."""
        if value < 0:
            raise ValueError(f"playback_speed는 0 이상이어야 합니다. 입력값: {value}")
        return value


# =============================================================================
# transmitters 섹션: 송신자 녹음 허용 목록
# =============================================================================

class TransmitterEntry(BaseModel):
    """
    알려진 송신자 한 명의 녹음 허용 여부입니다.

    SRS 클라이언트 GUID 기준으로 조회하며,
    allow_record=False인 송신자는 메타데이터만 기록하고 음성은 저장하지 않습니다.
    """
    # SRS 클라이언트 GUID (22자 ShortGuid)
    guid: str = Field(description="송신자 GUID")
    # 표시용 이름
    name: str = Field(default="", description="송신자 이름")
    # 녹음 허용 여부
    allow_record: bool = Field(default=True, description="녹음 허용 여부")

    @field_validator("guid")
    @classmethod
    def validate_guid(cls, value: str) -> str:
        """GUID가 비어있지 않은지 검증합니다."""
        if not value.strip():
            raise ValueError("guid는 비어있을 수 없습니다")
        return value.strip()


# =============================================================================
# 최상위 AppConfig: 모든 섹션을 통합하는 루트 모델
# =============================================================================

class AppConfig(BaseModel):
    """
    애플리케이션 전체 설정을 통합하는 최상위 모델입니다.

    역할:
    - config.yaml의 모든 섹션을 하나의 타입 안전한 객체로 통합
    - Pydantic v2 유효성 검증을 통해 설정 무결성 보장
    - 각 섹션이 누락된 경우 기본값으로 자동 생성

    사용 예시:
        >>> import yaml
        >>> with open("config.yaml") as f:
        ...     raw = yaml.safe_load(f)
        >>> config = AppConfig(**raw)
        >>> print(config.recorder.sample_rate)
        48000
    """
    # 시스템 전역 설정
    system: SystemConfig = Field(default_factory=SystemConfig, description="시스템 설정")
    # 녹음 세션 설정
    recorder: RecorderConfig = Field(default_factory=RecorderConfig, description="녹음 설정")
    # 패킷 덤프 소스 설정
    dump: DumpConfig = Field(default_factory=DumpConfig, description="덤프 소스 설정")
    # 로그 재생 설정
    replay: ReplayConfig = Field(default_factory=ReplayConfig, description="재생 설정")
    # 송신자 녹음 허용 목록
    transmitters: list[TransmitterEntry] = Field(default_factory=list, description="송신자 목록")
