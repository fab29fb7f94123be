"""
레코더 예외 계층 정의 모듈입니다.

역할:
- 와이어 디코딩, 로그 코덱, 캡처 파이프라인에서 발생하는 오류를 구분
- 복구 가능한 오류(패킷 드롭, 단일 레코드 쓰기 실패)와
  세션 종료 오류(RecordingAbortedError)를 호출자가 구별할 수 있도록 분리

사용 예시:
    >>> try:
    ...     record = codec.read(stream)
    ... except EndOfStreamError:
    ...     pass  # 정상 종료
    ... except CorruptRecordError:
    ...     raise  # 손상된 로그
"""

from __future__ import annotations


class RecorderError(Exception):
    """레코더 오류의 기본 클래스입니다."""
    pass


class MalformedFrameError(RecorderError):
    """UDP 패킷이 선언된 필드를 모두 읽기에 너무 짧을 때 발생합니다."""

    def __init__(self, message: str, packet_size: int = 0, required_size: int = 0) -> None:
        super().__init__(message)
        self.packet_size = packet_size
        self.required_size = required_size


class EndOfStreamError(RecorderError):
    """
    레코드를 끝까지 읽기 전에 스트림이 끝났을 때 발생합니다.

    truncated=False: 레코드 경계에서 정상적으로 파일이 끝남
    truncated=True: 레코드 중간에서 파일이 잘림 (마지막 레코드 유실)
    """

    def __init__(self, message: str = "스트림 끝", truncated: bool = False) -> None:
        super().__init__(message)
        self.truncated = truncated


class CorruptRecordError(RecorderError):
    """레코드 구조가 유효하지 않을 때 발생합니다 (음수 길이 등)."""
    pass


class IoFailureError(RecorderError):
    """로그 파일 읽기/쓰기 중 하위 I/O 오류가 발생했을 때의 래퍼입니다."""
    pass


class AlreadyRecordingError(RecorderError):
    """녹음 중에 start()를 다시 호출했을 때 발생합니다."""
    pass


class NotRecordingError(RecorderError):
    """녹음 중이 아닐 때 레코드를 큐에 넣으려 하면 발생합니다."""
    pass


class RecordingAbortedError(RecorderError):
    """로그 파일 핸들이 무효화되어 녹음 세션이 강제 종료되었을 때 발생합니다."""
    pass
