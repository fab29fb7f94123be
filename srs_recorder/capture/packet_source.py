"""
원시 패킷 소스 모듈입니다.

역할:
- PacketSource: 외부 수신 스레드(UDP 소켓 콜백 등)가 feed()로 넘긴 패킷을
  loop.call_soon_threadsafe()로 asyncio.Queue에 전달
- DumpFilePacketSource: 원시 와이어 프레임을 이어 붙인 덤프 파일을
  설정된 속도로 재생하는 모의 소스 (SRS 서버 없이 전체 파이프라인 실행 가능)
- 덤프 파일 읽기/쓰기 헬퍼

덤프 파일 형식:
    와이어 프레임을 그대로 이어 붙인 바이트열입니다.
    각 프레임의 첫 uint16(전체 패킷 길이)을 프레임 구분에 사용합니다.

사용 예시:
    >>> source = DumpFilePacketSource(config)
    >>> await source.start()
    >>> await pipeline.start(packet_queue=source.get_packet_queue())
    >>> await source.wait_finished()
"""

from __future__ import annotations

import asyncio
import logging
import struct
from pathlib import Path
from typing import Iterable, Iterator, Optional

from srs_recorder.config.schema import AppConfig
from srs_recorder.errors import IoFailureError

logger = logging.getLogger(__name__)

_FRAME_LENGTH = struct.Struct("<H")


class PacketSource:
    """
    외부 수신 스레드와 asyncio 파이프라인 사이의 경계 어댑터입니다.

    아키텍처:
        [수신 스레드]
            ↓ feed() (동기, 임의 스레드)
        [asyncio loop.call_soon_threadsafe()]
            ↓ _enqueue_sync()
        [packet_queue]
    """

    def __init__(self, queue_size: int = 0) -> None:
        """
        파라미터:
            queue_size: 패킷 큐 최대 크기 (0 = 무제한)
        """
        self._packet_queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=queue_size)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running: bool = False
        self._packets_fed = 0
        self._packets_dropped = 0

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    def get_packet_queue(self) -> asyncio.Queue[bytes]:
        """원시 패킷이 담기는 asyncio.Queue를 반환합니다."""
        return self._packet_queue

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def packets_fed(self) -> int:
        return self._packets_fed

    @property
    def packets_dropped(self) -> int:
        """큐가 가득 차서 버린 패킷 수 (queue_size > 0일 때만 발생)."""
        return self._packets_dropped

    async def start(self) -> None:
        """현재 이벤트 루프에 바인딩하고 패킷 수신을 시작합니다."""
        if self._running:
            logger.warning(f"{type(self).__name__}가 이미 실행 중입니다")
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        logger.info(f"{type(self).__name__} 시작")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info(f"{type(self).__name__} 중지: fed={self._packets_fed}, dropped={self._packets_dropped}")

    def feed(self, packet: bytes) -> None:
        """
        수신한 원시 패킷을 큐로 전달합니다.

        임의의 스레드에서 호출할 수 있으며 블로킹하지 않습니다.
        시작 전이나 중지 후에 들어온 패킷은 무시됩니다.
        """
        if not self._running or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._enqueue_sync, bytes(packet))

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _enqueue_sync(self, packet: bytes) -> None:
        """이벤트 루프 스레드에서 실행됩니다. 큐가 가득 차면 가장 오래된 패킷을 버립니다."""
        try:
            self._packet_queue.put_nowait(packet)
        except asyncio.QueueFull:
            try:
                self._packet_queue.get_nowait()
                self._packet_queue.task_done()
            except asyncio.QueueEmpty:
                pass
            self._packet_queue.put_nowait(packet)
            self._packets_dropped += 1
            logger.warning("패킷 큐 오버플로우: 가장 오래된 패킷 제거")
        self._packets_fed += 1


class DumpFilePacketSource(PacketSource):
    """
    덤프 파일을 실시간 수신처럼 재생하는 모의 패킷 소스입니다.

    PacketSource와 동일한 get_packet_queue() 인터페이스를 제공하므로
    SRS 서버 없이 CapturePipeline 전체를 실행할 수 있습니다.
    """

    def __init__(self, config: AppConfig, path: str | Path | None = None) -> None:
        """
        파라미터:
            config: 전체 애플리케이션 설정 (dump 섹션 사용)
            path: 덤프 파일 경로 (None이면 config.dump.path)
        """
        super().__init__()
        dump_cfg = config.dump
        self._path = Path(path) if path is not None else Path(dump_cfg.path)
        self._playback_speed = dump_cfg.playback_speed
        self._interval_sec = dump_cfg.packet_interval_ms / 1000.0
        self._loop_enabled = dump_cfg.loop

        self._producer_task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()

        logger.info(
            f"DumpFilePacketSource 초기화 완료: "
            f"file={self._path}, "
            f"loop={self._loop_enabled}, "
            f"playback_speed={self._playback_speed}x"
        )

    @property
    def path(self) -> Path:
        return self._path

    async def start(self) -> None:
        """덤프 재생 프로듀서 태스크를 시작합니다."""
        if self._running:
            logger.warning("DumpFilePacketSource가 이미 실행 중입니다")
            return
        await super().start()
        self._finished.clear()
        self._producer_task = asyncio.create_task(
            self._dump_producer(), name="dump_packet_producer"
        )

    async def stop(self) -> None:
        """프로듀서 태스크를 취소하고 완료를 대기합니다."""
        if not self._running:
            return
        await super().stop()

        task = self._producer_task
        self._producer_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._finished.set()

    async def wait_finished(self) -> None:
        """덤프 파일 재생이 끝날 때까지 대기합니다 (loop=True면 stop() 전까지 끝나지 않음)."""
        await self._finished.wait()

    async def _dump_producer(self) -> None:
        """
        덤프 파일의 프레임을 packet_interval_ms / playback_speed 간격으로 큐에 넣습니다.

        loop=True이면 파일 끝에서 처음부터 반복합니다.
        """
        sleep_sec = self._interval_sec / self._playback_speed

        try:
            while self._running:
                frame_count = 0
                for frame in iter_dump_frames(self._path):
                    if not self._running:
                        return
                    self._enqueue_sync(frame)
                    frame_count += 1
                    if sleep_sec > 0:
                        await asyncio.sleep(sleep_sec)
                    else:
                        await asyncio.sleep(0)

                logger.info(f"덤프 파일 재생 완료: {self._path}, 총 {frame_count}개 패킷")

                if not self._loop_enabled or frame_count == 0:
                    return
                logger.debug("덤프 파일 반복 재생 시작")

        except IoFailureError as exc:
            logger.error(f"덤프 파일 재생 오류: {exc}")
        finally:
            self._running = False
            self._finished.set()


# =============================================================================
# 덤프 파일 헬퍼
# =============================================================================

def iter_dump_frames(path: str | Path) -> Iterator[bytes]:
    """
    덤프 파일에서 와이어 프레임을 하나씩 읽습니다.

    마지막 프레임이 잘려 있으면 경고 로그 후 종료합니다.

    에러:
        IoFailureError: 파일을 열 수 없거나 프레임 길이 필드가 유효하지 않을 때
    """
    dump_path = Path(path)
    try:
        dump_file = open(dump_path, "rb")
    except OSError as exc:
        raise IoFailureError(f"덤프 파일 열기 실패: {dump_path}: {exc}") from exc

    with dump_file:
        offset = 0
        while True:
            prefix = dump_file.read(_FRAME_LENGTH.size)
            if not prefix:
                return
            if len(prefix) < _FRAME_LENGTH.size:
                logger.warning(f"덤프 파일 끝의 잘린 프레임 무시: offset={offset}")
                return

            (frame_length,) = _FRAME_LENGTH.unpack(prefix)
            if frame_length < _FRAME_LENGTH.size:
                raise IoFailureError(
                    f"덤프 프레임 길이가 유효하지 않습니다: {frame_length} (offset={offset})"
                )

            body = dump_file.read(frame_length - _FRAME_LENGTH.size)
            if len(body) < frame_length - _FRAME_LENGTH.size:
                logger.warning(f"덤프 파일 끝의 잘린 프레임 무시: offset={offset}")
                return

            offset += frame_length
            yield prefix + body


def write_dump_file(path: str | Path, frames: Iterable[bytes]) -> int:
    """
    와이어 프레임들을 덤프 파일로 저장합니다.

    반환값:
        int: 저장한 프레임 수

    에러:
        ValueError: 프레임의 길이 필드가 실제 길이와 다를 때 (덤프에서 프레임 구분 불가)
        IoFailureError: 파일 쓰기 실패
    """
    dump_path = Path(path)
    count = 0
    try:
        dump_path.parent.mkdir(parents=True, exist_ok=True)
        with open(dump_path, "wb") as dump_file:
            for frame in frames:
                (declared_length,) = _FRAME_LENGTH.unpack_from(frame, 0)
                if declared_length != len(frame):
                    raise ValueError(
                        f"프레임 길이 불일치: 선언 {declared_length}, 실제 {len(frame)}"
                    )
                dump_file.write(frame)
                count += 1
    except OSError as exc:
        raise IoFailureError(f"덤프 파일 쓰기 실패: {dump_path}: {exc}") from exc

    logger.info(f"덤프 파일 저장 완료: {dump_path}, {count}개 프레임")
    return count
