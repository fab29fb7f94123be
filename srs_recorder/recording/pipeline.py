"""
캡처 파이프라인 모듈입니다.

역할:
- 패킷 수신 경로와 디스크 쓰기 경로를 무제한 큐로 분리
- 단일 라이터 태스크가 큐를 폴링하여 RecordCodec으로 로그 파일에 기록
- 녹음 세션 start/stop 수명 주기 관리 (IDLE → RECORDING → STOPPING → IDLE)
- 디코딩된 레코드를 on_record 콜백으로 실시간 통보 (로그 기록과 독립)
- 파일 핸들이 무효화되면 세션을 중단하고 RecordingAbortedError를 호출자에게 전달

파이프라인 구조:
    [수신 스레드 / PacketSource 큐]
          │ submit_packet() → WireFrameDecoder
          │ on_record 콜백 (실시간 표시)
          ▼
    [write_queue: queue.SimpleQueue]   (삽입은 절대 블로킹하지 않음)
          │ poll_interval_ms 주기 폴링
          ▼
    [writer 태스크] ── write lock ──▶ RecordCodec.write() → 로그 파일

사용 예시:
    >>> pipeline = CapturePipeline(config, on_record=print)
    >>> await pipeline.start("session.raw", packet_queue=source.get_packet_queue())
    >>> ...
    >>> await pipeline.stop()
"""

from __future__ import annotations

import asyncio
import errno
import logging
import queue
import threading
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from srs_recorder.capture import TransmissionRecord
from srs_recorder.capture.wire_decoder import WireFrameDecoder
from srs_recorder.config.schema import AppConfig
from srs_recorder.errors import (
    AlreadyRecordingError,
    IoFailureError,
    NotRecordingError,
    RecordingAbortedError,
)
from srs_recorder.logging import record_fields
from srs_recorder.metrics.metrics_store import MetricsStore
from srs_recorder.recording.codec import RecordCodec

logger = logging.getLogger(__name__)

RecordCallback = Callable[[TransmissionRecord], None]
AbortCallback = Callable[[RecordingAbortedError], None]


class PipelineState(str, Enum):
    """캡처 파이프라인 상태입니다."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


class CapturePipeline:
    """
    패킷 디코딩 → 큐 → 로그 파일 기록을 담당하는 녹음 세션 관리자입니다.

    스레드 모델:
    - start()/stop()/wait()는 asyncio 이벤트 루프에서 호출
    - submit_packet()/enqueue()는 임의의 수신 스레드에서 호출 가능
    - 로그 파일 쓰기와 닫기는 모두 _file_write_lock 안에서 수행
    """

    def __init__(
        self,
        config: AppConfig,
        decoder: Optional[WireFrameDecoder] = None,
        codec: Optional[RecordCodec] = None,
        metrics_store: Optional[MetricsStore] = None,
        on_record: Optional[RecordCallback] = None,
        on_written: Optional[RecordCallback] = None,
        on_aborted: Optional[AbortCallback] = None,
    ) -> None:
        """
        CapturePipeline을 초기화합니다.

        파라미터:
            config: 전체 애플리케이션 설정 (recorder 섹션 사용)
            decoder: 와이어 디코더 (None이면 설정으로 생성)
            codec: 로그 코덱 (None이면 세션 샘플레이트/채널 수로 생성)
            metrics_store: 카운터 저장소 (None이면 새로 생성)
            on_record: 레코드 디코딩/큐 삽입 시 호출 (실시간 표시용)
            on_written: 레코드가 로그에 기록된 뒤 호출
            on_aborted: 세션이 RecordingAbortedError로 중단되었을 때 호출
        """
        self._config = config
        recorder_cfg = config.recorder

        self._decoder = decoder if decoder is not None else WireFrameDecoder.from_config(config)
        self._codec = codec if codec is not None else RecordCodec(
            sample_rate=recorder_cfg.sample_rate,
            channel_count=recorder_cfg.channel_count,
        )
        self._metrics_store = metrics_store if metrics_store is not None else MetricsStore()

        self._on_record = on_record
        self._on_written = on_written
        self._on_aborted = on_aborted

        self._poll_interval_sec = recorder_cfg.poll_interval_ms / 1000.0
        self._packet_timeout_sec = recorder_cfg.packet_timeout_ms / 1000.0

        # 수신 → 라이터 큐 (무제한, thread-safe)
        self._write_queue: queue.SimpleQueue[TransmissionRecord] = queue.SimpleQueue()
        self._file_write_lock = threading.Lock()

        self._state = PipelineState.IDLE
        self._file: Optional[BinaryIO] = None
        self._output_path: Optional[Path] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._aborted_error: Optional[RecordingAbortedError] = None

    # =========================================================================
    # 상태 조회
    # =========================================================================

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is PipelineState.RECORDING

    @property
    def output_path(self) -> Optional[Path]:
        """현재(또는 마지막) 세션의 로그 파일 경로입니다."""
        return self._output_path

    @property
    def pending_count(self) -> int:
        """아직 기록되지 않은 큐 대기 레코드 수 (근사값)."""
        return self._write_queue.qsize()

    @property
    def metrics_store(self) -> MetricsStore:
        return self._metrics_store

    @property
    def decoder(self) -> WireFrameDecoder:
        return self._decoder

    # =========================================================================
    # 수명 주기
    # =========================================================================

    async def start(
        self,
        path: str | Path | None = None,
        packet_queue: Optional[asyncio.Queue[bytes]] = None,
    ) -> Path:
        """
        녹음 세션을 시작합니다.

        파라미터:
            path: 로그 파일 경로 (None이면 config.recorder.recording_file)
            packet_queue: 원시 패킷 큐. 주어지면 프로듀서 태스크가 소비합니다.

        반환값:
            Path: 열린 로그 파일 경로

        에러:
            AlreadyRecordingError: 이미 녹음 중(또는 중지 중)일 때. 상태는 바뀌지 않습니다.
            IoFailureError: 로그 파일을 열 수 없을 때
        """
        if self._state is not PipelineState.IDLE:
            raise AlreadyRecordingError(
                f"이미 녹음 세션이 진행 중입니다: state={self._state.value}, "
                f"file={self._output_path}"
            )

        output_path = Path(path) if path is not None else Path(self._config.recorder.recording_file)

        with self._file_write_lock:
            self._file = self._open_log(output_path)
            self._output_path = output_path

        # 이전 세션 잔여물 제거 및 카운터 초기화
        stale = self._drain_write_queue()
        if stale:
            logger.debug(f"이전 세션 큐 잔여 레코드 {stale}개 제거")
        self._metrics_store.reset()
        self._aborted_error = None

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._state = PipelineState.RECORDING

        self._writer_task = asyncio.create_task(
            self._writer_loop(stop_event), name="record_writer"
        )
        if packet_queue is not None:
            self._consumer_task = asyncio.create_task(
                self._packet_consumer_loop(packet_queue, stop_event),
                name="packet_consumer",
            )

        logger.info(f"녹음 시작: file={output_path}")
        return output_path

    async def stop(self) -> None:
        """
        녹음 세션을 중지합니다.

        라이터에 중지를 알리고 진행 중인 기록이 끝날 때까지 기다린 뒤 파일을 닫습니다.
        큐에 남아 있던(아직 꺼내지 않은) 레코드는 폐기됩니다.
        IDLE 상태에서 호출하면 아무것도 하지 않습니다.
        """
        if self._state is not PipelineState.RECORDING:
            return

        self._state = PipelineState.STOPPING
        logger.info("녹음 중지 시작")

        if self._stop_event is not None:
            self._stop_event.set()

        await self._cancel_consumer()

        if self._writer_task is not None:
            try:
                await self._writer_task
            except Exception as exc:
                logger.error(f"라이터 태스크 종료 중 오류: {exc}", exc_info=True)

        discarded = self._drain_write_queue()
        if discarded:
            self._metrics_store.record_discarded(discarded)
            logger.warning(f"중지 시점 미기록 레코드 {discarded}개 폐기")

        self._release_file()
        self._state = PipelineState.IDLE

        stats = self._metrics_store.get_capture_stats()
        logger.info(
            f"녹음 중지 완료: file={self._output_path}, "
            f"written={stats.records_written}, "
            f"malformed={stats.packets_malformed}, "
            f"write_errors={stats.write_errors}",
            extra=stats.as_dict(),
        )

    async def wait(self) -> None:
        """
        현재 세션의 라이터 태스크가 끝날 때까지 기다립니다.

        에러:
            RecordingAbortedError: 세션이 파일 핸들 손실로 중단되었을 때
        """
        if self._writer_task is not None:
            await asyncio.shield(self._writer_task)
        if self._aborted_error is not None:
            raise self._aborted_error

    # =========================================================================
    # 프로듀서 경로 (임의 스레드에서 호출 가능)
    # =========================================================================

    def submit_packet(self, packet: bytes) -> Optional[TransmissionRecord]:
        """
        원시 UDP 패킷을 디코딩하여 큐에 넣습니다.

        손상된 패킷은 로그 후 드롭하고 None을 반환합니다 (세션은 계속).

        에러:
            NotRecordingError: 녹음 중이 아닐 때
        """
        if self._state is not PipelineState.RECORDING:
            raise NotRecordingError("녹음 중이 아니므로 패킷을 받을 수 없습니다")

        record = self._decoder.try_decode(packet)
        if record is None:
            self._metrics_store.record_malformed()
            return None

        self._metrics_store.record_received(suppressed=record.is_suppressed)
        self._notify(self._on_record, record)
        self.enqueue(record)
        return record

    def enqueue(self, record: TransmissionRecord) -> None:
        """
        레코드를 쓰기 큐에 넣습니다. 블로킹하지 않습니다.

        에러:
            NotRecordingError: 녹음 중이 아닐 때
        """
        if self._state is not PipelineState.RECORDING:
            raise NotRecordingError("녹음 중이 아니므로 레코드를 큐에 넣을 수 없습니다")
        self._write_queue.put(record)
        self._metrics_store.record_enqueued()

    # =========================================================================
    # 내부 태스크
    # =========================================================================

    async def _packet_consumer_loop(
        self,
        packet_queue: asyncio.Queue[bytes],
        stop_event: asyncio.Event,
    ) -> None:
        """packet_queue의 원시 패킷을 submit_packet()으로 전달하는 프로듀서 루프입니다."""
        logger.info("패킷 소비 루프 시작")

        while not stop_event.is_set():
            try:
                packet = await asyncio.wait_for(
                    packet_queue.get(), timeout=self._packet_timeout_sec
                )
            except asyncio.TimeoutError:
                continue

            try:
                if packet:
                    self.submit_packet(packet)
            except NotRecordingError:
                break
            finally:
                packet_queue.task_done()

        logger.info("패킷 소비 루프 종료")

    async def _writer_loop(self, stop_event: asyncio.Event) -> None:
        """
        쓰기 큐를 폴링하여 레코드를 로그 파일에 기록하는 단일 라이터 루프입니다.

        큐가 비어 있으면 poll_interval 동안 중지 이벤트를 기다리고,
        레코드를 하나 기록할 때마다 이벤트 루프에 양보합니다.
        따라서 중지 대기는 진행 중인 레코드 1개의 기록 시간으로 제한됩니다.
        예상하지 못한 예외는 세션 중단(RecordingAbortedError)으로 처리합니다.
        """
        logger.info("라이터 루프 시작")

        while not stop_event.is_set():
            try:
                record = self._write_queue.get_nowait()
            except queue.Empty:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval_sec)
                except asyncio.TimeoutError:
                    pass
                continue

            try:
                self._write_record(record)
            except RecordingAbortedError as exc:
                self._abort_session(exc)
                return
            except Exception as exc:
                logger.error(f"라이터 예외 발생: {exc}", exc_info=True)
                aborted = RecordingAbortedError(f"라이터 예외로 녹음을 중단합니다: {exc}")
                aborted.__cause__ = exc
                self._abort_session(aborted)
                return

            # 레코드마다 양보하여 stop()/프로듀서가 백로그 길이와 무관하게 실행되도록 함
            await asyncio.sleep(0)

        logger.info("라이터 루프 종료")

    def _write_record(self, record: TransmissionRecord) -> None:
        """
        레코드 1개를 write lock 안에서 기록합니다.

        단일 레코드 실패는 로그 후 계속 진행하고,
        파일 핸들 자체가 무효하면 RecordingAbortedError를 발생시킵니다.
        """
        with self._file_write_lock:
            log_file = self._file
            if log_file is None or log_file.closed:
                raise RecordingAbortedError(
                    f"로그 파일 핸들이 닫혀 녹음을 중단합니다: {self._output_path}"
                )

            try:
                byte_count = self._codec.write(log_file, record)
                self._flush(log_file)
            except IoFailureError as exc:
                if _is_handle_invalid(log_file, exc):
                    raise RecordingAbortedError(
                        f"로그 파일 핸들 손실로 녹음을 중단합니다: {exc}"
                    ) from exc
                self._metrics_store.record_write_error()
                logger.error(
                    f"레코드 쓰기 실패, 다음 레코드로 계속: {exc}",
                    extra=record_fields(record),
                )
                return
            except ValueError as exc:
                self._metrics_store.record_write_error()
                logger.error(f"잘못된 레코드 건너뜀: {exc}", extra={"packet_id": record.packet_id})
                return

        self._metrics_store.record_written(byte_count)
        self._notify(self._on_written, record)

    def _abort_session(self, error: RecordingAbortedError) -> None:
        """파일 핸들 손실 시 세션을 정리하고 IDLE로 전환합니다."""
        logger.error(f"녹음 세션 중단: {error}")
        self._aborted_error = error

        if self._stop_event is not None:
            self._stop_event.set()
        if self._consumer_task is not None and not self._consumer_task.done():
            self._consumer_task.cancel()

        discarded = self._drain_write_queue()
        if discarded:
            self._metrics_store.record_discarded(discarded)

        self._release_file()
        self._state = PipelineState.IDLE
        self._notify(self._on_aborted, error)

    async def _cancel_consumer(self) -> None:
        task = self._consumer_task
        self._consumer_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _open_log(self, path: Path) -> BinaryIO:
        """로그 파일을 새로 생성(기존 내용 삭제)하여 바이너리 쓰기 모드로 엽니다."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return open(path, "wb")
        except OSError as exc:
            raise IoFailureError(f"로그 파일 열기 실패: {path}: {exc}") from exc

    @staticmethod
    def _flush(log_file: BinaryIO) -> None:
        try:
            log_file.flush()
        except (OSError, ValueError) as exc:
            raise IoFailureError(f"로그 파일 flush 실패: {exc}") from exc

    def _release_file(self) -> None:
        """write lock 안에서 로그 파일을 닫습니다."""
        with self._file_write_lock:
            log_file = self._file
            self._file = None
            if log_file is None or log_file.closed:
                return
            try:
                log_file.close()
            except OSError as exc:
                logger.warning(f"로그 파일 닫기 오류: {exc}")

    def _drain_write_queue(self) -> int:
        """쓰기 큐를 비우고 제거한 레코드 수를 반환합니다."""
        count = 0
        while True:
            try:
                self._write_queue.get_nowait()
            except queue.Empty:
                return count
            count += 1

    @staticmethod
    def _notify(callback: Optional[Callable], argument: object) -> None:
        """콜백 예외가 파이프라인에 영향을 주지 않도록 격리하여 호출합니다."""
        if callback is None:
            return
        try:
            callback(argument)
        except Exception as exc:
            logger.error(f"콜백 실행 중 에러: {exc}", exc_info=True)


def _is_handle_invalid(log_file: BinaryIO, error: IoFailureError) -> bool:
    """쓰기 실패가 파일 핸들 자체의 손실(닫힘, EBADF)인지 판별합니다."""
    if log_file.closed:
        return True
    cause = error.__cause__
    return isinstance(cause, OSError) and cause.errno == errno.EBADF
