"""
SRS 무전 송신 레코더 진입점

역할:
- record: 덤프 파일 패킷 소스 → CapturePipeline → 로그 파일 녹음
- replay: 녹음 로그를 순서대로 출력 (녹음 시각 간격 재현 가능)
- summary: 녹음 로그 요약 통계 출력
- SIGINT/SIGTERM 핸들러로 graceful shutdown
- 설정 파일 핫스왑으로 녹음 중 송신자 허용 목록 갱신

실행 예시:
    덤프 파일 녹음:
        python main.py record --dump captures/session.dump --output recorded_audio.raw

    로그 재생 (녹음 속도):
        python main.py replay recorded_audio.raw --speed 1.0

    로그 요약:
        python main.py summary recorded_audio.raw
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from srs_recorder import MINIMUM_SERVER_VERSION, __version__
from srs_recorder.capture import TransmissionRecord
from srs_recorder.capture.packet_source import DumpFilePacketSource
from srs_recorder.capture.transmitter_directory import TransmitterDirectory
from srs_recorder.capture.wire_decoder import WireFrameDecoder
from srs_recorder.config.config_manager import ConfigLoadError, ConfigManager
from srs_recorder.config.schema import AppConfig
from srs_recorder.errors import CorruptRecordError, IoFailureError, RecordingAbortedError
from srs_recorder.logging import record_fields, setup_logging
from srs_recorder.recording.pipeline import CapturePipeline
from srs_recorder.recording.player import LogPlayer
from srs_recorder.recording.reader import LogReader
from srs_recorder.recording.summary import LogSummary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CORRUPT = 2
EXIT_INTERRUPTED = 130


class RecordSession:
    """
    덤프 파일 녹음 세션 오케스트레이터입니다.

    구조:
        [DumpFilePacketSource]
              │ packet_queue
              ▼
        [CapturePipeline] ── on_record ──▶ 콘솔 로그
              │
              ▼
        [로그 파일]
    """

    def __init__(
        self,
        config: AppConfig,
        dump_path: Optional[str] = None,
        output_path: Optional[str] = None,
        config_manager: Optional[ConfigManager] = None,
    ) -> None:
        self._config = config
        self._config_manager = config_manager
        self._output_path = output_path

        self._directory = TransmitterDirectory.from_config(config)
        self._source = DumpFilePacketSource(config, dump_path)
        self._pipeline = CapturePipeline(
            config,
            decoder=WireFrameDecoder.from_config(config, self._directory),
            on_record=self._on_record,
        )

        self._shutdown_event = asyncio.Event()

    @property
    def pipeline(self) -> CapturePipeline:
        return self._pipeline

    def request_shutdown(self) -> None:
        """외부(시그널 핸들러 등)에서 종료를 요청합니다."""
        self._shutdown_event.set()

    async def run(self) -> int:
        """녹음을 시작하고 덤프 재생 완료, 종료 신호, 세션 중단 중 하나를 기다립니다."""
        if self._config_manager is not None:
            self._config_manager.subscribe(self._directory.on_config_changed)
            self._config_manager.watch()

        await self._source.start()
        try:
            await self._pipeline.start(
                self._output_path, packet_queue=self._source.get_packet_queue()
            )
        except IoFailureError as exc:
            logger.error(f"녹음 시작 실패: {exc}")
            await self._source.stop()
            return EXIT_FAILURE

        shutdown_task = asyncio.create_task(self._shutdown_event.wait(), name="shutdown_wait")
        drain_task = asyncio.create_task(self._wait_source_drained(), name="source_drain")
        writer_task = asyncio.create_task(self._pipeline.wait(), name="writer_wait")
        tasks = [shutdown_task, drain_task, writer_task]

        exit_code = EXIT_OK
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            if writer_task.done() and not writer_task.cancelled():
                error = writer_task.exception()
                if isinstance(error, RecordingAbortedError):
                    logger.error(f"녹음이 중단되었습니다: {error}")
                    exit_code = EXIT_FAILURE
                elif error is not None:
                    logger.error(f"라이터 태스크 오류: {error}")
                    exit_code = EXIT_FAILURE
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._shutdown()

        return exit_code

    async def _wait_source_drained(self) -> None:
        """덤프 재생이 끝나고 큐에 남은 패킷이 모두 기록될 때까지 기다립니다."""
        await self._source.wait_finished()
        await self._source.get_packet_queue().join()
        poll_sec = self._config.recorder.poll_interval_ms / 1000.0
        while self._pipeline.is_recording and self._pipeline.pending_count > 0:
            await asyncio.sleep(poll_sec)

    async def _shutdown(self) -> None:
        logger.info("녹음 세션 종료 시작")
        await self._source.stop()
        await self._pipeline.stop()

        if self._config_manager is not None:
            self._config_manager.unsubscribe(self._directory.on_config_changed)
            self._config_manager.stop_watch()

        stats = self._pipeline.metrics_store.get_capture_stats()
        logger.info(
            f"녹음 세션 종료: file={self._pipeline.output_path}, "
            f"received={stats.packets_received}, "
            f"written={stats.records_written}, "
            f"bytes={stats.bytes_written}"
        )

    @staticmethod
    def _on_record(record: TransmissionRecord) -> None:
        logger.info(f"패킷 수신: {record.describe()}", extra=record_fields(record))


# =============================================================================
# 서브커맨드
# =============================================================================

async def _run_record(args: argparse.Namespace, config: AppConfig, manager: ConfigManager) -> int:
    session = RecordSession(
        config,
        dump_path=args.dump,
        output_path=args.output,
        config_manager=manager,
    )

    # SIGINT/SIGTERM 핸들러 등록 (asyncio-safe 방식)
    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        logger.info("종료 시그널 수신")
        session.request_shutdown()

    loop.add_signal_handler(signal.SIGINT, _signal_handler)
    loop.add_signal_handler(signal.SIGTERM, _signal_handler)

    return await session.run()


def _run_replay(args: argparse.Namespace, config: AppConfig) -> int:
    reader = LogReader(
        args.log_file,
        sample_rate=config.recorder.sample_rate,
        channel_count=config.recorder.channel_count,
    )
    player = LogPlayer.from_config(reader, config)

    try:
        player.play(lambda record: print(record.describe()))
    except CorruptRecordError as exc:
        logger.error(f"손상된 로그: {exc}")
        return EXIT_CORRUPT
    except IoFailureError as exc:
        logger.error(f"로그 재생 실패: {exc}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("사용자 중단")
        return EXIT_INTERRUPTED
    return EXIT_OK


def _run_summary(args: argparse.Namespace, config: AppConfig) -> int:
    try:
        summary = LogSummary.from_log(
            args.log_file,
            sample_rate=config.recorder.sample_rate,
            channel_count=config.recorder.channel_count,
        )
    except IoFailureError as exc:
        logger.error(f"로그 요약 실패: {exc}")
        return EXIT_FAILURE

    print(summary.format_report())
    return EXIT_OK


# =============================================================================
# 진입점
# =============================================================================

def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """커맨드라인 인자를 파싱합니다."""
    parser = argparse.ArgumentParser(
        description=(
            f"SRS 무전 송신 레코더 v{__version__} "
            f"(SRS 서버 {MINIMUM_SERVER_VERSION} 이상)"
        )
    )
    parser.add_argument(
        "--config", default="config.yaml", help="설정 파일 경로 (기본: config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    record_parser = subparsers.add_parser("record", help="덤프 파일 패킷을 녹음")
    record_parser.add_argument("--dump", help="원시 패킷 덤프 파일 (dump.path 오버라이드)")
    record_parser.add_argument(
        "--output", help="로그 파일 경로 (recorder.recording_file 오버라이드)"
    )
    record_parser.add_argument(
        "--speed", type=float, help="덤프 재생 속도 (dump.playback_speed 오버라이드)"
    )
    record_parser.add_argument("--loop", action="store_true", help="덤프 파일 반복 재생")

    replay_parser = subparsers.add_parser("replay", help="녹음 로그 재생")
    replay_parser.add_argument("log_file", help="녹음 로그 파일")
    replay_parser.add_argument(
        "--speed", type=float, help="재생 속도 (0 = 대기 없음, replay.playback_speed 오버라이드)"
    )
    replay_parser.add_argument(
        "--max-records", type=int, help="최대 재생 레코드 수 (replay.max_records 오버라이드)"
    )

    summary_parser = subparsers.add_parser("summary", help="녹음 로그 요약")
    summary_parser.add_argument("log_file", help="녹음 로그 파일")

    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """커맨드라인 옵션을 설정에 반영합니다 (Pydantic 모델은 재생성)."""
    config_dict = config.model_dump()

    if args.command == "record":
        if args.speed is not None:
            config_dict["dump"]["playback_speed"] = args.speed
        if args.loop:
            config_dict["dump"]["loop"] = True
    elif args.command == "replay":
        if args.speed is not None:
            config_dict["replay"]["playback_speed"] = args.speed
        if args.max_records is not None:
            config_dict["replay"]["max_records"] = args.max_records

    return AppConfig(**config_dict)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)

    manager = ConfigManager()
    try:
        config = _apply_overrides(manager.load_or_default(args.config), args)
    except (ConfigLoadError, ValueError) as exc:
        print(f"설정 오류: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    session_id = setup_logging(config)
    logger.info(f"SRS 레코더 시작: command={args.command}, session_id={session_id}")

    if args.command == "record":
        if not (args.dump or config.dump.path):
            logger.error("덤프 파일 경로가 없습니다 (--dump 또는 dump.path)")
            return EXIT_FAILURE
        if args.dump and not Path(args.dump).exists():
            logger.error(f"덤프 파일을 찾을 수 없습니다: {args.dump}")
            return EXIT_FAILURE
        exit_code = asyncio.run(_run_record(args, config, manager))
    elif args.command == "replay":
        exit_code = _run_replay(args, config)
    else:
        exit_code = _run_summary(args, config)

    logger.info(f"SRS 레코더 종료: exit_code={exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
