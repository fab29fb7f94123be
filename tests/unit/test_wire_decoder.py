"""
WireFrameDecoder 단위 테스트

검증 항목:
- 정상 패킷의 모든 필드 디코딩 (고정 오프셋)
- 세션 샘플레이트/채널 수 및 수신 시각 채움
- 녹음 불허 송신자의 페이로드 제거 (메타데이터 유지)
- 헤더 부족 / 오디오 길이 대비 부족 패킷 거부 (MalformedFrameError)
- try_decode()는 예외 없이 None 반환
"""

from __future__ import annotations

import logging
import struct
from datetime import datetime, timezone

import pytest

from srs_recorder.capture.transmitter_directory import TransmitterDirectory
from srs_recorder.capture.wire_decoder import (
    HEADER_SIZE,
    TRAILER_SIZE,
    WireFrameDecoder,
    encode_wire_frame,
    minimum_frame_size,
)
from srs_recorder.config.schema import AppConfig, TransmitterEntry
from srs_recorder.errors import MalformedFrameError

_FIXED_TIME = datetime(2024, 5, 1, 12, 30, 0, 123456, tzinfo=timezone.utc)
_GUID = "abcdefghijklmnopqrstuv"


# =============================================================================
# 테스트 헬퍼
# =============================================================================

def _make_frame(audio: bytes = b"\x01\x02\x03\x04", guid: str = _GUID, **overrides) -> bytes:
    """테스트용 와이어 프레임을 조립합니다."""
    fields = {
        "frequency": 251_000_000.0,
        "modulation": 0,
        "encryption": 0,
        "unit_id": 100_000_001,
        "packet_id": 7,
        "coalition": 2,
    }
    fields.update(overrides)
    return encode_wire_frame(audio, transmitter_guid=guid, **fields)


def _make_decoder(entries: list[TransmitterEntry] = None, **kwargs) -> WireFrameDecoder:
    return WireFrameDecoder(
        TransmitterDirectory(entries or []),
        clock=lambda: _FIXED_TIME,
        **kwargs,
    )


# =============================================================================
# 레이아웃 상수 테스트
# =============================================================================

def test_layout_sizes():
    assert HEADER_SIZE == 6
    assert TRAILER_SIZE == 49
    assert minimum_frame_size(0) == 55
    assert minimum_frame_size(100) == 155


def test_encoded_frame_declares_total_length():
    frame = _make_frame(audio=b"\x00" * 10)
    total_length, audio_length, freq_segment = struct.unpack_from("<HHH", frame, 0)
    assert total_length == len(frame) == 65
    assert audio_length == 10
    assert freq_segment == 0


# =============================================================================
# 정상 디코딩 테스트
# =============================================================================

class TestDecode:
    def test_decodes_all_fields(self):
        frame = _make_frame(
            audio=b"\xaa\xbb\xcc",
            frequency=305_500_000.0,
            modulation=1,
            encryption=4,
            unit_id=4_000_000_000,
            packet_id=2**63 + 5,
            coalition=-1,
        )
        record = _make_decoder().decode(frame)

        assert record.frequency == 305_500_000.0
        assert record.modulation == 1
        assert record.encryption == 4
        assert record.unit_id == 4_000_000_000
        assert record.packet_id == 2**63 + 5
        assert record.transmitter_guid == _GUID
        assert record.coalition == -1
        assert record.audio_payload == b"\xaa\xbb\xcc"

    def test_fills_session_constants_and_receive_time(self):
        decoder = _make_decoder(sample_rate=16000, channel_count=2)
        record = decoder.decode(_make_frame())
        assert record.sample_rate == 16000
        assert record.channel_count == 2
        assert record.timestamp == _FIXED_TIME

    def test_zero_length_audio_is_valid(self):
        record = _make_decoder().decode(_make_frame(audio=b""))
        assert record.audio_payload == b""
        assert record.is_suppressed

    def test_short_guid_strips_nul_padding(self):
        record = _make_decoder().decode(_make_frame(guid="short"))
        assert record.transmitter_guid == "short"

    def test_trailing_bytes_after_frame_are_ignored(self):
        frame = _make_frame() + b"\xff" * 8
        record = _make_decoder().decode(frame)
        assert record.audio_payload == b"\x01\x02\x03\x04"
        assert record.coalition == 2

    def test_total_length_is_not_validated(self):
        frame = bytearray(_make_frame())
        struct.pack_into("<H", frame, 0, 9999)
        record = _make_decoder().decode(bytes(frame))
        assert record.packet_id == 7

    def test_from_config_uses_recorder_section(self):
        config = AppConfig(**{
            "recorder": {"sample_rate": 8000, "channel_count": 2},
            "transmitters": [{"guid": _GUID, "allow_record": False}],
        })
        decoder = WireFrameDecoder.from_config(config)
        record = decoder.decode(_make_frame())
        assert record.sample_rate == 8000
        assert record.channel_count == 2
        assert record.is_suppressed


# =============================================================================
# 녹음 허용 목록 테스트
# =============================================================================

class TestPermissionSuppression:
    def test_denied_transmitter_payload_removed(self):
        decoder = _make_decoder([TransmitterEntry(guid=_GUID, allow_record=False)])
        record = decoder.decode(_make_frame(audio=b"\x11" * 40, packet_id=99))

        assert record.audio_payload == b""
        # 메타데이터는 그대로 유지
        assert record.packet_id == 99
        assert record.transmitter_guid == _GUID
        assert record.frequency == 251_000_000.0

    def test_allowed_transmitter_keeps_payload(self):
        decoder = _make_decoder([TransmitterEntry(guid=_GUID, allow_record=True)])
        record = decoder.decode(_make_frame(audio=b"\x11" * 40))
        assert len(record.audio_payload) == 40

    def test_unknown_transmitter_keeps_payload(self):
        decoder = _make_decoder([TransmitterEntry(guid="someone-else", allow_record=False)])
        record = decoder.decode(_make_frame(audio=b"\x22" * 12))
        assert record.audio_payload == b"\x22" * 12

    def test_directory_change_applies_to_next_packet(self):
        decoder = _make_decoder()
        assert not decoder.decode(_make_frame()).is_suppressed
        decoder.directory.set_allow_record(_GUID, False)
        assert decoder.decode(_make_frame()).is_suppressed


# =============================================================================
# 손상 패킷 테스트
# =============================================================================

class TestMalformed:
    def test_five_byte_packet_rejected(self):
        with pytest.raises(MalformedFrameError) as exc_info:
            _make_decoder().decode(b"\x01\x02\x03\x04\x05")
        assert exc_info.value.packet_size == 5
        assert exc_info.value.required_size == HEADER_SIZE

    def test_empty_packet_rejected(self):
        with pytest.raises(MalformedFrameError):
            _make_decoder().decode(b"")

    def test_packet_shorter_than_declared_audio_rejected(self):
        frame = _make_frame(audio=b"\x00" * 20)
        with pytest.raises(MalformedFrameError) as exc_info:
            _make_decoder().decode(frame[:-1])
        assert exc_info.value.required_size == minimum_frame_size(20)

    def test_declared_audio_length_beyond_buffer_rejected(self):
        # 헤더만 있고 L=1000을 선언한 패킷
        packet = struct.pack("<HHH", 6, 1000, 0) + b"\x00" * 60
        with pytest.raises(MalformedFrameError):
            _make_decoder().decode(packet)

    def test_try_decode_returns_none_and_logs(self, caplog):
        decoder = _make_decoder()
        with caplog.at_level(logging.WARNING, logger="srs_recorder.capture.wire_decoder"):
            assert decoder.try_decode(b"\x01\x02\x03\x04\x05") is None
        assert any("손상된 패킷" in message for message in caplog.messages)

    def test_decoder_usable_after_malformed_packet(self):
        decoder = _make_decoder()
        assert decoder.try_decode(b"\x00" * 5) is None
        record = decoder.try_decode(_make_frame(packet_id=8))
        assert record is not None
        assert record.packet_id == 8
