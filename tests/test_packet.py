"""
Unit tests for packets, wire codecs and sequence arithmetic.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqtransfer.arq.packet import (
    Packet, PacketFlag, PacketDecodeError, Protocol,
    StopAndWaitCodec, WindowedCodec, get_codec, segment_data
)
from arqtransfer.arq.sequence import SequenceSpace


class TestPacket:
    """Tests for Packet class."""

    def test_data_packet_creation(self):
        """Test creating a data packet."""
        packet = Packet.create_data_packet(seq_num=42, payload=b"Hello")

        assert packet.flag == PacketFlag.DATA
        assert packet.seq_num == 42
        assert packet.payload == b"Hello"
        assert packet.payload_size == 5
        assert packet.is_data()
        assert not packet.is_eof()

    def test_eof_packet_creation(self):
        packet = Packet.create_data_packet(seq_num=3, payload=b"", eof=True)

        assert packet.is_eof()
        assert packet.is_data()
        assert not packet.is_ack()

    def test_ack_packet_creation(self):
        packet = Packet.create_ack_packet(65535)

        assert packet.is_ack()
        assert not packet.is_data()
        assert packet.payload == b''

    def test_sequence_number_range(self):
        """Sequence numbers must fit in 16 bits."""
        with pytest.raises(ValueError):
            Packet.create_data_packet(65536, b"x")
        with pytest.raises(ValueError):
            Packet.create_ack_packet(-1)

    def test_ack_with_payload_rejected(self):
        with pytest.raises(ValueError):
            Packet(PacketFlag.ACK, 1, b"data")


class TestStopAndWaitCodec:
    """Tests for the Basic / Stop-and-Wait header layout."""

    def test_encode_data(self):
        codec = StopAndWaitCodec()
        wire = codec.encode(Packet.create_data_packet(1, b"abc"))

        assert wire == b'\x00\x01\x00abc'

    def test_encode_eof(self):
        codec = StopAndWaitCodec()
        wire = codec.encode(Packet.create_data_packet(65535, b"z", eof=True))

        assert wire == b'\xff\xff\x01z'

    def test_encode_ack(self):
        assert StopAndWaitCodec().encode(Packet.create_ack_packet(7)) == b'\x00\x07'

    def test_decode_data(self):
        packet = StopAndWaitCodec().decode_data(b'\x01\x02\x01payload')

        assert packet.seq_num == 0x0102
        assert packet.is_eof()
        assert packet.payload == b"payload"

    def test_decode_header_only(self):
        """An empty payload is a valid (empty file) EOF packet."""
        packet = StopAndWaitCodec().decode_data(b'\x00\x00\x01')

        assert packet.is_eof()
        assert packet.payload == b''

    def test_decode_ack(self):
        ack = StopAndWaitCodec().decode_ack(b'\x12\x34')

        assert ack.is_ack()
        assert ack.seq_num == 0x1234

    def test_short_datagram(self):
        with pytest.raises(PacketDecodeError):
            StopAndWaitCodec().decode_data(b'\x00\x01')

    def test_ack_wrong_length(self):
        codec = StopAndWaitCodec()
        with pytest.raises(PacketDecodeError):
            codec.decode_ack(b'\x00')
        with pytest.raises(PacketDecodeError):
            codec.decode_ack(b'\x00\x01\x02')

    def test_invalid_eof_byte(self):
        with pytest.raises(PacketDecodeError):
            StopAndWaitCodec().decode_data(b'\x00\x01\x02data')

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError):
            StopAndWaitCodec().decode_data(b'')


class TestWindowedCodec:
    """Tests for the Go-Back-N / Selective-Repeat header layout."""

    def test_encode_data(self):
        wire = WindowedCodec().encode(Packet.create_data_packet(5, b"hi"))

        assert wire == b'\x00\x00\x05hi'

    def test_encode_eof(self):
        wire = WindowedCodec().encode(Packet.create_data_packet(5, b"hi", eof=True))

        assert wire == b'\xff\x00\x05hi'

    def test_encode_ack(self):
        assert WindowedCodec().encode(Packet.create_ack_packet(258)) == b'\x01\x01\x02'

    def test_decode_data(self):
        packet = WindowedCodec().decode_data(b'\xff\x01\x00tail')

        assert packet.flag == PacketFlag.EOF
        assert packet.seq_num == 256
        assert packet.payload == b"tail"

    def test_decode_ack(self):
        ack = WindowedCodec().decode_ack(b'\x01\xff\xff')

        assert ack.is_ack()
        assert ack.seq_num == 65535

    def test_unexpected_flags(self):
        codec = WindowedCodec()
        with pytest.raises(PacketDecodeError):
            codec.decode_data(b'\x01\x00\x05')
        with pytest.raises(PacketDecodeError):
            codec.decode_ack(b'\x00\x00\x05')

    def test_short_datagrams(self):
        codec = WindowedCodec()
        with pytest.raises(PacketDecodeError):
            codec.decode_data(b'\x00\x00')
        with pytest.raises(PacketDecodeError):
            codec.decode_ack(b'\x01\x00')

    def test_payload_limit(self):
        """Oversized payloads are refused in both directions."""
        codec = WindowedCodec(max_payload=4)

        with pytest.raises(ValueError):
            codec.encode(Packet.create_data_packet(0, b"12345"))
        with pytest.raises(PacketDecodeError):
            codec.decode_data(b'\x00\x00\x00' + b"12345")

        assert codec.decode_data(b'\x00\x00\x00' + b"1234").payload == b"1234"

    def test_encoded_size(self):
        codec = WindowedCodec()

        assert codec.encoded_size(Packet.create_data_packet(0, bytes(1024))) == 1027
        assert codec.encoded_size(Packet.create_ack_packet(0)) == 3

    def test_codec_selection(self):
        assert isinstance(get_codec(Protocol.BASIC), StopAndWaitCodec)
        assert isinstance(get_codec(Protocol.STOP_AND_WAIT), StopAndWaitCodec)
        assert isinstance(get_codec(Protocol.GO_BACK_N), WindowedCodec)
        assert isinstance(get_codec(Protocol.SELECTIVE_REPEAT), WindowedCodec)


class TestSegmentData:
    """Tests for file segmentation."""

    def test_5000_byte_file(self):
        chunks = segment_data(bytes(5000), 1024)

        assert len(chunks) == 5
        assert [len(c) for c in chunks] == [1024, 1024, 1024, 1024, 904]

    def test_exact_multiple(self):
        chunks = segment_data(bytes(2048), 1024)

        assert [len(c) for c in chunks] == [1024, 1024]

    def test_empty_file(self):
        """An empty file still produces one (empty) chunk for the EOF packet."""
        assert segment_data(b'', 1024) == [b'']

    def test_invalid_payload_size(self):
        with pytest.raises(ValueError):
            segment_data(b"data", 0)

    def test_protocol_properties(self):
        assert Protocol("sr") == Protocol.SELECTIVE_REPEAT
        assert Protocol.GO_BACK_N.is_windowed
        assert not Protocol.STOP_AND_WAIT.is_windowed
        assert not Protocol.BASIC.is_reliable
        assert Protocol.STOP_AND_WAIT.is_reliable


class TestSequenceSpace:
    """Tests for modular sequence arithmetic."""

    def test_defaults(self):
        space = SequenceSpace()

        assert space.modulus == 65536
        assert space.max_selective_window == 32768

    def test_wrap_and_advance(self):
        space = SequenceSpace()

        assert space.wrap(65536) == 0
        assert space.wrap(-1) == 65535
        assert space.advance(65535) == 0
        assert space.advance(65530, 10) == 4

    def test_distance(self):
        space = SequenceSpace()

        assert space.distance(65535, 1) == 2
        assert space.distance(1, 65535) == 65534
        assert space.distance(7, 7) == 0

    def test_window_across_wrap(self):
        """Windows behave the same on both sides of the wrap point."""
        space = SequenceSpace()

        assert space.in_window(65534, 65534, 4)
        assert space.in_window(1, 65534, 4)
        assert not space.in_window(2, 65534, 4)
        assert not space.in_window(65533, 65534, 4)

    def test_before_window(self):
        space = SequenceSpace()

        assert space.is_before_window(65535, 0, 4)
        assert space.is_before_window(65532, 0, 4)
        assert not space.is_before_window(65531, 0, 4)
        assert not space.is_before_window(0, 0, 4)

    def test_unwrap(self):
        space = SequenceSpace()

        assert space.unwrap(1, 65535) == 65537
        assert space.unwrap(65535, 65535) == 65535
        assert space.unwrap(3, 0) == 3

    def test_small_space(self):
        space = SequenceSpace(bits=3)

        assert space.modulus == 8
        assert space.max_selective_window == 4
        assert space.in_window(1, 6, 4)

    def test_invalid_bits(self):
        with pytest.raises(ValueError):
            SequenceSpace(bits=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
