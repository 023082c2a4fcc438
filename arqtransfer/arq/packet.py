"""
Packet Structure and Wire Codecs

This module defines the logical packet used by every ARQ variant and the
two header layouts that carry it on the wire:

    Stop-and-Wait / Basic data:  seq:uint16, eof:uint8 (0/1), payload
    Stop-and-Wait ack:           seq:uint16
    Go-Back-N / Selective-Repeat data and ack:
                                 flag:uint8 (0=data, 255=EOF, 1=ack), seq:uint16

All integers are big-endian (network byte order).
"""

import struct
from enum import Enum
from typing import List
from dataclasses import dataclass

from config import (
    MAX_PAYLOAD_SIZE, SEQUENCE_SPACE,
    DATA_FLAG, ACK_FLAG, EOF_FLAG
)


class Protocol(Enum):
    """ARQ variant enumeration (values are the CLI names)."""
    BASIC = "basic"
    STOP_AND_WAIT = "saw"
    GO_BACK_N = "gbn"
    SELECTIVE_REPEAT = "sr"

    @property
    def is_windowed(self) -> bool:
        """Go-Back-N and Selective-Repeat use a window and a separate ack port."""
        return self in (Protocol.GO_BACK_N, Protocol.SELECTIVE_REPEAT)

    @property
    def is_reliable(self) -> bool:
        return self != Protocol.BASIC


class PacketFlag(Enum):
    """Packet flag enumeration (values are the windowed wire flags)."""
    DATA = DATA_FLAG
    ACK = ACK_FLAG
    EOF = EOF_FLAG


class PacketDecodeError(ValueError):
    """Raised when a datagram cannot be decoded into a packet."""


@dataclass
class Packet:
    """
    Logical ARQ packet.

    Attributes:
        flag: DATA, EOF (last data packet) or ACK
        seq_num: Sequence number on the wire (0..65535)
        payload: Packet payload (always empty for acks)
    """

    flag: PacketFlag
    seq_num: int
    payload: bytes = b''

    def __post_init__(self):
        """Validate packet after initialization."""
        if not 0 <= self.seq_num < SEQUENCE_SPACE:
            raise ValueError(
                f"Sequence number {self.seq_num} outside 0..{SEQUENCE_SPACE - 1}"
            )
        if self.flag == PacketFlag.ACK and self.payload:
            raise ValueError("Ack packets carry no payload")

    @property
    def payload_size(self) -> int:
        """Get payload size."""
        return len(self.payload)

    def is_eof(self) -> bool:
        """Check if this is the last data packet of the file."""
        return self.flag == PacketFlag.EOF

    def is_ack(self) -> bool:
        """Check if this is an acknowledgment."""
        return self.flag == PacketFlag.ACK

    def is_data(self) -> bool:
        """Check if this packet carries file data (DATA or EOF)."""
        return self.flag != PacketFlag.ACK

    @classmethod
    def create_data_packet(cls, seq_num: int, payload: bytes, eof: bool = False) -> 'Packet':
        """
        Create a data packet.

        Args:
            seq_num: Wire sequence number
            payload: Data payload
            eof: Mark as the final packet

        Returns:
            New data packet
        """
        flag = PacketFlag.EOF if eof else PacketFlag.DATA
        return cls(flag=flag, seq_num=seq_num, payload=bytes(payload))

    @classmethod
    def create_ack_packet(cls, seq_num: int) -> 'Packet':
        """Create an acknowledgment for the given sequence number."""
        return cls(flag=PacketFlag.ACK, seq_num=seq_num)

    def __repr__(self) -> str:
        return (f"Packet({self.flag.name}, seq={self.seq_num}, "
                f"len={len(self.payload)})")


class PacketCodec:
    """
    Base class for packet encoders/decoders.

    Subclasses define the header layout; the base class enforces the
    payload limit on both directions.
    """

    name = "codec"
    data_header_size = 0
    ack_size = 0

    def __init__(self, max_payload: int = MAX_PAYLOAD_SIZE):
        if max_payload < 1:
            raise ValueError("Maximum payload must be positive")
        self.max_payload = max_payload

    def encode(self, packet: Packet) -> bytes:
        """
        Serialize a packet to wire bytes.

        Args:
            packet: Packet to encode

        Returns:
            Datagram bytes

        Raises:
            ValueError: If the payload exceeds the maximum payload size
        """
        if len(packet.payload) > self.max_payload:
            raise ValueError(
                f"Payload of {len(packet.payload)} bytes exceeds "
                f"maximum of {self.max_payload}"
            )
        if packet.is_ack():
            return self._encode_ack(packet)
        return self._encode_data(packet)

    def decode_data(self, datagram: bytes) -> Packet:
        """Decode a data datagram. Raises PacketDecodeError on bad input."""
        if len(datagram) < self.data_header_size:
            raise PacketDecodeError(
                f"{self.name}: data datagram of {len(datagram)} bytes is shorter "
                f"than the {self.data_header_size}-byte header"
            )
        if len(datagram) - self.data_header_size > self.max_payload:
            raise PacketDecodeError(
                f"{self.name}: payload of {len(datagram) - self.data_header_size} "
                f"bytes exceeds maximum of {self.max_payload}"
            )
        return self._decode_data(datagram)

    def decode_ack(self, datagram: bytes) -> Packet:
        """Decode an ack datagram. Raises PacketDecodeError on bad input."""
        if len(datagram) != self.ack_size:
            raise PacketDecodeError(
                f"{self.name}: ack datagram must be {self.ack_size} bytes, "
                f"got {len(datagram)}"
            )
        return self._decode_ack(datagram)

    def encoded_size(self, packet: Packet) -> int:
        """Size of the packet on the wire."""
        if packet.is_ack():
            return self.ack_size
        return self.data_header_size + len(packet.payload)

    def _encode_data(self, packet: Packet) -> bytes:
        raise NotImplementedError

    def _encode_ack(self, packet: Packet) -> bytes:
        raise NotImplementedError

    def _decode_data(self, datagram: bytes) -> Packet:
        raise NotImplementedError

    def _decode_ack(self, datagram: bytes) -> Packet:
        raise NotImplementedError


class StopAndWaitCodec(PacketCodec):
    """Header layout shared by the Basic and Stop-and-Wait variants."""

    name = "stop-and-wait"
    DATA_FORMAT = '!HB'
    ACK_FORMAT = '!H'
    data_header_size = struct.calcsize(DATA_FORMAT)
    ack_size = struct.calcsize(ACK_FORMAT)

    def _encode_data(self, packet: Packet) -> bytes:
        eof = 1 if packet.is_eof() else 0
        return struct.pack(self.DATA_FORMAT, packet.seq_num, eof) + packet.payload

    def _encode_ack(self, packet: Packet) -> bytes:
        return struct.pack(self.ACK_FORMAT, packet.seq_num)

    def _decode_data(self, datagram: bytes) -> Packet:
        seq_num, eof = struct.unpack_from(self.DATA_FORMAT, datagram)
        if eof not in (0, 1):
            raise PacketDecodeError(f"{self.name}: invalid EOF byte {eof}")
        payload = bytes(datagram[self.data_header_size:])
        return Packet.create_data_packet(seq_num, payload, eof=bool(eof))

    def _decode_ack(self, datagram: bytes) -> Packet:
        (seq_num,) = struct.unpack(self.ACK_FORMAT, datagram)
        return Packet.create_ack_packet(seq_num)


class WindowedCodec(PacketCodec):
    """Header layout shared by the Go-Back-N and Selective-Repeat variants."""

    name = "windowed"
    HEADER_FORMAT = '!BH'
    data_header_size = struct.calcsize(HEADER_FORMAT)
    ack_size = struct.calcsize(HEADER_FORMAT)

    def _encode_data(self, packet: Packet) -> bytes:
        return struct.pack(self.HEADER_FORMAT, packet.flag.value, packet.seq_num) + packet.payload

    def _encode_ack(self, packet: Packet) -> bytes:
        return struct.pack(self.HEADER_FORMAT, ACK_FLAG, packet.seq_num)

    def _decode_data(self, datagram: bytes) -> Packet:
        flag, seq_num = struct.unpack_from(self.HEADER_FORMAT, datagram)
        if flag not in (DATA_FLAG, EOF_FLAG):
            raise PacketDecodeError(f"{self.name}: unexpected data flag {flag}")
        payload = bytes(datagram[self.data_header_size:])
        return Packet(PacketFlag(flag), seq_num, payload)

    def _decode_ack(self, datagram: bytes) -> Packet:
        flag, seq_num = struct.unpack(self.HEADER_FORMAT, datagram)
        if flag != ACK_FLAG:
            raise PacketDecodeError(f"{self.name}: unexpected ack flag {flag}")
        return Packet.create_ack_packet(seq_num)


def get_codec(protocol: Protocol, max_payload: int = MAX_PAYLOAD_SIZE) -> PacketCodec:
    """Return the codec used on the wire by the given protocol."""
    if protocol.is_windowed:
        return WindowedCodec(max_payload)
    return StopAndWaitCodec(max_payload)


def segment_data(data: bytes, payload_size: int = MAX_PAYLOAD_SIZE) -> List[bytes]:
    """
    Split file contents into packet payloads.

    An empty file yields a single empty chunk so that the transfer still
    carries an EOF packet.

    Args:
        data: File contents
        payload_size: Maximum chunk size

    Returns:
        List of chunks (at least one)
    """
    if payload_size < 1:
        raise ValueError("Payload size must be positive")
    if not data:
        return [b'']
    return [bytes(data[i:i + payload_size]) for i in range(0, len(data), payload_size)]


if __name__ == "__main__":
    print("=" * 60)
    print("PACKET CODEC TEST")
    print("=" * 60)

    for codec in (StopAndWaitCodec(), WindowedCodec()):
        pkt = Packet.create_data_packet(65535, b"hello", eof=True)
        wire = codec.encode(pkt)
        print(f"{codec.name}: {pkt} -> {wire.hex()} -> {codec.decode_data(wire)}")
        ack = codec.encode(Packet.create_ack_packet(7))
        print(f"{codec.name}: ack 7 -> {ack.hex()} -> {codec.decode_ack(ack)}")

    chunks = segment_data(bytes(5000), 1024)
    print(f"\n5000 bytes -> {len(chunks)} chunks, last={len(chunks[-1])} bytes")
