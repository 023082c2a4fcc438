"""
ARQ Receiver Engines

This module implements the receiving half of every ARQ variant: in-order
delivery for Stop-and-Wait and Go-Back-N, reorder buffering with
selective acks for Selective-Repeat, and the ack-less Basic receiver.

Receivers write delivered payloads to a sink (any object with an
``append(bytes)`` method) and return the ack to send, if any.
"""

from typing import Optional, Dict, Protocol as TypingProtocol
from dataclasses import dataclass, field

from .packet import Packet, Protocol
from .sequence import SequenceSpace
from ..utils.metrics import ReceiverStatistics
from ..utils.logger import TransferLogger, get_logger


class DataSink(TypingProtocol):
    """Destination of delivered bytes."""

    def append(self, data: bytes) -> None:
        ...


class BaseReceiver:
    """
    Shared machinery of all receiver engines.

    Attributes:
        sink: Destination of in-order payloads
        stats: Session counters
        done: True once the EOF packet has been delivered
    """

    protocol: Protocol = Protocol.BASIC

    def __init__(
        self,
        sink: DataSink,
        sequence_space: Optional[SequenceSpace] = None,
        logger: Optional[TransferLogger] = None
    ):
        self.sink = sink
        self.seq_space = sequence_space or SequenceSpace()
        self.logger = logger or get_logger()
        self.stats = ReceiverStatistics()
        self.done = False

    def receive_packet(self, packet: Packet) -> Optional[Packet]:
        """
        Process an incoming data packet.

        Args:
            packet: Decoded data packet

        Returns:
            Ack packet to send back, or None
        """
        if packet.is_ack():
            raise ValueError("Receiver was handed an ack packet")
        self.stats.packets_received += 1
        self.logger.packet_received(packet.seq_num, packet.flag.name, packet.payload_size)
        ack = self._on_packet(packet)
        if ack is not None:
            self.stats.acks_sent += 1
            self.logger.ack_sent(ack.seq_num)
        return ack

    def is_complete(self) -> bool:
        """Check if the EOF packet has been delivered."""
        return self.done

    def _deliver(self, packet: Packet):
        """Hand a payload to the sink."""
        self.sink.append(packet.payload)
        self.stats.packets_delivered += 1
        self.stats.bytes_delivered += packet.payload_size
        if packet.is_eof():
            self.done = True
            self.logger.info(
                f"EOF delivered, {self.stats.bytes_delivered} bytes received", "SESSION"
            )

    def _on_packet(self, packet: Packet) -> Optional[Packet]:
        raise NotImplementedError

    def get_statistics(self) -> dict:
        """Get receiver statistics."""
        stats = self.stats.to_dict()
        stats.update({'protocol': self.protocol.value, 'complete': self.done})
        return stats


class BasicReceiver(BaseReceiver):
    """Writes every packet in arrival order until EOF; never acks."""

    protocol = Protocol.BASIC

    def _on_packet(self, packet: Packet) -> Optional[Packet]:
        if self.done:
            self.stats.duplicate_packets += 1
            self.logger.discard(packet.seq_num, "after EOF")
            return None
        self._deliver(packet)
        return None


class InOrderReceiver(BaseReceiver):
    """
    Receiver for Stop-and-Wait and Go-Back-N.

    A packet is delivered only if it carries the next expected sequence
    number. Every packet is answered with an ack for the last delivered
    sequence number (M-1 before the first delivery).
    """

    def __init__(
        self,
        sink: DataSink,
        protocol: Protocol = Protocol.GO_BACK_N,
        **kwargs
    ):
        if protocol not in (Protocol.STOP_AND_WAIT, Protocol.GO_BACK_N):
            raise ValueError(f"In-order receiver does not serve {protocol.value}")
        super().__init__(sink, **kwargs)
        self.protocol = protocol
        self.expected_index = 0

    @property
    def expected_seq(self) -> int:
        return self.seq_space.wrap(self.expected_index)

    @property
    def last_delivered_seq(self) -> int:
        return self.seq_space.wrap(self.expected_index - 1)

    def _on_packet(self, packet: Packet) -> Optional[Packet]:
        if not self.done and packet.seq_num == self.expected_seq:
            self._deliver(packet)
            self.expected_index += 1
        elif self.seq_space.is_before_window(
                packet.seq_num, self.expected_seq, self.seq_space.max_selective_window):
            self.stats.duplicate_packets += 1
            self.logger.discard(packet.seq_num, f"duplicate (expected {self.expected_seq})")
        else:
            self.stats.out_of_order_packets += 1
            self.logger.discard(packet.seq_num, f"out of order (expected {self.expected_seq})")
        return Packet.create_ack_packet(self.last_delivered_seq)


@dataclass
class ReceiveWindow:
    """
    Sliding window for the Selective-Repeat receiver.

    Attributes:
        base: Absolute index of the next expected in-order packet
        size: Window size
        seq_space: Sequence number space used on the wire
    """
    size: int
    seq_space: SequenceSpace = field(default_factory=SequenceSpace)
    base: int = 0

    @property
    def base_seq(self) -> int:
        return self.seq_space.wrap(self.base)

    def in_window(self, seq_num: int) -> bool:
        """Check if sequence number is within [base, base + size)."""
        return self.seq_space.in_window(seq_num, self.base_seq, self.size)

    def is_before_window(self, seq_num: int) -> bool:
        """Check if sequence number is among the ``size`` just below base."""
        return self.seq_space.is_before_window(seq_num, self.base_seq, self.size)

    def index_of(self, seq_num: int) -> int:
        """Absolute index of an in-window sequence number."""
        return self.seq_space.unwrap(seq_num, self.base)


class SelectiveRepeatReceiver(BaseReceiver):
    """
    Selective-Repeat receiver.

    In-window packets are buffered once and acked individually; the
    buffer drains to the sink while the next expected packet is present.
    Packets just below the window are re-acked, anything else is dropped
    silently.
    """

    protocol = Protocol.SELECTIVE_REPEAT

    def __init__(self, sink: DataSink, window_size: int, **kwargs):
        super().__init__(sink, **kwargs)
        if window_size < 1:
            raise ValueError("Window size must be at least 1")
        if window_size > self.seq_space.max_selective_window:
            raise ValueError(
                f"Selective-Repeat window {window_size} exceeds half the "
                f"sequence space ({self.seq_space.max_selective_window})"
            )
        self.window_size = window_size
        self.window = ReceiveWindow(size=window_size, seq_space=self.seq_space)
        self.buffer: Dict[int, Packet] = {}
        self.eof_index: Optional[int] = None

    def _on_packet(self, packet: Packet) -> Optional[Packet]:
        seq = packet.seq_num

        if self.window.in_window(seq) and not self.done:
            index = self.window.index_of(seq)
            if index in self.buffer:
                self.stats.duplicate_packets += 1
                self.logger.discard(seq, "already buffered")
            else:
                if index != self.window.base:
                    self.stats.out_of_order_packets += 1
                self.buffer[index] = packet
                if packet.is_eof():
                    self.eof_index = index
                self._drain()
            return Packet.create_ack_packet(seq)

        if self.window.is_before_window(seq):
            self.stats.duplicate_packets += 1
            self.logger.discard(seq, "already delivered, re-acking")
            return Packet.create_ack_packet(seq)

        self.stats.out_of_window_packets += 1
        self.logger.discard(seq, f"outside window (base={self.window.base_seq})")
        return None

    def _drain(self):
        """Deliver buffered packets while the next expected one is present."""
        while self.window.base in self.buffer:
            packet = self.buffer.pop(self.window.base)
            self._deliver(packet)
            self.window.base += 1
            if self.done:
                self.buffer.clear()
                break

    def get_buffer_state(self) -> dict:
        """Get reorder buffer state for debugging."""
        return {
            'base': self.window.base,
            'window_size': self.window_size,
            'buffered': sorted(self.buffer),
            'eof_index': self.eof_index
        }


def create_receiver(
    protocol: Protocol,
    sink: DataSink,
    window_size: int = 1,
    **kwargs
) -> BaseReceiver:
    """
    Create the receiver engine for a protocol.

    Args:
        protocol: ARQ variant
        sink: Destination of delivered bytes
        window_size: Receive window (Selective-Repeat only)
        **kwargs: Passed to the engine constructor

    Returns:
        Receiver engine
    """
    if protocol == Protocol.BASIC:
        return BasicReceiver(sink, **kwargs)
    if protocol == Protocol.SELECTIVE_REPEAT:
        return SelectiveRepeatReceiver(sink, window_size=window_size, **kwargs)
    return InOrderReceiver(sink, protocol=protocol, **kwargs)
