"""
ARQ Sender Engines

This module implements the sending half of every ARQ variant as an
event-driven state machine. Engines never touch sockets or clocks: each
operation takes the current time and returns the packets that must be
put on the wire, so the same engine runs over UDP or inside the
discrete-event simulator.

Packets are numbered internally with absolute indices; only the wire
sequence number wraps modulo 2^16.
"""

from enum import Enum
from typing import Optional, List, Set

from config import (
    DEFAULT_TIMEOUT, FINAL_ACK_GRACE, BASIC_PACKET_GAP, MAX_PAYLOAD_SIZE
)
from .packet import Packet, Protocol, segment_data
from .sequence import SequenceSpace
from .timer import TimerManager
from ..utils.metrics import SenderStatistics
from ..utils.logger import TransferLogger, get_logger


# Named timer keys
WINDOW_TIMER = "window"
GRACE_TIMER = "grace"
PACING_TIMER = "pacing"


class SenderState(Enum):
    """Sender state enumeration."""
    IDLE = 0
    AWAIT_ACK = 1
    DONE = 2


class BaseSender:
    """
    Shared machinery of all sender engines.

    Attributes:
        chunks: File payloads, one per packet
        final_index: Index of the EOF packet
        timers: Retransmission timers
        stats: Session counters
    """

    protocol: Protocol = Protocol.BASIC

    def __init__(
        self,
        data: bytes,
        timeout: float = DEFAULT_TIMEOUT,
        payload_size: int = MAX_PAYLOAD_SIZE,
        final_ack_grace: Optional[float] = FINAL_ACK_GRACE,
        sequence_space: Optional[SequenceSpace] = None,
        logger: Optional[TransferLogger] = None
    ):
        """
        Initialize sender.

        Args:
            data: Complete file contents
            timeout: Retransmission timeout in seconds
            payload_size: Maximum payload per packet
            final_ack_grace: Silence after which the final ack is assumed
                delivered, counted once the final packet has been resent
                (None disables the heuristic)
            sequence_space: Sequence number space (16-bit by default)
            logger: Logger (global logger if None)
        """
        if timeout <= 0:
            raise ValueError("Timeout must be positive")
        if final_ack_grace is not None and final_ack_grace <= 0:
            raise ValueError("Final ack grace must be positive or None")

        self.chunks = segment_data(data, payload_size)
        self.final_index = len(self.chunks) - 1
        self.file_size = len(data)
        self.timeout = timeout
        self.final_ack_grace = final_ack_grace
        self.seq_space = sequence_space or SequenceSpace()
        self.timers = TimerManager(timeout)
        self.stats = SenderStatistics()
        self.logger = logger or get_logger()

        self.started = False
        self.done = False
        self.final_resent = False

    @property
    def total_packets(self) -> int:
        return len(self.chunks)

    # ------------------------------------------------------------------
    # Event interface
    # ------------------------------------------------------------------

    def start(self, now: float) -> List[Packet]:
        """
        Begin the transfer.

        Args:
            now: Current time in seconds

        Returns:
            Packets to send
        """
        if self.started:
            raise RuntimeError("Sender already started")
        self.started = True
        self.stats.start_time = now
        self.logger.transfer_start({
            'protocol': self.protocol.value,
            'bytes': self.file_size,
            'packets': self.total_packets,
            **self._describe()
        })
        return self._on_start(now)

    def process_ack(self, ack: Packet, now: float) -> List[Packet]:
        """
        Handle an incoming acknowledgment.

        Args:
            ack: Decoded ack packet
            now: Current time in seconds

        Returns:
            Packets to send in response
        """
        self.stats.acks_received += 1
        self.logger.ack_received(ack.seq_num)
        if self.done or not self.started:
            self.stats.duplicate_acks += 1
            self.logger.discard(ack.seq_num, "ack after completion")
            return []
        packets = self._on_ack(ack, now)
        if not self.done:
            self._note_final_resent(packets)
            self._refresh_grace(now, reset=True)
        return packets

    def check_timeouts(self, now: float) -> List[Packet]:
        """
        Fire every timer that is due.

        Args:
            now: Current time in seconds

        Returns:
            Packets to (re)send
        """
        if self.done:
            return []
        expired = self.timers.check_timeouts(now)
        if GRACE_TIMER in expired:
            self.logger.warning(
                f"No ack for {self.final_ack_grace:.1f}s after the final packet, "
                f"assuming delivery", "SESSION"
            )
            self._finish(now, assumed=True)
            return []
        packets = []
        for key in expired:
            packets.extend(self._on_timer(key, now))
        if not self.done:
            self._note_final_resent(packets)
            self._refresh_grace(now, reset=False)
        return packets

    def get_next_event_time(self) -> Optional[float]:
        """Time at which check_timeouts next has work, or None."""
        if self.done:
            return None
        return self.timers.get_next_expiry()

    def is_complete(self) -> bool:
        """Check if the sender has finished."""
        return self.done

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _make_packet(self, index: int) -> Packet:
        return Packet.create_data_packet(
            self.seq_space.wrap(index),
            self.chunks[index],
            eof=(index == self.final_index)
        )

    def _transmit(self, index: int, retransmission: bool = False) -> Packet:
        """Build the packet for an index and account for it."""
        packet = self._make_packet(index)
        self.stats.packets_sent += 1
        self.stats.bytes_sent += packet.payload_size
        if retransmission:
            self.stats.retransmitted_packets += 1
            self.logger.retransmit(packet.seq_num)
        else:
            self.stats.new_packets_sent += 1
            self.logger.packet_sent(packet.seq_num, packet.flag.name, packet.payload_size)
        return packet

    def _note_final_resent(self, packets: List[Packet]):
        if self._awaiting_only_final() and any(p.is_eof() for p in packets):
            self.final_resent = True

    def _refresh_grace(self, now: float, reset: bool):
        """
        Arm (or push back) the final-ack grace timer when it applies.

        Grace only runs once the final packet has been retransmitted at
        least once, so a lost final packet is always resent before
        delivery is assumed.
        """
        if (self.final_ack_grace is None or not self.final_resent
                or not self._awaiting_only_final()):
            return
        if reset or not self.timers.is_armed(GRACE_TIMER):
            self.timers.start_timer(GRACE_TIMER, now, self.final_ack_grace)

    def _finish(self, now: float, assumed: bool = False):
        self.done = True
        self.timers.clear_all()
        self.stats.end_time = now
        self.stats.assumed_delivery = assumed
        self.logger.transfer_end(self.stats.to_dict())

    def get_statistics(self) -> dict:
        """Get sender statistics."""
        stats = self.stats.to_dict()
        stats.update({
            'protocol': self.protocol.value,
            'file_size': self.file_size,
            'total_packets': self.total_packets,
            'complete': self.done,
            'timers': self.timers.get_statistics()
        })
        return stats

    def get_window_state(self) -> dict:
        """Get current window state for debugging."""
        return {'done': self.done, **self._describe()}

    # Hooks for subclasses
    def _describe(self) -> dict:
        return {}

    def _on_start(self, now: float) -> List[Packet]:
        raise NotImplementedError

    def _on_ack(self, ack: Packet, now: float) -> List[Packet]:
        return []

    def _on_timer(self, key, now: float) -> List[Packet]:
        return []

    def _awaiting_only_final(self) -> bool:
        return False


class BasicSender(BaseSender):
    """
    Unreliable sender: every packet is sent exactly once, paced by a fixed
    inter-packet gap. Acks are ignored.
    """

    protocol = Protocol.BASIC

    def __init__(
        self,
        data: bytes,
        packet_gap: float = BASIC_PACKET_GAP,
        payload_size: int = MAX_PAYLOAD_SIZE,
        sequence_space: Optional[SequenceSpace] = None,
        logger: Optional[TransferLogger] = None
    ):
        if packet_gap < 0:
            raise ValueError("Packet gap must be non-negative")
        super().__init__(
            data,
            timeout=packet_gap if packet_gap > 0 else BASIC_PACKET_GAP,
            payload_size=payload_size,
            final_ack_grace=None,
            sequence_space=sequence_space,
            logger=logger
        )
        self.packet_gap = packet_gap
        self.next_index = 0

    def _describe(self) -> dict:
        return {'next': self.next_index, 'packet_gap': self.packet_gap}

    def _send_next(self, now: float) -> List[Packet]:
        packets = [self._transmit(self.next_index)]
        self.next_index += 1
        if self.next_index > self.final_index:
            self._finish(now)
        else:
            self.timers.start_timer(PACING_TIMER, now, self.packet_gap)
        return packets

    def _on_start(self, now: float) -> List[Packet]:
        if self.packet_gap == 0:
            packets = []
            while not self.done:
                packets.extend(self._send_next(now))
            return packets
        return self._send_next(now)

    def _on_ack(self, ack: Packet, now: float) -> List[Packet]:
        self.stats.duplicate_acks += 1
        return []

    def _on_timer(self, key, now: float) -> List[Packet]:
        if key == PACING_TIMER:
            return self._send_next(now)
        return []


class StopAndWaitSender(BaseSender):
    """
    Stop-and-Wait sender: exactly one packet outstanding.

    A correct ack advances to the next chunk; a wrong ack or a timeout
    resends the outstanding packet.
    """

    protocol = Protocol.STOP_AND_WAIT

    def __init__(self, data: bytes, timeout: float = DEFAULT_TIMEOUT, **kwargs):
        super().__init__(data, timeout=timeout, **kwargs)
        self.state = SenderState.IDLE
        self.current_index = 0

    def _describe(self) -> dict:
        return {'state': self.state.name, 'current': self.current_index}

    def _send_current(self, now: float, retransmission: bool = False) -> List[Packet]:
        packet = self._transmit(self.current_index, retransmission)
        if retransmission:
            self.stats.retransmissions += 1
        self.timers.start_timer(WINDOW_TIMER, now)
        self.state = SenderState.AWAIT_ACK
        return [packet]

    def _on_start(self, now: float) -> List[Packet]:
        return self._send_current(now)

    def _on_ack(self, ack: Packet, now: float) -> List[Packet]:
        if ack.seq_num != self.seq_space.wrap(self.current_index):
            self.stats.duplicate_acks += 1
            self.logger.discard(ack.seq_num, "wrong ack, resending")
            return self._send_current(now, retransmission=True)

        self.timers.cancel_timer(WINDOW_TIMER)
        if self.current_index == self.final_index:
            self.state = SenderState.DONE
            self._finish(now)
            return []

        self.state = SenderState.IDLE
        self.current_index += 1
        return self._send_current(now)

    def _on_timer(self, key, now: float) -> List[Packet]:
        if key != WINDOW_TIMER:
            return []
        self.stats.timeouts += 1
        self.logger.timeout(f"packet {self.seq_space.wrap(self.current_index)}", self.stats.timeouts)
        return self._send_current(now, retransmission=True)

    def _awaiting_only_final(self) -> bool:
        return self.state == SenderState.AWAIT_ACK and self.current_index == self.final_index

    def _finish(self, now: float, assumed: bool = False):
        self.state = SenderState.DONE
        super()._finish(now, assumed)


class GoBackNSender(BaseSender):
    """
    Go-Back-N sender.

    ``base`` is the last cumulatively acknowledged index (-1 before any
    ack) and ``next_index`` the next index to assign. A single timer
    covers the window; on expiry every unacknowledged packet is resent.
    """

    protocol = Protocol.GO_BACK_N

    def __init__(
        self,
        data: bytes,
        window_size: int,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs
    ):
        super().__init__(data, timeout=timeout, **kwargs)
        if window_size < 1:
            raise ValueError("Window size must be at least 1")
        if window_size >= self.seq_space.modulus:
            raise ValueError(
                f"Window size must be below the sequence space ({self.seq_space.modulus})"
            )
        self.window_size = window_size
        self.base = -1
        self.next_index = 0

    @property
    def outstanding(self) -> int:
        """Number of sent but unacknowledged packets."""
        return self.next_index - 1 - self.base

    def _describe(self) -> dict:
        return {
            'base': self.base,
            'next': self.next_index,
            'window_size': self.window_size,
            'outstanding': self.outstanding
        }

    def _fill_window(self, now: float) -> List[Packet]:
        packets = []
        while (self.next_index - self.base <= self.window_size
               and self.next_index <= self.final_index):
            packets.append(self._transmit(self.next_index))
            self.next_index += 1
        if packets and not self.timers.is_armed(WINDOW_TIMER):
            self.timers.start_timer(WINDOW_TIMER, now)
        return packets

    def _on_start(self, now: float) -> List[Packet]:
        return self._fill_window(now)

    def _on_ack(self, ack: Packet, now: float) -> List[Packet]:
        advance = self.seq_space.distance(self.seq_space.wrap(self.base), ack.seq_num)
        if not 1 <= advance <= self.outstanding:
            self.stats.duplicate_acks += 1
            self.logger.discard(ack.seq_num, f"stale ack (base={self.base})")
            return []

        self.base += advance
        self.logger.window_update(self.base, self.next_index, self.window_size)
        if self.base == self.final_index:
            self._finish(now)
            return []

        self.timers.cancel_timer(WINDOW_TIMER)
        packets = self._fill_window(now)
        if self.outstanding > 0 and not self.timers.is_armed(WINDOW_TIMER):
            self.timers.start_timer(WINDOW_TIMER, now)
        return packets

    def _on_timer(self, key, now: float) -> List[Packet]:
        if key != WINDOW_TIMER:
            return []
        self.stats.timeouts += 1
        self.stats.retransmissions += 1
        self.logger.timeout(
            f"window {self.base + 1}..{self.next_index - 1}", self.stats.timeouts
        )
        packets = [
            self._transmit(index, retransmission=True)
            for index in range(self.base + 1, self.next_index)
        ]
        self.timers.start_timer(WINDOW_TIMER, now)
        return packets

    def _awaiting_only_final(self) -> bool:
        return self.base == self.final_index - 1 and self.next_index > self.final_index


class SelectiveRepeatSender(BaseSender):
    """
    Selective-Repeat sender.

    Every outstanding packet has its own timer keyed by index. ``base`` is
    the oldest unacknowledged index; packets acked above it are kept in
    ``acked`` until the window slides over them.
    """

    protocol = Protocol.SELECTIVE_REPEAT

    def __init__(
        self,
        data: bytes,
        window_size: int,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs
    ):
        super().__init__(data, timeout=timeout, **kwargs)
        if window_size < 1:
            raise ValueError("Window size must be at least 1")
        if window_size > self.seq_space.max_selective_window:
            raise ValueError(
                f"Selective-Repeat window {window_size} exceeds half the "
                f"sequence space ({self.seq_space.max_selective_window})"
            )
        self.window_size = window_size
        self.base = 0
        self.next_index = 0
        self.acked: Set[int] = set()

    @property
    def outstanding(self) -> int:
        """Number of sent packets still waiting for their ack."""
        return self.next_index - self.base - len(self.acked)

    def _describe(self) -> dict:
        return {
            'base': self.base,
            'next': self.next_index,
            'window_size': self.window_size,
            'outstanding': self.outstanding
        }

    def _fill_window(self, now: float) -> List[Packet]:
        packets = []
        while (self.next_index <= self.final_index
               and self.next_index < self.base + self.window_size):
            packets.append(self._transmit(self.next_index))
            self.timers.start_timer(self.next_index, now)
            self.next_index += 1
        return packets

    def _on_start(self, now: float) -> List[Packet]:
        return self._fill_window(now)

    def _on_ack(self, ack: Packet, now: float) -> List[Packet]:
        offset = self.seq_space.distance(self.seq_space.wrap(self.base), ack.seq_num)
        index = self.base + offset
        if offset >= self.next_index - self.base or not self.timers.cancel_timer(index):
            self.stats.duplicate_acks += 1
            self.logger.discard(ack.seq_num, "duplicate ack")
            return []

        self.acked.add(index)
        while self.base in self.acked:
            self.acked.remove(self.base)
            self.base += 1
        self.logger.window_update(self.base, self.next_index, self.window_size)

        if self.base > self.final_index:
            self._finish(now)
            return []
        return self._fill_window(now)

    def _on_timer(self, key, now: float) -> List[Packet]:
        if not isinstance(key, int) or key in self.acked or key < self.base:
            return []
        self.stats.timeouts += 1
        self.stats.retransmissions += 1
        self.logger.timeout(f"packet {self.seq_space.wrap(key)}", self.stats.timeouts)
        packet = self._transmit(key, retransmission=True)
        self.timers.start_timer(key, now)
        return [packet]

    def _awaiting_only_final(self) -> bool:
        return self.base == self.final_index and self.next_index > self.final_index


def create_sender(
    protocol: Protocol,
    data: bytes,
    timeout: float = DEFAULT_TIMEOUT,
    window_size: int = 1,
    **kwargs
) -> BaseSender:
    """
    Create the sender engine for a protocol.

    Args:
        protocol: ARQ variant
        data: File contents
        timeout: Retransmission timeout (ignored by Basic)
        window_size: Window size (Go-Back-N and Selective-Repeat only)
        **kwargs: Passed to the engine constructor

    Returns:
        Sender engine
    """
    if protocol == Protocol.BASIC:
        kwargs.pop('final_ack_grace', None)
        return BasicSender(data, **kwargs)
    if protocol == Protocol.STOP_AND_WAIT:
        return StopAndWaitSender(data, timeout=timeout, **kwargs)
    if protocol == Protocol.GO_BACK_N:
        return GoBackNSender(data, window_size=window_size, timeout=timeout, **kwargs)
    return SelectiveRepeatSender(data, window_size=window_size, timeout=timeout, **kwargs)
