"""
Main Simulator - Event-Driven Transfer Simulation

This module runs one sender engine and one receiver engine against
simulated forward (data) and reverse (ack) channels on a virtual clock.
Every packet goes through the real wire codec, so the simulation
exercises exactly the code paths used over UDP.
"""

from typing import Optional, Dict, List
from dataclasses import dataclass, field
from enum import Enum
import heapq
import itertools
import time
import sys
import os

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import (
    MAX_PAYLOAD_SIZE, FINAL_ACK_GRACE, BASIC_PACKET_GAP,
    FORWARD_PROPAGATION_DELAY, REVERSE_PROPAGATION_DELAY, PROCESSING_DELAY,
    DELAY_JITTER, DUPLICATE_RATE, RNG_SEED_BASE, MAX_SIMULATION_TIME, TIMEOUT_MULTIPLIER,
    calculate_default_timeout
)
from arqtransfer.arq.packet import Packet, Protocol, get_codec
from arqtransfer.arq.sender import create_sender
from arqtransfer.arq.receiver import create_receiver
from arqtransfer.channel.gilbert_elliot import GilbertElliottChannel
from arqtransfer.layers.application_layer import TestDataGenerator, DataVerifier, MemorySink
from arqtransfer.utils.metrics import MetricsCollector, TransferSummary
from arqtransfer.utils.logger import TransferLogger, LogLevel


class EventType(Enum):
    """Types of simulation events."""
    DATA_ARRIVAL = 0      # Data packet arrives at receiver
    ACK_ARRIVAL = 1       # Ack arrives at sender
    TIMER_CHECK = 2       # Check for timeouts


@dataclass(order=True)
class SimEvent:
    """Simulation event."""
    time: float
    order: int
    event_type: EventType = field(compare=False)
    data: dict = field(compare=False, default_factory=dict)


@dataclass
class SimulatorConfig:
    """Configuration for the simulator."""
    # ARQ parameters
    protocol: str = "sr"
    window_size: int = 8
    payload_size: int = MAX_PAYLOAD_SIZE

    # Timeout (derived from the channel RTT if None)
    timeout: Optional[float] = None
    final_ack_grace: Optional[float] = FINAL_ACK_GRACE
    packet_gap: float = BASIC_PACKET_GAP

    # Channel parameters
    channel: str = "bernoulli"          # "bernoulli" or "gilbert"
    loss_rate: float = 0.0
    ack_loss_rate: Optional[float] = None  # Same as loss_rate if None
    forward_delay: float = FORWARD_PROPAGATION_DELAY + PROCESSING_DELAY
    reverse_delay: float = REVERSE_PROPAGATION_DELAY + PROCESSING_DELAY
    jitter: float = DELAY_JITTER
    duplicate_rate: float = DUPLICATE_RATE

    # Data parameters
    data_size: int = 64 * 1024

    # Simulation parameters
    seed: int = RNG_SEED_BASE
    max_time: float = MAX_SIMULATION_TIME
    log_level: int = LogLevel.WARNING

    def get_protocol(self) -> Protocol:
        return Protocol(self.protocol)

    def get_timeout(self) -> float:
        """Timeout value, derived from the channel delays if unset."""
        if self.timeout is not None:
            return self.timeout
        rtt = self.forward_delay + self.reverse_delay + self.jitter
        if rtt <= 0:
            return calculate_default_timeout()
        return rtt * TIMEOUT_MULTIPLIER

    def get_ack_loss_rate(self) -> float:
        return self.loss_rate if self.ack_loss_rate is None else self.ack_loss_rate


class Simulator:
    """
    Event-driven transfer simulator.

    Attributes:
        config: Simulator configuration
        forward_channel: Channel for data packets
        reverse_channel: Channel for acks
    """

    def __init__(
        self,
        config: SimulatorConfig,
        forward_channel=None,
        reverse_channel=None
    ):
        """
        Initialize simulator.

        Args:
            config: Simulator configuration
            forward_channel: Custom data channel (built from config if None)
            reverse_channel: Custom ack channel (built from config if None)
        """
        self.config = config
        self.protocol = config.get_protocol()
        self.codec = get_codec(self.protocol, config.payload_size)

        self.logger = TransferLogger(name="Sim", level=config.log_level)

        self.forward_channel = forward_channel or self._build_channel(
            config.loss_rate, config.forward_delay, config.seed)
        self.reverse_channel = reverse_channel or self._build_channel(
            config.get_ack_loss_rate(), config.reverse_delay, config.seed + 1000)

        self.metrics = MetricsCollector()

        # Simulation state
        self.current_time = 0.0
        self.event_queue: List[SimEvent] = []
        self._order = itertools.count()
        self._timer_checks = set()
        self.send_times: Dict[int, float] = {}

        self.sender = None
        self.receiver = None
        self.sink: Optional[MemorySink] = None

    def _build_channel(self, loss_rate: float, base_delay: float, seed: int):
        """Build a channel model from the configuration."""
        kwargs = {
            'base_delay': base_delay,
            'jitter': self.config.jitter,
            'duplicate_rate': self.config.duplicate_rate,
            'seed': seed
        }
        if self.config.channel == "gilbert":
            return GilbertElliottChannel(**kwargs)
        if self.config.channel == "bernoulli":
            return GilbertElliottChannel.bernoulli(loss_rate, **kwargs)
        raise ValueError(f"Unknown channel model: {self.config.channel}")

    def _schedule_event(self, time: float, event_type: EventType, data: dict = None):
        """Schedule an event."""
        event = SimEvent(time=time, order=next(self._order),
                         event_type=event_type, data=data or {})
        heapq.heappush(self.event_queue, event)

    def _schedule_timer_check(self):
        """Make sure a timer check is queued for the sender's next deadline."""
        next_time = self.sender.get_next_event_time()
        if next_time is None or next_time in self._timer_checks:
            return
        self._timer_checks.add(next_time)
        self._schedule_event(max(next_time, self.current_time), EventType.TIMER_CHECK,
                             {'deadline': next_time})

    def _send_data(self, packets: List[Packet]):
        """Put data packets on the forward channel."""
        for packet in packets:
            wire = self.codec.encode(packet)
            self.metrics.record_data_sent(len(wire))
            self.send_times[packet.seq_num] = self.current_time

            delays = self.forward_channel.transmit(packet)
            if not delays:
                self.metrics.record_data_lost()
                self.logger.debug(f"Packet {packet.seq_num} lost", "CHANNEL")
            elif len(delays) > 1:
                self.metrics.record_duplicate()
            for delay in delays:
                self._schedule_event(self.current_time + delay,
                                     EventType.DATA_ARRIVAL, {'wire': wire})

    def _send_ack(self, ack: Packet):
        """Put an ack on the reverse channel."""
        wire = self.codec.encode(ack)
        self.metrics.record_ack_sent(len(wire))

        delays = self.reverse_channel.transmit(ack)
        if not delays:
            self.metrics.record_ack_lost()
            self.logger.debug(f"ACK {ack.seq_num} lost", "CHANNEL")
        elif len(delays) > 1:
            self.metrics.record_duplicate()
        for delay in delays:
            self._schedule_event(self.current_time + delay,
                                 EventType.ACK_ARRIVAL, {'wire': wire})

    def _handle_data_arrival(self, event_data: dict):
        """Handle a data packet arriving at the receiver."""
        packet = self.codec.decode_data(event_data['wire'])
        delivered_before = self.receiver.stats.bytes_delivered
        ack = self.receiver.receive_packet(packet)
        self.metrics.record_data_delivered(self.receiver.stats.bytes_delivered - delivered_before)
        if ack is not None:
            self._send_ack(ack)

    def _handle_ack_arrival(self, event_data: dict):
        """Handle an ack arriving at the sender."""
        ack = self.codec.decode_ack(event_data['wire'])
        if ack.seq_num in self.send_times:
            self.metrics.record_rtt(self.current_time - self.send_times[ack.seq_num])
        self._send_data(self.sender.process_ack(ack, self.current_time))

    def _handle_timer_check(self, event_data: dict):
        self._timer_checks.discard(event_data.get('deadline'))
        self._send_data(self.sender.check_timeouts(self.current_time))

    def _is_complete(self) -> bool:
        """Check if both engines have finished."""
        return self.sender.is_complete() and self.receiver.is_complete()

    def _setup(self, data: bytes):
        """Create fresh engines for one run."""
        engine_kwargs = {'payload_size': self.config.payload_size, 'logger': self.logger}
        if self.protocol == Protocol.BASIC:
            engine_kwargs['packet_gap'] = self.config.packet_gap
        else:
            engine_kwargs['final_ack_grace'] = self.config.final_ack_grace

        self.sender = create_sender(
            self.protocol, data,
            timeout=self.config.get_timeout(),
            window_size=self.config.window_size,
            **engine_kwargs
        )
        self.sink = MemorySink()
        self.receiver = create_receiver(
            self.protocol, self.sink,
            window_size=self.config.window_size,
            logger=self.logger
        )

        self.event_queue.clear()
        self._timer_checks.clear()
        self.send_times.clear()
        self.current_time = 0.0
        self.metrics.reset()
        self.forward_channel.reset(self.config.seed)
        self.reverse_channel.reset(self.config.seed + 1000)

    def run(self, data: Optional[bytes] = None) -> Dict:
        """
        Run the simulation.

        Args:
            data: File contents (random data of config.data_size if None)

        Returns:
            Results dictionary
        """
        if data is None:
            data = TestDataGenerator.generate_test_data(
                self.config.data_size, pattern="random", seed=self.config.seed
            )

        self._setup(data)
        self.logger.set_sim_time(0.0)
        sim_start_real = time.time()

        self.metrics.start(0.0)
        self._send_data(self.sender.start(0.0))
        self._schedule_timer_check()

        max_iterations = 10000000
        iterations = 0

        while (self.event_queue and not self._is_complete()
               and iterations < max_iterations):
            event = heapq.heappop(self.event_queue)
            if event.time > self.config.max_time:
                self.logger.warning(
                    f"Simulation time limit of {self.config.max_time}s reached", "SIM")
                break

            self.current_time = event.time
            self.logger.set_sim_time(self.current_time)

            if event.event_type == EventType.DATA_ARRIVAL:
                self._handle_data_arrival(event.data)
            elif event.event_type == EventType.ACK_ARRIVAL:
                self._handle_ack_arrival(event.data)
            elif event.event_type == EventType.TIMER_CHECK:
                self._handle_timer_check(event.data)

            self._schedule_timer_check()
            iterations += 1

        end_time = self.sender.stats.end_time
        if end_time is None:
            end_time = self.current_time
        self.metrics.finish(end_time)
        sim_end_real = time.time()

        received = self.sink.data
        valid, verify_details = DataVerifier.verify_data(data, received)
        summary = TransferSummary.from_transfer(
            len(data), end_time, self.sender.stats.retransmissions
        )

        return {
            'config': {
                'protocol': self.protocol.value,
                'window_size': self.config.window_size,
                'payload_size': self.config.payload_size,
                'data_size': len(data),
                'loss_rate': self.config.loss_rate,
                'channel': self.config.channel,
                'seed': self.config.seed,
                'timeout': self.config.get_timeout()
            },
            'sender': self.sender.get_statistics(),
            'receiver': self.receiver.get_statistics(),
            'metrics': self.metrics.get_summary(),
            'summary': summary.to_csv_row(),
            'channels': {
                'forward': self.forward_channel.get_statistics(),
                'reverse': self.reverse_channel.get_statistics()
            },
            'verification': {'valid': valid, **verify_details},
            'received_data': received,
            'sink_writes': self.sink.write_count,
            'real_time': sim_end_real - sim_start_real,
            'simulation_time': self.current_time,
            'complete': self._is_complete()
        }


if __name__ == "__main__":
    print("=" * 60)
    print("SIMULATOR TEST")
    print("=" * 60)

    for protocol in ("saw", "gbn", "sr"):
        config = SimulatorConfig(
            protocol=protocol,
            window_size=8,
            data_size=32 * 1024,
            loss_rate=0.05,
            seed=42
        )
        results = Simulator(config).run()
        sender = results['sender']
        print(f"\n{protocol.upper()}:")
        print(f"  Complete: {results['complete']}")
        print(f"  Data valid: {results['verification']['valid']}")
        print(f"  Simulation time: {results['simulation_time']:.4f} s")
        print(f"  Packets sent: {sender['packets_sent']}")
        print(f"  Retransmitted packets: {sender['retransmitted_packets']}")
        print(f"  Goodput: {results['metrics']['goodput_kbps']:.2f} kb/s")
