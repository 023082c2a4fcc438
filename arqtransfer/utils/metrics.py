"""
Metrics Collection and Calculation

This module provides the per-engine session counters, the transfer
summary printed by senders, and the collector used by the simulator to
compute goodput and efficiency over the simulated channel.
"""

from dataclasses import dataclass, asdict
from typing import List, Optional, Dict
import statistics


@dataclass
class SenderStatistics:
    """
    Counters kept by every sender engine.

    ``retransmissions`` counts retransmission events (a Go-Back-N timeout
    resending a whole window is one event) while ``retransmitted_packets``
    counts every packet put on the wire again.
    """
    packets_sent: int = 0
    new_packets_sent: int = 0
    retransmissions: int = 0
    retransmitted_packets: int = 0
    acks_received: int = 0
    duplicate_acks: int = 0
    timeouts: int = 0
    bytes_sent: int = 0
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    assumed_delivery: bool = False

    @property
    def elapsed(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['elapsed'] = self.elapsed
        return data


@dataclass
class ReceiverStatistics:
    """Counters kept by every receiver engine."""
    packets_received: int = 0
    packets_delivered: int = 0
    duplicate_packets: int = 0
    out_of_order_packets: int = 0
    out_of_window_packets: int = 0
    acks_sent: int = 0
    bytes_delivered: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TransferSummary:
    """
    Human-readable result of a completed send.

    Attributes:
        file_size_kb: File size in kilobytes (1 kb = 1024 bytes)
        transfer_time_sec: Time from first send to completion
        throughput_kb_per_sec: file_size_kb / transfer_time_sec
        retransmissions: Retransmission events counted by the sender
    """
    file_size_kb: float
    transfer_time_sec: float
    throughput_kb_per_sec: float
    retransmissions: int

    @classmethod
    def from_transfer(
        cls,
        file_size_bytes: int,
        transfer_time_sec: float,
        retransmissions: int
    ) -> 'TransferSummary':
        """
        Build a summary from raw transfer figures.

        Args:
            file_size_bytes: Size of the transferred file
            transfer_time_sec: Elapsed transfer time
            retransmissions: Retransmission count

        Returns:
            TransferSummary
        """
        size_kb = file_size_bytes / 1024
        throughput = size_kb / transfer_time_sec if transfer_time_sec > 0 else 0.0
        return cls(
            file_size_kb=size_kb,
            transfer_time_sec=transfer_time_sec,
            throughput_kb_per_sec=throughput,
            retransmissions=retransmissions
        )

    def format(self) -> str:
        """Format the summary as printed by the CLI."""
        return "\n".join([
            f"File Size: {self.file_size_kb:.2f} kb",
            f"Transfer Time: {self.transfer_time_sec:.3f} s",
            f"Throughput: {self.throughput_kb_per_sec:.2f} kb/s",
            f"Retransmissions: {self.retransmissions}",
        ])

    def to_csv_row(self) -> Dict:
        return asdict(self)


class MetricsCollector:
    """
    Collects and calculates performance metrics for a simulated transfer.

    Primary metric: Goodput = Delivered Application Bytes / Total Transfer Time

    Attributes:
        start_time: Transfer start time
        end_time: Transfer end time
    """

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all counters."""
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        # Byte counters
        self.application_bytes_delivered = 0
        self.total_bytes_transmitted = 0  # Data and acks, headers included

        # Packet counters
        self.data_packets_sent = 0
        self.ack_packets_sent = 0
        self.data_packets_lost = 0
        self.ack_packets_lost = 0
        self.packets_duplicated = 0

        # RTT samples
        self.rtt_samples: List[float] = []

    def start(self, time: float):
        """Mark transfer start."""
        self.start_time = time

    def finish(self, time: float):
        """Mark transfer end."""
        self.end_time = time

    def record_data_sent(self, wire_bytes: int):
        """Record a data packet handed to the channel."""
        self.data_packets_sent += 1
        self.total_bytes_transmitted += wire_bytes

    def record_ack_sent(self, wire_bytes: int):
        """Record an ack handed to the channel."""
        self.ack_packets_sent += 1
        self.total_bytes_transmitted += wire_bytes

    def record_data_lost(self):
        self.data_packets_lost += 1

    def record_ack_lost(self):
        self.ack_packets_lost += 1

    def record_duplicate(self):
        self.packets_duplicated += 1

    def record_data_delivered(self, payload_bytes: int):
        """Record payload bytes delivered to the sink."""
        self.application_bytes_delivered += payload_bytes

    def record_rtt(self, rtt: float):
        self.rtt_samples.append(rtt)

    def _duration(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    def calculate_goodput(self) -> float:
        """
        Calculate Goodput.

        Goodput = Delivered Application Bytes / Total Transfer Time

        Returns:
            Goodput in bytes per second
        """
        total_time = self._duration()
        if total_time <= 0:
            return 0.0
        return self.application_bytes_delivered / total_time

    def calculate_throughput(self) -> float:
        """Raw bytes put on the channel per second."""
        total_time = self._duration()
        if total_time <= 0:
            return 0.0
        return self.total_bytes_transmitted / total_time

    def calculate_efficiency(self) -> float:
        """
        Calculate transmission efficiency.

        Efficiency = Application Bytes Delivered / Total Bytes Transmitted
        """
        if self.total_bytes_transmitted <= 0:
            return 0.0
        return self.application_bytes_delivered / self.total_bytes_transmitted

    def calculate_loss_rate(self) -> float:
        """Observed fraction of data packets dropped by the channel."""
        if self.data_packets_sent <= 0:
            return 0.0
        return self.data_packets_lost / self.data_packets_sent

    def get_rtt_statistics(self) -> Dict[str, float]:
        """
        Get RTT statistics.

        Returns:
            Dictionary with min, max, mean, median RTT and sample count
        """
        if not self.rtt_samples:
            return {'min': 0, 'max': 0, 'mean': 0, 'median': 0, 'samples': 0}

        return {
            'min': min(self.rtt_samples),
            'max': max(self.rtt_samples),
            'mean': statistics.mean(self.rtt_samples),
            'median': statistics.median(self.rtt_samples),
            'samples': len(self.rtt_samples)
        }

    def get_summary(self) -> Dict:
        """Get all metrics as a dictionary."""
        goodput = self.calculate_goodput()
        return {
            'duration': self._duration(),
            'goodput': goodput,
            'goodput_kbps': goodput / 1024,
            'throughput': self.calculate_throughput(),
            'efficiency': self.calculate_efficiency(),
            'bytes_delivered': self.application_bytes_delivered,
            'bytes_transmitted': self.total_bytes_transmitted,
            'data_packets_sent': self.data_packets_sent,
            'ack_packets_sent': self.ack_packets_sent,
            'data_packets_lost': self.data_packets_lost,
            'ack_packets_lost': self.ack_packets_lost,
            'packets_duplicated': self.packets_duplicated,
            'observed_loss_rate': self.calculate_loss_rate(),
            'rtt': self.get_rtt_statistics()
        }
