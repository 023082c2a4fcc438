"""
Deterministic channel models.

Used by tests and demonstrations where the exact packets that are lost,
delayed or duplicated must be chosen in advance.
"""

from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from config import FORWARD_PROPAGATION_DELAY, PROCESSING_DELAY


class ScriptedChannel:
    """
    Channel whose behaviour is decided by callables.

    Every callable receives the packet and its occurrence number, i.e. how
    many times a packet with the same kind and sequence number has already
    been offered to this channel (0 for the first transmission).

    Attributes:
        delay: Default one-way delay in seconds
        drop: Predicate returning True to lose the packet
        delay_fn: Optional per-packet delay override
        duplicate: Predicate returning True to deliver a second copy
    """

    def __init__(
        self,
        delay: float = FORWARD_PROPAGATION_DELAY + PROCESSING_DELAY,
        drop: Optional[Callable] = None,
        delay_fn: Optional[Callable] = None,
        duplicate: Optional[Callable] = None
    ):
        self.delay = delay
        self.drop = drop
        self.delay_fn = delay_fn
        self.duplicate = duplicate
        self.occurrences: Dict[Tuple[bool, int], int] = defaultdict(int)

        self.packets_offered = 0
        self.packets_lost = 0
        self.packets_duplicated = 0

    def transmit(self, packet) -> List[float]:
        """
        Pass one packet through the channel.

        Args:
            packet: Packet being sent

        Returns:
            Arrival delays, one per delivered copy (empty if lost)
        """
        key = (packet.is_ack(), packet.seq_num)
        occurrence = self.occurrences[key]
        self.occurrences[key] += 1
        self.packets_offered += 1

        if self.drop is not None and self.drop(packet, occurrence):
            self.packets_lost += 1
            return []

        delay = self.delay
        if self.delay_fn is not None:
            delay = self.delay_fn(packet, occurrence)

        if self.duplicate is not None and self.duplicate(packet, occurrence):
            self.packets_duplicated += 1
            return [delay, delay]
        return [delay]

    def reset(self, seed: Optional[int] = None):
        """Forget occurrence counts (the seed is ignored)."""
        self.occurrences.clear()
        self.packets_offered = 0
        self.packets_lost = 0
        self.packets_duplicated = 0

    def get_statistics(self) -> dict:
        return {
            'packets_offered': self.packets_offered,
            'packets_lost': self.packets_lost,
            'packets_duplicated': self.packets_duplicated,
            'observed_loss_rate': (self.packets_lost / self.packets_offered
                                   if self.packets_offered > 0 else 0)
        }


class PerfectChannel(ScriptedChannel):
    """Delivers every packet exactly once after a fixed delay."""

    def __init__(self, delay: float = FORWARD_PROPAGATION_DELAY + PROCESSING_DELAY):
        super().__init__(delay=delay)


def drop_first(seq_nums, acks: bool = False) -> Callable:
    """
    Build a drop predicate losing the first transmission of each listed
    sequence number.

    Args:
        seq_nums: Sequence numbers to drop once
        acks: Match acks instead of data packets

    Returns:
        Predicate usable as ScriptedChannel(drop=...)
    """
    targets = set(seq_nums)

    def predicate(packet, occurrence: int) -> bool:
        return (packet.is_ack() == acks and packet.seq_num in targets
                and occurrence == 0)

    return predicate
