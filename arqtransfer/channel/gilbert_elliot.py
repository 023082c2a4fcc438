"""
Gilbert-Elliott Burst Loss Channel

Two-state Markov packet channel. Each packet offered to the channel is lost
with the loss probability of the current state (Good or Bad), after which
the chain steps once. Delivered packets may arrive twice and carry a
uniform jitter on top of the base delay, so they can overtake each other.
"""

import numpy as np
from enum import Enum
from typing import Tuple, List, Optional

from config import (
    GOOD_STATE_LOSS, BAD_STATE_LOSS,
    P_GOOD_TO_BAD, P_BAD_TO_GOOD,
    FORWARD_PROPAGATION_DELAY, PROCESSING_DELAY,
    DUPLICATE_RATE, DELAY_JITTER
)


class ChannelState(Enum):
    GOOD = 0
    BAD = 1


class GilbertElliottChannel:
    """
    Bursty datagram path for the simulator and for lossy live runs.

    Attributes:
        good_loss: Loss probability while Good
        bad_loss: Loss probability while Bad
        p_gb: Good -> Bad probability per packet
        p_bg: Bad -> Good probability per packet
        base_delay: One-way delay of a delivered packet (seconds)
        jitter: Upper bound of the extra uniform delay (seconds)
        duplicate_rate: Probability that a delivered packet arrives twice
    """

    def __init__(
        self,
        good_loss: float = GOOD_STATE_LOSS,
        bad_loss: float = BAD_STATE_LOSS,
        p_gb: float = P_GOOD_TO_BAD,
        p_bg: float = P_BAD_TO_GOOD,
        base_delay: float = FORWARD_PROPAGATION_DELAY + PROCESSING_DELAY,
        jitter: float = DELAY_JITTER,
        duplicate_rate: float = DUPLICATE_RATE,
        seed: Optional[int] = None
    ):
        for name, value in (('good_loss', good_loss), ('bad_loss', bad_loss),
                            ('p_gb', p_gb), ('p_bg', p_bg),
                            ('duplicate_rate', duplicate_rate)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be a probability, got {value}")
        if base_delay < 0 or jitter < 0:
            raise ValueError("Delays must be non-negative")

        self.good_loss = good_loss
        self.bad_loss = bad_loss
        self.p_gb = p_gb
        self.p_bg = p_bg
        self.base_delay = base_delay
        self.jitter = jitter
        self.duplicate_rate = duplicate_rate
        self.seed = seed
        self.reset(seed)

    @classmethod
    def bernoulli(cls, loss_rate: float, **kwargs) -> 'GilbertElliottChannel':
        """Memoryless channel: independent losses, always in the Good state."""
        return cls(good_loss=loss_rate, bad_loss=loss_rate, p_gb=0.0, p_bg=1.0, **kwargs)

    def get_steady_state_probabilities(self) -> Tuple[float, float]:
        """Long-run share of packets seen in the (Good, Bad) state."""
        total = self.p_gb + self.p_bg
        if total == 0:
            return 1.0, 0.0
        return self.p_bg / total, self.p_gb / total

    def get_average_loss_rate(self) -> float:
        pi_good, pi_bad = self.get_steady_state_probabilities()
        return pi_good * self.good_loss + pi_bad * self.bad_loss

    def transition_state(self):
        """Step the Markov chain once."""
        if self.state == ChannelState.GOOD:
            if self.rng.random() < self.p_gb:
                self.state = ChannelState.BAD
                self.state_transitions += 1
        elif self.rng.random() < self.p_bg:
            self.state = ChannelState.GOOD
            self.state_transitions += 1

    def is_lost(self) -> bool:
        """Decide the fate of one packet and advance the chain."""
        loss = self.good_loss if self.state == ChannelState.GOOD else self.bad_loss
        lost = self.rng.random() < loss
        self.packets_offered += 1
        if lost:
            self.packets_lost += 1
        self.transition_state()
        return lost

    def transmit(self, packet=None) -> List[float]:
        """
        Pass one packet through the channel.

        Returns:
            Arrival delays, one per delivered copy (empty if lost)
        """
        if self.is_lost():
            return []

        copies = 1
        if self.duplicate_rate > 0 and self.rng.random() < self.duplicate_rate:
            copies = 2
            self.packets_duplicated += 1

        if self.jitter == 0:
            return [self.base_delay] * copies
        return [self.base_delay + self.rng.random() * self.jitter for _ in range(copies)]

    def get_statistics(self) -> dict:
        return {
            'packets_offered': self.packets_offered,
            'packets_lost': self.packets_lost,
            'packets_duplicated': self.packets_duplicated,
            'observed_loss_rate': (self.packets_lost / self.packets_offered
                                   if self.packets_offered > 0 else 0),
            'state_transitions': self.state_transitions
        }

    def reset(self, seed: Optional[int] = None):
        """Reseed the generator, redraw the starting state and zero the counters."""
        if seed is not None:
            self.seed = seed
        self.rng = np.random.default_rng(self.seed)

        pi_good, _ = self.get_steady_state_probabilities()
        self.state = ChannelState.GOOD if self.rng.random() < pi_good else ChannelState.BAD

        self.packets_offered = 0
        self.packets_lost = 0
        self.packets_duplicated = 0
        self.state_transitions = 0
