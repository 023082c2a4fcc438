"""
Unit tests for the channel models.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqtransfer.arq.packet import Packet
from arqtransfer.channel.gilbert_elliot import GilbertElliottChannel, ChannelState
from arqtransfer.channel.scripted import ScriptedChannel, PerfectChannel, drop_first


def loss_pattern(channel, num_packets):
    return [channel.is_lost() for _ in range(num_packets)]


def mean_run_length(pattern):
    """Average length of the runs of consecutive losses."""
    runs, current = [], 0
    for lost in pattern + [False]:
        if lost:
            current += 1
        elif current:
            runs.append(current)
            current = 0
    return sum(runs) / len(runs) if runs else 0.0


class TestGilbertElliottChannel:
    """Tests for Gilbert-Elliott channel model."""

    def test_initialization(self):
        """Test channel initialization with default parameters."""
        channel = GilbertElliottChannel(seed=42)

        assert channel.good_loss == 0.01
        assert channel.bad_loss == 0.5
        assert channel.p_gb == 0.02
        assert channel.p_bg == 0.25
        assert channel.state in [ChannelState.GOOD, ChannelState.BAD]

    def test_steady_state_probabilities(self):
        channel = GilbertElliottChannel()

        pi_good, pi_bad = channel.get_steady_state_probabilities()

        assert abs(pi_good + pi_bad - 1.0) < 1e-10
        assert pi_good == pytest.approx(0.25 / 0.27)
        assert pi_bad == pytest.approx(0.02 / 0.27)

    def test_average_loss_rate(self):
        channel = GilbertElliottChannel()

        assert 0.04 < channel.get_average_loss_rate() < 0.05

    def test_invalid_probability(self):
        with pytest.raises(ValueError):
            GilbertElliottChannel(bad_loss=1.5)
        with pytest.raises(ValueError):
            GilbertElliottChannel(p_gb=-0.1)
        with pytest.raises(ValueError):
            GilbertElliottChannel(jitter=-1.0)

    def test_state_transitions(self):
        """Both states are visited."""
        channel = GilbertElliottChannel(seed=42)

        states_seen = set()
        for _ in range(1000):
            channel.transition_state()
            states_seen.add(channel.state)

        assert len(states_seen) == 2

    def test_bernoulli_never_leaves_good_state(self):
        channel = GilbertElliottChannel.bernoulli(0.3, seed=1)
        for _ in range(500):
            channel.is_lost()

        assert channel.state == ChannelState.GOOD
        assert channel.get_statistics()['state_transitions'] == 0
        assert channel.get_average_loss_rate() == pytest.approx(0.3)

    def test_bernoulli_observed_loss(self):
        channel = GilbertElliottChannel.bernoulli(0.2, seed=7)
        pattern = loss_pattern(channel, 20000)

        assert 0.18 < sum(pattern) / len(pattern) < 0.22

    def test_lossless_and_total_loss(self):
        lossless = GilbertElliottChannel.bernoulli(0.0, base_delay=0.01, seed=1)
        blackhole = GilbertElliottChannel.bernoulli(1.0, seed=1)

        assert all(lossless.transmit() == [0.01] for _ in range(100))
        assert all(blackhole.transmit() == [] for _ in range(100))

    def test_duplication(self):
        channel = GilbertElliottChannel.bernoulli(0.0, base_delay=0.02,
                                                  duplicate_rate=1.0, seed=1)

        assert channel.transmit() == [0.02, 0.02]
        assert channel.get_statistics()['packets_duplicated'] == 1

    def test_jitter_bounds(self):
        channel = GilbertElliottChannel.bernoulli(0.0, base_delay=0.05, jitter=0.01, seed=3)
        delays = [channel.transmit()[0] for _ in range(200)]

        assert all(0.05 <= d < 0.06 for d in delays)
        assert len(set(delays)) > 1

    def test_run_length_helper(self):
        assert mean_run_length([False, True, True, True, False, True]) == pytest.approx(2.0)
        assert mean_run_length([]) == 0.0

    def test_bursty_losses(self):
        """The Bad state produces longer loss runs than independent losses."""
        bursty = GilbertElliottChannel(good_loss=0.0, bad_loss=0.9, p_gb=0.01,
                                       p_bg=0.1, seed=42)
        independent = GilbertElliottChannel.bernoulli(bursty.get_average_loss_rate(), seed=42)

        assert mean_run_length(loss_pattern(bursty, 20000)) > 2.0
        assert mean_run_length(loss_pattern(independent, 20000)) < 1.5

    def test_statistics_tracking(self):
        channel = GilbertElliottChannel(seed=42)
        for _ in range(100):
            channel.transmit()

        stats = channel.get_statistics()

        assert stats['packets_offered'] == 100
        assert 'observed_loss_rate' in stats
        assert 'state_transitions' in stats

    def test_reset(self):
        channel = GilbertElliottChannel(seed=42)
        for _ in range(100):
            channel.transmit()

        channel.reset(seed=123)

        stats = channel.get_statistics()
        assert stats['packets_offered'] == 0
        assert stats['packets_lost'] == 0
        assert channel.seed == 123

    def test_reproducibility(self):
        """Test that same seed produces same results."""
        channel1 = GilbertElliottChannel(seed=42)
        channel2 = GilbertElliottChannel(seed=42)

        assert loss_pattern(channel1, 500) == loss_pattern(channel2, 500)


class TestScriptedChannel:
    """Tests for the deterministic channels."""

    def test_perfect_channel(self):
        channel = PerfectChannel(delay=0.03)

        assert channel.transmit(Packet.create_data_packet(0, b"x")) == [0.03]
        assert channel.get_statistics()['packets_lost'] == 0

    def test_drop_first_transmission_only(self):
        channel = ScriptedChannel(delay=0.01, drop=drop_first([2]))
        packet = Packet.create_data_packet(2, b"x")

        assert channel.transmit(packet) == []
        assert channel.transmit(packet) == [0.01]
        assert channel.transmit(Packet.create_ack_packet(2)) == [0.01]

    def test_drop_acks(self):
        channel = ScriptedChannel(delay=0.01, drop=drop_first([0], acks=True))

        assert channel.transmit(Packet.create_data_packet(0, b"x")) == [0.01]
        assert channel.transmit(Packet.create_ack_packet(0)) == []

    def test_delay_and_duplicate(self):
        channel = ScriptedChannel(
            delay=0.01,
            delay_fn=lambda packet, occurrence: 0.5 if occurrence == 0 else 0.01,
            duplicate=lambda packet, occurrence: packet.seq_num == 1
        )

        assert channel.transmit(Packet.create_data_packet(0, b"x")) == [0.5]
        assert channel.transmit(Packet.create_data_packet(0, b"x")) == [0.01]
        assert channel.transmit(Packet.create_data_packet(1, b"x")) == [0.5, 0.5]

    def test_reset_forgets_occurrences(self):
        channel = ScriptedChannel(delay=0.01, drop=drop_first([0]))
        packet = Packet.create_data_packet(0, b"x")
        channel.transmit(packet)
        channel.reset()

        assert channel.transmit(packet) == []
        assert channel.get_statistics()['packets_offered'] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
