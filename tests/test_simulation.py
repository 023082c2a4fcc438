"""
End-to-end tests of the engines on the discrete-event simulator.

Deterministic scripted channels pick exactly which packets are lost,
delayed or duplicated, so every scenario is reproducible.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from simulation.simulator import Simulator, SimulatorConfig
from arqtransfer.channel.scripted import ScriptedChannel, PerfectChannel, drop_first
from arqtransfer.layers.application_layer import TestDataGenerator


FORWARD_DELAY = 0.04
REVERSE_DELAY = 0.01


def make_data(size: int) -> bytes:
    return TestDataGenerator.generate_test_data(size, pattern="random", seed=7)


def simulate(protocol, data, window_size=4, timeout=0.2, forward=None, reverse=None,
             **kwargs):
    config = SimulatorConfig(protocol=protocol, window_size=window_size,
                             timeout=timeout, **kwargs)
    sim = Simulator(
        config,
        forward_channel=forward or PerfectChannel(FORWARD_DELAY),
        reverse_channel=reverse or PerfectChannel(REVERSE_DELAY)
    )
    return sim.run(data)


class PacketRecorder:
    """Delay function that records every data packet offered to the channel."""

    def __init__(self, delay: float = FORWARD_DELAY):
        self.delay = delay
        self.packets = []

    def __call__(self, packet, occurrence):
        self.packets.append(packet)
        return self.delay


class TestRoundTrip:
    """Round-trip integrity over a channel that delivers everything once."""

    @pytest.mark.parametrize("protocol", ["basic", "saw", "gbn", "sr"])
    def test_perfect_channel(self, protocol):
        data = make_data(10000)
        results = simulate(protocol, data)

        assert results['complete']
        assert results['verification']['valid']
        assert results['received_data'] == data
        assert results['sink_writes'] == 10
        assert results['sender']['retransmissions'] == 0

    @pytest.mark.parametrize("protocol", ["saw", "gbn", "sr"])
    def test_long_perfect_transfer_never_retransmits(self, protocol):
        """A transfer spanning many timeout periods stays free of retransmissions."""
        data = make_data(300 * 1024)
        results = simulate(protocol, data)

        assert results['verification']['valid']
        assert results['summary']['transfer_time_sec'] > 10 * 0.2
        assert results['sender']['retransmissions'] == 0
        assert results['sender']['timeouts'] == 0
        assert not results['sender']['assumed_delivery']

    @pytest.mark.parametrize("protocol", ["saw", "gbn", "sr"])
    def test_empty_file(self, protocol):
        results = simulate(protocol, b'')

        assert results['complete']
        assert results['received_data'] == b''
        assert results['sender']['packets_sent'] == 1

    def test_window_speeds_up_transfer(self):
        data = make_data(32 * 1024)
        saw = simulate("saw", data)
        sr = simulate("sr", data, window_size=8)

        assert sr['summary']['transfer_time_sec'] < saw['summary']['transfer_time_sec']

    def test_wire_sequence_for_5000_bytes(self):
        """5000 bytes, payload 1024, window 4: seq 0..4 with a 904-byte EOF."""
        recorder = PacketRecorder()
        results = simulate("sr", make_data(5000), window_size=4,
                           forward=ScriptedChannel(delay_fn=recorder))

        assert results['verification']['valid']
        assert [p.seq_num for p in recorder.packets] == [0, 1, 2, 3, 4]
        assert [p.is_eof() for p in recorder.packets] == [False] * 4 + [True]
        assert len(recorder.packets[-1].payload) == 904


class TestLossRecovery:
    """Recovery from scripted packet and ack losses."""

    @pytest.mark.parametrize("lost_seq", [0, 3, 7])
    @pytest.mark.parametrize("protocol", ["gbn", "sr"])
    def test_single_data_loss(self, protocol, lost_seq):
        data = make_data(8 * 1024)
        results = simulate(protocol, data,
                           forward=ScriptedChannel(FORWARD_DELAY, drop=drop_first([lost_seq])))

        assert results['complete']
        assert results['verification']['valid']
        assert results['sink_writes'] == 8
        assert results['sender']['retransmitted_packets'] >= 1

    def test_selective_repeat_retransmits_less(self):
        """An isolated loss costs SR one packet and GBN the rest of the window."""
        data = make_data(8 * 1024)
        gbn = simulate("gbn", data,
                       forward=ScriptedChannel(FORWARD_DELAY, drop=drop_first([1])))
        sr = simulate("sr", data,
                      forward=ScriptedChannel(FORWARD_DELAY, drop=drop_first([1])))

        assert sr['sender']['retransmitted_packets'] == 1
        assert gbn['sender']['retransmitted_packets'] > sr['sender']['retransmitted_packets']

    def test_stop_and_wait_lost_ack(self):
        """A lost ack makes the sender resend the identical packet exactly once."""
        recorder = PacketRecorder()
        data = make_data(3000)
        results = simulate(
            "saw", data,
            forward=ScriptedChannel(delay_fn=recorder),
            reverse=ScriptedChannel(REVERSE_DELAY, drop=drop_first([0], acks=True))
        )

        assert results['verification']['valid']
        assert results['sink_writes'] == 3
        assert results['sender']['retransmissions'] == 1
        assert results['receiver']['duplicate_packets'] == 1
        assert recorder.packets[0] == recorder.packets[1]

    @pytest.mark.parametrize("protocol", ["saw", "gbn", "sr"])
    def test_lost_final_ack(self, protocol):
        """Losing every ack of the final packet ends through the grace period."""
        data = make_data(3000)

        def drop_final_acks(packet, occurrence):
            return packet.is_ack() and packet.seq_num == 2

        results = simulate(protocol, data, final_ack_grace=1.0,
                           reverse=ScriptedChannel(REVERSE_DELAY, drop=drop_final_acks))

        assert results['complete']
        assert results['verification']['valid']
        assert results['sender']['assumed_delivery']


class TestReorderingAndDuplication:
    """Reordered and duplicated datagrams never corrupt the output."""

    def test_selective_repeat_reordering(self):
        def late_first(packet, occurrence):
            return 0.1 if packet.seq_num == 0 and occurrence == 0 else FORWARD_DELAY

        data = make_data(6 * 1024)
        results = simulate("sr", data, timeout=0.5,
                           forward=ScriptedChannel(delay_fn=late_first))

        assert results['verification']['valid']
        assert results['sink_writes'] == 6
        assert results['receiver']['out_of_order_packets'] > 0
        assert results['sender']['retransmissions'] == 0

    @pytest.mark.parametrize("protocol", ["gbn", "sr"])
    def test_duplicated_acks(self, protocol):
        data = make_data(8 * 1024)
        results = simulate(protocol, data,
                           reverse=ScriptedChannel(REVERSE_DELAY, duplicate=lambda p, o: True))

        assert results['verification']['valid']
        assert results['sender']['duplicate_acks'] > 0
        assert results['sender']['retransmissions'] == 0

    @pytest.mark.parametrize("protocol", ["gbn", "sr"])
    def test_duplicated_data(self, protocol):
        data = make_data(8 * 1024)
        results = simulate(protocol, data,
                           forward=ScriptedChannel(FORWARD_DELAY, duplicate=lambda p, o: True))

        assert results['verification']['valid']
        assert results['sink_writes'] == 8
        assert results['receiver']['duplicate_packets'] > 0


class TestRandomChannels:
    """Seeded random channels built from the configuration."""

    @pytest.mark.parametrize("protocol", ["saw", "gbn", "sr"])
    def test_bernoulli_loss(self, protocol):
        config = SimulatorConfig(protocol=protocol, window_size=8, loss_rate=0.1,
                                 data_size=100 * 1024, seed=3)
        results = Simulator(config).run()

        assert results['complete']
        assert results['verification']['valid']
        assert results['metrics']['data_packets_lost'] > 0

    def test_gilbert_channel(self):
        config = SimulatorConfig(protocol="sr", window_size=8, channel="gilbert",
                                 data_size=20 * 1024, seed=5)
        results = Simulator(config).run()

        assert results['verification']['valid']
        assert results['config']['channel'] == "gilbert"

    def test_reproducible(self):
        config = SimulatorConfig(protocol="gbn", window_size=8, loss_rate=0.1,
                                 data_size=16 * 1024, seed=11)
        first = Simulator(config).run()
        second = Simulator(config).run()

        assert first['sender'] == second['sender']
        assert first['simulation_time'] == second['simulation_time']

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            Simulator(SimulatorConfig(channel="wormhole"))

    def test_derived_timeout(self):
        config = SimulatorConfig(forward_delay=0.05, reverse_delay=0.03)

        assert config.get_timeout() == pytest.approx(0.16)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
