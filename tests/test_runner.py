"""
Tests for the parameter sweep, the plots and the command-line interface.
"""

import pytest
import sys
import os

import matplotlib
matplotlib.use("Agg")

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from simulation.runner import BatchRunner, RunConfig, run_single_simulation, aggregate_results
from visualization.heatmap import SweepHeatmap
from main import build_parser, main


@pytest.fixture(scope="module")
def sweep():
    runner = BatchRunner(
        protocols=["saw", "sr"],
        window_sizes=[2],
        loss_rates=[0.0, 0.1],
        runs_per_config=2,
        data_size=4 * 1024
    )
    runner.run_sequential()
    return runner


class TestBatchRunner:
    """Tests for BatchRunner class."""

    def test_total_runs(self):
        runner = BatchRunner(protocols=["saw", "gbn", "sr"], window_sizes=[2, 4],
                             loss_rates=[0.0, 0.1], runs_per_config=3)

        # saw: 1 window, gbn and sr: 2 windows each
        assert runner.total_runs == (1 + 2 + 2) * 2 * 3

    def test_results(self, sweep):
        df = sweep.to_dataframe()

        assert len(df) == sweep.total_runs == 8
        assert df['error'].isna().all()
        assert df['data_valid'].all()
        assert set(df[df['protocol'] == 'saw']['window_size']) == {1}

    def test_seed_shared_across_protocols(self, sweep):
        df = sweep.to_dataframe()
        seeds = df.groupby(['loss_rate', 'run_id'])['seed'].nunique()

        assert (seeds == 1).all()

    def test_save_results(self, sweep, tmp_path):
        path = tmp_path / "out" / "results.csv"
        sweep.save_results(str(path))

        loaded = pd.read_csv(path)
        assert len(loaded) == 8
        assert 'throughput_kbps' in loaded.columns

    def test_aggregation(self, sweep):
        aggregated = sweep.get_aggregated_results()

        assert len(aggregated) == 4
        assert aggregated.loc[('sr', 2, 0.0), 'runs'] == 2
        assert aggregated.loc[('saw', 1, 0.0), 'retransmissions_mean'] == 0
        assert aggregated['all_valid'].all()

    def test_aggregate_skips_failed_runs(self):
        df = pd.DataFrame([
            {'protocol': 'sr', 'window_size': 2, 'loss_rate': 0.0, 'run_id': 0,
             'throughput_kbps': 10.0, 'transfer_time': 1.0, 'retransmissions': 0,
             'retransmitted_packets': 0, 'efficiency': 0.9, 'data_valid': True,
             'error': None},
            {'protocol': 'sr', 'window_size': 2, 'loss_rate': 0.0, 'run_id': 1,
             'throughput_kbps': 0.0, 'error': 'boom'},
        ])

        aggregated = aggregate_results(df)
        assert aggregated.loc[('sr', 2, 0.0), 'runs'] == 1
        assert aggregated.loc[('sr', 2, 0.0), 'throughput_mean'] == 10.0

    def test_best_configuration(self, sweep):
        best = sweep.get_best_configuration(0.0)

        assert best['protocol'] == 'sr'
        assert best['window_size'] == 2

    def test_failed_run_is_recorded(self):
        row = run_single_simulation(RunConfig(
            protocol="bogus", window_size=2, loss_rate=0.0, run_id=0,
            seed=1, data_size=1024
        ))

        assert row['error']
        assert row['throughput_kbps'] == 0


class TestSweepHeatmap:
    """Tests for SweepHeatmap class."""

    def test_matrix(self, sweep):
        heatmap = SweepHeatmap(results=sweep.results)
        matrix = heatmap.create_matrix('sr', 'throughput_kbps')

        assert list(matrix.index) == [2]
        assert list(matrix.columns) == [0.0, 0.1]
        assert heatmap.protocols == ['saw', 'sr']

    def test_plot(self, sweep, tmp_path):
        heatmap = SweepHeatmap(results=sweep.results)
        path = heatmap.plot(output_file=str(tmp_path / "heatmap.png"))

        assert os.path.getsize(path) > 0

    def test_plot_from_csv(self, sweep, tmp_path):
        csv_path = tmp_path / "results.csv"
        sweep.save_results(str(csv_path))
        heatmap = SweepHeatmap(csv_file=str(csv_path))
        path = heatmap.plot_protocol_comparison(
            2, output_file=str(tmp_path / "comparison.png")
        )

        assert os.path.exists(path)

    def test_plot_errors(self):
        with pytest.raises(ValueError):
            SweepHeatmap().plot()
        with pytest.raises(ValueError):
            SweepHeatmap(results=[{'protocol': 'sr', 'window_size': 2,
                                   'loss_rate': 0.0, 'error': None}]).plot('nope')


class TestCommandLine:
    """Tests for argument parsing and command dispatch."""

    def test_send_arguments(self):
        args = build_parser().parse_args(
            ["send", "sr", "127.0.0.1", "9000", "in.bin", "200", "8"]
        )

        assert args.protocol == "sr"
        assert args.port == 9000
        assert args.timeout_ms == 200
        assert args.window == 8
        assert args.grace == 2.0
        assert not args.no_grace

    def test_basic_takes_no_timeout(self):
        args = build_parser().parse_args(["send", "basic", "localhost", "9000", "in.bin"])

        assert not hasattr(args, 'timeout_ms')

    def test_receive_arguments(self):
        args = build_parser().parse_args(["receive", "gbn", "9000", "out.bin", "4"])

        assert args.window == 4
        assert args.idle_timeout is None

    def test_invalid_integer(self):
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["send", "saw", "localhost", "port", "in.bin", "200"])

        assert excinfo.value.code == 2

    def test_missing_arguments(self):
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["receive", "sr", "9000", "out.bin"])

        assert excinfo.value.code == 2

    def test_config_command(self, capsys):
        assert main(["config"]) == 0
        assert "Max Payload: 1024 bytes" in capsys.readouterr().out

    def test_send_missing_file(self, tmp_path):
        missing = str(tmp_path / "missing.bin")

        assert main(["send", "sr", "127.0.0.1", "9000", missing, "200", "4"]) == 1

    def test_log_file_option(self, tmp_path):
        log_path = tmp_path / "send.log"
        missing = str(tmp_path / "missing.bin")

        assert main(["send", "saw", "127.0.0.1", "9000", missing, "200",
                     "--log-file", str(log_path)]) == 1
        assert "missing.bin" in log_path.read_text()

    def test_receive_bad_path(self, tmp_path):
        target = str(tmp_path / "missing" / "out.bin")

        assert main(["receive", "saw", "9000", target]) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
