"""
Batch Runner for Parameter Sweep Simulations

This module runs every (protocol, window size, loss rate) combination
several times with distinct seeds and collects one result row per run.
"""

import os
import time
from typing import Optional, Callable, List, Dict
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import multiprocessing
import sys

import pandas as pd
from tqdm import tqdm

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import (
    PROTOCOLS, WINDOW_SIZES, LOSS_RATES, RUNS_PER_CONFIGURATION,
    RNG_SEED_BASE, OUTPUT_DIR, RESULTS_CSV, SWEEP_FILE_SIZE
)
from simulation.simulator import Simulator, SimulatorConfig
from arqtransfer.utils.logger import LogLevel


@dataclass
class RunConfig:
    """Configuration for a single simulation run."""
    protocol: str
    window_size: int
    loss_rate: float
    run_id: int
    seed: int
    data_size: int
    channel: str = "bernoulli"


def run_single_simulation(run_config: RunConfig) -> Dict:
    """
    Run a single simulation with given configuration.

    This function is designed to be called in a separate process.

    Args:
        run_config: Configuration for this run

    Returns:
        Dictionary with results
    """
    row = {
        'protocol': run_config.protocol,
        'window_size': run_config.window_size,
        'loss_rate': run_config.loss_rate,
        'run_id': run_config.run_id,
        'seed': run_config.seed,
    }
    try:
        config = SimulatorConfig(
            protocol=run_config.protocol,
            window_size=run_config.window_size,
            loss_rate=run_config.loss_rate,
            channel=run_config.channel,
            data_size=run_config.data_size,
            seed=run_config.seed,
            log_level=LogLevel.ERROR  # Minimal logging for batch runs
        )

        results = Simulator(config).run()
        sender = results['sender']
        metrics = results['metrics']
        summary = results['summary']

        row.update({
            'packets_sent': sender['packets_sent'],
            'retransmissions': sender['retransmissions'],
            'retransmitted_packets': sender['retransmitted_packets'],
            'duplicate_acks': sender['duplicate_acks'],
            'timeouts': sender['timeouts'],
            'assumed_delivery': sender['assumed_delivery'],
            'transfer_time': summary['transfer_time_sec'],
            'throughput_kbps': summary['throughput_kb_per_sec'],
            'goodput': metrics['goodput'],
            'efficiency': metrics['efficiency'],
            'observed_loss_rate': metrics['observed_loss_rate'],
            'rtt_mean': metrics['rtt']['mean'],
            'data_valid': results['verification']['valid'],
            'complete': results['complete'],
            'error': None
        })
    except Exception as e:
        row.update({'throughput_kbps': 0, 'error': str(e)})
    return row


class BatchRunner:
    """
    Batch Runner for parameter sweep simulations.

    Stop-and-Wait always runs with window 1; the windowed protocols run
    every configured window size.

    Attributes:
        protocols: Protocols to compare
        window_sizes: List of window sizes to test
        loss_rates: List of loss rates to test
        runs_per_config: Number of runs per configuration
        data_size: Size of data to transfer
    """

    def __init__(
        self,
        protocols: List[str] = None,
        window_sizes: List[int] = None,
        loss_rates: List[float] = None,
        runs_per_config: int = RUNS_PER_CONFIGURATION,
        data_size: int = SWEEP_FILE_SIZE,
        channel: str = "bernoulli",
        output_file: str = RESULTS_CSV,
        on_progress: Optional[Callable[[int, int, dict], None]] = None
    ):
        """
        Initialize batch runner.

        Args:
            protocols: Protocol names (default from config)
            window_sizes: List of window sizes (default from config)
            loss_rates: List of loss rates (default from config)
            runs_per_config: Number of runs per configuration
            data_size: Size of data to transfer
            channel: Channel model name ("bernoulli" or "gilbert")
            output_file: Path to output CSV file
            on_progress: Callback for progress updates
        """
        self.protocols = protocols or PROTOCOLS
        self.window_sizes = window_sizes or WINDOW_SIZES
        self.loss_rates = loss_rates if loss_rates is not None else LOSS_RATES
        self.runs_per_config = runs_per_config
        self.data_size = data_size
        self.channel = channel
        self.output_file = output_file
        self.on_progress = on_progress

        self.results: List[Dict] = []
        self.total_runs = len(self._generate_run_configs())
        self.completed_runs = 0
        self.start_time = 0.0

    def _windows_for(self, protocol: str) -> List[int]:
        return [1] if protocol in ("basic", "saw") else self.window_sizes

    def _generate_run_configs(self) -> List[RunConfig]:
        """Generate all run configurations."""
        configs = []

        for protocol in self.protocols:
            for window_size in self._windows_for(protocol):
                for loss_index, loss_rate in enumerate(self.loss_rates):
                    for run_id in range(self.runs_per_config):
                        # Seed depends only on (loss rate, run)
                        seed = RNG_SEED_BASE + loss_index * 1000 + run_id

                        configs.append(RunConfig(
                            protocol=protocol,
                            window_size=window_size,
                            loss_rate=loss_rate,
                            run_id=run_id,
                            seed=seed,
                            data_size=self.data_size,
                            channel=self.channel
                        ))

        return configs

    def _record(self, result: Dict):
        self.results.append(result)
        self.completed_runs += 1
        if self.on_progress:
            self.on_progress(self.completed_runs, self.total_runs, result)

    def run_sequential(self) -> List[Dict]:
        """
        Run all simulations sequentially.

        Returns:
            List of result dictionaries
        """
        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        print(f"Running {self.total_runs} simulations sequentially...")

        for config in tqdm(configs, desc="Simulations"):
            self._record(run_single_simulation(config))

        total_time = time.time() - self.start_time
        print(f"Completed {self.total_runs} simulations in {total_time:.1f}s")

        return self.results

    def run_parallel(self, max_workers: Optional[int] = None) -> List[Dict]:
        """
        Run simulations in parallel using multiprocessing.

        Args:
            max_workers: Number of parallel workers (default: CPU count)

        Returns:
            List of result dictionaries
        """
        if max_workers is None:
            max_workers = multiprocessing.cpu_count()

        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        print(f"Running {self.total_runs} simulations with {max_workers} workers...")

        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(run_single_simulation, config) for config in configs]
            for future in tqdm(as_completed(futures), total=len(futures), desc="Simulations"):
                self._record(future.result())

        total_time = time.time() - self.start_time
        print(f"Completed {self.total_runs} simulations in {total_time:.1f}s")

        return self.results

    def to_dataframe(self) -> pd.DataFrame:
        """Results as a DataFrame sorted by configuration."""
        df = pd.DataFrame(self.results)
        if df.empty:
            return df
        return df.sort_values(
            ['protocol', 'window_size', 'loss_rate', 'run_id']
        ).reset_index(drop=True)

    def save_results(self, filepath: Optional[str] = None):
        """
        Save results to CSV file.

        Args:
            filepath: Output file path (default: self.output_file)
        """
        filepath = filepath or self.output_file

        if not self.results:
            print("No results to save!")
            return

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.to_dataframe().to_csv(filepath, index=False)
        print(f"Results saved to: {filepath}")

    def get_aggregated_results(self) -> pd.DataFrame:
        """
        Get mean and spread of the key metrics per configuration.

        Returns:
            DataFrame indexed by (protocol, window_size, loss_rate)
        """
        return aggregate_results(self.to_dataframe())

    def get_best_configuration(self, loss_rate: float) -> Dict:
        """
        Find the fastest (protocol, window) pair at a given loss rate.

        Args:
            loss_rate: Loss rate to look at

        Returns:
            Dictionary describing the best configuration
        """
        aggregated = self.get_aggregated_results()
        if aggregated.empty:
            return {'error': 'No results available'}

        at_loss = aggregated.xs(loss_rate, level='loss_rate')
        if at_loss.empty:
            return {'error': f'No results for loss rate {loss_rate}'}

        protocol, window_size = at_loss['throughput_mean'].idxmax()
        best = at_loss.loc[(protocol, window_size)]
        return {
            'protocol': protocol,
            'window_size': int(window_size),
            'loss_rate': loss_rate,
            'mean_throughput_kbps': float(best['throughput_mean']),
            'mean_retransmitted_packets': float(best['retransmitted_packets_mean'])
        }


def aggregate_results(df: pd.DataFrame) -> pd.DataFrame:
    """
    Aggregate per-run rows into per-configuration statistics.

    Args:
        df: One row per run (as written by BatchRunner.save_results)

    Returns:
        DataFrame indexed by (protocol, window_size, loss_rate)
    """
    if df.empty:
        return df
    ok = df[df['error'].isna()] if 'error' in df.columns else df
    grouped = ok.groupby(['protocol', 'window_size', 'loss_rate'])
    return grouped.agg(
        throughput_mean=('throughput_kbps', 'mean'),
        throughput_std=('throughput_kbps', 'std'),
        transfer_time_mean=('transfer_time', 'mean'),
        retransmissions_mean=('retransmissions', 'mean'),
        retransmitted_packets_mean=('retransmitted_packets', 'mean'),
        efficiency_mean=('efficiency', 'mean'),
        runs=('run_id', 'count'),
        all_valid=('data_valid', 'all')
    )


if __name__ == "__main__":
    print("=" * 60)
    print("BATCH RUNNER TEST")
    print("=" * 60)

    runner = BatchRunner(
        window_sizes=[4, 8],
        loss_rates=[0.0, 0.05],
        runs_per_config=2,
        data_size=1024 * 10,  # 10 KB for quick test
        output_file=os.path.join(OUTPUT_DIR, "test_results.csv")
    )

    print(f"\nTest configuration:")
    print(f"  Protocols: {runner.protocols}")
    print(f"  Window sizes: {runner.window_sizes}")
    print(f"  Loss rates: {runner.loss_rates}")
    print(f"  Runs per config: {runner.runs_per_config}")
    print(f"  Total runs: {runner.total_runs}")

    runner.run_sequential()
    runner.save_results()

    print("\nAggregated results:")
    print(runner.get_aggregated_results().to_string())
    print(f"\nBest at 5% loss: {runner.get_best_configuration(0.05)}")
