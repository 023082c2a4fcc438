"""
Sweep Heatmap Visualization

This module generates heatmaps of a sweep metric as a function of window
size and loss rate, one panel per protocol.
"""

import os
import sys
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import PLOTS_DIR


METRIC_LABELS = {
    'throughput_kbps': "Throughput (kb/s)",
    'retransmitted_packets': "Retransmitted packets",
    'retransmissions': "Retransmission events",
    'transfer_time': "Transfer time (s)",
    'efficiency': "Efficiency",
}

PROTOCOL_NAMES = {
    'basic': "Basic",
    'saw': "Stop-and-Wait",
    'gbn': "Go-Back-N",
    'sr': "Selective-Repeat",
}


class SweepHeatmap:
    """
    Generates heatmaps of metric(W, loss) per protocol.

    Attributes:
        results: One row per simulation run
    """

    def __init__(
        self,
        results: Optional[List[dict]] = None,
        csv_file: Optional[str] = None
    ):
        """
        Initialize heatmap generator.

        Args:
            results: List of result dictionaries
            csv_file: Path to CSV file with results
        """
        if results:
            self.results = pd.DataFrame(results)
        elif csv_file:
            self.results = pd.read_csv(csv_file)
        else:
            self.results = pd.DataFrame()

        if 'error' in self.results.columns:
            self.results = self.results[self.results['error'].isna()]

    @property
    def protocols(self) -> List[str]:
        if self.results.empty:
            return []
        order = list(PROTOCOL_NAMES)
        present = self.results['protocol'].unique().tolist()
        return sorted(present, key=lambda p: order.index(p) if p in order else len(order))

    def create_matrix(self, protocol: str, metric: str) -> pd.DataFrame:
        """
        Mean of a metric for one protocol.

        Args:
            protocol: Protocol name
            metric: Result column

        Returns:
            DataFrame with window sizes as rows (largest first) and loss
            rates as columns
        """
        subset = self.results[self.results['protocol'] == protocol]
        matrix = subset.pivot_table(
            index='window_size', columns='loss_rate', values=metric, aggfunc='mean'
        )
        return matrix.sort_index(ascending=False)

    def plot(
        self,
        metric: str = 'throughput_kbps',
        output_file: Optional[str] = None,
        title: Optional[str] = None,
        cmap: str = "viridis",
        show_values: bool = True
    ) -> str:
        """
        Generate and save one heatmap panel per protocol.

        Args:
            metric: Result column to plot
            output_file: Output file path (auto-generated if None)
            title: Figure title
            cmap: Colormap name
            show_values: Annotate cells with values

        Returns:
            Path to saved figure
        """
        if self.results.empty:
            raise ValueError("No results to plot")
        if metric not in self.results.columns:
            raise ValueError(f"Unknown metric: {metric}")

        protocols = self.protocols
        fig, axes = plt.subplots(
            1, len(protocols), figsize=(6 * len(protocols), 5), squeeze=False
        )
        label = METRIC_LABELS.get(metric, metric)

        for ax, protocol in zip(axes[0], protocols):
            matrix = self.create_matrix(protocol, metric)
            sns.heatmap(
                matrix,
                annot=show_values,
                fmt='.1f',
                cmap=cmap,
                ax=ax,
                cbar_kws={'label': label}
            )
            ax.set_xlabel('Loss rate')
            ax.set_ylabel('Window size')
            ax.set_title(PROTOCOL_NAMES.get(protocol, protocol))

        fig.suptitle(title or f"{label} vs window size and loss rate",
                     fontsize=14, fontweight='bold')
        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, f'{metric}_heatmap.png')

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Heatmap saved to: {output_file}")
        return output_file

    def plot_protocol_comparison(
        self,
        window_size: int,
        metric: str = 'retransmitted_packets',
        output_file: Optional[str] = None,
        figsize: Tuple[int, int] = (10, 6)
    ) -> str:
        """
        Line plot of a metric against loss rate for every protocol at one
        window size (Stop-and-Wait is always shown with its window of 1).

        Returns:
            Path to saved figure
        """
        if self.results.empty:
            raise ValueError("No results to plot")

        fig, ax = plt.subplots(figsize=figsize)
        for protocol in self.protocols:
            subset = self.results[self.results['protocol'] == protocol]
            if protocol not in ('basic', 'saw'):
                subset = subset[subset['window_size'] == window_size]
            if subset.empty:
                continue
            series = subset.groupby('loss_rate')[metric].agg(['mean', 'std']).fillna(0)
            ax.errorbar(
                series.index, series['mean'], yerr=series['std'],
                marker='o', capsize=3, label=PROTOCOL_NAMES.get(protocol, protocol)
            )

        ax.set_xlabel('Loss rate')
        ax.set_ylabel(METRIC_LABELS.get(metric, metric))
        ax.set_title(f"{METRIC_LABELS.get(metric, metric)} at W={window_size}")
        ax.grid(True, alpha=0.3)
        ax.legend()
        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, f'{metric}_w{window_size}.png')

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return output_file


if __name__ == "__main__":
    print("=" * 60)
    print("HEATMAP GENERATOR TEST")
    print("=" * 60)

    rng = np.random.default_rng(0)
    fake = []
    for protocol in ("saw", "gbn", "sr"):
        windows = [1] if protocol == "saw" else [2, 4, 8, 16]
        for w in windows:
            for loss in (0.0, 0.05, 0.1):
                for run in range(3):
                    base = 20.0 * w / (1 + 20 * loss)
                    fake.append({
                        'protocol': protocol, 'window_size': w, 'loss_rate': loss,
                        'run_id': run, 'error': None,
                        'throughput_kbps': max(0.0, base + rng.normal(0, 1)),
                        'retransmitted_packets': loss * 100 * (w if protocol == "gbn" else 1)
                    })

    heatmap = SweepHeatmap(results=fake)
    heatmap.plot(metric='throughput_kbps')
    heatmap.plot_protocol_comparison(window_size=8)
