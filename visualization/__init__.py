"""
Visualization package - Plotting tools for sweep results.

Contains:
- Per-protocol heatmaps over window size and loss rate
- Protocol comparison plots
"""

from .heatmap import SweepHeatmap

__all__ = [
    'SweepHeatmap'
]
