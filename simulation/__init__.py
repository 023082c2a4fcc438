"""
Simulation package - Discrete-event simulator and batch runners.

Contains:
- Virtual-clock simulator driving the ARQ engines over channel models
- Batch runner for (protocol, window size, loss rate) sweeps
"""

from .simulator import Simulator, SimulatorConfig
from .runner import BatchRunner, RunConfig, aggregate_results

__all__ = [
    'Simulator',
    'SimulatorConfig',
    'BatchRunner',
    'RunConfig',
    'aggregate_results'
]
