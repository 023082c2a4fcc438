"""
Utilities package - Helper functions and classes.

Contains implementations for:
- Session statistics and transfer summaries
- Metrics calculation (goodput, efficiency)
- Logging utilities
"""

from .metrics import (
    SenderStatistics, ReceiverStatistics, TransferSummary, MetricsCollector
)
from .logger import TransferLogger, LogLevel, get_logger, set_logger, parse_level

__all__ = [
    'SenderStatistics',
    'ReceiverStatistics',
    'TransferSummary',
    'MetricsCollector',
    'TransferLogger',
    'LogLevel',
    'get_logger',
    'set_logger',
    'parse_level'
]
