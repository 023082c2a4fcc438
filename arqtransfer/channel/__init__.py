"""
Channel package - simulated datagram paths.

Contains implementations for:
- Gilbert-Elliott burst loss channel model
- Deterministic scripted channels for tests
"""

from .gilbert_elliot import GilbertElliottChannel, ChannelState
from .scripted import ScriptedChannel, PerfectChannel, drop_first

__all__ = [
    'GilbertElliottChannel',
    'ChannelState',
    'ScriptedChannel',
    'PerfectChannel',
    'drop_first'
]
