"""
ARQ package - reliable delivery engines.

Contains implementations for:
- Packet structure and wire codecs
- Sequence number arithmetic
- Timer management
- Sender engines (Basic, Stop-and-Wait, Go-Back-N, Selective-Repeat)
- Receiver engines with in-order delivery and reorder buffering
"""

from .packet import (
    Packet, PacketFlag, PacketDecodeError, Protocol,
    StopAndWaitCodec, WindowedCodec, get_codec, segment_data
)
from .sequence import SequenceSpace
from .timer import TimerManager, PacketTimer
from .sender import (
    BasicSender, StopAndWaitSender, GoBackNSender, SelectiveRepeatSender,
    create_sender
)
from .receiver import (
    BasicReceiver, InOrderReceiver, SelectiveRepeatReceiver, create_receiver
)

__all__ = [
    'Packet',
    'PacketFlag',
    'PacketDecodeError',
    'Protocol',
    'StopAndWaitCodec',
    'WindowedCodec',
    'get_codec',
    'segment_data',
    'SequenceSpace',
    'TimerManager',
    'PacketTimer',
    'BasicSender',
    'StopAndWaitSender',
    'GoBackNSender',
    'SelectiveRepeatSender',
    'create_sender',
    'BasicReceiver',
    'InOrderReceiver',
    'SelectiveRepeatReceiver',
    'create_receiver'
]
