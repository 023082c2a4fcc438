"""
Layers package - everything between the ARQ engines and the outside world.

Contains implementations for:
- Link Layer (blocking run loop over real transports)
- Transport Layer (UDP socket adapter, lossy wrapper)
- Application Layer (file source/sink, test data, verification)
"""

from .link_layer import (
    LinkLayer, LinkLayerConfig, TransferTimeoutError, send_file, receive_file
)
from .transport_layer import UdpTransport, LossyTransport, Datagram
from .application_layer import (
    FileSource, FileSink, MemorySink, FileAccessError,
    TestDataGenerator, DataVerifier
)

__all__ = [
    'LinkLayer',
    'LinkLayerConfig',
    'TransferTimeoutError',
    'send_file',
    'receive_file',
    'UdpTransport',
    'LossyTransport',
    'Datagram',
    'FileSource',
    'FileSink',
    'MemorySink',
    'FileAccessError',
    'TestDataGenerator',
    'DataVerifier'
]
