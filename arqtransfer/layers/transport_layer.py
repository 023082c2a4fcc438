"""
Transport Layer Implementation

This module adapts a UDP socket to the datagram port used by the run
loop: fire-and-forget ``send`` and a ``receive_with_timeout`` that
returns None on timeout. A lossy wrapper drops outgoing datagrams
according to a channel model for live experiments.
"""

import socket
from dataclasses import dataclass
from typing import Optional, Tuple

from config import RECEIVE_BUFFER_SIZE


Address = Tuple[str, int]


@dataclass
class Datagram:
    """A received datagram and its source address."""
    payload: bytes
    address: Address


class UdpTransport:
    """
    Datagram transport over a UDP socket.

    Attributes:
        sock: Underlying socket
        local_address: (host, port) the socket is bound to
    """

    def __init__(
        self,
        bind_address: Address = ("0.0.0.0", 0),
        buffer_size: int = RECEIVE_BUFFER_SIZE
    ):
        """
        Create and bind the socket.

        Args:
            bind_address: Local (host, port); port 0 picks a free port
            buffer_size: Largest datagram accepted by receive
        """
        self.buffer_size = buffer_size
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self.sock.bind(bind_address)
        except OSError:
            self.sock.close()
            raise
        self.local_address: Address = self.sock.getsockname()
        self.datagrams_sent = 0
        self.datagrams_received = 0

    @property
    def port(self) -> int:
        return self.local_address[1]

    def send(self, data: bytes, dest_addr: Address):
        """Send one datagram; delivery is not guaranteed."""
        self.sock.sendto(data, dest_addr)
        self.datagrams_sent += 1

    def receive_with_timeout(self, timeout: Optional[float]) -> Optional[Datagram]:
        """
        Wait for one datagram.

        Args:
            timeout: Seconds to wait (None blocks indefinitely, 0 polls)

        Returns:
            The datagram, or None if the timeout elapsed
        """
        if timeout is not None:
            timeout = max(0.0, timeout)
        self.sock.settimeout(timeout)
        try:
            payload, address = self.sock.recvfrom(self.buffer_size)
        except (socket.timeout, BlockingIOError):
            return None
        self.datagrams_received += 1
        return Datagram(payload=payload, address=address)

    def close(self):
        self.sock.close()

    def __enter__(self) -> 'UdpTransport':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class LossyTransport:
    """
    Wraps a transport and drops outgoing datagrams through a channel model.

    Only loss is emulated here; the model's delays are ignored because a
    real network supplies its own.
    """

    def __init__(self, transport, channel):
        """
        Args:
            transport: Transport to wrap (UdpTransport or compatible)
            channel: Object with ``is_lost() -> bool``
        """
        self.transport = transport
        self.channel = channel
        self.datagrams_dropped = 0

    @property
    def local_address(self) -> Address:
        return self.transport.local_address

    def send(self, data: bytes, dest_addr: Address):
        if self.channel.is_lost():
            self.datagrams_dropped += 1
            return
        self.transport.send(data, dest_addr)

    def receive_with_timeout(self, timeout: Optional[float]) -> Optional[Datagram]:
        return self.transport.receive_with_timeout(timeout)

    def close(self):
        self.transport.close()
