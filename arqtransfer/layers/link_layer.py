"""
Link Layer Implementation

This module runs sender and receiver engines over real datagram
transports. The loop is single-threaded: fire due timers, block in
``receive_with_timeout`` until the next timer deadline, decode whatever
arrived, feed it to the engine and send the packets it returns.

It also provides ``send_file`` and ``receive_file``, which wire files,
sockets and engines together for one CLI session.
"""

import time
from dataclasses import dataclass
from typing import Optional, Callable, List

from config import (
    DEFAULT_TIMEOUT, FINAL_ACK_GRACE, BASIC_PACKET_GAP, MAX_PAYLOAD_SIZE,
    ACK_PORT_OFFSET, RECEIVER_IDLE_TIMEOUT
)
from ..arq.packet import Packet, PacketCodec, Protocol, get_codec
from ..arq.sender import BaseSender, create_sender
from ..arq.receiver import BaseReceiver, create_receiver
from ..channel.gilbert_elliot import GilbertElliottChannel
from ..utils.metrics import TransferSummary
from ..utils.logger import TransferLogger, get_logger
from .application_layer import FileSource, FileSink
from .transport_layer import UdpTransport, LossyTransport, Address


class TransferTimeoutError(TimeoutError):
    """Raised when a receiver sees no datagram within its idle timeout."""


@dataclass
class LinkLayerConfig:
    """Configuration of one transfer session."""
    protocol: Protocol
    port: int
    host: str = "127.0.0.1"
    timeout: float = DEFAULT_TIMEOUT
    window_size: int = 1
    payload_size: int = MAX_PAYLOAD_SIZE
    final_ack_grace: Optional[float] = FINAL_ACK_GRACE
    packet_gap: float = BASIC_PACKET_GAP
    idle_timeout: Optional[float] = RECEIVER_IDLE_TIMEOUT
    loss_rate: float = 0.0
    seed: Optional[int] = None

    @property
    def ack_port(self) -> int:
        """Port on which windowed senders listen for acks."""
        return self.port + ACK_PORT_OFFSET


class LinkLayer:
    """
    Blocking event loop driving one engine over a transport.

    Attributes:
        codec: Wire codec of the protocol
        transport: Transport carrying data packets
        ack_transport: Transport on which the sender reads acks
        ack_port: Receiver side; if set, acks go to (source host, ack_port)
            instead of the datagram's source address
    """

    def __init__(
        self,
        codec: PacketCodec,
        transport,
        ack_transport=None,
        ack_port: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[TransferLogger] = None
    ):
        self.codec = codec
        self.transport = transport
        self.ack_transport = ack_transport or transport
        self.ack_port = ack_port
        self.clock = clock
        self.logger = logger or get_logger()

        # Statistics
        self.data_datagrams_sent = 0
        self.ack_datagrams_sent = 0
        self.datagrams_received = 0

    def _send_packets(self, packets: List[Packet], dest_addr: Address):
        for packet in packets:
            self.transport.send(self.codec.encode(packet), dest_addr)
            self.data_datagrams_sent += 1

    def run_sender(self, engine: BaseSender, dest_addr: Address) -> dict:
        """
        Run a sender engine until it completes.

        Args:
            engine: Sender engine (not yet started)
            dest_addr: Receiver data address

        Returns:
            Sender statistics

        Raises:
            PacketDecodeError: If a malformed ack arrives
        """
        self._send_packets(engine.start(self.clock()), dest_addr)

        while not engine.is_complete():
            packets = engine.check_timeouts(self.clock())
            if packets:
                self._send_packets(packets, dest_addr)
                continue
            if engine.is_complete():
                break

            deadline = engine.get_next_event_time()
            wait = None if deadline is None else deadline - self.clock()
            datagram = self.ack_transport.receive_with_timeout(wait)
            if datagram is None:
                continue

            self.datagrams_received += 1
            ack = self.codec.decode_ack(datagram.payload)
            self._send_packets(engine.process_ack(ack, self.clock()), dest_addr)

        return engine.get_statistics()

    def run_receiver(
        self,
        engine: BaseReceiver,
        idle_timeout: Optional[float] = None
    ) -> dict:
        """
        Run a receiver engine until the EOF packet has been delivered.

        Args:
            engine: Receiver engine
            idle_timeout: Give up after this many seconds without a datagram

        Returns:
            Receiver statistics

        Raises:
            PacketDecodeError: If a malformed data packet arrives
            TransferTimeoutError: If the idle timeout elapses
        """
        while not engine.is_complete():
            datagram = self.transport.receive_with_timeout(idle_timeout)
            if datagram is None:
                raise TransferTimeoutError(
                    f"No data received for {idle_timeout:.1f}s "
                    f"({engine.stats.bytes_delivered} bytes delivered)"
                )

            self.datagrams_received += 1
            packet = self.codec.decode_data(datagram.payload)
            ack = engine.receive_packet(packet)
            if ack is None:
                continue

            dest = datagram.address
            if self.ack_port is not None:
                dest = (datagram.address[0], self.ack_port)
            self.transport.send(self.codec.encode(ack), dest)
            self.ack_datagrams_sent += 1

        return engine.get_statistics()

    def get_statistics(self) -> dict:
        """Get link layer statistics."""
        return {
            'data_datagrams_sent': self.data_datagrams_sent,
            'ack_datagrams_sent': self.ack_datagrams_sent,
            'datagrams_received': self.datagrams_received
        }


def _lossy(transport: UdpTransport, config: LinkLayerConfig):
    """Wrap a transport with a Bernoulli loss model when requested."""
    if config.loss_rate <= 0:
        return transport
    channel = GilbertElliottChannel.bernoulli(config.loss_rate, seed=config.seed)
    return LossyTransport(transport, channel)


def send_file(
    config: LinkLayerConfig,
    path: str,
    logger: Optional[TransferLogger] = None
) -> TransferSummary:
    """
    Send a file to a listening receiver.

    The file is read before any socket is opened, so an unreadable file
    fails without sending a packet.

    Args:
        config: Session configuration
        path: File to send
        logger: Logger (global logger if None)

    Returns:
        Transfer summary

    Raises:
        FileAccessError: If the file cannot be read
        PacketDecodeError: If a malformed ack arrives
    """
    logger = logger or get_logger()
    data = FileSource(path).read_all()

    engine_kwargs = {'payload_size': config.payload_size, 'logger': logger}
    if config.protocol == Protocol.BASIC:
        engine_kwargs['packet_gap'] = config.packet_gap
    else:
        engine_kwargs['final_ack_grace'] = config.final_ack_grace
    engine = create_sender(
        config.protocol, data,
        timeout=config.timeout,
        window_size=config.window_size,
        **engine_kwargs
    )

    codec = get_codec(config.protocol, config.payload_size)
    data_socket = UdpTransport(("0.0.0.0", 0))
    ack_socket = None
    try:
        if config.protocol.is_windowed:
            ack_socket = UdpTransport(("0.0.0.0", config.ack_port))
        link = LinkLayer(
            codec,
            _lossy(data_socket, config),
            ack_transport=ack_socket or data_socket,
            logger=logger
        )
        link.run_sender(engine, (config.host, config.port))
    finally:
        data_socket.close()
        if ack_socket is not None:
            ack_socket.close()

    return TransferSummary.from_transfer(
        len(data), engine.stats.elapsed, engine.stats.retransmissions
    )


def receive_file(
    config: LinkLayerConfig,
    path: str,
    logger: Optional[TransferLogger] = None
) -> dict:
    """
    Receive one file on ``config.port`` and write it to ``path``.

    Args:
        config: Session configuration
        path: Output file
        logger: Logger (global logger if None)

    Returns:
        Receiver statistics

    Raises:
        FileAccessError: If the output file cannot be written
        PacketDecodeError: If a malformed data packet arrives
        TransferTimeoutError: If the idle timeout elapses
    """
    logger = logger or get_logger()
    with FileSink(path) as sink:
        engine = create_receiver(
            config.protocol, sink,
            window_size=config.window_size,
            logger=logger
        )
        codec = get_codec(config.protocol, config.payload_size)
        with UdpTransport(("0.0.0.0", config.port)) as transport:
            link = LinkLayer(
                codec,
                _lossy(transport, config),
                ack_port=config.ack_port if config.protocol.is_windowed else None,
                logger=logger
            )
            logger.info(
                f"Listening on port {config.port} ({config.protocol.value})", "SESSION"
            )
            return link.run_receiver(engine, idle_timeout=config.idle_timeout)
