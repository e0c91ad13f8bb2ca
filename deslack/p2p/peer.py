"""
Peer Management
--------------
Handles a single stream connection to another deslack peer.
"""

import time
import asyncio
import structlog
from typing import Dict, Any, Optional
from enum import Enum

from .message import Message

logger = structlog.get_logger()

MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB max message size


class PeerState(str, Enum):
    """Possible states for a peer connection."""
    NEW = "new"  # New peer
    DISCONNECTED = "disconnected"  # Not connected
    CONNECTING = "connecting"      # Connection in progress
    ACTIVE = "active"              # Connected and handshaked


class Peer:
    """
    Represents a connection to another peer. Frames are a 4-byte big-endian
    length followed by the JSON-encoded message.
    """
    def __init__(self,
                 address: str,
                 ip: str,
                 port: int,
                 reader: Optional[asyncio.StreamReader] = None,
                 writer: Optional[asyncio.StreamWriter] = None,
                 state: PeerState = PeerState.NEW,
                 max_message_size: int = MAX_MESSAGE_SIZE):
        self.address = address
        self.ip = ip
        self.port = port
        self.reader = reader
        self.writer = writer
        self.state = state
        self.max_message_size = max_message_size
        self.last_seen = time.time()
        self.connected_since: Optional[float] = None
        self.message_count = 0
        self.bytes_sent = 0
        self.bytes_received = 0
        self.version = None
        self.send_lock = asyncio.Lock()  # Lock for sending messages
        self.receive_lock = asyncio.Lock()  # Lock for receiving messages

    @property
    def endpoint(self) -> str:
        return f"{self.ip}:{self.port}"

    @property
    def is_connected(self) -> bool:
        """Check if the peer has an open stream."""
        return (self.reader is not None and
                self.writer is not None and
                not self.writer.is_closing() and
                self.state in (PeerState.CONNECTING, PeerState.ACTIVE))

    @property
    def uptime(self) -> float:
        """Get the peer's uptime in seconds."""
        if self.connected_since is None:
            return 0
        return time.time() - self.connected_since

    async def connect(self, timeout: float = 5.0) -> bool:
        """Open a stream to the peer."""
        if self.is_connected:
            return True

        try:
            self.state = PeerState.CONNECTING
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.ip, self.port),
                timeout=timeout
            )
            self.connected_since = time.time()
            self.last_seen = time.time()
            logger.info("Connected to peer", peer=self.endpoint)
            return True

        except asyncio.TimeoutError:
            logger.warning("Connection timeout", peer=self.endpoint)
        except OSError as e:
            logger.error("Connection error", peer=self.endpoint, error=str(e))
        await self.disconnect()
        return False

    def mark_active(self) -> None:
        """The handshake completed."""
        self.state = PeerState.ACTIVE
        if self.connected_since is None:
            self.connected_since = time.time()

    async def disconnect(self) -> None:
        """Disconnect from the peer."""
        if self.writer:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except (OSError, ConnectionError) as e:
                logger.debug("Error closing connection", peer=self.endpoint, error=str(e))

        self.reader = None
        self.writer = None
        self.state = PeerState.DISCONNECTED
        self.connected_since = None

    async def send_message(self, message: Message) -> bool:
        """Write one frame to the peer."""
        if not self.is_connected:
            logger.warning("Attempted to send message to disconnected peer", peer=self.endpoint)
            return False

        async with self.send_lock:
            try:
                message_data = message.serialize()
                message_length = len(message_data)
                if message_length > self.max_message_size:
                    logger.warning("Message too large",
                                   peer=self.endpoint,
                                   size=message_length)
                    return False

                self.writer.write(message_length.to_bytes(4, byteorder='big'))
                self.writer.write(message_data)
                await self.writer.drain()

                self.message_count += 1
                self.bytes_sent += message_length + 4  # Add 4 bytes for length

                logger.debug("Sent message",
                             peer=self.endpoint,
                             type=message.message_type.value,
                             size=message_length)
                return True

            except (OSError, ConnectionError) as e:
                logger.error("Error sending message",
                             peer=self.endpoint,
                             type=message.message_type.value,
                             error=str(e))
                return False

    async def receive_message(self) -> Optional[Message]:
        """
        Read one frame from the peer.

        Returns None when the stream is closed or a frame cannot be decoded.
        """
        if not self.is_connected:
            return None

        async with self.receive_lock:
            try:
                length_bytes = await self.reader.readexactly(4)
                message_length = int.from_bytes(length_bytes, byteorder='big')

                if message_length <= 0 or message_length > self.max_message_size:
                    logger.warning("Invalid message length",
                                   peer=self.endpoint,
                                   length=message_length)
                    return None

                message_data = await self.reader.readexactly(message_length)

                self.last_seen = time.time()
                self.bytes_received += message_length + 4

                message = Message.deserialize(message_data)
                if message is None:
                    logger.warning("Failed to deserialize message", peer=self.endpoint)
                    return None

                self.message_count += 1
                logger.debug("Received message",
                             peer=self.endpoint,
                             type=message.message_type.value,
                             size=message_length)
                return message

            except asyncio.IncompleteReadError:
                logger.info("Connection closed during read", peer=self.endpoint)
                return None
            except (OSError, ConnectionError) as e:
                logger.error("Error receiving message", peer=self.endpoint, error=str(e))
                return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert peer to dictionary for serialization."""
        return {
            "address": self.address,
            "ip": self.ip,
            "port": self.port,
            "state": self.state.value,
            "last_seen": self.last_seen,
            "connected_since": self.connected_since,
            "message_count": self.message_count,
            "bytes_sent": self.bytes_sent,
            "bytes_received": self.bytes_received,
            "version": self.version,
        }
