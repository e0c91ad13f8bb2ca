"""
P2P Network Manager
------------------
asyncio stream implementation of the deslack transport.
Coordinates peer connections, the HELLO handshake, unicast frames and RPC calls.

The handshake is a mutual challenge: each side sends its public key and a
nonce, and signs the other side's nonce. A peer is only registered under an
address derived from a key it has proven it holds.
"""

import asyncio
import structlog
from datetime import datetime
from typing import Dict, Any, List, Optional, Set

from .identity import (
    INITIATOR,
    RESPONDER,
    NodeIdentity,
    address_from_public_key,
    challenge_bytes,
    new_nonce,
    verify_signature,
)
from .message import Message, MessageType, create_message
from .peer import Peer, PeerState, MAX_MESSAGE_SIZE
from .transport import Transport, TransportEvent
from ..core.types import Address

logger = structlog.get_logger()

HANDSHAKE_TIMEOUT = 10.0


def parse_endpoint(target: str, default_port: int = 8337):
    """
    Split ``host:port`` into its parts.

    Raises:
        ConnectionError: If the port is not a number in 1-65535
    """
    host, sep, port = target.rpartition(":")
    if not sep:
        return target, default_port
    try:
        port_number = int(port)
    except ValueError:
        raise ConnectionError(f"Invalid port in {target!r}")
    if not host or not 0 < port_number < 65536:
        raise ConnectionError(f"Invalid endpoint {target!r}")
    return host, port_number


def _claimed_address(message: Message) -> Optional[Address]:
    """The sender's address if it matches the public key in its HELLO."""
    public_key = message.payload.get("public_key")
    if not isinstance(public_key, str) or not isinstance(message.payload.get("nonce"), str):
        return None
    try:
        derived = address_from_public_key(public_key)
    except ValueError:
        return None
    return derived if derived == message.sender_id else None


class P2PManager(Transport):
    """
    Manages the stream connections of one deslack peer.
    """
    def __init__(self,
                 listen_host: str = "0.0.0.0",
                 listen_port: int = 8337,
                 identity: Optional[NodeIdentity] = None,
                 connect_timeout: float = 5.0,
                 rpc_timeout: float = 10.0,
                 max_message_size: int = MAX_MESSAGE_SIZE,
                 version: str = "0.1.0"):
        """
        Initialize the P2P network manager.

        Args:
            listen_host: The host to listen on for incoming connections
            listen_port: The port to listen on for incoming connections
            identity: Signing key of this peer (generated if not provided)
            connect_timeout: Seconds to wait when opening a connection
            rpc_timeout: Default seconds to wait for an RPC acknowledgement
            max_message_size: Largest frame accepted or sent
            version: Version of the peer software
        """
        super().__init__(rpc_timeout=rpc_timeout)
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.identity = identity or NodeIdentity.generate()
        self.node_id = self.identity.address
        self.connect_timeout = connect_timeout
        self.max_message_size = max_message_size
        self.version = version

        self.server: Optional[asyncio.AbstractServer] = None
        self.running = False

        # Active connections
        self.connections: Dict[Address, Peer] = {}  # address -> Peer
        self._tasks: Set[asyncio.Task] = set()

        # Statistics
        self.start_time = datetime.now()
        self.messages_received = 0
        self.messages_sent = 0

    @property
    def address(self) -> Address:
        return self.node_id

    async def start(self):
        """Start listening for incoming connections."""
        if self.running:
            return

        self.running = True
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.listen_host,
            self.listen_port
        )

        logger.info("P2P network manager started",
                    host=self.listen_host,
                    port=self.listen_port,
                    address=self.address)

    async def stop(self):
        """Close every connection and stop listening."""
        self.running = False

        for task in list(self._tasks):
            task.cancel()
        for peer in list(self.connections.values()):
            await peer.disconnect()
        self.connections.clear()

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("P2P network manager stopped", address=self.address)

    def _hello(self, nonce: str, signature: Optional[str] = None) -> Message:
        return create_message(
            MessageType.HELLO,
            self.node_id,
            version=self.version,
            public_key=self.identity.public_key,
            nonce=nonce,
            signature=signature
        )

    async def _receive_handshake(self, peer: Peer) -> Optional[Message]:
        try:
            return await asyncio.wait_for(peer.receive_message(), timeout=HANDSHAKE_TIMEOUT)
        except asyncio.TimeoutError:
            return None

    async def _reject(self, peer: Peer, reason: str, **kwargs):
        logger.warning("Handshake rejected", peer=peer.endpoint, reason=reason, **kwargs)
        await peer.disconnect()

    async def _handle_connection(self,
                                 reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter):
        """
        Handle an incoming connection.

        Args:
            reader: The stream reader for the connection
            writer: The stream writer for the connection
        """
        addr = writer.get_extra_info('peername')
        if not addr:
            writer.close()
            return

        ip, port = addr[0], addr[1]
        peer = Peer(
            address=f"{ip}:{port}",
            ip=ip,
            port=port,
            reader=reader,
            writer=writer,
            state=PeerState.CONNECTING,
            max_message_size=self.max_message_size
        )

        logger.debug("Incoming connection", peer=peer.endpoint)

        hello = await self._receive_handshake(peer)
        if not hello or hello.message_type != MessageType.HELLO:
            await self._reject(peer, "no_hello",
                               type=hello.message_type.value if hello else None)
            return

        address = _claimed_address(hello)
        if address is None:
            await self._reject(peer, "address_not_bound_to_key", address=hello.sender_id)
            return
        if address in self.connections:
            await self._reject(peer, "already_connected", address=address)
            return

        nonce = new_nonce()
        signature = self.identity.sign(challenge_bytes(RESPONDER, hello.payload["nonce"], self.address))
        if not await peer.send_message(self._hello(nonce, signature)):
            await peer.disconnect()
            return

        ack = await self._receive_handshake(peer)
        if (not ack
                or ack.message_type != MessageType.HELLO_ACK
                or ack.sender_id != address
                or not verify_signature(hello.payload["public_key"],
                                        challenge_bytes(INITIATOR, nonce, address),
                                        ack.payload.get("signature"))):
            await self._reject(peer, "bad_signature", address=address)
            return
        if address in self.connections:
            await self._reject(peer, "already_connected", address=address)
            return

        peer.address = address
        peer.version = hello.payload.get("version")
        await self._register_peer(peer)
        logger.info("Accepted connection from peer", peer=peer.endpoint, address=peer.address)

    async def connect(self, target: str) -> Address:
        """
        Connect to the peer listening at ``host:port``.

        Returns:
            The remote peer's address

        Raises:
            ConnectionError: If the endpoint is invalid, or the connection or handshake fails
        """
        ip, port = parse_endpoint(target, self.listen_port)
        peer = Peer(
            address=target,
            ip=ip,
            port=port,
            max_message_size=self.max_message_size
        )

        if not await peer.connect(timeout=self.connect_timeout):
            raise ConnectionError(f"Could not connect to {target}")

        nonce = new_nonce()
        try:
            if not await peer.send_message(self._hello(nonce)):
                raise ConnectionError(f"Could not send HELLO to {target}")

            response = await self._receive_handshake(peer)
            if not response or response.message_type != MessageType.HELLO:
                raise ConnectionError(f"No HELLO response from {target}")

            address = _claimed_address(response)
            if address is None or not verify_signature(response.payload["public_key"],
                                                       challenge_bytes(RESPONDER, nonce, address),
                                                       response.payload.get("signature")):
                raise ConnectionError(f"{target} did not prove its address")

            signature = self.identity.sign(challenge_bytes(INITIATOR, response.payload["nonce"], self.address))
            ack = create_message(MessageType.HELLO_ACK, self.node_id, signature=signature)
            if not await peer.send_message(ack):
                raise ConnectionError(f"Could not finish handshake with {target}")
        except ConnectionError as e:
            await peer.disconnect()
            logger.warning("Handshake failed", peer=peer.endpoint, error=str(e))
            raise ConnectionError(f"Handshake with {target} failed") from e

        peer.address = address
        peer.version = response.payload.get("version")
        await self._register_peer(peer)

        logger.info("Connected to peer",
                    peer=peer.endpoint,
                    address=peer.address,
                    version=peer.version or 'unknown')
        return peer.address

    async def _register_peer(self, peer: Peer):
        peer.mark_active()
        self.connections[peer.address] = peer

        # seen is delivered before any frame from the peer is dispatched
        await self.emit(TransportEvent.CONNECTIONS, len(self.connections))
        await self.emit(TransportEvent.SEEN, peer.address)

        task = asyncio.create_task(self._handle_peer_messages(peer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_peer_messages(self, peer: Peer):
        """
        Handle frames from a peer, one at a time, in arrival order.

        Args:
            peer: The peer to handle messages from
        """
        try:
            while peer.is_connected:
                message = await peer.receive_message()
                if not message:
                    break

                self.messages_received += 1
                await self._dispatch_message(message, peer)

        except asyncio.CancelledError:
            raise
        finally:
            await self._handle_peer_disconnect(peer)

    async def _dispatch_message(self, message: Message, peer: Peer):
        """
        Dispatch a frame according to its type.

        Args:
            message: The frame to dispatch
            peer: The peer that sent it
        """
        payload = message.payload
        if message.message_type == MessageType.SEND:
            await self.emit(TransportEvent.MESSAGE, peer.address, payload.get("data"))

        elif message.message_type == MessageType.RPC_CALL:
            ack = await self.handle_rpc(peer.address, payload.get("procedure"), payload.get("body"))
            result = create_message(
                MessageType.RPC_RESULT,
                self.node_id,
                call_id=payload.get("call_id"),
                ack=ack
            )
            if await peer.send_message(result):
                self.messages_sent += 1

        elif message.message_type == MessageType.RPC_RESULT:
            self.resolve_call(payload.get("call_id"), payload.get("ack"))

        else:
            logger.debug("Ignoring frame", type=message.message_type.value, peer=peer.endpoint)

    async def _handle_peer_disconnect(self, peer: Peer):
        """
        Handle peer disconnection.

        Args:
            peer: The peer that disconnected
        """
        if self.connections.get(peer.address) is peer:
            del self.connections[peer.address]

        await peer.disconnect()

        logger.info("Peer disconnected",
                    peer=peer.endpoint,
                    address=peer.address)

        await self.emit(TransportEvent.LEFT, peer.address)
        await self.emit(TransportEvent.CONNECTIONS, len(self.connections))

    async def send(self, address: Address, payload: Any) -> bool:
        """Send an application payload to a connected peer."""
        peer = self.connections.get(address)
        if peer is None:
            logger.warning("Peer not found", address=address)
            return False

        message = create_message(MessageType.SEND, self.node_id, data=payload)
        sent = await peer.send_message(message)
        if sent:
            self.messages_sent += 1
        return sent

    async def _send_call(self, address: Address, call_id: str, procedure: str, body: Any) -> bool:
        peer = self.connections.get(address)
        if peer is None:
            logger.warning("Peer not found", address=address)
            return False

        message = create_message(
            MessageType.RPC_CALL,
            self.node_id,
            call_id=call_id,
            procedure=procedure,
            body=body
        )
        sent = await peer.send_message(message)
        if sent:
            self.messages_sent += 1
        return sent

    def get_connected_peers(self) -> List[Peer]:
        """
        Get a list of all connected peers.

        Returns:
            List of connected peers
        """
        return list(self.connections.values())

    def get_peer_count(self) -> int:
        return len(self.connections)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about this peer's connections.

        Returns:
            Dictionary of network statistics
        """
        uptime = (datetime.now() - self.start_time).total_seconds()

        return {
            "address": self.address,
            "version": self.version,
            "uptime": uptime,
            "connected_peers": self.get_peer_count(),
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "listen_address": f"{self.listen_host}:{self.listen_port}",
        }
