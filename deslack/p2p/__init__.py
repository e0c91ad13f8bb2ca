"""
deslack P2P Network Module
--------------------------
The transport the chat core runs on: an abstract adapter contract and an
asyncio stream implementation of it.
"""

from .transport import Transport, TransportEvent, EMPTY_ACK
from .identity import NodeIdentity
from .manager import P2PManager
from .peer import Peer, PeerState
from .message import Message, MessageType

__all__ = ['Transport', 'TransportEvent', 'EMPTY_ACK', 'P2PManager', 'NodeIdentity', 'Peer', 'PeerState', 'Message', 'MessageType']
