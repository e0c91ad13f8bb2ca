"""
P2P Message System
-----------------
Defines the transport frames exchanged between deslack peers.
"""

import json
import time
import uuid
from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel, Field


class MessageType(str, Enum):
    """Types of frames that can be sent between peers."""
    HELLO = "hello"  # Handshake, carries the sender's address, public key and a challenge
    HELLO_ACK = "hello_ack"  # Initiator's answer to the responder's challenge
    SEND = "send"  # Best-effort unicast payload
    RPC_CALL = "rpc_call"  # Request for a named procedure
    RPC_RESULT = "rpc_result"  # Acknowledgement of an RPC_CALL


class Message(BaseModel):
    """
    P2P frame format for communication between peers.
    """
    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    message_type: MessageType
    sender_id: str  # Address of sender
    timestamp: float = Field(default_factory=time.time)
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Convert message to JSON string."""
        return json.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        """Create message from JSON string."""
        data = json.loads(json_str)
        return cls(**data)

    def serialize(self) -> bytes:
        return self.to_json().encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> Optional['Message']:
        """Decode a frame body, or None if it is not a valid message."""
        try:
            return cls.from_json(data.decode("utf-8"))
        except (ValueError, TypeError):
            return None


class HelloMessage(Message):
    """Initial handshake frame. A responder also signs the initiator's nonce."""
    def __init__(self, sender_id: str, version: str,
                 public_key: Optional[str] = None,
                 nonce: Optional[str] = None,
                 signature: Optional[str] = None,
                 **kwargs):
        payload = {
            "version": version,
            "user_agent": f"deslack/{version}",
            "public_key": public_key,
            "nonce": nonce,
        }
        if signature is not None:
            payload["signature"] = signature
        super().__init__(
            message_type=MessageType.HELLO,
            sender_id=sender_id,
            payload=payload,
            **kwargs
        )


class HelloAckMessage(Message):
    """Closes the handshake with a signature over the responder's nonce."""
    def __init__(self, sender_id: str, signature: str, **kwargs):
        super().__init__(
            message_type=MessageType.HELLO_ACK,
            sender_id=sender_id,
            payload={"signature": signature},
            **kwargs
        )


class SendMessage(Message):
    """Unicast application payload."""
    def __init__(self, sender_id: str, data: Any, **kwargs):
        super().__init__(
            message_type=MessageType.SEND,
            sender_id=sender_id,
            payload={"data": data},
            **kwargs
        )


class RpcCallMessage(Message):
    """Call a procedure on the receiving peer."""
    def __init__(self, sender_id: str, call_id: str, procedure: str, body: Any, **kwargs):
        super().__init__(
            message_type=MessageType.RPC_CALL,
            sender_id=sender_id,
            payload={
                "call_id": call_id,
                "procedure": procedure,
                "body": body
            },
            **kwargs
        )


class RpcResultMessage(Message):
    """Acknowledge an RPC_CALL."""
    def __init__(self, sender_id: str, call_id: str, ack: Any, **kwargs):
        super().__init__(
            message_type=MessageType.RPC_RESULT,
            sender_id=sender_id,
            payload={
                "call_id": call_id,
                "ack": ack
            },
            **kwargs
        )


# Factory function to create appropriate message objects based on message type
def create_message(message_type: MessageType, sender_id: str, **kwargs) -> Message:
    """Create a message of the specified type."""
    message_classes = {
        MessageType.HELLO: HelloMessage,
        MessageType.HELLO_ACK: HelloAckMessage,
        MessageType.SEND: SendMessage,
        MessageType.RPC_CALL: RpcCallMessage,
        MessageType.RPC_RESULT: RpcResultMessage,
    }

    return message_classes[message_type](sender_id=sender_id, **kwargs)
