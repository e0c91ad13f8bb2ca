"""
Chat Protocol Events
--------------------
Wire encoding for everything the server pushes to clients and everything
clients send to the server as RPC bodies.

Server pushes are tagged objects ``{"event": ..., "data": ...}``. Client RPC
bodies are bare, procedure-specific objects.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.exceptions import DecodeError
from ..core.types import (
    Address,
    Channel,
    ChannelName,
    ChatMessage,
    from_millis,
    to_millis,
)


class ServerEvent(str, Enum):
    """Events pushed from the server to a client."""
    UPDATE_CHANNEL_STATUS = "updateChannelStatus"
    MESSAGE = "message"
    AUTHENTICATED = "authenticated"


class Procedure(str, Enum):
    """RPC procedures served by the server."""
    MESSAGE = "message"
    AUTHENTICATE = "authenticate"


class AuthEvent(str, Enum):
    """Tag of an ``authenticate`` RPC body."""
    LOGIN = "authLogin"
    SIGN_UP = "authSignUp"


# Wire shapes

class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WireMessage(_Wire):
    user: Address
    content: str
    time: int


class MessageData(_Wire):
    channel: ChannelName = Field(min_length=1)
    message: WireMessage


class ChannelStatusData(_Wire):
    channel: ChannelName = Field(min_length=1)
    status: List[Address]


class UserMessageBody(_Wire):
    channel_name: ChannelName = Field(alias="channelName")
    content: str


class LoginBody(_Wire):
    email: str
    password: str


class SignUpBody(_Wire):
    email: str
    password: str
    password_confirm: str = Field(alias="passwordConfirm")


# Decoded values

class ChannelStatusUpdate(BaseModel):
    channel: ChannelName
    status: FrozenSet[Address]


class MessageReceived(BaseModel):
    channel: ChannelName
    message: ChatMessage


class AuthenticatedPush(BaseModel):
    pass


ServerPush = Union[ChannelStatusUpdate, MessageReceived, AuthenticatedPush]
AuthRequest = Union[LoginBody, SignUpBody]


# Encoders

def encode_channel_status(channel: Channel) -> Dict[str, Any]:
    return {
        "event": ServerEvent.UPDATE_CHANNEL_STATUS.value,
        "data": {
            "channel": channel.name,
            "status": sorted(channel.active_users),
        },
    }


def encode_message(channel_name: ChannelName, message: ChatMessage) -> Dict[str, Any]:
    return {
        "event": ServerEvent.MESSAGE.value,
        "data": {
            "channel": channel_name,
            "message": {
                "user": message.author,
                "content": message.content,
                "time": to_millis(message.sent_at),
            },
        },
    }


def encode_authenticated() -> Dict[str, Any]:
    return {"event": ServerEvent.AUTHENTICATED.value}


def encode_user_message(channel_name: ChannelName, content: str) -> Dict[str, Any]:
    """Body of a ``message`` RPC. The server assigns author and time."""
    return {"channelName": channel_name, "content": content}


def encode_login(email: str, password: str) -> Dict[str, Any]:
    return {"event": AuthEvent.LOGIN.value, "email": email, "password": password}


def encode_sign_up(email: str, password: str, password_confirm: str) -> Dict[str, Any]:
    return {
        "event": AuthEvent.SIGN_UP.value,
        "email": email,
        "password": password,
        "passwordConfirm": password_confirm,
    }


# Decoders

def _require_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise DecodeError(f"expected an object, got {type(payload).__name__}", payload)
    return payload


def decode_server_message(payload: Any) -> ServerPush:
    """Decode a server push. Unknown event names are a decode failure."""
    payload = _require_mapping(payload)
    event = payload.get("event")
    data = payload.get("data")

    try:
        if event == ServerEvent.UPDATE_CHANNEL_STATUS.value:
            status = ChannelStatusData.model_validate(data)
            return ChannelStatusUpdate(channel=status.channel, status=frozenset(status.status))
        if event == ServerEvent.MESSAGE.value:
            decoded = MessageData.model_validate(data)
            return MessageReceived(
                channel=decoded.channel,
                message=ChatMessage(
                    author=decoded.message.user,
                    content=decoded.message.content,
                    sent_at=from_millis(decoded.message.time),
                ),
            )
        if event == ServerEvent.AUTHENTICATED.value:
            return AuthenticatedPush()
    except (ValidationError, OverflowError) as e:
        raise DecodeError(f"malformed {event} payload: {e}", payload) from e

    raise DecodeError(f"unknown server event: {event!r}", payload)


def decode_user_message(body: Any) -> UserMessageBody:
    try:
        return UserMessageBody.model_validate(_require_mapping(body))
    except ValidationError as e:
        raise DecodeError(f"malformed message body: {e}", body) from e


def decode_auth_request(body: Any) -> AuthRequest:
    body = _require_mapping(body)
    event = body.get("event")
    try:
        if event == AuthEvent.LOGIN.value:
            return LoginBody.model_validate(body)
        if event == AuthEvent.SIGN_UP.value:
            return SignUpBody.model_validate(body)
    except ValidationError as e:
        raise DecodeError(f"malformed {event} body: {e}", body) from e
    raise DecodeError(f"unknown auth event: {event!r}", body)


# Applying pushes to a local channel view

def apply_channel_status(channels: Dict[ChannelName, Channel],
                         update: ChannelStatusUpdate) -> Dict[ChannelName, Channel]:
    """
    Replace the active users of a channel. A channel first heard of through a
    status push is created with an empty history.
    """
    updated = dict(channels)
    existing: Optional[Channel] = updated.get(update.channel)
    if existing is None:
        updated[update.channel] = Channel(name=update.channel, active_users=set(update.status))
    else:
        updated[update.channel] = existing.model_copy(update={"active_users": set(update.status)})
    return updated


def apply_message(channels: Dict[ChannelName, Channel],
                  received: MessageReceived) -> Dict[ChannelName, Channel]:
    """Prepend a message to a known channel. Unknown channels are left alone."""
    existing = channels.get(received.channel)
    if existing is None:
        return channels
    updated = dict(channels)
    updated[received.channel] = existing.model_copy(
        update={"messages": [received.message] + existing.messages}
    )
    return updated
