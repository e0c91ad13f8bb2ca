"""
Client Session State Machine
----------------------------
Pure transition function for the client role:

    update(state, msg) -> (state, [commands])

States, messages and commands are frozen dataclasses. The function never
performs I/O; ClientApp executes the returned commands and feeds their
results back in as messages.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Tuple, Union

import structlog

from ..core.exceptions import DecodeError
from ..core.types import GENERAL_CHANNEL, Address, Channel, ChannelName
from ..protocol.events import (
    AuthenticatedPush,
    ChannelStatusUpdate,
    MessageReceived,
    Procedure,
    apply_channel_status,
    apply_message,
    decode_server_message,
    encode_login,
    encode_sign_up,
    encode_user_message,
)

logger = structlog.get_logger()


# Auth forms

@dataclass(frozen=True)
class LoginForm:
    email: str = ""
    password: str = ""


@dataclass(frozen=True)
class SignUpForm:
    email: str = ""
    password: str = ""
    password_confirm: str = ""


AuthForm = Union[LoginForm, SignUpForm]


# States

@dataclass(frozen=True)
class Disconnected:
    draft_address: str = ""


@dataclass(frozen=True)
class Connected:
    server: Address
    form: AuthForm = field(default_factory=LoginForm)


@dataclass(frozen=True)
class Authenticated:
    server: Address
    channels: Mapping[ChannelName, Channel] = field(default_factory=dict)
    active_channel: ChannelName = GENERAL_CHANNEL
    draft_message: str = ""


ClientState = Union[Disconnected, Connected, Authenticated]


# Messages

@dataclass(frozen=True)
class DraftAddressChanged:
    address: str


@dataclass(frozen=True)
class SubmitAddress:
    pass


@dataclass(frozen=True)
class ConnectedToServer:
    address: Address


@dataclass(frozen=True)
class ToggleAuthForm:
    pass


@dataclass(frozen=True)
class EmailChanged:
    email: str


@dataclass(frozen=True)
class PasswordChanged:
    password: str


@dataclass(frozen=True)
class PasswordConfirmChanged:
    password_confirm: str


@dataclass(frozen=True)
class SubmitAuth:
    pass


@dataclass(frozen=True)
class ServerPushReceived:
    sender: Address
    payload: Any


@dataclass(frozen=True)
class RpcTimedOut:
    address: Address


@dataclass(frozen=True)
class SelectChannel:
    name: ChannelName


@dataclass(frozen=True)
class DraftMessageChanged:
    text: str


@dataclass(frozen=True)
class SubmitMessage:
    pass


ClientMsg = Union[
    DraftAddressChanged, SubmitAddress, ConnectedToServer, ToggleAuthForm,
    EmailChanged, PasswordChanged, PasswordConfirmChanged, SubmitAuth,
    ServerPushReceived, RpcTimedOut, SelectChannel, DraftMessageChanged,
    SubmitMessage,
]


# Commands

@dataclass(frozen=True)
class ConnectTo:
    target: str


@dataclass(frozen=True)
class CallProcedure:
    address: Address
    procedure: str
    body: Dict[str, Any]


Command = Union[ConnectTo, CallProcedure]

Update = Tuple[ClientState, List[Command]]


def initial_state(draft_address: str = "") -> ClientState:
    return Disconnected(draft_address=draft_address)


def _toggle(form: AuthForm) -> AuthForm:
    # Only the email survives a switch between login and sign-up
    if isinstance(form, LoginForm):
        return SignUpForm(email=form.email)
    return LoginForm(email=form.email)


def _auth_body(form: AuthForm) -> Dict[str, Any]:
    if isinstance(form, SignUpForm):
        return encode_sign_up(form.email, form.password, form.password_confirm)
    return encode_login(form.email, form.password)


def _update_disconnected(state: Disconnected, msg: ClientMsg) -> Update:
    if isinstance(msg, DraftAddressChanged):
        return replace(state, draft_address=msg.address), []
    if isinstance(msg, SubmitAddress):
        return state, [ConnectTo(state.draft_address)]
    if isinstance(msg, ConnectedToServer):
        return Connected(server=msg.address), []
    return state, []


def _update_connected(state: Connected, msg: ClientMsg) -> Update:
    form = state.form
    if isinstance(msg, ToggleAuthForm):
        return replace(state, form=_toggle(form)), []
    if isinstance(msg, EmailChanged):
        return replace(state, form=replace(form, email=msg.email)), []
    if isinstance(msg, PasswordChanged):
        return replace(state, form=replace(form, password=msg.password)), []
    if isinstance(msg, PasswordConfirmChanged):
        if isinstance(form, SignUpForm):
            return replace(state, form=replace(form, password_confirm=msg.password_confirm)), []
        return state, []
    if isinstance(msg, SubmitAuth):
        return state, [CallProcedure(state.server, Procedure.AUTHENTICATE.value, _auth_body(form))]
    if isinstance(msg, ServerPushReceived):
        push = _decode(msg, state.server)
        if isinstance(push, AuthenticatedPush):
            logger.info("authenticated", server=state.server)
            return Authenticated(server=state.server), []
    return state, []


def _update_authenticated(state: Authenticated, msg: ClientMsg) -> Update:
    if isinstance(msg, ServerPushReceived):
        push = _decode(msg, state.server)
        if isinstance(push, ChannelStatusUpdate):
            return replace(state, channels=apply_channel_status(dict(state.channels), push)), []
        if isinstance(push, MessageReceived):
            if push.channel not in state.channels:
                logger.info("message_for_unknown_channel", channel=push.channel)
                return state, []
            return replace(state, channels=apply_message(dict(state.channels), push)), []
        return state, []
    if isinstance(msg, SelectChannel):
        return replace(state, active_channel=msg.name), []
    if isinstance(msg, DraftMessageChanged):
        return replace(state, draft_message=msg.text), []
    if isinstance(msg, SubmitMessage):
        if not state.draft_message.strip():
            return state, []
        body = encode_user_message(state.active_channel, state.draft_message)
        return replace(state, draft_message=""), [
            CallProcedure(state.server, Procedure.MESSAGE.value, body)
        ]
    return state, []


def _decode(msg: ServerPushReceived, server: Address):
    if msg.sender != server:
        logger.info("push_from_unknown_peer", sender=msg.sender)
        return None
    try:
        return decode_server_message(msg.payload)
    except DecodeError as e:
        logger.warning("undecodable_push", sender=msg.sender, error=str(e))
        return None


def update(state: ClientState, msg: ClientMsg) -> Update:
    """
    Advance the client state by one message.

    Unmatched (state, message) pairs, including RpcTimedOut, leave the state
    unchanged and produce no commands.
    """
    if isinstance(state, Disconnected):
        return _update_disconnected(state, msg)
    if isinstance(state, Connected):
        return _update_connected(state, msg)
    if isinstance(state, Authenticated):
        return _update_authenticated(state, msg)
    raise TypeError(f"not a client state: {state!r}")
