"""
Tests for the client session state machine
"""
from datetime import datetime, timezone

from deslack.core.types import Channel, ChatMessage
from deslack.protocol.events import encode_authenticated, encode_message
from deslack.client.session import (
    Authenticated,
    CallProcedure,
    Connected,
    ConnectedToServer,
    ConnectTo,
    Disconnected,
    DraftAddressChanged,
    DraftMessageChanged,
    EmailChanged,
    LoginForm,
    PasswordChanged,
    PasswordConfirmChanged,
    RpcTimedOut,
    SelectChannel,
    ServerPushReceived,
    SignUpForm,
    SubmitAddress,
    SubmitAuth,
    SubmitMessage,
    ToggleAuthForm,
    initial_state,
    update,
)

SERVER = "server-node"


def _status(channel, *users):
    return ServerPushReceived(SERVER, {
        "event": "updateChannelStatus",
        "data": {"channel": channel, "status": list(users)},
    })


def _chat(channel, content, user="bob", millis=1_700_000_000_000):
    message = ChatMessage(
        author=user,
        content=content,
        sent_at=datetime.fromtimestamp(millis / 1000, tz=timezone.utc),
    )
    return ServerPushReceived(SERVER, encode_message(channel, message))


def test_submit_address_emits_connect_and_waits():
    state, commands = update(initial_state(), DraftAddressChanged("127.0.0.1:8337"))
    assert state == Disconnected("127.0.0.1:8337")
    assert commands == []

    state, commands = update(state, SubmitAddress())
    assert isinstance(state, Disconnected)
    assert commands == [ConnectTo("127.0.0.1:8337")]


def test_connected_to_server_shows_login_form():
    state, commands = update(Disconnected("x"), ConnectedToServer(SERVER))
    assert state == Connected(server=SERVER, form=LoginForm())
    assert commands == []


def test_toggle_preserves_only_email():
    state = Connected(SERVER, LoginForm(email="a@b.c", password="pw"))
    state, _ = update(state, ToggleAuthForm())
    assert state.form == SignUpForm(email="a@b.c")

    state, _ = update(state, PasswordConfirmChanged("pw2"))
    state, _ = update(state, ToggleAuthForm())
    assert state.form == LoginForm(email="a@b.c")


def test_login_submit():
    state = Connected(SERVER)
    state, _ = update(state, EmailChanged("a@b.c"))
    state, _ = update(state, PasswordChanged("pw"))
    state, commands = update(state, SubmitAuth())

    assert isinstance(state, Connected)
    assert commands == [CallProcedure(SERVER, "authenticate", {
        "event": "authLogin", "email": "a@b.c", "password": "pw",
    })]


def test_sign_up_submit_does_not_check_confirmation():
    state = Connected(SERVER, SignUpForm())
    for msg in (EmailChanged("a@b.c"), PasswordChanged("pw"), PasswordConfirmChanged("different")):
        state, _ = update(state, msg)
    state, commands = update(state, SubmitAuth())

    assert commands == [CallProcedure(SERVER, "authenticate", {
        "event": "authSignUp", "email": "a@b.c", "password": "pw", "passwordConfirm": "different",
    })]


def test_confirm_ignored_on_login_form():
    state = Connected(SERVER, LoginForm(email="a@b.c"))
    assert update(state, PasswordConfirmChanged("x")) == (state, [])


def test_authenticated_push_moves_to_authenticated():
    state, commands = update(Connected(SERVER, SignUpForm(email="a@b.c")),
                             ServerPushReceived(SERVER, encode_authenticated()))
    assert state == Authenticated(server=SERVER)
    assert state.active_channel == "general"
    assert state.channels == {}
    assert commands == []


def test_other_pushes_do_not_authenticate():
    state = Connected(SERVER)
    assert update(state, _status("general", "me")) == (state, [])
    assert update(state, ServerPushReceived(SERVER, {"event": "bogus"})) == (state, [])


def test_pushes_from_other_peers_are_ignored():
    state = Connected(SERVER)
    assert update(state, ServerPushReceived("impostor", encode_authenticated())) == (state, [])


def test_status_push_creates_and_updates_channels():
    state = Authenticated(SERVER)
    state, _ = update(state, _status("general", "me"))
    assert state.channels["general"].active_users == {"me"}

    state, _ = update(state, _status("general", "me", "bob"))
    assert state.channels["general"].active_users == {"me", "bob"}


def test_message_push_prepends():
    state = Authenticated(SERVER, channels={"general": Channel(name="general")})
    state, _ = update(state, _chat("general", "first", millis=1))
    state, _ = update(state, _chat("general", "second", millis=2))
    assert [m.content for m in state.channels["general"].messages] == ["second", "first"]


def test_message_for_unknown_channel_is_ignored():
    state = Authenticated(SERVER, channels={"general": Channel(name="general")})
    assert update(state, _chat("random", "hi")) == (state, [])


def test_undecodable_push_changes_nothing():
    state = Authenticated(SERVER, channels={"general": Channel(name="general")})
    for payload in ({"event": "message", "data": {"channel": "general"}}, "junk", {"event": "nope"}):
        assert update(state, ServerPushReceived(SERVER, payload)) == (state, [])


def test_submit_message_clears_draft_optimistically():
    state = Authenticated(SERVER, active_channel="random")
    state, _ = update(state, DraftMessageChanged("hello"))
    state, commands = update(state, SubmitMessage())

    assert state.draft_message == ""
    assert commands == [CallProcedure(SERVER, "message", {"channelName": "random", "content": "hello"})]


def test_blank_draft_is_not_sent():
    state = Authenticated(SERVER, draft_message="   ")
    assert update(state, SubmitMessage()) == (state, [])


def test_select_channel():
    state, commands = update(Authenticated(SERVER), SelectChannel("random"))
    assert state.active_channel == "random"
    assert commands == []


def test_rpc_timeout_is_a_no_op_everywhere():
    for state in (Disconnected("x"), Connected(SERVER), Authenticated(SERVER)):
        assert update(state, RpcTimedOut(SERVER)) == (state, [])


def test_unmatched_messages_are_no_ops():
    assert update(Disconnected(), SubmitMessage()) == (Disconnected(), [])
    assert update(Connected(SERVER), SelectChannel("x")) == (Connected(SERVER), [])
    assert update(Authenticated(SERVER), SubmitAuth()) == (Authenticated(SERVER), [])
