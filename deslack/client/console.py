"""
Line-oriented console front end for the client state machine.
"""
import asyncio
from typing import Dict, List

import click

from ..core.types import ChannelName
from .app import ClientApp
from .session import (
    Authenticated,
    ClientMsg,
    ClientState,
    Connected,
    DraftAddressChanged,
    DraftMessageChanged,
    EmailChanged,
    PasswordChanged,
    PasswordConfirmChanged,
    SelectChannel,
    SignUpForm,
    SubmitAddress,
    SubmitAuth,
    SubmitMessage,
    ToggleAuthForm,
)

HELP = {
    "disconnected": "Enter the server address (host:port).",
    "connected": "/email ADDR, /password PW, /confirm PW, /toggle (login <-> sign-up), /submit",
    "authenticated": "Type to chat. /join CHANNEL switches channel. /quit exits.",
}


def parse_line(state: ClientState, line: str) -> List[ClientMsg]:
    """Translate one line of input into state machine messages."""
    line = line.strip()
    if isinstance(state, Connected):
        command, _, arg = line.partition(" ")
        if command == "/email":
            return [EmailChanged(arg)]
        if command == "/password":
            return [PasswordChanged(arg)]
        if command == "/confirm":
            return [PasswordConfirmChanged(arg)]
        if command == "/toggle":
            return [ToggleAuthForm()]
        if command == "/submit":
            return [SubmitAuth()]
        return []
    if isinstance(state, Authenticated):
        if line.startswith("/join "):
            return [SelectChannel(line[len("/join "):].strip())]
        return [DraftMessageChanged(line), SubmitMessage()]
    if not line:
        return []
    return [DraftAddressChanged(line), SubmitAddress()]


class ConsoleRenderer:
    """Echoes state changes to the terminal."""

    def __init__(self):
        self._phase = None
        self._seen: Dict[ChannelName, int] = {}

    def __call__(self, state: ClientState) -> None:
        phase = type(state).__name__.lower()
        if phase != self._phase:
            self._phase = phase
            click.echo(f"[{phase}] {HELP.get(phase, '')}")
            if isinstance(state, Connected):
                click.echo(f"Connected to {state.server}")

        if isinstance(state, Connected):
            form = "sign-up" if isinstance(state.form, SignUpForm) else "login"
            click.echo(f"  form={form} email={state.form.email!r}")
        elif isinstance(state, Authenticated):
            for name, channel in state.channels.items():
                new = len(channel.messages) - self._seen.get(name, 0)
                # Messages are stored newest first
                for message in reversed(channel.messages[:max(new, 0)]):
                    timestamp = message.sent_at.strftime("%H:%M:%S")
                    click.echo(f"#{name} {timestamp} <{message.author}> {message.content}")
                self._seen[name] = len(channel.messages)


async def run_console(app: ClientApp) -> None:
    """Read stdin until EOF or /quit, feeding each line to the app."""
    renderer = ConsoleRenderer()
    app.subscribe(renderer)
    renderer(app.state)

    loop = asyncio.get_running_loop()
    while app.running:
        line = await loop.run_in_executor(None, click.get_text_stream("stdin").readline)
        if not line or line.strip() == "/quit":
            break
        for msg in parse_line(app.state, line):
            app.dispatch(msg)

    app.stop()
