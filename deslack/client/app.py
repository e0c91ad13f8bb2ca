"""
Event loop driver for the client state machine.
"""
import asyncio
from typing import Callable, List, Optional, Set

import structlog

from ..config.logging import log_error
from ..core.exceptions import TransportTimeout
from ..core.types import Address
from ..p2p.transport import Transport, TransportEvent
from .session import (
    CallProcedure,
    ClientMsg,
    ClientState,
    Command,
    ConnectedToServer,
    ConnectTo,
    RpcTimedOut,
    ServerPushReceived,
    initial_state,
    update,
)

logger = structlog.get_logger()

StateCallback = Callable[[ClientState], None]


class ClientApp:
    """
    Owns the client state. Inbound messages (user input, transport events,
    command results) are queued and applied one at a time through update().
    """

    def __init__(self, transport: Transport, state: Optional[ClientState] = None):
        self.transport = transport
        self.state = state if state is not None else initial_state()
        self.running = False
        self._inbox: Optional[asyncio.Queue] = None
        self._subscribers: List[StateCallback] = []
        self._tasks: Set[asyncio.Task] = set()

    def attach(self) -> None:
        self.transport.add_listener(TransportEvent.MESSAGE, self._on_transport_message)
        self.transport.add_listener(TransportEvent.TIMEOUT, self._on_transport_timeout)

    def subscribe(self, callback: StateCallback) -> None:
        """Call callback with the new state after every processed message."""
        self._subscribers.append(callback)

    def dispatch(self, msg: ClientMsg) -> None:
        if self._inbox is None:
            raise RuntimeError("client app is not running")
        self._inbox.put_nowait(msg)

    async def run(self) -> None:
        self._inbox = asyncio.Queue()
        self.running = True
        logger.info("client_started", address=self.transport.address)

        while self.running:
            msg = await self._inbox.get()
            if msg is None:
                break
            self.state, commands = update(self.state, msg)
            for callback in self._subscribers:
                try:
                    callback(self.state)
                except Exception as e:
                    log_error(logger, e, {"subscriber": repr(callback)})
            for command in commands:
                self._spawn(command)

        self.running = False
        for task in list(self._tasks):
            task.cancel()
        logger.info("client_stopped")

    def stop(self) -> None:
        self.running = False
        if self._inbox is not None:
            self._inbox.put_nowait(None)

    def _spawn(self, command: Command) -> None:
        task = asyncio.create_task(self._execute(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, command: Command) -> None:
        if isinstance(command, ConnectTo):
            try:
                server = await self.transport.connect(command.target)
            except (ConnectionError, OSError, asyncio.TimeoutError) as e:
                logger.warning("connect_failed", target=command.target, error=str(e))
                return
            self.dispatch(ConnectedToServer(server))
        elif isinstance(command, CallProcedure):
            try:
                await self.transport.call(command.address, command.procedure, command.body)
            except TransportTimeout as e:
                # RpcTimedOut arrives through the transport's timeout event
                logger.debug("rpc_unanswered", procedure=e.procedure, address=e.address)
        else:
            raise TypeError(f"unknown command: {command!r}")

    def _on_transport_message(self, address: Address, payload) -> None:
        self.dispatch(ServerPushReceived(address, payload))

    def _on_transport_timeout(self, address: Address) -> None:
        self.dispatch(RpcTimedOut(address))
