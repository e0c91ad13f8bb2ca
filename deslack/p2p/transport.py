"""
Transport Adapter
-----------------
The contract the chat core requires from the point-to-point substrate:
unicast send, an ordered event stream, RPC handler registration and RPC calls.
"""

import asyncio
import inspect
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog

from ..config.logging import log_error
from ..core.exceptions import TransportTimeout
from ..core.types import Address

logger = structlog.get_logger()

RpcHandler = Callable[[Address, Any], Union[Any, Awaitable[Any]]]
Listener = Callable[..., Union[None, Awaitable[None]]]

EMPTY_ACK: Dict[str, Any] = {}


class TransportEvent(str, Enum):
    """Events a transport emits to the application."""
    CONNECTIONS = "connections"  # (count)
    SEEN = "seen"  # (address)
    LEFT = "left"  # (address)
    MESSAGE = "message"  # (address, payload)
    TIMEOUT = "timeout"  # (address)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Transport(ABC):
    """
    Base class for transports. Subclasses implement the wire; listener and RPC
    handler bookkeeping lives here.
    """

    def __init__(self, rpc_timeout: float = 10.0):
        self.rpc_timeout = rpc_timeout
        self.listeners: Dict[TransportEvent, List[Listener]] = {}
        self.rpc_handlers: Dict[str, RpcHandler] = {}
        self._pending_calls: Dict[str, asyncio.Future] = {}

    @property
    @abstractmethod
    def address(self) -> Address:
        """This peer's own address."""

    @abstractmethod
    async def start(self) -> None:
        """Start accepting connections."""

    @abstractmethod
    async def stop(self) -> None:
        """Close every connection."""

    @abstractmethod
    async def connect(self, target: str) -> Address:
        """Connect to a peer and return its address."""

    @abstractmethod
    async def send(self, address: Address, payload: Any) -> bool:
        """Best-effort unicast. True only means the payload was handed to the wire."""

    @abstractmethod
    async def _send_call(self, address: Address, call_id: str, procedure: str, body: Any) -> bool:
        """Put an RPC call on the wire."""

    def add_listener(self, event: TransportEvent, listener: Listener) -> None:
        """
        Register a listener for a transport event.

        Args:
            event: The event to listen for
            listener: Plain function or coroutine function called with the event arguments
        """
        self.listeners.setdefault(TransportEvent(event), []).append(listener)

    def register_rpc_handler(self, procedure: str, handler: RpcHandler) -> None:
        """
        Register the handler for a procedure. The handler's return value is the
        acknowledgement sent back to the caller.
        """
        self.rpc_handlers[procedure] = handler
        logger.debug("Registered RPC handler", procedure=procedure)

    async def emit(self, event: TransportEvent, *args: Any) -> None:
        """Run the listeners for an event in registration order."""
        for listener in self.listeners.get(event, []):
            try:
                await _maybe_await(listener(*args))
            except Exception as e:
                log_error(logger, e, {"transport_event": event.value})

    async def handle_rpc(self, caller: Address, procedure: str, body: Any) -> Any:
        """
        Run the handler for an inbound call. Always produces an acknowledgement
        so the caller's pending call is resolved.
        """
        handler = self.rpc_handlers.get(procedure)
        if handler is None:
            logger.warning("No handler for procedure", procedure=procedure, caller=caller)
            return EMPTY_ACK
        try:
            ack = await _maybe_await(handler(caller, body))
        except Exception as e:
            log_error(logger, e, {"procedure": procedure, "caller": caller})
            return EMPTY_ACK
        return EMPTY_ACK if ack is None else ack

    async def call(self, address: Address, procedure: str, body: Any,
                   timeout: Optional[float] = None) -> Any:
        """
        Call a procedure on a remote peer and wait for its acknowledgement.

        Fires at most once. If no acknowledgement arrives in time a TIMEOUT
        event is emitted and TransportTimeout raised; nothing is retried.
        """
        timeout = self.rpc_timeout if timeout is None else timeout
        call_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending_calls[call_id] = future
        try:
            if not await self._send_call(address, call_id, procedure, body):
                logger.warning("RPC call could not be sent", peer=address, procedure=procedure)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("RPC call timed out", peer=address, procedure=procedure, timeout=timeout)
            await self.emit(TransportEvent.TIMEOUT, address)
            raise TransportTimeout(address, procedure, timeout)
        finally:
            self._pending_calls.pop(call_id, None)

    def resolve_call(self, call_id: str, ack: Any) -> None:
        """Complete a pending call with the acknowledgement received for it."""
        future = self._pending_calls.get(call_id)
        if future is None or future.done():
            logger.debug("Acknowledgement for unknown call", call_id=call_id)
            return
        future.set_result(ack)
