"""
Server Session & Channel Engine
-------------------------------
Sole authority over per-peer authentication, channel membership, message
history and broadcast fan-out.

Every entry point (transport events, RPC calls, operator actions) is queued and
handled to completion before the next one starts, so the state below is only
ever mutated from one path.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ..config.base import ServerConfig
from ..core.exceptions import DecodeError, EngineStopped, PolicyRejection
from ..core.types import (
    AUTOMATED_ADDRESS,
    GENERAL_CHANNEL,
    Address,
    Channel,
    ChannelName,
    ChatMessage,
    User,
    utc_now,
)
from ..p2p.transport import EMPTY_ACK, Transport, TransportEvent
from ..protocol.events import (
    LoginBody,
    Procedure,
    decode_auth_request,
    decode_user_message,
    encode_authenticated,
    encode_channel_status,
    encode_message,
)
from .metrics import ServerMetrics
from .passwords import hash_password
from .sessions import Authenticated, PendingApproval, SessionTable, Unauthenticated, state_name

logger = structlog.get_logger()


class ServerState:
    """Authoritative server state: channels and the session table."""

    def __init__(self):
        self.channels: Dict[ChannelName, Channel] = {
            GENERAL_CHANNEL: Channel(name=GENERAL_CHANNEL),
        }
        self.sessions = SessionTable()


class ServerEngine:
    """
    Runs the server role on top of a transport.

    Call attach() to register with the transport, then run the engine's
    event loop with run().
    """

    def __init__(self,
                 transport: Transport,
                 config: Optional[ServerConfig] = None,
                 clock: Callable[[], Any] = utc_now,
                 metrics: Optional[ServerMetrics] = None):
        self.transport = transport
        self.config = config or ServerConfig()
        self.clock = clock
        self.metrics = metrics or ServerMetrics()
        self.state = ServerState()
        self.running = False
        self._inbox: Optional[asyncio.Queue] = None

    # Event loop

    def attach(self) -> None:
        """Register listeners and RPC handlers with the transport."""
        self.transport.add_listener(TransportEvent.CONNECTIONS, self.on_connection_count_changed)
        self.transport.add_listener(TransportEvent.SEEN, self.on_peer_seen)
        self.transport.add_listener(TransportEvent.LEFT, self.on_peer_left)
        self.transport.register_rpc_handler(Procedure.MESSAGE.value, self.handle_message_rpc)
        self.transport.register_rpc_handler(Procedure.AUTHENTICATE.value, self.handle_authenticate_rpc)

    async def run(self) -> None:
        """Process queued work items one at a time until stopped."""
        self._inbox = asyncio.Queue()
        self.running = True
        logger.info("server_engine_started", address=self.transport.address)

        while self.running:
            item = await self._inbox.get()
            if item is None:
                break
            func, args, future = item
            try:
                result = await func(*args)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

        self.running = False
        self._drain()
        logger.info("server_engine_stopped")

    def stop(self) -> None:
        self.running = False
        if self._inbox is not None:
            self._inbox.put_nowait(None)

    def _drain(self) -> None:
        """Fail work items still queued when the loop exits."""
        dropped = 0
        while not self._inbox.empty():
            item = self._inbox.get_nowait()
            if item is not None and not item[2].done():
                item[2].set_exception(EngineStopped("server engine stopped"))
                dropped += 1
        if dropped:
            logger.info("server_engine_dropped_work", count=dropped)

    async def submit(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Queue a work item and wait for its result."""
        if self._inbox is None or not self.running:
            raise EngineStopped("server engine is not running")
        future = asyncio.get_running_loop().create_future()
        await self._inbox.put((func, args, future))
        return await future

    async def _submit_quietly(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Like submit(), but policy rejections and bad payloads are logged and dropped."""
        try:
            return await self.submit(func, *args)
        except PolicyRejection as e:
            logger.info("request_rejected", reason=e.reason, address=e.address)
            self.metrics.record_rejection(e.reason)
        except DecodeError as e:
            logger.warning("undecodable_request", error=str(e))
            self.metrics.decode_errors.inc()
        return None

    # Transport entry points

    async def on_connection_count_changed(self, count: int) -> None:
        await self._submit_quietly(self.connection_count_changed, count)

    async def on_peer_seen(self, address: Address) -> None:
        await self._submit_quietly(self.peer_seen, address)

    async def on_peer_left(self, address: Address) -> None:
        await self._submit_quietly(self.peer_left, address)

    async def handle_message_rpc(self, caller: Address, body: Any) -> Dict[str, Any]:
        await self._submit_quietly(self.receive_user_message, caller, body)
        return EMPTY_ACK

    async def handle_authenticate_rpc(self, caller: Address, body: Any) -> Dict[str, Any]:
        await self._submit_quietly(self.authenticate, caller, body)
        return EMPTY_ACK

    # Connection bookkeeping

    async def connection_count_changed(self, count: int) -> None:
        logger.info("clients_connected", count=count)
        self.metrics.update_connected_peers(count)

    async def peer_seen(self, address: Address) -> bool:
        if address == AUTOMATED_ADDRESS:
            raise PolicyRejection("reserved_address", address)
        created = self.state.sessions.seen(address)
        if created:
            logger.info("client_seen", address=address)
            self._update_session_metrics()
        return created

    async def peer_left(self, address: Address) -> None:
        logger.info("client_left", address=address)
        if not self.config.evict_on_leave:
            return

        for channel in self.state.channels.values():
            if address in channel.active_users:
                channel.active_users.discard(address)
                await self.broadcast(channel, encode_channel_status(channel))

    # Authentication

    async def authenticate(self, address: Address, body: Any) -> None:
        request = decode_auth_request(body)
        if isinstance(request, LoginBody):
            # There is no login path against an existing identity yet
            raise PolicyRejection("login_unsupported", address)
        await self.sign_up(address, request.email, request.password, request.password_confirm)

    async def sign_up(self, address: Address, email: str, password: str, password_confirm: str) -> None:
        """Move an Unauthenticated session to PendingApproval."""
        if password != password_confirm:
            raise PolicyRejection("password_mismatch", address)

        session = self.state.sessions.get(address)
        if session is None:
            raise PolicyRejection("unknown_session", address)
        if not isinstance(session, Unauthenticated):
            raise PolicyRejection("already_signed_up", address)
        if self.state.sessions.email_owner(email) is not None:
            raise PolicyRejection("email_taken", address)

        password_hash = await asyncio.get_running_loop().run_in_executor(
            None, hash_password, password, self.config.password_iterations
        )
        # Re-check: another sign-up may have claimed the email while hashing
        if self.state.sessions.email_owner(email) is not None:
            raise PolicyRejection("email_taken", address)

        self.state.sessions.set(address, PendingApproval(User(email=email, password_hash=password_hash)))
        self._update_session_metrics()
        logger.info("sign_up_pending_approval", address=address, email=email)

    async def approve(self, address: Address) -> bool:
        """
        Operator approval of a pending sign-up.

        The authentication push is sent first, then the address joins the
        general channel. Approving anything but a pending session does nothing.
        """
        session = self.state.sessions.get(address)
        if not isinstance(session, PendingApproval):
            logger.info("approve_ignored",
                        address=address,
                        state=state_name(session) if session is not None else None)
            return False

        self.state.sessions.set(address, Authenticated(session.user))
        self._update_session_metrics()
        logger.info("client_authenticated", address=address, email=session.user.email)

        await self.transport.send(address, encode_authenticated())
        await self.join_channel(address, GENERAL_CHANNEL)
        return True

    # Channels

    async def create_channel(self, name: ChannelName) -> Channel:
        if not name:
            raise PolicyRejection("invalid_channel_name")
        if name in self.state.channels:
            raise PolicyRejection("channel_exists")
        channel = Channel(name=name)
        self.state.channels[name] = channel
        logger.info("channel_created", channel=name)
        return channel

    async def join_channel(self, address: Address, channel_name: ChannelName) -> bool:
        """
        Add an authenticated address to a channel, broadcast the new status and
        post a join notice. False if the address was already present.
        """
        channel = self.state.channels.get(channel_name)
        if channel is None:
            raise PolicyRejection("unknown_channel", address)
        if not self.state.sessions.is_authenticated(address):
            raise PolicyRejection("not_authenticated", address)
        if address in channel.active_users:
            return False

        channel.active_users.add(address)
        logger.info("channel_joined", address=address, channel=channel_name)
        await self.broadcast(channel, encode_channel_status(channel))
        await self.commit_message(AUTOMATED_ADDRESS, channel_name, f"User {address} joined the channel")
        return True

    # Messages

    async def receive_user_message(self, address: Address, body: Any) -> ChatMessage:
        # Only messages the server posts itself may carry the system address
        if address == AUTOMATED_ADDRESS:
            raise PolicyRejection("reserved_address", address)
        request = decode_user_message(body)
        return await self.commit_message(address, request.channel_name, request.content)

    async def commit_message(self, address: Address, channel_name: ChannelName, content: str) -> ChatMessage:
        """
        Stamp a message with server time, prepend it to the channel and
        broadcast it to every active member.
        """
        if address != AUTOMATED_ADDRESS and not self.state.sessions.is_authenticated(address):
            raise PolicyRejection("not_authenticated", address)

        channel = self.state.channels.get(channel_name)
        if channel is None:
            raise PolicyRejection("unknown_channel", address)

        message = ChatMessage(author=address, content=content, sent_at=self.clock())
        channel.add_message(message)
        self.metrics.messages_committed.inc()
        logger.debug("message_committed", channel=channel_name, author=address)

        await self.broadcast(channel, encode_message(channel.name, message))
        return message

    async def broadcast(self, channel: Channel, payload: Dict[str, Any]) -> int:
        """Send one payload to every active member. Returns the number of sends."""
        recipients: List[Address] = sorted(channel.active_users)
        for address in recipients:
            await self.transport.send(address, payload)
        self.metrics.messages_broadcast.inc(len(recipients))
        logger.debug("broadcast",
                     channel=channel.name,
                     push_event=payload.get("event"),
                     recipients=len(recipients))
        return len(recipients)

    # Read-only views for the operator

    def list_sessions(self) -> List[Dict[str, Any]]:
        sessions = []
        for address, state in self.state.sessions:
            user = getattr(state, "user", None)
            sessions.append({
                "address": address,
                "state": state_name(state),
                "email": user.email if user else None,
            })
        return sessions

    def list_channels(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": channel.name,
                "active_users": sorted(channel.active_users),
                "message_count": len(channel.messages),
            }
            for channel in self.state.channels.values()
        ]

    def _update_session_metrics(self) -> None:
        self.metrics.update_sessions(self.state.sessions.count_by_state())
