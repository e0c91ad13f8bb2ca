"""
Integration tests: a server engine and client apps over localhost TCP
"""
import asyncio
import unittest

from deslack.client.app import ClientApp
from deslack.client.session import (
    Authenticated,
    Connected,
    DraftAddressChanged,
    DraftMessageChanged,
    EmailChanged,
    PasswordChanged,
    PasswordConfirmChanged,
    SubmitAddress,
    SubmitAuth,
    SubmitMessage,
    ToggleAuthForm,
)
from deslack.config.base import ServerConfig
from deslack.core.types import AUTOMATED_ADDRESS, GENERAL_CHANNEL
from deslack.p2p.identity import NodeIdentity
from deslack.p2p.manager import P2PManager
from deslack.p2p.message import MessageType, create_message
from deslack.p2p.peer import Peer
from deslack.protocol.events import Procedure, encode_user_message
from deslack.server.engine import ServerEngine
from deslack.server.sessions import Authenticated as AuthenticatedSession
from deslack.server.sessions import PendingApproval, Unauthenticated


class TestChatOverTCP(unittest.TestCase):
    """Integration tests for the chat protocol on the stream transport."""

    def setUp(self):
        """Set up test environment."""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.server_transport = P2PManager(listen_host="127.0.0.1", listen_port=0, rpc_timeout=2.0)
        self.engine = ServerEngine(self.server_transport, config=ServerConfig(password_iterations=1000))
        self.engine.attach()
        self.tasks = [self.loop.create_task(self.engine.run())]
        self.run_async(asyncio.sleep(0))
        self.run_async(self.server_transport.start())

        port = self.server_transport.server.sockets[0].getsockname()[1]
        self.target = f"127.0.0.1:{port}"
        self.transports = []
        self.apps = []

    def tearDown(self):
        """Clean up after tests."""
        for app in self.apps:
            app.stop()
        for transport in self.transports:
            self.run_async(transport.stop())
        self.run_async(self.server_transport.stop())
        self.run_async(asyncio.sleep(0.05))
        self.engine.stop()
        self.run_async(asyncio.gather(*self.tasks))
        self.run_async(self.loop.shutdown_default_executor())
        self.loop.close()

    def run_async(self, coro):
        return self.loop.run_until_complete(coro)

    def settle(self, condition, timeout=5.0):
        async def wait():
            deadline = self.loop.time() + timeout
            while not condition():
                if self.loop.time() > deadline:
                    raise AssertionError("condition not reached")
                await asyncio.sleep(0.01)
        self.run_async(wait())

    def add_client(self, identity=None):
        transport = P2PManager(listen_host="127.0.0.1", listen_port=0, identity=identity, rpc_timeout=2.0)
        app = ClientApp(transport)
        app.attach()
        self.tasks.append(self.loop.create_task(app.run()))
        self.run_async(asyncio.sleep(0))
        self.transports.append(transport)
        self.apps.append(app)

        app.dispatch(DraftAddressChanged(self.target))
        app.dispatch(SubmitAddress())
        self.settle(lambda: isinstance(app.state, Connected)
                    and transport.address in self.engine.state.sessions)
        return app

    def sign_up_and_approve(self, app, email):
        for msg in (ToggleAuthForm(), EmailChanged(email), PasswordChanged("pw"),
                    PasswordConfirmChanged("pw"), SubmitAuth()):
            app.dispatch(msg)
        address = app.transport.address
        self.settle(lambda: isinstance(self.engine.state.sessions.get(address), PendingApproval))
        self.assertTrue(self.run_async(self.engine.submit(self.engine.approve, address)))
        self.settle(lambda: isinstance(app.state, Authenticated)
                    and GENERAL_CHANNEL in app.state.channels
                    and app.state.channels[GENERAL_CHANNEL].messages)

    def general(self):
        return self.engine.state.channels[GENERAL_CHANNEL]

    def test_sign_up_approve_join_and_post(self):
        alice = self.add_client()
        address = alice.transport.address
        self.assertEqual(alice.state.server, self.server_transport.address)

        self.sign_up_and_approve(alice, "alice@example.com")

        general = alice.state.channels[GENERAL_CHANNEL]
        self.assertEqual(general.active_users, {address})
        self.assertEqual(general.messages[0].author, AUTOMATED_ADDRESS)
        self.assertEqual(general.messages[0].content, f"User {address} joined the channel")

        alice.dispatch(DraftMessageChanged("hello over tcp"))
        alice.dispatch(SubmitMessage())
        self.settle(lambda: len(alice.state.channels[GENERAL_CHANNEL].messages) == 2)

        latest = alice.state.channels[GENERAL_CHANNEL].messages[0]
        self.assertEqual((latest.author, latest.content), (address, "hello over tcp"))
        self.assertEqual(latest, self.general().messages[0])

    def test_reserved_address_hello_is_refused(self):
        identity = NodeIdentity.generate()

        async def scenario():
            port = self.server_transport.server.sockets[0].getsockname()[1]
            peer = Peer(address="server", ip="127.0.0.1", port=port)
            self.assertTrue(await peer.connect(timeout=2.0))
            await peer.send_message(create_message(
                MessageType.HELLO, AUTOMATED_ADDRESS, version="0.1.0",
                public_key=identity.public_key, nonce="bm9uY2U="
            ))
            reply = await peer.receive_message()
            await peer.disconnect()
            return reply

        self.assertIsNone(self.run_async(scenario()))
        self.assertNotIn(AUTOMATED_ADDRESS, self.engine.state.sessions)
        self.assertEqual(self.server_transport.get_peer_count(), 0)

    def test_duplicate_identity_is_refused(self):
        alice = self.add_client()
        twin = P2PManager(identity=alice.transport.identity, rpc_timeout=1.0)

        async def scenario():
            try:
                with self.assertRaises(ConnectionError):
                    await twin.connect(self.target)
            finally:
                await twin.stop()

        self.run_async(scenario())
        self.assertEqual(self.server_transport.get_peer_count(), 1)
        self.assertIsInstance(self.engine.state.sessions.get(alice.transport.address), Unauthenticated)

    def test_reconnecting_peer_cannot_inherit_a_session(self):
        """A new peer never lands on an approved address it does not hold the key for."""
        victim = self.add_client()
        self.sign_up_and_approve(victim, "victim@example.com")
        victim_address = victim.transport.address
        history = len(self.general().messages)

        victim.stop()
        self.run_async(victim.transport.stop())
        self.settle(lambda: self.server_transport.get_peer_count() == 0)

        intruder = P2PManager(listen_host="127.0.0.1", listen_port=0, rpc_timeout=2.0)
        self.transports.append(intruder)

        async def scenario():
            server = await intruder.connect(self.target)
            await intruder.call(server, Procedure.MESSAGE.value,
                                encode_user_message(GENERAL_CHANNEL, "impersonated"))

        self.run_async(scenario())

        self.assertNotEqual(intruder.address, victim_address)
        self.assertIsInstance(self.engine.state.sessions.get(victim_address), AuthenticatedSession)
        self.assertIsInstance(self.engine.state.sessions.get(intruder.address), Unauthenticated)
        self.assertEqual(len(self.general().messages), history)


if __name__ == '__main__':
    unittest.main()
