"""
Tests for the P2P peer module
"""
import unittest
import asyncio
from unittest.mock import AsyncMock, MagicMock

from deslack.p2p.peer import Peer, PeerState
from deslack.p2p.message import MessageType, create_message


class TestPeer(unittest.TestCase):
    """Test cases for the Peer class."""

    def setUp(self):
        """Set up test environment."""
        self.node_id = "test-node-1234"
        self.ip = "127.0.0.1"
        self.port = 8337

        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.writer = MagicMock()
        self.writer.is_closing.return_value = False
        self.writer.drain = AsyncMock()
        self.writer.wait_closed = AsyncMock()

    def tearDown(self):
        """Clean up after tests."""
        self.loop.close()

    def _connected_peer(self, max_message_size=1024 * 1024):
        async def build():
            reader = asyncio.StreamReader()
            return Peer(
                address="peer-node-5678",
                ip=self.ip,
                port=self.port,
                reader=reader,
                writer=self.writer,
                state=PeerState.ACTIVE,
                max_message_size=max_message_size
            )
        return self.loop.run_until_complete(build())

    def _written(self):
        return b"".join(call.args[0] for call in self.writer.write.call_args_list)

    def test_peer_initialization(self):
        """Test peer initialization."""
        peer = Peer(address="peer", ip=self.ip, port=self.port)
        self.assertEqual(peer.endpoint, f"{self.ip}:{self.port}")
        self.assertEqual(peer.state, PeerState.NEW)
        self.assertFalse(peer.is_connected)
        self.assertEqual(peer.uptime, 0)

    def test_send_message_frames_with_length_prefix(self):
        """Test the wire format of a sent frame."""
        peer = self._connected_peer()
        message = create_message(MessageType.SEND, self.node_id, data={"event": "authenticated"})

        result = self.loop.run_until_complete(peer.send_message(message))

        self.assertTrue(result)
        data = self._written()
        body = message.serialize()
        self.assertEqual(int.from_bytes(data[:4], byteorder='big'), len(body))
        self.assertEqual(data[4:], body)
        self.assertEqual(peer.bytes_sent, len(body) + 4)

    def test_send_message_too_large(self):
        peer = self._connected_peer(max_message_size=64)
        message = create_message(MessageType.SEND, self.node_id, data="x" * 100)

        self.assertFalse(self.loop.run_until_complete(peer.send_message(message)))
        self.writer.write.assert_not_called()

    def test_send_message_disconnected(self):
        """Test sending a message to a disconnected peer."""
        peer = Peer(address="peer", ip=self.ip, port=self.port)
        message = create_message(MessageType.SEND, self.node_id, data=1)
        self.assertFalse(self.loop.run_until_complete(peer.send_message(message)))

    def test_receive_message(self):
        """Test receiving a frame written by another peer."""
        peer = self._connected_peer()
        message = create_message(MessageType.HELLO, "remote", version="0.1.0")
        body = message.serialize()
        peer.reader.feed_data(len(body).to_bytes(4, byteorder='big') + body)

        received = self.loop.run_until_complete(peer.receive_message())

        self.assertIsNotNone(received)
        self.assertEqual(received.message_type, MessageType.HELLO)
        self.assertEqual(received.sender_id, "remote")
        self.assertEqual(received.payload["version"], "0.1.0")

    def test_receive_invalid_length(self):
        peer = self._connected_peer(max_message_size=16)
        peer.reader.feed_data((1000).to_bytes(4, byteorder='big'))
        self.assertIsNone(self.loop.run_until_complete(peer.receive_message()))

    def test_receive_garbage_frame(self):
        peer = self._connected_peer()
        peer.reader.feed_data((5).to_bytes(4, byteorder='big') + b"hello")
        self.assertIsNone(self.loop.run_until_complete(peer.receive_message()))

    def test_receive_on_closed_stream(self):
        peer = self._connected_peer()
        peer.reader.feed_data(b"\x00\x00")
        peer.reader.feed_eof()
        self.assertIsNone(self.loop.run_until_complete(peer.receive_message()))

    def test_peer_disconnect(self):
        """Test peer disconnect method."""
        peer = self._connected_peer()

        self.loop.run_until_complete(peer.disconnect())

        self.writer.close.assert_called_once()
        self.assertEqual(peer.state, PeerState.DISCONNECTED)
        self.assertIsNone(peer.reader)
        self.assertIsNone(peer.writer)
        self.assertFalse(peer.is_connected)

    def test_to_dict(self):
        peer = self._connected_peer()
        data = peer.to_dict()
        self.assertEqual(data["address"], "peer-node-5678")
        self.assertEqual(data["state"], "active")


if __name__ == '__main__':
    unittest.main()
