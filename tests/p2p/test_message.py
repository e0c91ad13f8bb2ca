"""
Tests for the P2P message module
"""
import unittest

from deslack.p2p.message import Message, MessageType, create_message


class TestP2PMessage(unittest.TestCase):
    """Test cases for P2P message creation, serialization, and deserialization."""

    def setUp(self):
        """Set up test environment."""
        self.node_id = "test-node-1234"

    def test_create_hello_message(self):
        """Test creating a HELLO message."""
        message = create_message(MessageType.HELLO, self.node_id, version="0.1.0")

        self.assertEqual(message.message_type, MessageType.HELLO)
        self.assertEqual(message.sender_id, self.node_id)
        self.assertEqual(message.payload["version"], "0.1.0")
        self.assertEqual(message.payload["user_agent"], "deslack/0.1.0")

    def test_create_send_message(self):
        """Test creating a SEND message."""
        data = {"event": "authenticated"}
        message = create_message(MessageType.SEND, self.node_id, data=data)

        self.assertEqual(message.message_type, MessageType.SEND)
        self.assertEqual(message.payload, {"data": data})

    def test_create_rpc_messages(self):
        """Test creating RPC_CALL and RPC_RESULT messages."""
        call = create_message(
            MessageType.RPC_CALL,
            self.node_id,
            call_id="call-1",
            procedure="message",
            body={"channelName": "general", "content": "hi"}
        )
        self.assertEqual(call.message_type, MessageType.RPC_CALL)
        self.assertEqual(call.payload["call_id"], "call-1")
        self.assertEqual(call.payload["procedure"], "message")
        self.assertEqual(call.payload["body"]["content"], "hi")

        result = create_message(MessageType.RPC_RESULT, self.node_id, call_id="call-1", ack={})
        self.assertEqual(result.message_type, MessageType.RPC_RESULT)
        self.assertEqual(result.payload, {"call_id": "call-1", "ack": {}})

    def test_message_serialization(self):
        """Test message serialization and deserialization."""
        original = create_message(
            MessageType.RPC_CALL,
            self.node_id,
            call_id="call-2",
            procedure="authenticate",
            body={"event": "authLogin", "email": "a@b.c", "password": "pw"}
        )

        data = original.serialize()
        self.assertIsInstance(data, bytes)

        restored = Message.deserialize(data)
        self.assertIsNotNone(restored)
        self.assertEqual(restored.message_id, original.message_id)
        self.assertEqual(restored.message_type, original.message_type)
        self.assertEqual(restored.sender_id, original.sender_id)
        self.assertEqual(restored.timestamp, original.timestamp)
        self.assertEqual(restored.payload, original.payload)

    def test_deserialize_invalid_frames(self):
        """Test that undecodable frames yield None."""
        self.assertIsNone(Message.deserialize(b"not json"))
        self.assertIsNone(Message.deserialize(b'{"sender_id": "x"}'))
        self.assertIsNone(Message.deserialize(b'{"message_type": "gossip", "sender_id": "x"}'))
        self.assertIsNone(Message.deserialize(b"\xff\xfe"))

    def test_message_ids_are_unique(self):
        a = create_message(MessageType.SEND, self.node_id, data=1)
        b = create_message(MessageType.SEND, self.node_id, data=1)
        self.assertNotEqual(a.message_id, b.message_id)


if __name__ == '__main__':
    unittest.main()
