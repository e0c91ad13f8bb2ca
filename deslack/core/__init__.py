"""
Core modules for deslack.
These modules form the foundation of the chat system and are designed to avoid
circular dependencies.
"""
from .types import (
    Address,
    ChannelName,
    Channel,
    ChatMessage,
    User,
    GENERAL_CHANNEL,
    AUTOMATED_ADDRESS,
)
from .exceptions import DeslackError, DecodeError, EngineStopped, PolicyRejection, TransportTimeout

__all__ = [
    'Address',
    'ChannelName',
    'Channel',
    'ChatMessage',
    'User',
    'GENERAL_CHANNEL',
    'AUTOMATED_ADDRESS',
    'DeslackError',
    'DecodeError',
    'PolicyRejection',
    'TransportTimeout',
    'EngineStopped',
]
