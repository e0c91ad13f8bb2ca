"""
deslack Chat Protocol
---------------------
Server push events, client RPC bodies and their wire encoding.
"""

from .events import (
    ServerEvent,
    Procedure,
    AuthEvent,
    ChannelStatusUpdate,
    MessageReceived,
    AuthenticatedPush,
    LoginBody,
    SignUpBody,
    UserMessageBody,
    encode_channel_status,
    encode_message,
    encode_authenticated,
    encode_user_message,
    encode_login,
    encode_sign_up,
    decode_server_message,
    decode_user_message,
    decode_auth_request,
    apply_channel_status,
    apply_message,
)

__all__ = [
    'ServerEvent', 'Procedure', 'AuthEvent',
    'ChannelStatusUpdate', 'MessageReceived', 'AuthenticatedPush',
    'LoginBody', 'SignUpBody', 'UserMessageBody',
    'encode_channel_status', 'encode_message', 'encode_authenticated',
    'encode_user_message', 'encode_login', 'encode_sign_up',
    'decode_server_message', 'decode_user_message', 'decode_auth_request',
    'apply_channel_status', 'apply_message',
]
