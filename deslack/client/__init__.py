"""
deslack client role: a pure session state machine and its asyncio driver.
"""

from .app import ClientApp
from .session import (
    Authenticated,
    CallProcedure,
    Connected,
    ConnectTo,
    Disconnected,
    LoginForm,
    SignUpForm,
    initial_state,
    update,
)

__all__ = [
    'ClientApp', 'update', 'initial_state',
    'Disconnected', 'Connected', 'Authenticated',
    'LoginForm', 'SignUpForm', 'ConnectTo', 'CallProcedure',
]
