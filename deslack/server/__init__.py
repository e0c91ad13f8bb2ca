"""
deslack server role: session authority and message relay.
"""

from .engine import ServerEngine, ServerState
from .sessions import Authenticated, PendingApproval, SessionTable, Unauthenticated
from .metrics import ServerMetrics

__all__ = [
    'ServerEngine', 'ServerState', 'SessionTable',
    'Unauthenticated', 'PendingApproval', 'Authenticated',
    'ServerMetrics',
]
