"""
Server-side authentication sessions, one per peer address.
"""
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple, Union

from ..core.types import Address, User


@dataclass(frozen=True)
class Unauthenticated:
    pass


@dataclass(frozen=True)
class PendingApproval:
    user: User


@dataclass(frozen=True)
class Authenticated:
    user: User


SessionState = Union[Unauthenticated, PendingApproval, Authenticated]


def state_name(state: SessionState) -> str:
    if isinstance(state, Unauthenticated):
        return "unauthenticated"
    if isinstance(state, PendingApproval):
        return "pending_approval"
    if isinstance(state, Authenticated):
        return "authenticated"
    raise TypeError(f"not a session state: {state!r}")


class SessionTable:
    """Authentication state keyed by address. Entries live for the process lifetime."""

    def __init__(self):
        self._sessions: Dict[Address, SessionState] = {}

    def __contains__(self, address: Address) -> bool:
        return address in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Tuple[Address, SessionState]]:
        return iter(list(self._sessions.items()))

    def get(self, address: Address) -> Optional[SessionState]:
        return self._sessions.get(address)

    def seen(self, address: Address) -> bool:
        """Create an Unauthenticated session for a new address. True if one was created."""
        if address in self._sessions:
            return False
        self._sessions[address] = Unauthenticated()
        return True

    def set(self, address: Address, state: SessionState) -> None:
        self._sessions[address] = state

    def is_authenticated(self, address: Address) -> bool:
        return isinstance(self._sessions.get(address), Authenticated)

    def email_owner(self, email: str) -> Optional[Address]:
        """Address whose pending or authenticated user has this email."""
        for address, state in self._sessions.items():
            if isinstance(state, (PendingApproval, Authenticated)) and state.user.email == email:
                return address
        return None

    def count_by_state(self) -> Dict[str, int]:
        counts = {"unauthenticated": 0, "pending_approval": 0, "authenticated": 0}
        for state in self._sessions.values():
            counts[state_name(state)] += 1
        return counts
