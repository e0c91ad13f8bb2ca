"""Error taxonomy shared by the client, the server engine and the transport."""
from typing import Any, Optional


class DeslackError(Exception):
    """Base class for all deslack errors."""


class DecodeError(DeslackError):
    """An inbound payload could not be decoded."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class PolicyRejection(DeslackError):
    """A well-formed request that the server refuses to act on."""

    def __init__(self, reason: str, address: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.address = address


class TransportTimeout(DeslackError):
    """An RPC call was not acknowledged in time."""

    def __init__(self, address: str, procedure: str, timeout: float):
        super().__init__(f"RPC {procedure!r} to {address} timed out after {timeout}s")
        self.address = address
        self.procedure = procedure
        self.timeout = timeout


class EngineStopped(DeslackError):
    """Work was submitted to, or still queued in, a server engine that has stopped."""
