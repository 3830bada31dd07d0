"""Error kinds raised by fleetopt.

Every error derives from ``FleetOptError`` so callers can catch the whole
family in one place. The retry wrappers live in ``fleetopt.retry.executor``.
"""

from __future__ import annotations


class FleetOptError(Exception):
    """Base class for all fleetopt errors."""


class TransportError(FleetOptError):
    """Network or client-side failure before a response was received."""


class StatusError(FleetOptError):
    """The Platform answered with an unexpected HTTP status."""

    def __init__(self, message: str, status_code: int, body: bytes = b"") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DecodeError(FleetOptError):
    """A 2xx response whose body was missing or could not be decoded."""


class ValidationError(FleetOptError):
    """A client-side precondition failed. Never retried."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class MergeError(FleetOptError):
    """JSON Merge Patch failed structurally."""


class StateMachineError(FleetOptError):
    """An observed cluster/agent status pair is outside the known domain."""
