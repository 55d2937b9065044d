"""Runtime error types."""

from __future__ import annotations


class PresenceError(Exception):
    """Base error for the presence runtime."""


class InvalidIdentityError(PresenceError, ValueError):
    """Hardware address could not be normalized."""


class MalformedPayloadError(PresenceError, ValueError):
    """Heartbeat payload is not a decimal epoch."""


class UnknownEntityError(PresenceError, KeyError):
    """No tracked entity with the given identity."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""
