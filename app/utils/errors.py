"""
Kindred — Error taxonomy shared by the match, discovery and signaling cores.

Every error is terminal for the single requested operation.  The API layer
maps ``status_code`` straight onto the HTTP response; the Socket.IO layer
echoes ``code`` back to the originating connection.
"""

from __future__ import annotations


class KindredError(Exception):
    """Base class for all domain errors raised by the core services."""

    status_code: int = 400
    code: str = "kindred_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class InvalidOperation(KindredError):
    """Self-like, malformed criteria, or a state-machine violation."""

    status_code = 400
    code = "invalid_operation"


class NotFound(KindredError):
    """A user, profile or call session that does not exist."""

    status_code = 404
    code = "not_found"


class UnreachablePeer(KindredError):
    """Call target is not currently connected."""

    status_code = 409
    code = "unreachable_peer"


class Conflict(KindredError):
    """A concurrent mutation raced on the same record."""

    status_code = 409
    code = "conflict"


class UpstreamUnavailable(KindredError):
    """The external user directory timed out or failed."""

    status_code = 503
    code = "upstream_unavailable"
