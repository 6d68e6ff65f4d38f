"""
Error taxonomy for the dashboard pipeline.

Rationale:
- Transport and completion problems are surfaced to the user as inline messages.
- Shape problems are logged and degrade to empty data.
- CSV problems are rejected before any network call.
"""

from typing import Optional


class TransportFailure(RuntimeError):
    """Network or HTTP error talking to the remote dataset store."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(RuntimeError):
    """Unexpected shape from the dataset store or the completion endpoint."""


class CompletionFailed(RuntimeError):
    """The completion endpoint failed or returned an error payload."""


class InsufficientCsv(ValueError):
    """CSV input with fewer than two non-blank lines (header plus one row)."""
