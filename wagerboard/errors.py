# errors.py – Exceptions partagées par tout le service

from typing import Any, Optional


class WagerboardError(Exception):
    """Base exception for the leaderboard service."""
    pass


class ConfigError(WagerboardError):
    """Raised when anchors, durations or API keys are missing or invalid."""
    pass


class ValidationError(WagerboardError):
    """Raised for an unknown site or a malformed query parameter."""
    pass


class UpstreamError(WagerboardError):
    """
    Raised when a wager API cannot be used.

    Covers network failures, non-success statuses and bodies that are not
    JSON. ``details`` carries the upstream payload (or a text snippet) so the
    HTTP layer can hand it back to the operator.
    """

    def __init__(
        self,
        source: str,
        message: str,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.source = source
        self.message = message
        self.status = status
        self.details = details if details is not None else message

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.source}] {self.message} (HTTP {self.status})"
        return f"[{self.source}] {self.message}"


class RateLimitError(UpstreamError):
    """Raised on an upstream 429 or when the local request quota is spent."""
    pass
