from __future__ import annotations


class ValidationError(Exception):
    """Raised when a review action is rejected before it reaches a collaborator."""


class TransportError(RuntimeError):
    """Raised when a remote collaborator cannot be reached or answers with an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigUnavailable(TransportError):
    """Raised by pricing config sources; callers fall back to defaults."""
