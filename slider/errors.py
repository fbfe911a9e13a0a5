from __future__ import annotations

from typing import Optional


class SliderError(Exception):
    """Base exception for slider."""


class ConfigurationError(SliderError):
    """Raised when the run cannot start (missing credentials, invalid operation...)."""


class RemoteError(SliderError):
    """Raised when a code-host request fails."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(RemoteError):
    pass


class MergeRejectedError(RemoteError):
    """The host refused to merge (conflict, not mergeable, or the recent-push race)."""


class RateLimitedError(RemoteError):
    pass


class AuthenticationError(RemoteError):
    pass


class RetryExhaustedError(SliderError):
    def __init__(self, description: str, attempts: int) -> None:
        super().__init__(f"Failed to {description} after {attempts} attempts.")
        self.description = description
        self.attempts = attempts


class MergeExhaustedError(RetryExhaustedError):
    def __init__(self, repository: str, attempts: int) -> None:
        super().__init__(f"merge repository {repository}", attempts)
        self.repository = repository
