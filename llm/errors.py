"""Errors raised by the completion layer."""

from typing import Optional


class TutorError(Exception):
    """Base class for errors that abort a chat request."""


class ConfigurationError(TutorError):
    """Required configuration (API credentials) is missing."""


class InvalidRequestError(TutorError):
    """The caller sent a malformed chat payload."""


class CompletionAPIError(TutorError):
    """The completion API answered with a non-success status."""

    def __init__(self, status_code: Optional[int], body: str):
        super().__init__(body)
        self.status_code = status_code
        self.body = body
