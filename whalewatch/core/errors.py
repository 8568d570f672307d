"""Exception types shared by jobs, clients and the HTTP layer."""

from typing import Optional


class WhaleWatchError(Exception):
    """Base error carrying the HTTP status the API layer should answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(WhaleWatchError):
    """Missing or invalid request parameters."""

    status_code = 400


class NotFoundError(WhaleWatchError):
    """Requested record does not exist."""

    status_code = 404


class ConfigurationError(WhaleWatchError):
    """A required setting (usually an API key) is missing."""

    status_code = 500


class UpstreamAPIError(WhaleWatchError):
    """A third-party API failed after retries."""

    status_code = 502

    def __init__(self, provider: str, message: str, http_status: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.http_status = http_status
