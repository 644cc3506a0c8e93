"""Error types raised by videoctl."""

from typing import Optional


class VideoctlError(Exception):
    """Base class for videoctl errors."""


class BatchConfigError(VideoctlError):
    """Invalid batch configuration. Raised before any job starts."""


class JobExecutionError(VideoctlError):
    """A single job failed while talking to the video API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
