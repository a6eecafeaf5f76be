# Error taxonomy shared by the relay components
from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigError(RelayError):
    pass


class UpstreamError(RelayError):
    """Tiltify returned a non-success status or a payload we cannot read."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StorageError(RelayError):
    pass


class NotFoundError(StorageError):
    """Raised by the state store when a path has never been written."""

    def __init__(self, path: str):
        super().__init__(f"No value stored at {path}")
        self.path = path
