from typing import Optional


class CatalogSyncError(Exception):
    """Base class for errors that abort a sync run."""


class ConfigError(CatalogSyncError):
    """Raised for unusable run configuration (missing credentials, unknown plugins, empty source)."""


class FileError(CatalogSyncError):
    """Raised when a translation file cannot be read, parsed or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
