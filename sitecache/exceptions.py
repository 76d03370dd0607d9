"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SiteCacheError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(SiteCacheError):
    """Raised for issues related to configuration loading or validation."""


class InstallError(SiteCacheError):
    """
    Raised when a worker version cannot populate its static partition.
    The version is discarded and never activates.
    """


class LifecycleError(SiteCacheError):
    """Raised on an illegal worker state transition."""


class StorageError(SiteCacheError):
    """Raised when a cache partition cannot be read or written."""


class NetworkError(SiteCacheError):
    """Raised when a live network fetch fails before a response is received."""
