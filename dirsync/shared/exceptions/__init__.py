"""
Excepciones de la aplicacion.
"""
from dirsync.shared.exceptions.base import AppException, ConfigurationError
from dirsync.shared.exceptions.storage import (
    StorageException,
    BackendConnectionError,
    BackendStateError,
    TableSetupError,
    HealthCheckError,
    NoBackendsConfiguredError,
)
from dirsync.shared.exceptions.sync import (
    UpstreamApiError,
    UpstreamConnectionError,
    SyncInProgressError,
)

__all__ = [
    "AppException",
    "ConfigurationError",
    "StorageException",
    "BackendConnectionError",
    "BackendStateError",
    "TableSetupError",
    "HealthCheckError",
    "NoBackendsConfiguredError",
    "UpstreamApiError",
    "UpstreamConnectionError",
    "SyncInProgressError",
]
