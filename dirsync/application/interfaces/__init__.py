"""
Interfaces (puertos) que usa la capa de aplicacion.
"""
from dirsync.application.interfaces.storage_observer import (
    StorageObserver,
    NullStorageObserver,
    CountingStorageObserver,
)
from dirsync.application.interfaces.record_source import RecordSource

__all__ = [
    "StorageObserver",
    "NullStorageObserver",
    "CountingStorageObserver",
    "RecordSource",
]
