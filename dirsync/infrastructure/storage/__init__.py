"""
Backends de almacenamiento SQL y el StorageManager que los coordina.
"""
from dirsync.infrastructure.storage.base import SqlBackend, is_connectivity_error
from dirsync.infrastructure.storage.sqlite_backend import SqliteBackend
from dirsync.infrastructure.storage.postgres_backend import PostgresBackend
from dirsync.infrastructure.storage.mssql_backend import MssqlBackend
from dirsync.infrastructure.storage.manager import StorageManager, build_backends_from_settings

__all__ = [
    "SqlBackend",
    "is_connectivity_error",
    "SqliteBackend",
    "PostgresBackend",
    "MssqlBackend",
    "StorageManager",
    "build_backends_from_settings",
]
