"""
Entidades del dominio.
"""
from dirsync.domain.entities.storage import (
    ColumnType,
    StorageResult,
    BackendState,
    BatchResult,
    UpsertReport,
)

__all__ = [
    "ColumnType",
    "StorageResult",
    "BackendState",
    "BatchResult",
    "UpsertReport",
]
