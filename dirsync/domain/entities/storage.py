"""
Entidades del dominio de almacenamiento.

Tipos puros (sin I/O) que comparten el inferidor de esquema, los adaptadores
de cada motor SQL y el StorageManager.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ColumnType(Enum):
    """
    Tipo escalar logico de una columna.

    Cada backend lo traduce a su tipo nativo.
    """
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    TIMESTAMP = "timestamp"
    JSON = "json"       # Arrays/objetos serializados como texto


class StorageResult(Enum):
    """Resultado de escribir un registro en un backend."""
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"     # Mismo change-hash que lo almacenado: no se escribe


class BackendState(Enum):
    """
    Ciclo de vida de un adaptador.

    UNINITIALIZED -> INITIALIZED -> OPERATIONAL -> CLOSED
    """
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    OPERATIONAL = "operational"
    CLOSED = "closed"


@dataclass
class BatchResult:
    """Conteos de un upsert_batch en un backend."""

    backend: str
    table_name: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def stored(self) -> int:
        """Registros que quedaron persistidos (incluye los que no cambiaron)."""
        return self.inserted + self.updated + self.skipped

    @property
    def total(self) -> int:
        return self.stored + self.failed

    def record(self, result: StorageResult) -> None:
        if result is StorageResult.INSERTED:
            self.inserted += 1
        elif result is StorageResult.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "stored": self.stored,
        }


@dataclass
class UpsertReport:
    """
    Resultado agregado de StorageManager.upsert_batch.

    `stored_count` es el conteo del ULTIMO backend procesado (no la suma ni el
    minimo). Cuando los backends no coinciden, `diverged` queda en True para que
    el caller lo vea en lugar de confiar ciegamente en ese numero.
    """

    table_name: str
    results: List[BatchResult] = field(default_factory=list)

    @property
    def stored_count(self) -> int:
        if not self.results:
            return 0
        return self.results[-1].stored

    @property
    def failed_count(self) -> int:
        if not self.results:
            return 0
        return self.results[-1].failed

    @property
    def diverged(self) -> bool:
        return len({r.stored for r in self.results}) > 1

    @property
    def per_backend(self) -> Dict[str, BatchResult]:
        return {r.backend: r for r in self.results}

    def for_backend(self, backend: str) -> Optional[BatchResult]:
        return self.per_backend.get(backend)
