"""
Observador de eventos de almacenamiento.

Reemplaza los contadores globales (insert/update/skip/error) por una
dependencia inyectada: el core se puede testear sin subsistema de metricas y
un exportador externo (Prometheus, etc.) solo tiene que implementar el protocolo.
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Protocol, Tuple

from dirsync.domain.entities.storage import StorageResult


class StorageObserver(Protocol):
    """Recibe un evento por registro procesado en cada backend."""

    def on_result(self, backend: str, table_name: str, result: StorageResult) -> None:
        ...

    def on_error(self, backend: str, table_name: str, error: Exception) -> None:
        ...


class NullStorageObserver:
    """Observador por defecto: ignora todo."""

    def on_result(self, backend: str, table_name: str, result: StorageResult) -> None:
        return None

    def on_error(self, backend: str, table_name: str, error: Exception) -> None:
        return None


class CountingStorageObserver:
    """
    Contadores en memoria por (backend, evento).

    Uso:
        observer = CountingStorageObserver()
        manager = StorageManager(backends, observer=observer)
        ...
        observer.totals()  # {"inserted": 10, "updated": 2, "skipped": 30, "errors": 1}
    """

    def __init__(self) -> None:
        self._counts: Counter[Tuple[str, str]] = Counter()

    def on_result(self, backend: str, table_name: str, result: StorageResult) -> None:
        self._counts[(backend, result.value)] += 1

    def on_error(self, backend: str, table_name: str, error: Exception) -> None:
        self._counts[(backend, "errors")] += 1

    def count(self, backend: str, event: str) -> int:
        return self._counts[(backend, event)]

    def totals(self) -> Dict[str, int]:
        totals: Dict[str, int] = {"inserted": 0, "updated": 0, "skipped": 0, "errors": 0}
        for (_, event), value in self._counts.items():
            totals[event] = totals.get(event, 0) + value
        return totals

    def reset(self) -> None:
        self._counts.clear()
