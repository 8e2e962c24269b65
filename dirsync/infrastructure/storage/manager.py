"""
StorageManager: fan-out de escrituras a los backends habilitados.

Diseño (resumen):
- Orden fijo de backends: SQLite -> PostgreSQL -> SQL Server
- Cada operacion se aplica a cada backend, en orden, secuencialmente
- Un error duro (conectividad, setup de tabla, estado) aborta los backends
  restantes y se propaga nombrando el backend que fallo
- upsert_batch reporta el conteo del ultimo backend y marca divergencias

No hay commit distribuido: un fallo en el backend N deja los backends
anteriores ya escritos. Reprocesar el mismo batch es idempotente.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from dirsync.application.interfaces.storage_observer import StorageObserver
from dirsync.core.config import Settings
from dirsync.domain.entities.storage import UpsertReport
from dirsync.infrastructure.storage.base import SqlBackend
from dirsync.infrastructure.storage.mssql_backend import MssqlBackend
from dirsync.infrastructure.storage.postgres_backend import PostgresBackend
from dirsync.infrastructure.storage.sqlite_backend import SqliteBackend
from dirsync.shared.exceptions.base import ConfigurationError
from dirsync.shared.exceptions.storage import (
    HealthCheckError,
    NoBackendsConfiguredError,
    StorageException,
    TableSetupError,
)


def build_backends_from_settings(config: Settings) -> List[SqlBackend]:
    """
    Instancia los backends habilitados en la configuracion, en orden canonico.

    Raises:
        ConfigurationError: si un backend habilitado no tiene URL
    """
    backends: List[SqlBackend] = []

    if config.SQLITE_ENABLED:
        backends.append(SqliteBackend(config.SQLITE_DATABASE_PATH))

    if config.POSTGRES_ENABLED:
        if not config.POSTGRES_URL:
            raise ConfigurationError("POSTGRES_ENABLED=true pero POSTGRES_URL esta vacio", setting="POSTGRES_URL")
        backends.append(
            PostgresBackend(
                config.POSTGRES_URL,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
            )
        )

    if config.MSSQL_ENABLED:
        if not config.MSSQL_URL:
            raise ConfigurationError("MSSQL_ENABLED=true pero MSSQL_URL esta vacio", setting="MSSQL_URL")
        backends.append(
            MssqlBackend(
                config.MSSQL_URL,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
            )
        )

    return backends


class StorageManager:
    """
    Fachada sobre la lista ordenada de backends.
    """

    def __init__(self, backends: Sequence[SqlBackend], observer: Optional[StorageObserver] = None):
        if not backends:
            raise NoBackendsConfiguredError()
        self._backends: List[SqlBackend] = list(backends)
        if observer is not None:
            for backend in self._backends:
                backend.observer = observer

    @classmethod
    def from_settings(cls, config: Settings, observer: Optional[StorageObserver] = None) -> "StorageManager":
        return cls(build_backends_from_settings(config), observer=observer)

    @property
    def backends(self) -> List[SqlBackend]:
        return list(self._backends)

    def backend_names(self) -> List[str]:
        return [b.name for b in self._backends]

    async def initialize(self) -> None:
        """
        Inicializa cada backend en orden; el primer fallo aborta.

        Los backends que ya habian abierto su engine se cierran antes de
        propagar el error.
        """
        opened: List[SqlBackend] = []
        try:
            for backend in self._backends:
                await backend.initialize()
                opened.append(backend)
        except Exception:
            for backend in opened:
                try:
                    await backend.cleanup()
                except Exception as e:
                    logger.error(f"Error cerrando backend {backend.name}: {e}")
            raise
        logger.info(f"Storage inicializado con backends: {', '.join(self.backend_names())}")

    async def ensure_table(self, table_name: str, schema_hint: Optional[Dict[str, Any]] = None) -> None:
        """
        Crea/verifica la tabla en cada backend. Con `schema_hint` (un registro de
        muestra) ademas agrega las columnas que ese registro necesita.
        """
        for backend in self._backends:
            try:
                await backend.ensure_table(table_name)
                if schema_hint:
                    await backend.ensure_schema(table_name, schema_hint)
            except StorageException:
                raise
            except Exception as e:
                raise TableSetupError(backend.name, table_name, str(e)) from e

    async def upsert_batch(self, table_name: str, records: Sequence[Dict[str, Any]]) -> UpsertReport:
        """
        Escribe el batch en cada backend, en orden.

        Returns:
            UpsertReport; `stored_count` es el conteo del ultimo backend
        """
        report = UpsertReport(table_name=table_name)
        for backend in self._backends:
            result = await backend.upsert_batch(table_name, records)
            report.results.append(result)
            logger.info(
                f"[{backend.name}] {table_name}: {result.stored}/{len(records)} guardados "
                f"(nuevos={result.inserted}, actualizados={result.updated}, "
                f"sin cambios={result.skipped}, fallidos={result.failed})"
            )

        if report.diverged:
            counts = ", ".join(f"{r.backend}={r.stored}" for r in report.results)
            logger.warning(f"Conteos distintos entre backends para {table_name}: {counts}")
        return report

    async def health_check(self) -> None:
        """Verifica cada backend; el primero que falle se propaga con su nombre."""
        for backend in self._backends:
            try:
                await backend.health_check()
            except HealthCheckError:
                raise
            except StorageException as e:
                raise HealthCheckError(backend.name, e.message) from e

    async def health_status(self) -> Dict[str, str]:
        """Estado por backend, sin cortar en el primer fallo (para el endpoint /health)."""
        status: Dict[str, str] = {}
        for backend in self._backends:
            try:
                await backend.health_check()
                status[backend.name] = "healthy"
            except StorageException as e:
                status[backend.name] = f"unhealthy: {e.message}"
        return status

    async def cleanup(self) -> None:
        """Cierra todos los backends; un fallo se loguea y se continua con el resto."""
        for backend in self._backends:
            try:
                await backend.cleanup()
            except Exception as e:
                logger.error(f"Error cerrando backend {backend.name}: {e}")
