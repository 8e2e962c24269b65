"""
Casos de uso del sync: una pasada y el loop periodico.

Diseño (resumen):
- Una pasada recorre los endpoints configurados en orden, con una pausa
  corta entre endpoints para no gatillar rate-limits upstream
- Por endpoint: fetch -> filtro de OS (solo dispositivos) -> ensure_table ->
  upsert_batch en todos los backends
- Las pasadas nunca se solapan: un lock asyncio serializa run_pass y el loop
  no programa la siguiente hasta que termina la anterior
- Solo los errores de conectividad (backend o upstream) abortan la pasada;
  el loop los loguea y reintenta tras RETRY_DELAY_SECONDS
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from dirsync.application.interfaces.record_source import RecordSource
from dirsync.application.services.record_filter import DeviceOsFilter
from dirsync.core.config import EndpointConfig
from dirsync.infrastructure.storage.manager import StorageManager
from dirsync.shared.exceptions.storage import BackendConnectionError, TableSetupError
from dirsync.shared.exceptions.sync import SyncInProgressError, UpstreamApiError, UpstreamConnectionError
from dirsync.shared.utils.datetime_utils import utc_now


DEVICES_ENDPOINT = "devices"

CONNECTIVITY_ERRORS = (BackendConnectionError, UpstreamConnectionError)


@dataclass
class EndpointReport:
    """Resultado de sincronizar un endpoint en una pasada."""

    endpoint: str
    table_name: str
    fetched: int = 0
    filtered_out: int = 0
    stored: int = 0
    unchanged: int = 0
    failed: int = 0
    diverged: bool = False
    per_backend: Dict[str, Dict[str, int]] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "table_name": self.table_name,
            "fetched": self.fetched,
            "filtered_out": self.filtered_out,
            "stored": self.stored,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "diverged": self.diverged,
            "per_backend": self.per_backend,
            "error": self.error,
        }


@dataclass
class PassReport:
    """
    Resultado de una pasada completa.

    Una pasada con fallos por registro sigue siendo exitosa: `processed`,
    `failed` y `skipped` se reportan por separado.
    """

    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"
    error: Optional[str] = None
    endpoints: List[EndpointReport] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(e.stored for e in self.endpoints)

    @property
    def failed(self) -> int:
        return sum(e.failed for e in self.endpoints)

    @property
    def skipped(self) -> int:
        """Registros sin cambios (mismo change-hash) + descartados por el filtro."""
        return sum(e.unchanged + e.filtered_out for e in self.endpoints)

    @property
    def endpoint_errors(self) -> int:
        return sum(1 for e in self.endpoints if e.error)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "endpoint_errors": self.endpoint_errors,
            "error": self.error,
            "endpoints": [e.to_dict() for e in self.endpoints],
        }


class SyncService:
    """
    Orquestador de pasadas de sincronizacion.
    """

    def __init__(
        self,
        *,
        storage: StorageManager,
        source: RecordSource,
        endpoints: Sequence[EndpointConfig],
        os_filter: Optional[DeviceOsFilter] = None,
        poll_interval: float = 3600.0,
        endpoint_delay: float = 0.5,
        retry_delay: float = 30.0,
    ) -> None:
        self._storage = storage
        self._source = source
        self._endpoints = [e for e in endpoints if e.enabled]
        self._os_filter = os_filter or DeviceOsFilter([])
        self._poll_interval = poll_interval
        self._endpoint_delay = endpoint_delay
        self._retry_delay = retry_delay
        self._lock = asyncio.Lock()
        self._last_report: Optional[PassReport] = None
        self._passes = 0

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_report(self) -> Optional[PassReport]:
        return self._last_report

    @property
    def passes(self) -> int:
        return self._passes

    @property
    def endpoints(self) -> List[EndpointConfig]:
        return list(self._endpoints)

    async def run_pass(self) -> PassReport:
        """
        Ejecuta una pasada completa.

        Raises:
            SyncInProgressError: si ya hay una pasada en curso
            BackendConnectionError / UpstreamConnectionError: conectividad perdida
        """
        if self._lock.locked():
            raise SyncInProgressError()

        async with self._lock:
            self._passes += 1
            report = PassReport(started_at=utc_now())
            self._last_report = report
            logger.info(f"Iniciando pasada #{self._passes} ({len(self._endpoints)} endpoints)")

            try:
                for index, endpoint in enumerate(self._endpoints):
                    if index > 0 and self._endpoint_delay > 0:
                        await asyncio.sleep(self._endpoint_delay)
                    report.endpoints.append(await self._sync_endpoint(endpoint))
            except BaseException as e:
                report.status = "failed"
                report.error = str(e) or e.__class__.__name__
                report.finished_at = utc_now()
                logger.error(f"Pasada #{self._passes} abortada: {report.error}")
                raise

            report.status = "success"
            report.finished_at = utc_now()
            logger.info(
                f"Pasada #{self._passes} completada en {report.duration_seconds:.1f}s: "
                f"procesados={report.processed}, fallidos={report.failed}, "
                f"omitidos={report.skipped}, endpoints con error={report.endpoint_errors}"
            )
            return report

    async def _sync_endpoint(self, endpoint: EndpointConfig) -> EndpointReport:
        result = EndpointReport(endpoint=endpoint.name, table_name=endpoint.table_name)
        logger.info(f"Sincronizando {endpoint.name} -> {endpoint.table_name}")

        try:
            # requests es bloqueante: el fetch corre en un thread
            records = await asyncio.to_thread(self._source.fetch_all, endpoint)
        except UpstreamApiError as e:
            result.error = e.message
            logger.error(f"Error obteniendo {endpoint.name}: {e.message}")
            return result

        result.fetched = len(records)
        if endpoint.name == DEVICES_ENDPOINT:
            records = self._os_filter.apply(records)
            result.filtered_out = result.fetched - len(records)

        try:
            await self._storage.ensure_table(endpoint.table_name)
        except TableSetupError as e:
            result.error = e.message
            logger.error(e.message)
            return result

        if not records:
            logger.info(f"Sin registros para {endpoint.name}")
            return result

        upsert = await self._storage.upsert_batch(endpoint.table_name, records)
        last = upsert.results[-1] if upsert.results else None
        result.stored = upsert.stored_count
        result.failed = upsert.failed_count
        result.unchanged = last.skipped if last else 0
        result.diverged = upsert.diverged
        result.per_backend = {r.backend: r.to_dict() for r in upsert.results}

        logger.info(
            f"{endpoint.name}: {result.stored}/{result.fetched} guardados, "
            f"{result.failed} fallidos, {result.filtered_out} filtrados"
        )
        return result

    async def run_forever(self, stop_event: asyncio.Event, run_immediately: bool = True) -> None:
        """
        Loop periodico. La siguiente pasada arranca `poll_interval` despues de que
        termino la anterior; tras un error de conectividad espera `retry_delay`.

        Termina cuando se setea `stop_event` (despues de la pasada en curso).
        """
        logger.info(
            f"Loop de sincronizacion iniciado (intervalo={self._poll_interval}s, "
            f"reintento={self._retry_delay}s)"
        )
        if not run_immediately and await _wait_or_stop(stop_event, self._poll_interval):
            return

        while not stop_event.is_set():
            delay = self._poll_interval
            try:
                await self.run_pass()
            except CONNECTIVITY_ERRORS as e:
                logger.error(f"Error de conectividad, reintento en {self._retry_delay}s: {e}")
                delay = self._retry_delay
            except SyncInProgressError:
                logger.warning("Pasada manual en curso, se salta este tick")
            except Exception as e:
                logger.exception(f"Error inesperado en la pasada: {e}")
                delay = self._retry_delay

            if await _wait_or_stop(stop_event, delay):
                break

        logger.info("Loop de sincronizacion detenido")


async def _wait_or_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Espera `timeout` segundos o hasta stop_event. True si se pidio parar."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
