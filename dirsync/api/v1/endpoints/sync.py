"""
Endpoints del sync: estado de la ultima pasada y disparo manual.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from loguru import logger
from pydantic import BaseModel

from dirsync.api.v1.dependencies.sync_deps import get_storage_manager, get_sync_service
from dirsync.application.use_cases.sync_use_cases import SyncService
from dirsync.infrastructure.storage.manager import StorageManager


router = APIRouter(prefix="/sync", tags=["Sync"])


class SyncStatusDTO(BaseModel):
    """Estado del servicio de sincronizacion."""
    running: bool
    passes: int
    backends: List[str]
    endpoints: List[str]
    last_pass: Optional[Dict[str, Any]] = None


class SyncRunDTO(BaseModel):
    """Resultado de una pasada disparada desde la API."""
    success: bool
    message: str
    report: Dict[str, Any]


@router.get(
    "/status",
    response_model=SyncStatusDTO,
    summary="Estado del sync"
)
async def sync_status(
    service: SyncService = Depends(get_sync_service),
    storage: StorageManager = Depends(get_storage_manager),
) -> SyncStatusDTO:
    """Devuelve si hay una pasada en curso y el reporte de la ultima."""
    last = service.last_report
    return SyncStatusDTO(
        running=service.is_running,
        passes=service.passes,
        backends=storage.backend_names(),
        endpoints=[e.name for e in service.endpoints],
        last_pass=last.to_dict() if last else None,
    )


@router.post(
    "/run",
    response_model=SyncRunDTO,
    status_code=status.HTTP_200_OK,
    summary="Ejecutar una pasada de sincronizacion"
)
async def sync_run(service: SyncService = Depends(get_sync_service)) -> SyncRunDTO:
    """
    Ejecuta una pasada completa y devuelve su reporte.

    Si ya hay una pasada en curso responde 409 (SYNC_IN_PROGRESS).
    """
    logger.info("Pasada de sincronizacion solicitada desde API")
    report = await service.run_pass()

    message = (
        f"Pasada completada: {report.processed} registro(s) guardado(s), "
        f"{report.failed} fallido(s), {report.skipped} omitido(s)"
    )
    return SyncRunDTO(success=True, message=message, report=report.to_dict())
