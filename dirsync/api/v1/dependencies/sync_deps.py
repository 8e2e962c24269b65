"""
Dependencias para inyeccion del servicio de sync y del storage.

Ambos se construyen en el startup y viven en `app.state`.
"""
from fastapi import HTTPException, Request, status

from dirsync.application.use_cases.sync_use_cases import SyncService
from dirsync.infrastructure.storage.manager import StorageManager


def get_sync_service(request: Request) -> SyncService:
    """
    Dependencia para obtener el servicio de sincronizacion.

    Raises:
        HTTPException 503: si el servicio no se inicializo
    """
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="El servicio de sincronizacion no esta inicializado"
        )
    return service


def get_storage_manager(request: Request) -> StorageManager:
    """Dependencia para obtener el StorageManager."""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="El storage no esta inicializado"
        )
    return storage
