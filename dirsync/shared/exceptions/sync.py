"""
Excepciones del sync: fuente upstream y orquestacion de pasadas.
"""
from typing import Optional

from dirsync.shared.exceptions.base import AppException


class UpstreamApiError(AppException):
    """Error de integración con la API de directorio (respuesta no recuperable)."""

    def __init__(self, message: str, status_code_upstream: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="UPSTREAM_API_ERROR",
            details={"upstream_status": status_code_upstream} if status_code_upstream else None
        )
        self.status_code_upstream = status_code_upstream


class UpstreamConnectionError(AppException):
    """No se pudo alcanzar la API de directorio (red caida, timeout)."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Sin conexion con la API de directorio: {reason}",
            status_code=503,
            error_code="UPSTREAM_CONNECTION_ERROR",
        )


class SyncInProgressError(AppException):
    """Se pidio una pasada mientras otra sigue en curso."""

    def __init__(self):
        super().__init__(
            message="Ya hay una pasada de sincronizacion en curso",
            status_code=409,
            error_code="SYNC_IN_PROGRESS",
        )
