"""
Excepciones relacionadas con los backends de almacenamiento.

Taxonomia:
- BackendConnectionError: no se puede hablar con el motor. Fatal para la pasada.
- BackendStateError: uso del adaptador fuera de su ciclo de vida (error de programacion).
- TableSetupError / HealthCheckError: fallos que el StorageManager propaga nombrando el backend.

Los errores por registro (valor invalido, constraint, lock transitorio) NO son
excepciones hacia afuera: el adaptador los registra y sigue con el batch.
"""
from typing import Optional

from dirsync.shared.exceptions.base import AppException


class StorageException(AppException):
    """Excepción base para errores de almacenamiento."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        error_code: str = "STORAGE_ERROR",
        status_code: int = 503,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details={"backend": backend} if backend else None
        )
        self.backend = backend


class BackendConnectionError(StorageException):
    """No hay conectividad con el backend (conexion caida, timeout, host inalcanzable)."""

    def __init__(self, backend: str, reason: str):
        super().__init__(
            message=f"Sin conexion con el backend {backend}: {reason}",
            backend=backend,
            error_code="BACKEND_CONNECTION_ERROR",
        )


class BackendStateError(StorageException):
    """Operacion invocada sobre un backend no inicializado o cerrado."""

    def __init__(self, backend: str, state: str, operation: str):
        super().__init__(
            message=f"No se puede ejecutar '{operation}' en {backend}: estado {state}",
            backend=backend,
            error_code="BACKEND_STATE_ERROR",
            status_code=500,
        )
        self.state = state
        self.operation = operation


class TableSetupError(StorageException):
    """No se pudo crear/verificar una tabla en un backend."""

    def __init__(self, backend: str, table_name: str, reason: str):
        super().__init__(
            message=f"No se pudo crear la tabla {table_name} en el backend {backend}: {reason}",
            backend=backend,
            error_code="TABLE_SETUP_ERROR",
        )
        self.table_name = table_name


class HealthCheckError(StorageException):
    """Health check fallido en un backend."""

    def __init__(self, backend: str, reason: str):
        super().__init__(
            message=f"Health check fallido para el backend {backend}: {reason}",
            backend=backend,
            error_code="HEALTH_CHECK_FAILED",
        )


class NoBackendsConfiguredError(StorageException):
    """No hay ningun backend habilitado en la configuracion."""

    def __init__(self):
        super().__init__(
            message="No hay backends de almacenamiento validos configurados",
            error_code="NO_BACKENDS_CONFIGURED",
            status_code=500,
        )
