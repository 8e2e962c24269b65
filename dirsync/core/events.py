"""
Manejadores de eventos de inicio y cierre de la aplicacion.

`lifespan` los encadena para FastAPI: el cierre corre siempre, aunque el
loop de sincronizacion haya terminado con error.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from loguru import logger

from dirsync.application.interfaces.storage_observer import CountingStorageObserver
from dirsync.core.bootstrap import build_from_settings
from dirsync.core.config import settings


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa storage, servicio de sync y arranca el loop."""
        try:
            app.state.log_sink = logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            _validate_config()

            observer = CountingStorageObserver()
            service, storage = build_from_settings(settings, observer=observer)
            await storage.initialize()

            app.state.observer = observer
            app.state.storage = storage
            app.state.sync_service = service
            app.state.stop_event = asyncio.Event()
            app.state.sync_task = asyncio.create_task(
                service.run_forever(app.state.stop_event, run_immediately=settings.SYNC_ON_STARTUP)
            )

            logger.success(f"Aplicacion iniciada con backends: {', '.join(storage.backend_names())}")

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida la configuracion critica; solo emite advertencias."""
    warnings = []

    if not settings.GRAPH_ACCESS_TOKEN:
        warnings.append("GRAPH_ACCESS_TOKEN no configurado - el fetch upstream fallara")

    if not (settings.SQLITE_ENABLED or settings.POSTGRES_ENABLED or settings.MSSQL_ENABLED):
        warnings.append("Ningun backend habilitado (SQLITE_ENABLED / POSTGRES_ENABLED / MSSQL_ENABLED)")

    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Detiene el loop de sync y cierra los backends."""
        logger.info("Cerrando aplicacion...")

        stop_event = getattr(app.state, "stop_event", None)
        if stop_event is not None:
            stop_event.set()

        try:
            task = getattr(app.state, "sync_task", None)
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    logger.info("Loop de sincronizacion cancelado")
                except Exception as e:
                    logger.error(f"El loop de sincronizacion termino con error: {e}")
        finally:
            storage = getattr(app.state, "storage", None)
            if storage is not None:
                await storage.cleanup()
                logger.info("Backends de almacenamiento cerrados")

        logger.success("Aplicacion cerrada correctamente")

        log_sink = getattr(app.state, "log_sink", None)
        if log_sink is not None:
            logger.remove(log_sink)
            app.state.log_sink = None

    return shutdown


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Ciclo de vida de la aplicacion: startup, servir, shutdown."""
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()
