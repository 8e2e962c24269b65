"""
Punto de entrada principal del servicio de sincronizacion.
Configura la aplicacion FastAPI, middlewares, rutas y eventos.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dirsync.api.middlewares.error_handler import ErrorHandlerMiddleware
from dirsync.api.v1.router import api_router
from dirsync.core.config import settings
from dirsync.core.events import lifespan
from dirsync.shared.exceptions.base import AppException


def create_application(with_lifecycle: bool = True) -> FastAPI:
    """
    Factory para crear y configurar la aplicacion FastAPI.

    Args:
        with_lifecycle: Registrar startup/shutdown (storage + loop de sync)

    Returns:
        FastAPI: Instancia configurada de la aplicacion
    """
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Sincronizacion de registros de directorio hacia backends SQL",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan if with_lifecycle else None,
    )

    application.add_middleware(ErrorHandlerMiddleware)

    application.include_router(api_router, prefix="/api")

    # Manejador global de excepciones personalizadas
    @application.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details
            }
        )

    @application.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Estado del servicio y de cada backend."""
        storage = getattr(request.app.state, "storage", None)
        backends = await storage.health_status() if storage is not None else {}
        healthy = storage is not None and all(v == "healthy" for v in backends.values())

        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "app_name": settings.APP_NAME,
                "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT,
                "backends": backends,
            }
        )

    return application


# Crear instancia de la aplicacion
app = create_application()


if __name__ == "__main__":
    import uvicorn
    from loguru import logger

    access_host = "localhost" if settings.HOST == "0.0.0.0" else settings.HOST
    base_url = f"http://{access_host}:{settings.PORT}"

    logger.info("=" * 70)
    logger.info(f"  Health:      {base_url}/health")
    logger.info(f"  Sync status: {base_url}/api/v1/sync/status")
    logger.info(f"  Swagger UI:  {base_url}/docs")
    logger.info("=" * 70)

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
