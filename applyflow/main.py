"""FastAPI application entry point"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from applyflow.api import queue
from applyflow.core.config import settings
from applyflow.core.logging import setup_logging, get_logger
from applyflow.core.middleware import RequestIDMiddleware, LoggingMiddleware
from applyflow.core.exceptions import ApplyFlowException
from applyflow.services.bootstrap import QueueSystem, build_queue_system

logger = get_logger(__name__)


def _error(request: Request, status_code: int, message: str, details) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "details": details,
            "request_id": getattr(request.state, "request_id", "unknown"),
        }
    )


def create_app(queue_system: Optional[QueueSystem] = None, start_workers: bool = False) -> FastAPI:
    """
    Build the API application

    Args:
        queue_system: Pre-built queue system (built from settings when omitted)
        start_workers: Also run the worker pool and scheduler inside the API
            process; by default they run in scripts/worker.py

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
        system = queue_system or build_queue_system()
        app.state.queue_system = system
        if start_workers:
            await system.start()
        try:
            yield
        finally:
            if start_workers:
                await system.stop()
            logger.info("Shutting down application")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Background job queue, scheduler and job-matching workers for ApplyFlow",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    # First added is innermost
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(ApplyFlowException)
    async def applyflow_exception_handler(request: Request, exc: ApplyFlowException):
        logger.error(
            f"ApplyFlow exception: {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", "unknown"), "status_code": exc.status_code}
        )
        return _error(request, exc.status_code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error: {exc.errors()}")
        return _error(request, status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", jsonable_encoder(exc.errors()))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"Database integrity error: {exc}", exc_info=True)
        return _error(
            request,
            status.HTTP_409_CONFLICT,
            "Database constraint violation",
            {"message": "The operation violates a database constraint"}
        )

    @app.get("/")
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        """Liveness only; queue health lives under the queue router"""
        return {"status": "healthy"}

    app.include_router(queue.router, prefix=settings.API_V1_PREFIX)
    return app


setup_logging()
app = create_app()
