"""
Document Conversion Gateway
---------------------------
Entry point for the conversion gateway. Sets up the FastAPI app, routers,
middleware and the collaborators shared by all request handlers.

Routers:
    - v1: Versioned API endpoints (jobs, workflow callbacks, files)

Middleware:
    - InMemoryRateLimiter: Per-route, per-IP rate limiting (bypassed during tests)
    - ErrorMiddleware: Last-resort JSON 500 for unhandled errors
    - EnhancedLoggingMiddleware: Request/response logging with request ids

App State:
    - job_store: InMemoryJobStorage, the only writer of job state
    - artifact_storage: LocalArtifactStorage or S3ArtifactStorage (STORAGE_BACKEND)
    - workflow_forwarder: WorkflowForwarderClient for the conversion webhook
    - callback_receiver: CallbackReceiver applying workflow callbacks

Health Endpoint:
    - GET /health: Returns service status
"""
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from callback_management.callback_receiver import CallbackReceiver
from cloud_management.cloud_manager import CloudManager
from cloud_management.s3_artifact_storage import S3ArtifactStorage
from custom_middleware.error_middleware import ErrorMiddleware, register_exception_handlers
from custom_middleware.logging_middleware import EnhancedLoggingMiddleware
from custom_middleware.rate_limiting_middleware import InMemoryRateLimiter
from local_storages.in_memory_job_storage import InMemoryJobStorage
from local_storages.local_artifact_storage import LocalArtifactStorage
from logging_management.logging_manager import LoggingManager
from needs.ResolveNeedsManager import ResolveNeedsManager
from routers import v1_router
from support.constants import (
    APP_NAME,
    APP_VERSION,
    IS_PRODUCTION,
    ARTIFACT_DIR,
    LOG_FILE_PATH,
    PUBLIC_BASE_URL,
    STORAGE_BACKEND,
)
from worker_clients.workflow_forwarder_client import WorkflowForwarderClient


logger = LoggingManager.setup_logging(
    service_name=APP_NAME, log_file_path=LOG_FILE_PATH, log_level=logging.DEBUG
)


def create_artifact_storage():
    """Pick the artifact storage backend from STORAGE_BACKEND."""
    if STORAGE_BACKEND == "s3":
        cloud_manager = CloudManager()
        s3_client = cloud_manager.create_s3_client_from_env()
        bucket, prefix = CloudManager.parse_s3_path(
            os.getenv("S3_ARTIFACT_LOCATION", "s3://doc-conversion-artifacts/artifacts")
        )
        return S3ArtifactStorage(s3_client, bucket, prefix)
    return LocalArtifactStorage(ARTIFACT_DIR, public_base_url=PUBLIC_BASE_URL)


def init_app_state(application: FastAPI, artifact_storage=None) -> None:
    """
    Register fresh collaborators on app.state. Tests call this again to get an
    empty job store and a temporary artifact directory.
    """
    job_store = InMemoryJobStorage()
    artifact_storage = artifact_storage or create_artifact_storage()
    callback_receiver = CallbackReceiver(job_store, artifact_storage)
    ResolveNeedsManager.resolve_needs(callback_receiver)

    application.state.job_store = job_store
    application.state.artifact_storage = artifact_storage
    application.state.workflow_forwarder = WorkflowForwarderClient()
    application.state.callback_receiver = callback_receiver
    logger.info("Artifact storage backend: %s", artifact_storage.backend_name)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Close the job event publisher on shutdown."""
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)
    yield
    redis_manager = application.state.callback_receiver.redis_manager
    if redis_manager is not None:
        logger.info("Closing Redis connection.")
        await redis_manager.close()


# FastAPI app setup
app = FastAPI(title="doc-conversion-gateway", version=APP_VERSION, lifespan=lifespan)


# Middleware
app.add_middleware(InMemoryRateLimiter)  # Bypassed during tests.
app.add_middleware(ErrorMiddleware)
app.add_middleware(EnhancedLoggingMiddleware, service_name=APP_NAME)
register_exception_handlers(app)


# Include routers
app.include_router(v1_router.router)

init_app_state(app)


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint for the gateway.

    Returns:
        dict: Service status
    """
    return {"status": "ok"}


if not IS_PRODUCTION:
    @app.get("/raise-error", include_in_schema=False)
    async def raise_error():
        """Endpoint to intentionally raise an error for testing error middleware (needed in tests)."""
        raise RuntimeError("Intentional error for testing error middleware")
