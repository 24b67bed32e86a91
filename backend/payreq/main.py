"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.orm.exc import StaleDataError
import asyncio
import logging

from payreq.core.config import settings
from payreq.core.database import init_db, SessionLocal
from payreq.core.exceptions import AppError, ConcurrentModification
from payreq.api.v1 import roles, payment_requests, expense_requests, notifications
from payreq.services.permission_service import RoleService, seed_permissions
from payreq.services.overdue_service import overdue_sweep_loop

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def seed_roles():
    """Permission catalogue and system roles; safe to run on every start"""
    db = SessionLocal()
    try:
        seed_permissions(db)
        role_service = RoleService(db)
        role_service.ensure_system_roles()
        if settings.SEED_BUSINESS_ROLES:
            role_service.ensure_business_roles()
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting up...")
    init_db()
    seed_roles()
    logger.info("Database initialized, permissions and system roles seeded")

    sweep_task = None
    if settings.OVERDUE_SWEEP_ENABLED:
        sweep_task = asyncio.create_task(overdue_sweep_loop(settings.overdue_sweep_interval_seconds))

    yield

    # Shutdown
    logger.info("Shutting down...")
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning(f"Concurrent modification on {request.method} {request.url.path}")
    error = ConcurrentModification()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "error": str(exc)}
    )


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
app.include_router(roles.router, prefix="/api/v1")
app.include_router(payment_requests.router, prefix="/api/v1")
app.include_router(expense_requests.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
