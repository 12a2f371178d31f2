"""
Main FastAPI application for FUN FARM Rewards Service
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from funfarm_rewards import __version__
from funfarm_rewards.config import settings
from funfarm_rewards.api import (
    system,
    rewards,
    abuse,
    reconciliation,
    exports
)
from funfarm_rewards.errors import (
    BulkPartialFailure,
    ConcurrentClaimConflict,
    DataUnavailable,
    UserNotFound,
    ValidationError
)

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(f"Starting FUN FARM Rewards Service ({settings.APP_ENV})...")
    yield
    logger.info("Shutting down FUN FARM Rewards Service...")


app = FastAPI(
    title="FUN FARM Rewards Service",
    description="Reward calculation, anti-abuse and reconciliation for FUN FARM",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConcurrentClaimConflict)
async def conflict_handler(request: Request, exc: ConcurrentClaimConflict):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(DataUnavailable)
async def data_unavailable_handler(request: Request, exc: DataUnavailable):
    code = status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=code, content={"detail": str(exc), "retryable": exc.retryable})


@app.exception_handler(BulkPartialFailure)
async def partial_failure_handler(request: Request, exc: BulkPartialFailure):
    return JSONResponse(
        status_code=status.HTTP_207_MULTI_STATUS,
        content={"detail": str(exc), **exc.report.model_dump(mode="json")}
    )


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(rewards.router, prefix="/rewards", tags=["Rewards"])
app.include_router(abuse.router, prefix="/abuse", tags=["Abuse"])
app.include_router(reconciliation.router, prefix="/reconciliation", tags=["Reconciliation"])
app.include_router(exports.router, prefix="/exports", tags=["Exports"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "FUN FARM Rewards",
        "version": __version__,
        "status": "running"
    }
