import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coverdesk.api.routes import (
    absences,
    coverage,
    coverage_requests,
    daily_pools,
    health,
    substitution_logs,
)
from coverdesk.core.config import get_settings
from coverdesk.core.exceptions import AppError
from coverdesk.db.bootstrap import ensure_runtime_schema_compatibility

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_runtime_schema_compatibility()
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(absences.router, prefix=settings.api_prefix, tags=["absences"])
app.include_router(coverage_requests.router, prefix=settings.api_prefix, tags=["coverage-requests"])
app.include_router(coverage.router, prefix=f"{settings.api_prefix}/coverage", tags=["coverage"])
app.include_router(daily_pools.router, prefix=settings.api_prefix, tags=["daily-pools"])
app.include_router(substitution_logs.router, prefix=settings.api_prefix, tags=["substitution-logs"])
