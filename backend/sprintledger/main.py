"""FastAPI application entry point."""
import time
from contextlib import asynccontextmanager
from typing import Any, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sprintledger.config import get_settings
from sprintledger.database import init_db
from sprintledger.errors import DomainError
from sprintledger.logging_config import configure_structured_logging
from sprintledger.routers import approvals, auth, availability, cron, hour_changes, phases, projects, weekly

settings = get_settings()
logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        finally:
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=int((time.time() - start_time) * 1000),
            )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_structured_logging(settings.log_level)
    await init_db()
    yield


app = FastAPI(
    title="Sprintledger",
    description="Consultant capacity allocation and approval engine",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info("domain_error", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "warning": exc.warning},
    )


app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(phases.router)
app.include_router(weekly.router)
app.include_router(hour_changes.router)
app.include_router(approvals.router)
app.include_router(availability.router)
app.include_router(cron.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
