# hospital_scheduler/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import (
    Busy, Duplicate, InvalidTransition, NotFound, RepositoryUnavailable,
    SchedulerError, SchedulingConflict, ValidationError,
)
from .jobs.scheduler import start_scheduler

# Routers
from .routers.appointments import router as appointments_router
from .routers.registry import router as registry_router
from .routers.admin import router as admin_router

# ──────────────────────────────────────────────────────────────────────────────
# LOGGING
# Levels come from the environment: LOG_LEVEL, SQLA_LOG_LEVEL
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logging.getLogger("sqlalchemy.engine").setLevel(
    getattr(logging, settings.SQLA_LOG_LEVEL.upper(), logging.WARNING)
)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────────────────────────────────────
app = FastAPI(title=settings.APP_NAME)

app.include_router(appointments_router)
app.include_router(registry_router)
app.include_router(admin_router, prefix="/admin")  # admin.py must not repeat /admin

# ──────────────────────────────────────────────────────────────────────────────
# Errors → HTTP
# ──────────────────────────────────────────────────────────────────────────────
_STATUS_BY_ERROR = [
    (ValidationError, 400),
    (InvalidTransition, 400),
    (NotFound, 404),
    (SchedulingConflict, 409),
    (Duplicate, 409),
    (Busy, 503),
    (RepositoryUnavailable, 503),
]


def status_for(exc: SchedulerError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 500


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(request: Request, exc: SchedulerError):
    code = status_for(exc)
    headers = {"Retry-After": "1"} if code == 503 else None
    if code >= 500:
        logger.warning("%s %s -> %s %s", request.method, request.url.path, code, exc.code)
    return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content=ValidationError(errors).to_dict())


# ──────────────────────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def on_startup():
    init_db()
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    logger.info("Startup complete: %s (%s)", settings.APP_NAME, settings.ENV)


@app.get("/")
def root():
    return {"ok": True, "app": settings.APP_NAME, "env": settings.ENV}
