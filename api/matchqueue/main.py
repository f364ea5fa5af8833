import logging
import os
import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import LOG_LEVEL
from .database import SessionLocal
from .deps import close_matching_service
from .errors import ConfigurationError, InfrastructureError, NotFoundError, ValidationError
from .routes import include_modular_routers

logging.getLogger("matchqueue").setLevel(LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="MatchQueue API")
include_modular_routers(app)


@app.exception_handler(ValidationError)
def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": exc.detail, "reason": exc.reason})


@app.exception_handler(NotFoundError)
def _not_found_error(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"message": exc.detail, "reason": exc.reason})


@app.exception_handler(InfrastructureError)
def _infrastructure_error(request: Request, exc: InfrastructureError) -> JSONResponse:
    logger.error("[api] %s %s infrastructure failure operation=%s trace_id=%s", request.method, request.url.path, exc.operation, exc.trace_id)
    return JSONResponse(
        status_code=503,
        content={"message": "Matching is temporarily unavailable", "operation": exc.operation, "trace_id": exc.trace_id},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(ConfigurationError)
def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("[api] configuration error reason=%s detail=%s", exc.reason, exc.detail)
    return JSONResponse(status_code=500, content={"message": "Matching is misconfigured", "trace_id": exc.trace_id})


def run_migrations() -> None:
    env_dir = os.getenv("MIGRATIONS_DIR", "").strip()
    docker_dir = Path("/app/migrations")
    local_dir = Path(__file__).resolve().parents[1] / "migrations"

    if env_dir:
        migrations_dir = Path(env_dir)
    elif docker_dir.exists():
        migrations_dir = docker_dir
    else:
        migrations_dir = local_dir

    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(
            "Migrations directory not found. Checked: "
            f"MIGRATIONS_DIR={env_dir or '<unset>'}, {docker_dir}, {local_dir}"
        )

    files = sorted([f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql"])
    with SessionLocal() as db:
        for fname in files:
            sql = (migrations_dir / fname).read_text(encoding="utf-8")
            db.execute(text(sql))
        db.commit()
    logger.info("[startup] applied %d migration file(s) from %s", len(files), migrations_dir)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


@app.on_event("shutdown")
def on_shutdown() -> None:
    close_matching_service()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
