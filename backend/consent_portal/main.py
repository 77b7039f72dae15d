import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consent_portal.config import settings
from consent_portal.database import init_db
from consent_portal.errors import AlreadyCompleted, ConsentError
from consent_portal.routers import consent

logger = logging.getLogger("consent_portal")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create/migrate the schema and integrity-check the database
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        init_db(settings.db_path)
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except (OSError, sqlite3.Error) as exc:
        logger.error("Could not run startup migration/integrity check: %s", exc)
    if not settings.operator_key_hash:
        logger.warning("CONSENT_OPERATOR_KEY_HASH is not set; operator routes will answer 503.")
    yield


app = FastAPI(
    title="Consent Portal",
    description="Digital consent requests, token-scoped signing and notification workflow",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConsentError)
async def consent_error_handler(request: Request, exc: ConsentError):
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, AlreadyCompleted):
        body["alreadyCompleted"] = True
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(consent.router, prefix=settings.api_prefix)
app.include_router(consent.public_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
