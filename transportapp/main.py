import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from transportapp.core.config import settings
from transportapp.core.errors import ReservationError, CapacityExceeded
from transportapp.core.logging import setup_logging
from transportapp.db.session import SessionLocal
from transportapp.api.v1.api import api_router

setup_logging()
log = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# CORS: use CORS_ORIGINS from env in production; default to localhost for dev
_default_origins = ["http://127.0.0.1:8080", "http://localhost:8080"]
_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] if settings.CORS_ORIGINS else _default_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReservationError)
def reservation_error_handler(request: Request, exc: ReservationError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {"ok": False, "error": exc.code, "detail": exc.message}
    if isinstance(exc, CapacityExceeded):
        body["available"] = exc.available
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(api_router)


@app.get("/health")
def health():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "db": "ok"}
    except SQLAlchemyError as e:
        log.error("health check: database unreachable: %s", e)
        return JSONResponse(status_code=503, content={"status": "degraded", "db": "unreachable"})
    finally:
        db.close()
