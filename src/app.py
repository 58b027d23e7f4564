from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.api.routes import router
from src.config import settings
from src.models.db import init_db
from src.notifications.exceptions import PushRelayError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

app = FastAPI(
    title="push_notification_relay",
    description="Relays push notifications to Firebase Cloud Messaging using stored device tokens",
    version="0.1.0",
    debug=settings.app_debug,
)


@app.on_event("startup")
def startup_event() -> None:
    max_attempts = 5
    delay_seconds = 2
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            init_db()
            logger.info("Database initialization completed", extra={"attempt": attempt, "schema": settings.db_schema})
            return
        except SQLAlchemyError as exc:
            last_error = exc
            logger.exception(
                "Database initialization failed",
                extra={"attempt": attempt, "max_attempts": max_attempts},
            )
            if attempt < max_attempts:
                time.sleep(delay_seconds)

    raise RuntimeError("Database initialization failed after retries") from last_error


@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    # Unexpected errors are answered here so they never reach the server error middleware.
    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception("Unexpected error handling push request", extra={"path": request.url.path})
        response = JSONResponse(status_code=400, content={"success": False, "error": str(exc)})
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(PushRelayError)
async def push_relay_error_handler(request: Request, exc: PushRelayError) -> JSONResponse:
    logger.error(
        "Push request failed",
        extra={"error_type": type(exc).__name__, "error": str(exc), "path": request.url.path},
    )
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


app.include_router(router)
