from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
import logging
import time
import uuid

import anyio
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError

from carecircle.api.routes import router as api_router
from carecircle.core.config import get_settings
from carecircle.core.errors import FamilyCareError
from carecircle.core.events import forward_postgres_events_forever, mark_server_running, mark_server_shutting_down
from carecircle.core.logging import bind_request_context, configure_logging, reset_request_context
from carecircle.db.db import engine
from carecircle.db.models import Base
from carecircle.security.security import subject_from_authorization

settings = get_settings()
configure_logging(
    settings.logging.level,
    log_format=settings.logging.format,
    secret_fields=settings.logging.secret_fields,
)

logger = logging.getLogger("carecircle.main")


def _create_schema() -> None:
    Base.metadata.create_all(engine)
    logger.info("Schema ready on %s (env=%s)", engine.dialect.name, settings.app_env)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mark_server_running()
    await anyio.to_thread.run_sync(_create_schema)
    async with anyio.create_task_group() as tg:
        # relays pg_notify from other workers into this process's event streams
        tg.start_soon(anyio.to_thread.run_sync, forward_postgres_events_forever)
        yield
        mark_server_shutting_down()
        tg.cancel_scope.cancel()
    await anyio.to_thread.run_sync(engine.dispose)


async def _bind_log_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    account_id = subject_from_authorization(request.headers.get("authorization"))
    tokens = bind_request_context(request_id, account_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("%s %s failed after %.1fms", request.method, request.url.path, _elapsed_ms(started))
        raise
    else:
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "%s %s -> %s in %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            _elapsed_ms(started),
        )
        return response
    finally:
        reset_request_context(tokens)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


async def _family_care_error(request: Request, exc: FamilyCareError):
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.as_dict()})


async def _invalid_token(request: Request, exc: JWTError):
    logger.info("%s %s rejected: invalid token", request.method, request.url.path)
    return JSONResponse(status_code=401, content={"detail": "Invalid or expired token"})


async def _http_error(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def _unhandled_error(request: Request, exc: Exception):
    logger.exception("%s %s crashed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(title="CareCircle Family API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(_bind_log_context)

    app.add_exception_handler(FamilyCareError, _family_care_error)
    app.add_exception_handler(JWTError, _invalid_token)
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(api_router)
    return app


app = create_app()
