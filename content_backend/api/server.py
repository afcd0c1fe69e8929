"""
Content pipeline API.

Run locally from content_backend/:
python -m uvicorn api.server:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import get_sessionmaker
from .migration_guard import should_verify_db_head_on_startup, verify_db_is_at_head
from .routers import auth_router, clients_router, content_router
from .settings import env_flag
from .task_queue import PipelineTaskWorker

load_dotenv()

app = FastAPI(title="Content Pipeline API")
_pipeline_worker: Optional[PipelineTaskWorker] = None

cors_origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "").split(",") if origin.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(auth_router)
app.include_router(clients_router)
app.include_router(content_router)


def _configure_pipeline_logger() -> None:
    level_name = os.getenv("PIPELINE_LOG_LEVEL", "INFO").strip().upper()
    logging.getLogger("content_backend").setLevel(getattr(logging, level_name, logging.INFO))


@app.on_event("startup")
def start_pipeline() -> None:
    global _pipeline_worker
    _configure_pipeline_logger()
    if should_verify_db_head_on_startup():
        verify_db_is_at_head()
    if env_flag("PIPELINE_WORKER_ENABLED", True):
        _pipeline_worker = PipelineTaskWorker(get_sessionmaker())
        _pipeline_worker.start()


@app.on_event("shutdown")
def stop_pipeline() -> None:
    global _pipeline_worker
    if _pipeline_worker is not None:
        _pipeline_worker.stop()
        _pipeline_worker = None


def _error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error, **extra})


def _validation_detail(item: Any) -> Any:
    if not isinstance(item, dict):
        return str(item)
    detail = {key: value for key, value in item.items() if key != "ctx"}
    if isinstance(detail.get("input"), (bytes, bytearray)):
        detail["input"] = detail["input"].decode("utf-8", errors="replace")
    return jsonable_encoder(detail)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", details=[_validation_detail(item) for item in exc.errors()])


@app.get("/health")
async def health() -> Dict[str, bool]:
    return {"ok": True}
