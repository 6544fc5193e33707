"""Maps the domain error taxonomy onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rivor.errors import (
    ConflictError,
    DuplicateExecutionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from rivor.schemas.appointments import ConflictSummary

logger = logging.getLogger(__name__)


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def _conflict(request: Request, exc: ConflictError) -> JSONResponse:
    body: dict = {"error": str(exc)}
    if isinstance(exc, SlotConflictError):
        body["conflicts"] = [
            ConflictSummary.model_validate(c).model_dump(mode="json") for c in exc.conflicts
        ]
        body["suggestions"] = [s.model_dump(mode="json") for s in exc.suggestions]
    elif isinstance(exc, DuplicateExecutionError):
        body["execution_id"] = str(exc.execution_id)
    logger.info("%s %s -> 409: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers for the domain errors on ``app``."""
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ConflictError, _conflict)
