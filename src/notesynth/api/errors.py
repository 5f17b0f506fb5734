from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.notesynth.errors import (
    ConcurrentModification,
    InvalidState,
    NoteSynthesisError,
    NotFound,
    RecommendationUnavailable,
    TemplateInactive,
    ValidationError,
)

logger = logging.getLogger("notesynth.api")

# Most specific class first; InvalidContext is matched through NotFound.
_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidState, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (TemplateInactive, status.HTTP_409_CONFLICT),
    (RecommendationUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: NoteSynthesisError) -> int:
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def note_synthesis_error_handler(request: Request, exc: NoteSynthesisError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message, "context": exc.context},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NoteSynthesisError, note_synthesis_error_handler)
