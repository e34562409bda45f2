"""API dependencies and error mapping."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from mangekyo.core.translation.errors import ErrorKind, TranslationError
from mangekyo.core.translation.orchestrator import TranslationOrchestrator

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXCEEDED: 402,
    ErrorKind.AUTH_INVALID: 401,
    ErrorKind.UNSUPPORTED_LANGUAGE: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.TEXT_TOO_LONG: 413,
    ErrorKind.CONTENT_FILTERED: 422,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.SERVER_ERROR: 502,
}


def get_orchestrator(request: Request) -> TranslationOrchestrator:
    """Orchestrator built at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Translation service is not ready")
    return orchestrator


Orchestrator = Annotated[TranslationOrchestrator, Depends(get_orchestrator)]


def translation_http_error(error: TranslationError) -> HTTPException:
    """Convert a typed translation error into an HTTP error."""
    status = ERROR_STATUS.get(error.kind, 500)
    if status >= 500:
        logger.error(f"[API] Translation failed: {error}")
    return HTTPException(
        status_code=status,
        detail={"kind": error.kind.value, "engine": error.engine, "message": error.message},
    )
