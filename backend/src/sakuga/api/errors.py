"""Maps service exceptions to JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sakuga.services.exceptions import ProviderError, SakugaError

logger = structlog.get_logger()


def error_body(message: str, code: str) -> dict:
    return {"success": False, "error": message, "code": code}


async def sakuga_error_handler(request: Request, exc: SakugaError) -> JSONResponse:
    """Render a SakugaError with the status and code the exception class declares."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request.failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.code,
        error_message=str(exc),
        provider=exc.provider if isinstance(exc, ProviderError) else None,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc) or exc.code, exc.code),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SakugaError, sakuga_error_handler)  # type: ignore[arg-type]
