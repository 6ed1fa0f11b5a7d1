"""JSON error bodies: `{"detail": ...}` everywhere, plus `kind` for account errors."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from retriever.auth.errors import AuthError

logger = structlog.get_logger()


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Validation errors without the non-serialisable `ctx`/`url` entries."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


async def _on_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    logger.info("auth_error", path=request.url.path, kind=exc.kind.value)
    body = {"detail": exc.message, "kind": exc.kind.value, **exc.extra}
    return JSONResponse(body, status_code=exc.status_code)


async def _on_http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def _on_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"detail": "Validation error", "errors": jsonable_errors(exc)}, status_code=422)


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, _on_auth_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _on_http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _on_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _on_unhandled)
