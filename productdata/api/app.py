"""
FastAPI application factory for the Product Data Service.

This module creates the FastAPI app with:
- A per-request trace id (``X-Trace-ID``) and access log line
- A request body size limit (413)
- Error mapping from the core's exception taxonomy to JSON responses
- The API routes

Error responses:
    400  {"error": "..."}                     ValidationError from the core
    400  {"errors": [{field, errortype, value, description}]}
                                              request body failed the schema
    404  {"error": "..."}                     NotFoundError
    413  {"error": "Request entity too large"}
    500  {"error": "an error has occurred. Try again"}   anything else

Invariants:
    - Internal error details only reach the log, never the response
    - Every response carries the X-Trace-ID header
"""

import logging
import math
import time
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import Settings
from ..errors import NotFoundError, ProductDataError, ValidationError
from ..mapping.service import ProductDataService
from ..metrics import CountingObserver, NullObserver
from ..store import create_entry_store
from .routes import router

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"

INTERNAL_ERROR_MESSAGE = "an error has occurred. Try again"


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _json_safe(value: Any) -> Any:
    """Replace NaN and infinities, which JSON responses cannot carry, by text."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    return value


def build_service(settings: Settings) -> ProductDataService:
    """Create the store and service described by the settings."""
    observer = CountingObserver() if settings.metrics_enabled else NullObserver()
    return ProductDataService(
        create_entry_store(settings),
        max_size=settings.response_limit,
        observer=observer,
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def schema_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "errortype": err.get("type", ""),
                "value": _json_safe(jsonable_encoder(err.get("input"))),
                "description": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        logger.info(
            "Request failed schema validation",
            extra={"trace_id": _trace_id(request), "error_count": len(errors)},
        )
        return JSONResponse(status_code=400, content=jsonable_encoder({"errors": errors}))

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info(
            "Invalid request",
            extra={"trace_id": _trace_id(request), "code": exc.code, "error": exc.message},
        )
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(ProductDataError)
    async def core_error(request: Request, exc: ProductDataError) -> JSONResponse:
        logger.error(
            "Request failed",
            extra={"trace_id": _trace_id(request), "code": exc.code, "details": exc.details},
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error",
            extra={"trace_id": _trace_id(request)},
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ProductDataService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Service settings (loaded from env if not provided)
        service: Pre-built service; built from settings if not provided

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings()
    service = service or build_service(settings)

    app = FastAPI(
        title="Product Data Service",
        description="Maps SKUs to their products, with merge-on-write upserts.",
        version=__version__,
    )
    app.state.settings = settings
    app.state.service = service

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        started = time.perf_counter()

        content_length = request.headers.get("content-length")
        if content_length is not None and content_length.isdigit() and (
            int(content_length) > settings.max_body_bytes
        ):
            response = JSONResponse(status_code=413, content={"error": "Request entity too large"})
        else:
            response = await call_next(request)

        response.headers[TRACE_HEADER] = trace_id
        logger.info(
            "Request handled",
            extra={
                "trace_id": trace_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            },
        )
        return response

    _register_error_handlers(app)
    app.include_router(router)

    return app
