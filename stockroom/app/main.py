import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from stockroom.app.api.v1.router import router as v1_router
from stockroom.app.core.config import settings
from stockroom.services.errors import (
    AuthenticationError,
    DuplicateSerial,
    EmptyResult,
    GatewayError,
    InsufficientStock,
    InventoryError,
    NotFound,
    PermissionDenied,
    ReferentialConflict,
    UnrecognizedFormat,
    ValidationError,
)

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# ordre important : sous-classes avant InventoryError
ERROR_STATUS: list[tuple[type[InventoryError], int]] = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (PermissionDenied, 403),
    (NotFound, 404),
    (EmptyResult, 404),
    (DuplicateSerial, 409),
    (ReferentialConflict, 409),
    (InsufficientStock, 409),
    (UnrecognizedFormat, 422),
    (GatewayError, 502),
]

app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")


def status_for(exc: InventoryError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    body: dict = {"error": type(exc).__name__, "detail": exc.message}
    if isinstance(exc, InsufficientStock):
        body["available"] = exc.available
    if isinstance(exc, DuplicateSerial):
        body["serial_numbers"] = exc.serial_numbers
    return JSONResponse(status_code=status_for(exc), content=body)


@app.middleware("http")
async def log_requests(request: Request, call_next: Callable) -> Response:
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    logger.info(
        "%s %s -> %s (%.3fs)",
        request.method,
        request.url.path,
        response.status_code,
        process_time,
    )
    response.headers["X-Process-Time"] = f"{process_time:.4f}"
    return response


app.include_router(v1_router, prefix="/v1")
