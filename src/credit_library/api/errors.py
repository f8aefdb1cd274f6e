from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import CreditLibraryError, InfraFailure


logger = logging.getLogger(__name__)


async def credit_library_error_handler(
    request: Request, exc: CreditLibraryError
) -> JSONResponse:
    if isinstance(exc, InfraFailure):
        logger.error(
            "Infrastructure failure: %s",
            exc.message,
            extra={"path": request.url.path, "method": request.method},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
        headers=exc.headers or None,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content=InfraFailure().to_payload())


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CreditLibraryError, credit_library_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
