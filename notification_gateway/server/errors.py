"""
Translate framework-level request errors into the gateway's JSON error shape.

FastAPI answers a body it cannot parse with a 422 and its own detail list.
Clients of this gateway only ever see `{success, error}` bodies, and a bad
body is a validation failure, so it becomes a 400.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from notification_gateway.shared.models import ApiResponse

INVALID_BODY = ApiResponse(success=False, error="Invalid request body")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} rejected reason=invalid_body errors={len(exc.errors())}")
    return JSONResponse(status_code=400, content=INVALID_BODY.to_body())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
