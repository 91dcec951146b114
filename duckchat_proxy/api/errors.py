"""Exception handlers rendering proxy errors as OpenAI-style JSON."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.exceptions import ProxyError

logger = logging.getLogger("duckchat-proxy")


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.warning(
        f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.message}"
    )
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProxyError, proxy_error_handler)
