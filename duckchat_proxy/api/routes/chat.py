"""OpenAI-compatible chat completions endpoint."""

import json
import logging

from fastapi import Request, Response

from ...core.exceptions import InvalidRequestError
from ...core.registry import get_router
from ...core.upstream import TOKEN_HEADER
from ...types.chat import ChatRequest

logger = logging.getLogger("duckchat-proxy")


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions

    Callers that want strict conversation continuity send the ``x-vqd-4``
    header returned by their previous request.
    """
    logger.info(f"Handling {request.method} request to {request.url.path}")

    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error(f"Invalid JSON payload: {exc}")
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc

    try:
        chat_request = ChatRequest.from_payload(payload)
    except InvalidRequestError as exc:
        logger.error(f"Rejected chat request: {exc.message}")
        raise

    logger.info(
        f"Processing request for model {chat_request.model}, "
        f"stream={chat_request.stream}, turns={len(chat_request.turns)}"
    )

    try:
        router = get_router()
        response = await router.forward_request(
            chat_request,
            provided_token=request.headers.get(TOKEN_HEADER),
            disconnect_checker=request.is_disconnected,
        )
    except Exception as e:
        logger.error(f"Error processing request for model {chat_request.model}: {e}")
        raise
    logger.info(f"Request for model {chat_request.model} completed successfully")
    return response
