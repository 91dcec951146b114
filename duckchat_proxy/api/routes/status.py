"""Liveness endpoint."""

from fastapi.responses import PlainTextResponse


async def status() -> PlainTextResponse:
    """GET /status"""
    return PlainTextResponse("Hi there!")
