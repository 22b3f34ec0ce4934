"""Request-scoped dependencies and the uniform error body."""
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator

import httpx
from fastapi import Depends, Request
from fastapi.responses import JSONResponse

from quotecard.config import Settings, get_settings
from quotecard.services.jimeng import Sleep


async def get_http_client(
    settings: Settings = Depends(get_settings),
) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        yield client


def get_sleep() -> Sleep:
    return asyncio.sleep


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"error": {"message": message}}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def read_json_body(request: Request) -> Any:
    """Parse the raw body leniently: empty or malformed JSON becomes ``{}``."""

    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {}
