"""Shared httpx plumbing for provider calls."""
from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from quotecard.errors import NetworkError, ProtocolError, UpstreamError


@asynccontextmanager
async def client_session(
    client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""

    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def post(
    client: httpx.AsyncClient | None,
    url: str,
    *,
    timeout: float,
    provider: str,
    **kwargs: Any,
) -> httpx.Response:
    try:
        async with client_session(client, timeout) as session:
            return await session.post(url, **kwargs)
    except httpx.RequestError as exc:
        raise NetworkError(f"{provider} request failed: {exc}") from exc


def ensure_success(response: httpx.Response, provider: str) -> None:
    if not response.is_success:
        raise UpstreamError(response.status_code, response.text, provider=provider)


def json_body(response: httpx.Response, provider: str) -> dict[str, Any]:
    text = response.text
    if not text:
        return {}
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ProtocolError(f"{provider} returned non-JSON body: {text[:200]}") from exc
    if not isinstance(data, dict):
        raise ProtocolError(f"{provider} returned unexpected JSON: {text[:200]}")
    return data
