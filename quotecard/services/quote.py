"""Famous-quote lookup via DeepSeek's OpenAI-compatible chat endpoint."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from quotecard.config import DeepSeekConfig
from quotecard.errors import ConfigError, NetworkError, ProtocolError, UpstreamError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that provides famous quotes. When a user provides a name, "
    "you should return ONE famous quote by that person. Return ONLY the quote text in the "
    "response, without any introduction or quotation marks. If the person is Chinese, return "
    "the quote in Chinese. If the person is Western, return the quote in English."
)


def build_messages(name: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Please provide a famous quote by {name}"},
    ]


def _build_client(config: DeepSeekConfig, http_client: httpx.AsyncClient | None) -> AsyncOpenAI:
    kw: dict[str, Any] = {"api_key": config.api_key, "base_url": config.base_url}
    if http_client is not None:
        kw["http_client"] = http_client
    return AsyncOpenAI(**kw)


async def generate_quote(
    name: str,
    config: DeepSeekConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    if not config.is_configured:
        raise ConfigError("Missing DeepSeek config")

    client = _build_client(config, http_client)
    try:
        completion = await client.chat.completions.create(
            model=config.model,
            messages=build_messages(name),
        )
    except APIStatusError as exc:
        raise UpstreamError(exc.status_code, exc.response.text, provider="deepseek") from exc
    except APIConnectionError as exc:
        raise NetworkError(f"deepseek request failed: {exc}") from exc

    quote = ""
    if completion.choices:
        quote = (completion.choices[0].message.content or "").strip()
    if not quote:
        raise ProtocolError("No quote found in response")

    logger.info("[quote.generate] name_len=%s quote_len=%s", len(name), len(quote))
    return quote
