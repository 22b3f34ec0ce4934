"""Assemble provider adapters from Settings."""
from __future__ import annotations

import asyncio
from typing import List

import httpx

from quotecard.config import Settings
from quotecard.services.image_provider.ark import ArkImageAdapter
from quotecard.services.image_provider.base import ImageAdapter
from quotecard.services.image_provider.jimeng import JimengImageAdapter
from quotecard.services.image_provider.primary import PrimaryImageAdapter
from quotecard.services.jimeng import JimengTaskClient, Sleep


def build_primary(settings: Settings, client: httpx.AsyncClient | None = None) -> PrimaryImageAdapter:
    return PrimaryImageAdapter(settings.primary, client=client, timeout=settings.http_timeout)


def build_task_client(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> JimengTaskClient:
    return JimengTaskClient(
        settings.jimeng, client=client, sleep=sleep, timeout=settings.http_timeout
    )


def build_fallbacks(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> List[ImageAdapter]:
    """Configured fallback providers in chain order: async task first, then Ark."""

    fallbacks: List[ImageAdapter] = []
    if settings.jimeng.is_configured:
        fallbacks.append(JimengImageAdapter(build_task_client(settings, client, sleep=sleep)))
    if settings.ark.is_configured:
        fallbacks.append(ArkImageAdapter(settings.ark, client=client, timeout=settings.http_timeout))
    return fallbacks
