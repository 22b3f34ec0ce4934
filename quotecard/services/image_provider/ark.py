from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from quotecard.config import ArkConfig
from quotecard.errors import ConfigError, ProtocolError
from quotecard.schemas import ProviderResult
from quotecard.services.http import ensure_success, json_body, post
from quotecard.services.image_provider.base import extract_image

logger = logging.getLogger(__name__)

_OVERRIDABLE = ("sequential_image_generation", "response_format", "size", "stream", "watermark")


class ArkImageAdapter:
    """Direct synchronous images/generations provider with a bearer key."""

    name = "ark"

    def __init__(
        self,
        config: ArkConfig,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.config = config
        self._client = client
        self._timeout = timeout

    def build_body(self, prompt: str, options: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.config.model,
            "prompt": prompt,
            "sequential_image_generation": "disabled",
            "response_format": "url",
            "size": self.config.size,
            "stream": False,
            "watermark": True,
        }
        for key in _OVERRIDABLE:
            value = (options or {}).get(key)
            if value is not None:
                body[key] = value
        return body

    async def generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> ProviderResult:
        if not self.config.is_configured:
            raise ConfigError("Missing Ark config")

        response = await post(
            self._client,
            self.config.api_url,
            timeout=self._timeout,
            provider=self.name,
            json=self.build_body(prompt, options),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
        )
        ensure_success(response, self.name)

        result = extract_image(json_body(response, self.name))
        if result is None:
            raise ProtocolError("Empty result")
        logger.info("[ark.generate] model=%s kind=%s", self.config.model, result.kind)
        return result
