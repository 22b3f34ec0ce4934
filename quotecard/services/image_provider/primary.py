from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from quotecard.config import PrimaryConfig
from quotecard.errors import ConfigError, ProtocolError
from quotecard.schemas import ProviderResult
from quotecard.services.http import ensure_success, json_body, post

logger = logging.getLogger(__name__)


def build_generate_content_body(prompt: str, aspect_ratio: str = "3:4") -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": {"aspectRatio": aspect_ratio},
        },
    }


def extract_inline_image(payload: Mapping[str, Any]) -> Optional[str]:
    """Return the first inline image part of the first candidate, if any."""

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0] if isinstance(candidates[0], Mapping) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, Mapping) else None
    for part in parts or []:
        if not isinstance(part, Mapping):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, Mapping) and inline.get("data"):
            return str(inline["data"])
    return None


class PrimaryImageAdapter:
    """Multimodal generateContent provider, authenticated with an API-key header."""

    name = "primary"

    def __init__(
        self,
        config: PrimaryConfig,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.config = config
        self._client = client
        self._timeout = timeout

    def _require_config(self) -> None:
        if not self.config.is_configured:
            raise ConfigError("Missing API config")

    async def relay(self, body: Any) -> httpx.Response:
        """Forward ``body`` verbatim with the API key injected."""

        self._require_config()
        return await post(
            self._client,
            self.config.api_url,
            timeout=self._timeout,
            provider=self.name,
            json=body,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.config.api_key},
        )

    async def generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> ProviderResult:
        aspect_ratio = (options or {}).get("aspect_ratio") or self.config.aspect_ratio
        response = await self.relay(build_generate_content_body(prompt, aspect_ratio))
        ensure_success(response, self.name)

        encoded = extract_inline_image(json_body(response, self.name))
        if not encoded:
            raise ProtocolError("API 返回中未找到图片数据")
        logger.info("[primary.generate] image received prompt_len=%s", len(prompt))
        return ProviderResult.from_base64(encoded)
