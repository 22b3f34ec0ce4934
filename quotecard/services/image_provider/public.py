from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

from quotecard.schemas import ProviderResult

PUBLIC_IMAGE_ENDPOINT = "https://copilot-cn.bytedance.net/api/ide/v1/text_to_image"
PORTRAIT_IMAGE_SIZE = "portrait_4_3"

# characters encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    # lone surrogates become "?" instead of raising
    return quote(value, safe=_URI_COMPONENT_SAFE, errors="replace")


def _millis() -> int:
    return int(time.time() * 1000)


def build_public_image_url(prompt: str, *, timestamp: int | None = None) -> str:
    url = (
        f"{PUBLIC_IMAGE_ENDPOINT}?prompt={encode_uri_component(prompt)}"
        f"&image_size={PORTRAIT_IMAGE_SIZE}"
    )
    if timestamp is not None:
        url += f"&t={timestamp}"
    return url


class PublicImageFallback:
    """Unauthenticated text-to-image URL used when every provider failed."""

    name = "public"

    def __init__(
        self, *, cache_bust: bool = True, clock: Callable[[], int] = _millis
    ) -> None:
        self.cache_bust = cache_bust
        self._clock = clock

    def build_url(self, prompt: str) -> str:
        return build_public_image_url(
            prompt, timestamp=self._clock() if self.cache_bust else None
        )

    async def generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> ProviderResult:
        return ProviderResult.from_url(self.build_url(prompt))
