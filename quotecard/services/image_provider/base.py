from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from quotecard.schemas import ProviderResult

_ARRAY_KEYS = ("data", "images", "result")


class ImageAdapter(Protocol):
    name: str

    async def generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> ProviderResult:
        ...


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_image(payload: Any) -> Optional[ProviderResult]:
    """Normalise the known image response shapes into a ProviderResult.

    Precedence, first match wins:

    1. flat ``image_url`` / ``url``
    2. first entry of ``data`` / ``images`` / ``result``: ``url`` and
       ``image_url`` before ``b64_json`` and ``base64``
    3. flat ``image_base64`` / ``b64_json``
    """

    if not isinstance(payload, Mapping):
        return None

    for key in ("image_url", "url"):
        url = _text(payload.get(key))
        if url:
            return ProviderResult.from_url(url)

    for key in _ARRAY_KEYS:
        candidates = payload.get(key)
        if not isinstance(candidates, list) or not candidates:
            continue
        item = candidates[0]
        if isinstance(item, Mapping):
            for url_key in ("url", "image_url"):
                url = _text(item.get(url_key))
                if url:
                    return ProviderResult.from_url(url)
            for b64_key in ("b64_json", "base64"):
                encoded = _text(item.get(b64_key))
                if encoded:
                    return ProviderResult.from_base64(encoded)
        break

    for key in ("image_base64", "b64_json"):
        encoded = _text(payload.get(key))
        if encoded:
            return ProviderResult.from_base64(encoded)

    return None
