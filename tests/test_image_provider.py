import asyncio
import base64
import json

import httpx
import pytest

from quotecard.config import ArkConfig, PrimaryConfig
from quotecard.errors import ConfigError, NetworkError, ProtocolError, UpstreamError
from quotecard.schemas import GenerationRequest, ProviderResult
from quotecard.services.image_provider import (
    ArkImageAdapter,
    PrimaryImageAdapter,
    PublicImageFallback,
    build_public_image_url,
    extract_image,
)

PRIMARY = PrimaryConfig(api_key="primary-key", api_url="https://primary.test/generate")
ARK = ArkConfig(api_key="ark-key", api_url="https://ark.test/images", model="seedream-test")


def _json(status, payload):
    return httpx.Response(status, json=payload)


def call_adapter(adapter_cls, config, handler, prompt="Ada Lovelace", options=None):
    calls = []

    def _record(request):
        calls.append(request)
        return handler(request)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_record)) as client:
            adapter = adapter_cls(config, client=client)
            return await adapter.generate(prompt, options)

    return asyncio.run(_run()), calls


def test_extract_image_prefers_flat_url():
    payload = {"url": "https://img/flat.png", "data": [{"url": "https://img/nested.png"}]}

    result = extract_image(payload)

    assert result.kind == "url"
    assert result.url == "https://img/flat.png"


def test_extract_image_checks_first_entry_url_before_base64(png_b64):
    payload = {"data": [{"b64_json": png_b64, "image_url": "https://img/first.png"}]}

    assert extract_image(payload).url == "https://img/first.png"


def test_extract_image_reads_nested_base64(png_b64):
    result = extract_image({"images": [{"base64": png_b64}]})

    assert result.kind == "base64"
    assert result.media_type == "image/png"


def test_extract_image_only_inspects_first_non_empty_array(png_b64):
    payload = {"data": [{"revised_prompt": "x"}], "images": [{"url": "https://img/other.png"}]}

    assert extract_image(payload) is None
    assert extract_image({"data": [], "result": [{"url": "https://img/r.png"}]}).url == "https://img/r.png"


def test_extract_image_flat_base64_and_unknown_shapes(png_b64):
    assert extract_image({"image_base64": png_b64}).kind == "base64"
    assert extract_image({"status": "ok"}) is None
    assert extract_image(["not", "a", "mapping"]) is None


def test_provider_result_strips_data_uri_prefix(png_b64):
    result = ProviderResult.from_base64(f"data:image/png;base64,{png_b64[:20]}\n{png_b64[20:]}")

    assert result.data == base64.b64decode(png_b64)
    assert result.reference.startswith("data:image/png;base64,")


def test_provider_result_rejects_invalid_base64():
    with pytest.raises(ProtocolError):
        ProviderResult.from_base64("@@not-base64@@")
    with pytest.raises(ProtocolError):
        ProviderResult.from_base64("   ")


def test_provider_result_unknown_bytes_default_to_png():
    result = ProviderResult.from_base64(base64.b64encode(b"opaque bytes").decode())

    assert result.media_type == "image/png"


def test_provider_result_requires_exactly_one_variant():
    with pytest.raises(ValueError):
        ProviderResult(kind="url", url="https://img", data=b"x")
    with pytest.raises(ValueError):
        ProviderResult(kind="base64")


def test_primary_adapter_returns_inline_image(png_b64):
    def handler(request):
        return _json(
            200,
            {
                "candidates": [
                    {
                        "content": {
                            "parts": [
                                {"text": "here you go"},
                                {"inlineData": {"mimeType": "image/png", "data": png_b64}},
                            ]
                        }
                    }
                ]
            },
        )

    result, calls = call_adapter(PrimaryImageAdapter, PRIMARY, handler, options={"aspect_ratio": "1:1"})

    assert result.kind == "base64"
    assert result.media_type == "image/png"
    request = calls[0]
    assert str(request.url) == "https://primary.test/generate"
    assert request.headers["x-goog-api-key"] == "primary-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "Ada Lovelace"
    assert body["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]
    assert body["generationConfig"]["imageConfig"]["aspectRatio"] == "1:1"


def test_primary_adapter_without_image_part_is_protocol_error():
    handler = lambda request: _json(200, {"candidates": [{"content": {"parts": [{"text": "no"}]}}]})

    with pytest.raises(ProtocolError):
        call_adapter(PrimaryImageAdapter, PRIMARY, handler)


def test_primary_adapter_quota_error_is_retryable():
    handler = lambda request: _json(429, {"error": {"message": "quota"}})

    with pytest.raises(UpstreamError) as excinfo:
        call_adapter(PrimaryImageAdapter, PRIMARY, handler)

    assert excinfo.value.status == 429
    assert excinfo.value.retryable


def test_primary_adapter_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        call_adapter(PrimaryImageAdapter, PRIMARY, handler)


def test_primary_adapter_requires_config():
    with pytest.raises(ConfigError):
        call_adapter(PrimaryImageAdapter, PrimaryConfig(), lambda request: _json(200, {}))


def test_ark_body_defaults():
    body = ArkImageAdapter(ARK).build_body("lighthouse")

    assert body == {
        "model": "seedream-test",
        "prompt": "lighthouse",
        "sequential_image_generation": "disabled",
        "response_format": "url",
        "size": "2K",
        "stream": False,
        "watermark": True,
    }


def test_ark_body_accepts_overrides():
    body = ArkImageAdapter(ARK).build_body(
        "lighthouse", {"size": "1K", "watermark": False, "response_format": None, "model": "other"}
    )

    assert body["size"] == "1K"
    assert body["watermark"] is False
    assert body["response_format"] == "url"
    assert body["model"] == "seedream-test"


def test_ark_adapter_returns_url_with_bearer_auth():
    result, calls = call_adapter(
        ArkImageAdapter, ARK, lambda request: _json(200, {"data": [{"url": "https://img/ark.png"}]})
    )

    assert result.url == "https://img/ark.png"
    assert calls[0].headers["Authorization"] == "Bearer ark-key"


def test_ark_adapter_empty_result_is_protocol_error():
    with pytest.raises(ProtocolError):
        call_adapter(ArkImageAdapter, ARK, lambda request: _json(200, {"data": []}))


def test_ark_adapter_requires_key():
    with pytest.raises(ConfigError):
        call_adapter(ArkImageAdapter, ArkConfig(), lambda request: _json(200, {}))


def test_public_url_is_deterministic_without_timestamp():
    url = build_public_image_url("Ada Lovelace")

    assert url == (
        "https://copilot-cn.bytedance.net/api/ide/v1/text_to_image"
        "?prompt=Ada%20Lovelace&image_size=portrait_4_3"
    )


def test_public_url_encodes_like_uri_component():
    url = build_public_image_url("a&b=c (x)!", timestamp=42)

    assert "prompt=a%26b%3Dc%20(x)!&" in url
    assert url.endswith("&t=42")



def test_public_url_survives_lone_surrogates():
    url = PublicImageFallback(cache_bust=False).build_url("Ada \ud800")

    assert "prompt=Ada%20%3F&" in url


def test_generation_request_replaces_lone_surrogates():
    request = GenerationRequest(prompt=json.loads('"  Ada \\ud800 "'))

    assert request.prompt == "Ada ?"
    assert "prompt=Ada%20%3F&" in build_public_image_url(request.prompt)


def test_public_fallback_appends_cache_buster():
    fallback = PublicImageFallback(clock=lambda: 1700000000000)

    result = asyncio.run(fallback.generate("Ada Lovelace"))

    assert result.kind == "url"
    assert result.url.endswith("&t=1700000000000")
    assert PublicImageFallback(cache_bust=False).build_url("x").endswith("image_size=portrait_4_3")
