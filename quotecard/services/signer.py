"""HMAC-SHA256 request signing for the Volcengine visual API.

The provider authenticates every call with a canonical-request signature:

    canonical request -> string to sign -> derived key -> signature

The signed ``X-Date`` timestamp is part of the string to sign, so a fresh
envelope has to be computed for every outbound request.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Callable, Mapping
from urllib.parse import quote

from quotecard.config import Credentials, JimengConfig
from quotecard.errors import ConfigError
from quotecard.schemas import SignedEnvelope

logger = logging.getLogger(__name__)

ALGORITHM = "HMAC-SHA256"
SIGNED_HEADERS = "content-type;host;x-content-sha256;x-date"
CONTENT_TYPE = "application/json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sha256_hex(value: str | bytes) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return hashlib.sha256(value).hexdigest()


def hmac_sha256(key: bytes, value: str) -> bytes:
    return hmac.new(key, value.encode("utf-8"), hashlib.sha256).digest()


def encode_rfc3986(value: str) -> str:
    """Percent-encode everything outside ``A-Z a-z 0-9 - _ . ~``."""

    return quote(str(value), safe="")


def build_query(params: Mapping[str, str]) -> str:
    return "&".join(
        f"{encode_rfc3986(key)}={encode_rfc3986(params[key])}" for key in sorted(params)
    )


def format_x_date(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def derive_signing_key(secret: str, short_date: str, region: str, service: str) -> bytes:
    k_date = hmac_sha256(secret.encode("utf-8"), short_date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, "request")


class Signer:
    """Stateless signer bound to one credential set and endpoint."""

    def __init__(
        self,
        credentials: Credentials,
        *,
        host: str,
        region: str,
        service: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.credentials = credentials
        self.host = host
        self.region = region
        self.service = service
        self._clock = clock

    @classmethod
    def from_config(
        cls, config: JimengConfig, *, clock: Callable[[], datetime] = _utcnow
    ) -> "Signer":
        return cls(
            config.credentials,
            host=config.host,
            region=config.region,
            service=config.service,
            clock=clock,
        )

    def canonical_headers(self, payload_hash: str, x_date: str) -> str:
        return (
            f"content-type:{CONTENT_TYPE}\n"
            f"host:{self.host}\n"
            f"x-content-sha256:{payload_hash}\n"
            f"x-date:{x_date}\n"
        )

    def sign(self, body: str, query: Mapping[str, str], method: str = "POST") -> SignedEnvelope:
        access_key = self.credentials.access_key
        secret_key = self.credentials.secret_key
        if not (access_key and secret_key):
            raise ConfigError("Missing Jimeng credentials")

        x_date = format_x_date(self._clock())
        short_date = x_date[:8]
        payload_hash = sha256_hex(body)
        canonical_query = build_query(query)

        canonical_request = "\n".join(
            [
                method.upper(),
                "/",
                canonical_query,
                self.canonical_headers(payload_hash, x_date),
                SIGNED_HEADERS,
                payload_hash,
            ]
        )
        canonical_request_hash = sha256_hex(canonical_request)
        scope = f"{short_date}/{self.region}/{self.service}/request"
        string_to_sign = "\n".join([ALGORITHM, x_date, scope, canonical_request_hash])

        signing_key = derive_signing_key(secret_key, short_date, self.region, self.service)
        signature = hmac.new(
            signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()
        authorization = (
            f"{ALGORITHM} Credential={access_key}/{scope}, "
            f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
        )

        logger.debug(
            "[signer] x_date=%s query=%s canonical_sha256=%s",
            x_date,
            canonical_query,
            canonical_request_hash,
        )
        return SignedEnvelope(
            authorization=authorization,
            x_date=x_date,
            payload_hash=payload_hash,
            signature=signature,
            canonical_query=canonical_query,
            canonical_request_hash=canonical_request_hash,
            string_to_sign_hash=sha256_hex(string_to_sign),
        )
