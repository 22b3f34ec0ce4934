from __future__ import annotations

import base64
import binascii
import enum
import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, constr, field_validator, model_validator

from quotecard.errors import ProtocolError

_DEFAULT_MEDIA_TYPE = "image/png"


class _CompatModel(BaseModel):
    """Base model configured to ignore unknown fields (Pydantic v2 only)."""

    model_config = ConfigDict(extra="ignore")


def _strip_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# -----------------------------------------------------------------------------
# Pipeline data model
# -----------------------------------------------------------------------------


class GenerationRequest(BaseModel):
    """A single portrait request: trimmed prompt plus provider-specific options."""

    model_config = ConfigDict(frozen=True)

    prompt: constr(strip_whitespace=True, min_length=1)
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("prompt", mode="before")
    @classmethod
    def _replace_surrogates(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.encode("utf-8", "replace").decode("utf-8")
        return value


def _sniff_media_type(data: bytes) -> str:
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError):
        return _DEFAULT_MEDIA_TYPE
    return Image.MIME.get(fmt or "", _DEFAULT_MEDIA_TYPE)


@dataclass(frozen=True)
class ProviderResult:
    """Normalised adapter output: exactly one of ``data`` or ``url`` is meaningful."""

    kind: Literal["base64", "url"]
    data: bytes = b""
    url: str = ""

    def __post_init__(self) -> None:
        if self.kind == "base64" and (not self.data or self.url):
            raise ValueError("base64 results carry data only")
        if self.kind == "url" and (not self.url or self.data):
            raise ValueError("url results carry a url only")

    @classmethod
    def from_base64(cls, encoded: str) -> "ProviderResult":
        text = (encoded or "").strip()
        if text.startswith("data:") and "," in text:
            text = text.split(",", 1)[1]
        text = "".join(text.split())
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError("image payload is not valid base64") from exc
        if not data:
            raise ProtocolError("image payload is empty")
        return cls(kind="base64", data=data)

    @classmethod
    def from_url(cls, url: str) -> "ProviderResult":
        return cls(kind="url", url=url.strip())

    @property
    def media_type(self) -> str:
        if self.kind != "base64":
            return ""
        return _sniff_media_type(self.data)

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii") if self.data else ""

    @property
    def reference(self) -> str:
        """Displayable image reference: a data URI or the remote URL."""

        if self.kind == "url":
            return self.url
        return f"data:{self.media_type};base64,{self.b64}"


@dataclass(frozen=True)
class SignedEnvelope:
    authorization: str
    x_date: str
    payload_hash: str
    signature: str
    canonical_query: str
    canonical_request_hash: str
    string_to_sign_hash: str

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Date": self.x_date,
            "X-Content-Sha256": self.payload_hash,
            "Authorization": self.authorization,
        }

    def diagnostics(self) -> Dict[str, str]:
        return {
            "x_date": self.x_date,
            "payload_sha256": self.payload_hash,
            "canonical_query": self.canonical_query,
            "canonical_request_sha256": self.canonical_request_hash,
            "string_to_sign_sha256": self.string_to_sign_hash,
            "signature": self.signature,
        }


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    DONE = "done"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        # unknown and missing statuses keep the task pending
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING


@dataclass
class AsyncTask:
    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0


@dataclass(frozen=True)
class TaskResult:
    image_base64: str | None = None
    image_url: str | None = None

    def to_provider_result(self) -> ProviderResult:
        if self.image_base64:
            return ProviderResult.from_base64(self.image_base64)
        if self.image_url:
            return ProviderResult.from_url(self.image_url)
        raise ProtocolError("empty result")

    def as_payload(self) -> Dict[str, str]:
        payload: Dict[str, str] = {}
        if self.image_base64:
            payload["image_base64"] = self.image_base64
        if self.image_url:
            payload["image_url"] = self.image_url
        return payload


@dataclass(frozen=True)
class Attempt:
    provider: str
    error: str


@dataclass
class PortraitResult:
    result: ProviderResult
    provider: str
    state: str
    attempts: List[Attempt] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.state == "degraded"


# -----------------------------------------------------------------------------
# HTTP payloads
# -----------------------------------------------------------------------------


class PortraitRequest(_CompatModel):
    name: Optional[str] = Field(None, description="Person to portray; builds the studio prompt")
    prompt: Optional[str] = Field(None, description="Explicit prompt, overrides name")
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", "prompt", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)

    @model_validator(mode="after")
    def _ensure_subject(self) -> "PortraitRequest":
        if not (self.name or self.prompt):
            raise ValueError("one of name/prompt is required")
        return self


class PortraitResponse(_CompatModel):
    image: str = Field(..., description="Data URI or remote URL of the portrait")
    kind: Literal["base64", "url"]
    provider: str
    degraded: bool = False
    export_image: Optional[str] = Field(
        None, description="Same-origin reference for poster export, via /api/image when remote"
    )
    attempts: List[Dict[str, str]] = Field(default_factory=list)


class JimengRequest(_CompatModel):
    model_config = ConfigDict(extra="allow")

    prompt: Optional[str] = None

    @field_validator("prompt", mode="before")
    @classmethod
    def _strip_prompt(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)

    def task_params(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class ArkRequest(_CompatModel):
    prompt: Optional[str] = None
    size: Optional[str] = None
    response_format: Optional[str] = None
    sequential_image_generation: Optional[str] = None
    stream: Optional[bool] = None
    watermark: Optional[bool] = None

    @field_validator("prompt", mode="before")
    @classmethod
    def _strip_prompt(cls, value: Any) -> Optional[str]:
        return _strip_optional(value)

    def options(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"prompt"})


class QuoteRequest(_CompatModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=60)


class QuoteResponse(_CompatModel):
    quote: str


class PosterContent(_CompatModel):
    name: str = ""
    quote: str = ""
    description: str = ""


class PosterValidation(_CompatModel):
    ok: bool
    errors: Dict[str, str] = Field(default_factory=dict)
    filename: Optional[str] = None
