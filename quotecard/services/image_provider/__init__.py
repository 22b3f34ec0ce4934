"""Image provider adapters sharing the ProviderResult contract."""
from __future__ import annotations

from .ark import ArkImageAdapter
from .base import ImageAdapter, extract_image
from .jimeng import JimengImageAdapter
from .primary import PrimaryImageAdapter
from .public import PublicImageFallback, build_public_image_url

__all__ = [
    "ArkImageAdapter",
    "ImageAdapter",
    "JimengImageAdapter",
    "PrimaryImageAdapter",
    "PublicImageFallback",
    "build_public_image_url",
    "extract_image",
]
