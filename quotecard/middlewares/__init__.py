"""Middleware utilities for the quote card service."""
from __future__ import annotations

from quotecard.middlewares.body_guard import BodyGuardMiddleware

__all__ = ["BodyGuardMiddleware"]
