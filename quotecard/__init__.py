"""Quote card service: portrait generation with provider fallback."""

__version__ = "1.0.0"
