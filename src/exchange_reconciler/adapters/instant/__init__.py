"""Instant document store adapter."""

from __future__ import annotations

from .client import InstantAPIError, InstantStoreClient

__all__ = ["InstantAPIError", "InstantStoreClient"]
