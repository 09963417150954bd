"""Shared utilities."""

from doomsettle.utils.time_utils import ensure_utc, utcnow

__all__ = ["ensure_utc", "utcnow"]
