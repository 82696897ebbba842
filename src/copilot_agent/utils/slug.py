"""Slug helpers used when naming run logs."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_SLUG_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 80) -> str:
    """Normalize ``value`` into a lowercase, filesystem-friendly slug.

    Slugs longer than ``max_length`` keep a readable prefix and gain a short
    digest suffix so distinct goals still map to distinct names.
    """
    source = (value or "").strip().lower() or fallback.lower()
    slug = _HYPHEN_COLLAPSE.sub("-", _SLUG_PATTERN.sub("-", source)).strip("-")
    if not slug:
        slug = _HYPHEN_COLLAPSE.sub("-", _SLUG_PATTERN.sub("-", fallback.lower())).strip("-") or "item"
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


__all__ = ["slugify"]
