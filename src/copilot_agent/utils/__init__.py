"""Shared helpers for the agent runtime."""

from .slug import slugify

__all__ = ["slugify"]
