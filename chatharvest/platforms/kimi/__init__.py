"""Kimi chat adapter."""

from .adapter import KimiAdapter

__all__ = ["KimiAdapter"]
