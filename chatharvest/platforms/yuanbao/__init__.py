"""Yuanbao chat adapter."""

from .adapter import YuanbaoAdapter

__all__ = ["YuanbaoAdapter"]
