"""Deepseek chat adapter."""

from .adapter import DeepseekAdapter

__all__ = ["DeepseekAdapter"]
