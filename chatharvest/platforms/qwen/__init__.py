"""Qwen chat adapter."""

from .adapter import QwenAdapter

__all__ = ["QwenAdapter"]
