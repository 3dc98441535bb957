"""Wenxin chat adapter."""

from .adapter import WenxinAdapter

__all__ = ["WenxinAdapter"]
