"""Doubao chat adapter."""

from .adapter import DoubaoAdapter

__all__ = ["DoubaoAdapter"]
