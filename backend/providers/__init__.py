"""Vendor adapters that turn a GenerationRequest into reply text."""

from .manager import ProviderManager

__all__ = ["ProviderManager"]
