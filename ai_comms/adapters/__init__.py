"""
Adapters for remote inference providers.

Provider-agnostic architecture: Protocol defines WHAT, implementations define HOW.
"""

from .base import BaseProviderAdapter, ProviderAdapter
from .anthropic import AnthropicAdapter
from .openai import OpenAIAdapter

__all__ = ["ProviderAdapter", "BaseProviderAdapter", "OpenAIAdapter", "AnthropicAdapter"]
