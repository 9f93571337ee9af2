"""Cache-first adapters for the remote collaborators used by the funnel."""

from .adapter import LookupAdapter, empty_dict
from .github import GitHubClient
from .llm_providers import (
    GeminiProvider,
    LLMClient,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
    PlaceholderProvider,
    get_default_provider,
)
from .pdl import PdlClient
from .serpapi import SerpApiClient

__all__ = [
    "GeminiProvider",
    "GitHubClient",
    "LLMClient",
    "LLMProvider",
    "LookupAdapter",
    "OllamaProvider",
    "OpenAIProvider",
    "PdlClient",
    "PlaceholderProvider",
    "SerpApiClient",
    "empty_dict",
    "get_default_provider",
]
