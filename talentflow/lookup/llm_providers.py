"""
Text-generation provider abstractions.

Stages that extract structured facts from free text (education, for
instance) ask a text-generation model for a JSON object.  This module
defines a common async interface for such providers with concrete
implementations for OpenAI, Gemini (Google Generative AI) and a local
Ollama server.  A placeholder implementation is used when nothing is
configured; it never calls out and always answers with a malformed
reply, so callers fall back to their heuristic extractors.

Provider failures are translated into :mod:`talentflow.errors` types
inside each provider, so a rate-limited model aborts a run exactly like
a rate-limited search API does.

:class:`LLMClient` puts a provider behind the shared cache: replies are
decoded with :func:`talentflow.decode.decode_json_reply` and cached by
model and prompt.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from ..cache import CacheStore
from ..decode import Malformed, decode_json_reply
from ..errors import (
    EmptyResult,
    LookupTimeout,
    MalformedResponse,
    NotFound,
    QuotaExceeded,
    RateLimited,
    ServiceUnavailable,
)
from .adapter import LookupAdapter
from .http import request_json

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Abstract base class for text-generation providers."""

    name: str = "llm"
    model: str = ""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the raw text reply for ``prompt``.

        Raises:
            CriticalError: When the provider is throttled or unreachable.
            NonCriticalError: When the provider answered without usable text.
        """
        raise NotImplementedError


class PlaceholderProvider(LLMProvider):
    """Fallback provider that does not call any external API."""

    name = "placeholder"
    model = "placeholder"

    async def generate(self, prompt: str) -> str:
        raise MalformedResponse("no text-generation provider configured", service=self.name)


class OpenAIProvider(LLMProvider):
    """Provider that uses the OpenAI chat completions API."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini") -> None:
        try:
            import openai  # type: ignore
        except ImportError as exc:
            raise RuntimeError("openai package is required for OpenAIProvider. Install it via pip.") from exc
        if not api_key:
            raise ValueError("OPENAI_API_KEY not provided")
        self.openai = openai
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    def _classify(self, exc: Exception) -> Exception:
        openai = self.openai
        if isinstance(exc, openai.RateLimitError):
            if getattr(exc, "code", None) == "insufficient_quota":
                return QuotaExceeded(str(exc), service=self.name)
            return RateLimited(str(exc), service=self.name)
        if isinstance(exc, openai.APITimeoutError):
            return LookupTimeout(str(exc), service=self.name)
        if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError, openai.AuthenticationError)):
            return ServiceUnavailable(str(exc), service=self.name)
        if isinstance(exc, openai.PermissionDeniedError):
            return QuotaExceeded(str(exc), service=self.name)
        if isinstance(exc, openai.NotFoundError):
            return NotFound(str(exc), service=self.name)
        return EmptyResult(str(exc), service=self.name)

    async def generate(self, prompt: str) -> str:
        logger.debug("Sending prompt to OpenAI: %s", prompt[:200])
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.0,
            )
        except self.openai.OpenAIError as exc:
            raise self._classify(exc) from exc
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise EmptyResult("empty completion", service=self.name)
        return content


class GeminiProvider(LLMProvider):
    """Provider that uses Google Generative AI (Gemini) via google-generativeai."""

    name = "gemini"

    def __init__(self, api_key: Optional[str], model: str = "gemini-1.5-flash") -> None:
        try:
            import google.generativeai as genai  # type: ignore
            from google.api_core import exceptions as google_exceptions  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "google-generativeai package is required for GeminiProvider. Install it via pip."
            ) from exc
        if not api_key:
            raise ValueError("GEMINI_API_KEY/GOOGLE_API_KEY not provided")
        self.google_exceptions = google_exceptions
        genai.configure(api_key=api_key)
        self.model = model
        self.client = genai.GenerativeModel(model)

    def _classify(self, exc: Exception) -> Exception:
        g = self.google_exceptions
        if isinstance(exc, g.ResourceExhausted):
            return RateLimited(str(exc), service=self.name)
        if isinstance(exc, g.PermissionDenied):
            return QuotaExceeded(str(exc), service=self.name)
        if isinstance(exc, g.DeadlineExceeded):
            return LookupTimeout(str(exc), service=self.name)
        if isinstance(exc, (g.ServerError, g.Unauthenticated)):
            return ServiceUnavailable(str(exc), service=self.name)
        if isinstance(exc, g.NotFound):
            return NotFound(str(exc), service=self.name)
        return EmptyResult(str(exc), service=self.name)

    async def generate(self, prompt: str) -> str:
        logger.debug("Sending prompt to Gemini: %s", prompt[:200])
        try:
            response = await self.client.generate_content_async(prompt)
        except self.google_exceptions.GoogleAPIError as exc:
            raise self._classify(exc) from exc
        try:
            content = response.text
        except ValueError as exc:
            # blocked or empty candidates
            raise EmptyResult(f"no text in reply: {exc}", service=self.name) from exc
        if not content:
            raise EmptyResult("empty reply", service=self.name)
        return content


class OllamaProvider(LLMProvider):
    """Provider backed by a local Ollama server's ``/api/generate`` endpoint."""

    name = "ollama"

    def __init__(self, session: aiohttp.ClientSession, base_url: str = "http://localhost:11434", model: str = "llama3.1") -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.model = model

    async def generate(self, prompt: str) -> str:
        logger.debug("Sending prompt to Ollama: %s", prompt[:200])
        body = await request_json(
            self.session,
            "POST",
            f"{self.base_url}/api/generate",
            service=self.name,
            json_body={"model": self.model, "prompt": prompt, "stream": False, "options": {"temperature": 0}},
        )
        content = body.get("response") if isinstance(body, dict) else None
        if not content:
            raise EmptyResult("empty reply", service=self.name)
        return content


def get_default_provider(settings: Any, session: Optional[aiohttp.ClientSession] = None) -> LLMProvider:
    """Return an LLMProvider instance based on configuration and API keys.

    The resolution order is:

    1. If ``settings.llm_provider`` is ``"openai"``, ``"gemini"``,
       ``"ollama"`` or ``"placeholder"``, the corresponding provider is
       selected.  If it cannot be initialised (missing key or package) a
       warning is logged and automatic detection is used.
    2. If an OpenAI key is present, return :class:`OpenAIProvider`.
    3. If a Gemini key is present, return :class:`GeminiProvider`.
    4. Otherwise, return :class:`PlaceholderProvider`.

    Args:
        settings: A :class:`talentflow.config.Settings` instance.
        session: Session used by :class:`OllamaProvider`.

    Returns:
        An instance of :class:`LLMProvider`.
    """
    preferred = (settings.llm_provider or "").lower()
    if preferred:
        if preferred == "openai":
            try:
                return OpenAIProvider(settings.openai_api_key, model=settings.openai_model)
            except (RuntimeError, ValueError) as exc:
                logger.warning("LLM_PROVIDER=openai but failed to initialise OpenAIProvider: %s", exc)
        elif preferred == "gemini":
            try:
                return GeminiProvider(settings.gemini_api_key, model=settings.gemini_model)
            except (RuntimeError, ValueError) as exc:
                logger.warning("LLM_PROVIDER=gemini but failed to initialise GeminiProvider: %s", exc)
        elif preferred == "ollama":
            if session is not None:
                return OllamaProvider(session, settings.ollama_base_url, model=settings.ollama_model)
            logger.warning("LLM_PROVIDER=ollama but no HTTP session was supplied")
        elif preferred == "placeholder":
            logger.info("LLM_PROVIDER=placeholder; using placeholder provider")
            return PlaceholderProvider()
        else:
            logger.warning("Unknown LLM_PROVIDER value '%s'; falling back to automatic detection", preferred)
    if settings.openai_api_key:
        try:
            return OpenAIProvider(settings.openai_api_key, model=settings.openai_model)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Failed to initialise OpenAIProvider: %s", exc)
    if settings.gemini_api_key:
        try:
            return GeminiProvider(settings.gemini_api_key, model=settings.gemini_model)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Failed to initialise GeminiProvider: %s", exc)
    logger.info("No LLM API keys found; using placeholder provider")
    return PlaceholderProvider()


class LLMClient:
    """Cached, decoded JSON generation on top of an :class:`LLMProvider`."""

    def __init__(self, provider: LLMProvider, store: CacheStore, *, timeout: float = 60.0) -> None:
        self.provider = provider
        self.adapter = LookupAdapter(f"llm_{provider.name}", store, timeout=timeout)

    @property
    def adapters(self):
        return [self.adapter]

    async def generate_json(self, prompt: str) -> Dict[str, Any]:
        """Return the decoded JSON object for ``prompt``.

        A reply that cannot be decoded yields ``{"_empty_reason": ...}``
        carrying the decode failure reason; it is not cached.
        """

        async def fetch() -> Dict[str, Any]:
            text = await self.provider.generate(prompt)
            result = decode_json_reply(text)
            if isinstance(result, Malformed):
                raise MalformedResponse(result.reason, service=self.provider.name, raw_text=result.raw_text)
            return result.value

        # prompts are case-sensitive; key on the model and the exact prompt
        key = {"model": self.provider.model, "prompt_sha": _sha(prompt)}
        return await self.adapter.fetch_or_cache(key, fetch)


def _sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
