# climate_credit/services/providers.py

"""
Adapters over the hosted language-model SDKs.

Each adapter exposes the same ``complete`` call and translates its SDK's
exceptions into ``ProviderError`` with one of the gateway's failure kinds.
SDK-level retries are disabled so the configured timeout stays a hard bound.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import anthropic
import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from climate_credit.core.config import Settings, settings as default_settings
from climate_credit.core.errors import ErrorKind, ProviderError

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    name: str = "provider"

    def __init__(self, model: str, timeout: float):
        self.model = model
        self.timeout = timeout

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        *,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> str:
        """Return the raw response text, or raise ProviderError."""

    def _fail(self, kind: ErrorKind, message: str) -> ProviderError:
        return ProviderError(self.name, kind, f"{self.name}: {message}")

    def _require_text(self, text: Optional[str]) -> str:
        if not text or not text.strip():
            raise self._fail(ErrorKind.MALFORMED_RESPONSE, "empty response")
        return text


def _kind_for_status(status_code: Optional[int]) -> ErrorKind:
    if status_code in (401, 403):
        return ErrorKind.INVALID_KEY
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (408, 504):
        return ErrorKind.UPSTREAM_TIMEOUT
    return ErrorKind.UPSTREAM_ERROR


class ClaudeProvider(LLMProvider):
    name = "claude"

    def __init__(self, api_key: str, model: str, timeout: float):
        super().__init__(model, timeout)
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, prompt, system_prompt=None, *, max_tokens=1024, temperature=0.2, json_mode=False):
        params = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            params["system"] = system_prompt
        try:
            response = self.client.messages.create(**params)
        except anthropic.APITimeoutError as e:
            raise self._fail(ErrorKind.UPSTREAM_TIMEOUT, f"timed out after {self.timeout}s") from e
        except anthropic.APIStatusError as e:
            raise self._fail(_kind_for_status(e.status_code), e.message) from e
        except anthropic.APIError as e:
            raise self._fail(ErrorKind.UPSTREAM_ERROR, str(e)) from e

        # Claude may split the answer across several text blocks
        text = "".join(
            block.text for block in (response.content or []) if getattr(block, "text", None)
        )
        return self._require_text(text)


class GroqProvider(LLMProvider):
    """Groq serves an OpenAI-compatible API, so the openai SDK is reused with its base URL."""

    name = "groq"

    def __init__(self, api_key: str, model: str, timeout: float, base_url: str):
        super().__init__(model, timeout)
        self.client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    def complete(self, prompt, system_prompt=None, *, max_tokens=1024, temperature=0.2, json_mode=False):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        params = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(**params)
        except openai.APITimeoutError as e:
            raise self._fail(ErrorKind.UPSTREAM_TIMEOUT, f"timed out after {self.timeout}s") from e
        except openai.APIStatusError as e:
            raise self._fail(_kind_for_status(e.status_code), e.message) from e
        except openai.APIError as e:
            raise self._fail(ErrorKind.UPSTREAM_ERROR, str(e)) from e

        if not response.choices:
            raise self._fail(ErrorKind.MALFORMED_RESPONSE, "response has no choices")
        return self._require_text(response.choices[0].message.content)


class GeminiProvider(LLMProvider):
    name = "gemini"

    def __init__(self, api_key: str, model: str, timeout: float):
        super().__init__(model, timeout)
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

    def complete(self, prompt, system_prompt=None, *, max_tokens=1024, temperature=0.2, json_mode=False):
        config_params = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }
        if system_prompt:
            config_params["system_instruction"] = system_prompt
        if json_mode:
            config_params["response_mime_type"] = "application/json"
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(**config_params),
            )
        except httpx.TimeoutException as e:
            raise self._fail(ErrorKind.UPSTREAM_TIMEOUT, f"timed out after {self.timeout}s") from e
        except genai_errors.APIError as e:
            kind = _kind_for_status(e.code)
            # Gemini reports a bad key as 400 API_KEY_INVALID
            if e.code == 400 and "api key" in str(e).lower():
                kind = ErrorKind.INVALID_KEY
            raise self._fail(kind, str(e)) from e
        except httpx.HTTPError as e:
            raise self._fail(ErrorKind.UPSTREAM_ERROR, str(e)) from e

        return self._require_text(response.text)


KNOWN_PROVIDERS = ("claude", "groq", "gemini")


def _make_provider(name: str, config: Settings) -> Optional[LLMProvider]:
    timeout = config.REQUEST_TIMEOUT_SECONDS
    if name == "claude" and config.ANTHROPIC_API_KEY:
        return ClaudeProvider(config.ANTHROPIC_API_KEY, config.CLAUDE_MODEL, timeout)
    if name == "groq" and config.GROQ_API_KEY:
        return GroqProvider(config.GROQ_API_KEY, config.GROQ_MODEL, timeout, config.GROQ_BASE_URL)
    if name == "gemini" and config.GEMINI_API_KEY:
        return GeminiProvider(config.GEMINI_API_KEY, config.GEMINI_MODEL, timeout)
    return None


def build_providers(config: Optional[Settings] = None) -> List[LLMProvider]:
    """Configured providers in precedence order: primary first, then fallback."""
    config = config or default_settings

    providers: List[LLMProvider] = []
    for name in (config.PRIMARY_PROVIDER, config.FALLBACK_PROVIDER):
        if not name:
            continue
        key = name.strip().lower()
        if key not in KNOWN_PROVIDERS:
            logger.warning("Ignoring unknown AI provider '%s' (known: %s)", name, ", ".join(KNOWN_PROVIDERS))
            continue
        if any(p.name == key for p in providers):
            continue
        provider = _make_provider(key, config)
        if provider is None:
            logger.info("AI provider '%s' has no API key; skipping", key)
            continue
        providers.append(provider)
    return providers


def describe_providers(providers: List[LLMProvider]) -> List[Dict[str, str]]:
    return [{"name": p.name, "model": p.model} for p in providers]
