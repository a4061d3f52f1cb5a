"""
Site Progress Tracker
LLM Gateway — provider-agnostic text generation.

    - Gemini via google-genai when an API key is configured
    - deterministic local stub otherwise (dev/test without keys)
    - auto-retry with exponential backoff

Usage:
    from sitetrack.ai.gateway import LLMGateway
    gw = LLMGateway(api_key=app.config["GEMINI_API_KEY"])
    result = gw.chat([{"role": "user", "content": "Summarise ..."}])
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Gemini Provider ───────────────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Models:
        - gemini-2.5-flash  (default, fast summaries)
        - gemini-2.5-pro    (longer reasoning)
    """

    def __init__(self, api_key: str):
        self.api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                # Gemini uses "user" and "model" roles
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(types.Content(role=role, parts=[types.Part(text=m["content"])]))

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.5),
            max_output_tokens=kwargs.get("max_tokens", 2048),
        )
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)

        response = client.models.generate_content(model=model, contents=contents, config=config)

        usage = getattr(response, "usage_metadata", None)
        return {
            "content": response.text or "",
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
            "model": model,
        }


# ── Local Stub Provider ───────────────────────────────────────────────────────

class LocalStubProvider(LLMProvider):
    """Deterministic responses for dev/testing. No API key required."""

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        report_count = user_msg.count("Tasks:")
        content = (
            "**Overall Assessment:** Progress summary generated locally "
            f"from {report_count} report(s).\n"
            "**Key Recent Activities:** See the latest daily reports.\n"
            "**Risks & Points of Attention:** None detected by the local stub."
        )
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for LLM calls.

    Model names starting with "gemini" route to Gemini when a key is
    configured; everything else (or a missing key) goes to the local stub.
    """

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    def __init__(self, api_key: str | None = None, default_model: str | None = None,
                 backoff_base: float = 1.0):
        self._providers: dict[str, LLMProvider] = {"local": LocalStubProvider()}
        if api_key:
            self._providers["gemini"] = GeminiProvider(api_key)
        self.default_model = default_model or self.DEFAULT_CHAT_MODEL
        self.backoff_base = backoff_base

    @classmethod
    def from_app(cls, app) -> "LLMGateway":
        return cls(
            api_key=app.config.get("GEMINI_API_KEY"),
            default_model=app.config.get("LLM_DEFAULT_CHAT_MODEL"),
        )

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        provider_name = "gemini" if model.startswith("gemini") else "local"
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name
        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def chat(self, messages: list, model: str | None = None, *, max_retries: int = 3,
             purpose: str = "", **kwargs) -> dict:
        """
        Send a chat request, retrying with exponential backoff.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, provider, latency_ms}

        Raises:
            RuntimeError: every attempt failed.
        """
        model = model or self.default_model
        provider, provider_name = self._get_provider(model)

        last_error = None
        for attempt in range(1, max_retries + 1):
            start = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
                result["provider"] = provider_name
                result["latency_ms"] = int((time.time() - start) * 1000)
                logger.info(
                    "LLM call ok: purpose=%s provider=%s model=%s tokens=%d latency=%dms",
                    purpose, provider_name, result["model"],
                    result["prompt_tokens"] + result["completion_tokens"], result["latency_ms"],
                )
                return result
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed: %s", attempt, max_retries, e)
                if attempt < max_retries:
                    threading.Event().wait(min(self.backoff_base * 2 ** (attempt - 1), 4))

        raise RuntimeError(f"LLM call failed after {max_retries} attempts: {last_error}")
