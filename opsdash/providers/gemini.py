"""GeminiProvider: Google Generative Language API (generateContent) via httpx."""

from __future__ import annotations

import os

from ..types import LLMProviderError
from .base import BaseProvider

API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(BaseProvider):
    """Provider for Gemini models over the public REST endpoint."""

    _timeout = 120.0

    def __init__(
        self,
        api_key: str | None = None,
        api_key_env: str = "GEMINI_API_KEY",
        model: str = "gemini-1.5-pro-002",
        temperature: float = 0.3,
        base_url: str = API_BASE,
    ) -> None:
        super().__init__(model=model, temperature=temperature)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.environ.get(api_key_env, "")
        if not self.api_key:
            raise LLMProviderError(
                f"No API key found. Set {api_key_env} env var or pass api_key.",
                provider="gemini",
            )

    def _provider_name(self) -> str:
        return "gemini"

    def _get_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _get_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict:
        payload: dict = {
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": self.temperature,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _extract_text(self, data: dict) -> str:
        candidates = data.get("candidates", [])
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(p.get("text", "") for p in parts)

    def _extract_usage(self, data: dict) -> dict:
        usage = data.get("usageMetadata", {}) or {}
        return {
            "input_tokens": usage.get("promptTokenCount", 0),
            "output_tokens": usage.get("candidatesTokenCount", 0),
        }
