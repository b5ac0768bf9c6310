"""Thin wrapper around an OpenAI-compatible chat-completion API (Ollama by default)."""

from __future__ import annotations

import logging

from openai import OpenAI as _HTTPClient

from docrag.config import Settings

logger = logging.getLogger(__name__)


class ChatClient:
    """Sends one system + user prompt pair and returns the reply text."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: _HTTPClient | None = None

    def _get_client(self) -> _HTTPClient:
        if self._client is None:
            self._client = _HTTPClient(
                base_url=self._settings.ollama_base_url,
                api_key=self._settings.openai_api_key or "unused",  # Ollama ignores the key
                timeout=self._settings.llm_timeout,
            )
        return self._client

    def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Send a chat completion request and return the assistant's reply."""
        response = self._get_client().chat.completions.create(
            model=self._settings.llm_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self._settings.llm_temperature if temperature is None else temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content or ""
        logger.debug("LLM response (%d chars): %s…", len(content), content[:120])
        return content.strip()
