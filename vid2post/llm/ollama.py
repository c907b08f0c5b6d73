"""Ollama `/api/generate` client (non-streaming)."""

from __future__ import annotations

import logging

import requests

from vid2post.http import get_session

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434/api/generate"


class OllamaGenerator:
    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        *,
        session: requests.Session | None = None,
        timeout: float = 300.0,
    ) -> None:
        self.endpoint = endpoint
        self.session = session or get_session()
        self.timeout = timeout

    def generate(self, prompt: str, model: str) -> str:
        payload = {"model": model, "stream": False, "prompt": prompt}
        logger.debug(f"POST {self.endpoint} model={model} prompt_chars={len(prompt)}")
        response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        response.raise_for_status()

        try:
            text = response.json().get("response")
        except ValueError as e:
            raise RuntimeError(f"Ollama returned a non-JSON body: {response.text[:200]!r}") from e
        if not text:
            raise RuntimeError("Ollama returned an empty response.")
        return text
