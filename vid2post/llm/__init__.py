"""Text generation backends.

- `OllamaGenerator`: local Ollama server over HTTP (default)
- `LangChainGenerator`: hosted chat models (OpenAI / Gemini / Anthropic / Fireworks)
- `render_prompt` / `sanitize`: template substitution shared by every backend
"""

from typing import Protocol

from .factory import LangChainGenerator, create_chat_model  # noqa: F401
from .ollama import OllamaGenerator  # noqa: F401
from .prompting import render_prompt, sanitize  # noqa: F401


class TextGenerator(Protocol):
    def generate(self, prompt: str, model: str) -> str: ...
