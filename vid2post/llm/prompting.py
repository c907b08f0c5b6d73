"""Prompt rendering.

The substituted text is sanitized before it goes into a template: everything that is
not an ASCII letter or whitespace is dropped and newlines become spaces. This changes
what the model sees (no digits, no punctuation), so keep it exactly as is.
"""

from __future__ import annotations

import re

from vid2post.config import PLACEHOLDER

_DISALLOWED = re.compile(r"[^A-Za-z\s]")


def sanitize(text: str) -> str:
    """`sanitize("Hello, World!\\n123") == "Hello World"`."""
    cleaned = _DISALLOWED.sub("", text)
    return cleaned.replace("\n", " ").strip()


def render_prompt(template: str, text: str, placeholder: str = PLACEHOLDER) -> str:
    """Replace the first `placeholder` in `template` with the sanitized `text`."""
    return template.replace(placeholder, sanitize(text), 1)
