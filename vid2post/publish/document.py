"""Article assembly: generated fields -> Markdown body -> HTML draft payload."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import markdown


@dataclass(frozen=True)
class ArticleParts:
    source_url: str
    title: str
    teaser: str
    summary: str
    cta: str


@dataclass(frozen=True)
class DraftPost:
    title: str
    html: str
    feature_image: Optional[str] = None
    codeinjection_head: Optional[str] = None
    status: str = "draft"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": self.title, "html": self.html, "status": self.status}
        if self.feature_image:
            payload["feature_image"] = self.feature_image
        if self.codeinjection_head:
            payload["codeinjection_head"] = self.codeinjection_head
        return payload


def assemble_body(parts: ArticleParts) -> str:
    """Markdown body: title, source link, teaser, summary, call to action."""
    return "\n\n".join([parts.title, parts.source_url, parts.teaser, parts.summary, parts.cta])


def render_html(body: str) -> str:
    return markdown.markdown(body)


def build_draft(
    parts: ArticleParts,
    *,
    post_title: str,
    feature_image: Optional[str],
    codeinjection_head: Optional[str],
) -> DraftPost:
    return DraftPost(
        title=post_title,
        html=render_html(assemble_body(parts)),
        feature_image=feature_image,
        codeinjection_head=codeinjection_head,
    )
