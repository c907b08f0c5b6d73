"""Job identity: one source URL bound to one working directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from vid2post.errors import SourceError


def extract_source_id(url: str, param: str = "v") -> str | None:
    """Return the value of query parameter `param`, or None.

    URLs without a scheme/host, without the parameter, or with an empty value
    yield None.
    """
    try:
        parsed = urlparse(url.strip())
    except (AttributeError, ValueError):
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    values = parse_qs(parsed.query).get(param)
    if not values or not values[0]:
        return None
    return values[0]


@dataclass(frozen=True)
class Job:
    """One pipeline run. Never mutated after creation."""

    source_url: str
    source_id: str
    working_dir: Path

    def __post_init__(self) -> None:
        if not self.source_id:
            raise SourceError("source_id must be non-empty")

    @classmethod
    def from_url(cls, url: str, working_dir: str | Path, *, id_param: str = "v") -> "Job":
        """Create a job for `url`, creating `working_dir` if needed."""
        source_id = extract_source_id(url, id_param)
        if not source_id:
            raise SourceError(f"No '{id_param}' parameter found in source URL: {url!r}")

        working_dir = Path(working_dir).expanduser()
        working_dir.mkdir(parents=True, exist_ok=True)
        return cls(source_url=url, source_id=source_id, working_dir=working_dir)
