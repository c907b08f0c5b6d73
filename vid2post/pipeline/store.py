"""Filesystem artifact store.

Every artifact of a job lives directly in the job's working directory under a name
derived only from the source id and the artifact kind (`<id>.wav`, `<id>.txt`,
`<id>.jpg`, `<id>_composed.jpg`, ...). That naming is the resume key: re-running a
job against the same directory finds and reuses earlier outputs.

Writes go to a temporary file in the same directory and are moved into place with
`os.replace`, so a canonical path only ever holds a complete artifact.
"""

from __future__ import annotations

import enum
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from vid2post.errors import NotFoundError
from vid2post.pipeline.job import Job


class ArtifactKind(str, enum.Enum):
    RAW_AUDIO = "raw_audio"
    TRANSCRIPT = "transcript"
    SUMMARY_TEXT = "summary_text"
    TITLE_TEXT = "title_text"
    TEASER_TEXT = "teaser_text"
    CTA_TEXT = "cta_text"
    THUMBNAIL = "thumbnail"
    COMPOSED_THUMBNAIL = "composed_thumbnail"
    PUBLISHED_POST = "published_post"


# Suffix appended to the source id for each kind.
_FILENAME_SUFFIXES: dict[ArtifactKind, str] = {
    ArtifactKind.RAW_AUDIO: ".wav",
    ArtifactKind.TRANSCRIPT: ".txt",
    ArtifactKind.SUMMARY_TEXT: "_summary.txt",
    ArtifactKind.TITLE_TEXT: "_title.txt",
    ArtifactKind.TEASER_TEXT: "_teaser.txt",
    ArtifactKind.CTA_TEXT: "_cta.txt",
    ArtifactKind.THUMBNAIL: ".jpg",
    ArtifactKind.COMPOSED_THUMBNAIL: "_composed.jpg",
    ArtifactKind.PUBLISHED_POST: "_post.json",
}


def artifact_filename(source_id: str, kind: ArtifactKind) -> str:
    return f"{source_id}{_FILENAME_SUFFIXES[kind]}"


@dataclass(frozen=True)
class Artifact:
    """Handle to a stage output.

    `location` is None only for degraded values that were never committed; those
    carry their content in `value` and the absorbed failure in `error`.
    """

    kind: ArtifactKind
    produced_by: str
    location: Optional[Path] = None
    value: Optional[str] = None
    degraded: bool = False
    reused: bool = False
    error: Optional[Exception] = None


class ArtifactStore:
    """Maps (job, kind) to a file in the job's working directory."""

    def path(self, job: Job, kind: ArtifactKind) -> Path:
        return job.working_dir / artifact_filename(job.source_id, kind)

    def exists(self, job: Job, kind: ArtifactKind) -> bool:
        return self.path(job, kind).is_file()

    def read_bytes(self, job: Job, kind: ArtifactKind) -> bytes:
        path = self.path(job, kind)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"{kind.value} not found for job {job.source_id} ({path})") from e

    def read_text(self, job: Job, kind: ArtifactKind) -> str:
        return self.read_bytes(job, kind).decode("utf-8")

    def write(self, job: Job, kind: ArtifactKind, data: bytes | str) -> Path:
        """Atomically write `data` to the canonical location of `kind`."""
        if isinstance(data, str):
            data = data.encode("utf-8")

        target = self.path(job, kind)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".partial")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            _unlink_quietly(Path(tmp_name))
            raise
        return target

    def commit_file(self, job: Job, kind: ArtifactKind, produced: Path) -> Path:
        """Move a finished file into the canonical location of `kind`.

        `produced` must sit on the same filesystem as the working directory (stage
        scratch directories are created inside it) so the move is atomic.
        """
        if not produced.is_file():
            raise NotFoundError(f"Produced file does not exist: {produced}")
        target = self.path(job, kind)
        os.replace(produced, target)
        return target

    def delete(self, job: Job, kind: ArtifactKind) -> bool:
        """Remove an artifact so its stage runs again. Returns True if one existed."""
        path = self.path(job, kind)
        if not path.exists():
            return False
        path.unlink()
        return True

    def artifact(self, job: Job, kind: ArtifactKind, produced_by: str) -> Artifact:
        return Artifact(kind=kind, produced_by=produced_by, location=self.path(job, kind))


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
