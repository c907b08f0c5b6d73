"""Stage definitions and the stage executor.

A stage declares what it reads (`input_kinds`), what it writes (`output_kind`) and
how it decides it is already done (`idempotency_check`). The executor owns the rest:
- skip when the idempotency check holds (no collaborator call at all)
- resolve inputs, failing with MissingInputError when one is absent
- run the collaborator in a worker thread, bounded by the stage timeout (a timed-out
  thread is abandoned, not killed; its scratch dir is removed once it returns)
- commit the result atomically, or leave the store untouched on failure. A result
  built from a degraded input is returned uncommitted and marked degraded, so the
  next run rebuilds it from the real input
- wrap failures in the stage's error class and apply its policy

Policies:
- FATAL: the error propagates and the orchestrator stops the job.
- DEGRADE: the error is logged and the stage's fallback value is used for this run.
  The fallback is never committed, so the next run tries the stage again.
- REPORT: the error propagates but the orchestrator does not treat it as fatal.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

from vid2post.errors import MissingInputError, StageError
from vid2post.pipeline.job import Job
from vid2post.pipeline.store import Artifact, ArtifactKind, ArtifactStore

logger = logging.getLogger(__name__)

StageOutput = Union[bytes, str, Path]
IdempotencyCheck = Callable[[ArtifactStore, Job, ArtifactKind], bool]


class StagePolicy(str, enum.Enum):
    FATAL = "fatal"
    DEGRADE = "degrade"
    REPORT = "report"


def output_exists(store: ArtifactStore, job: Job, kind: ArtifactKind) -> bool:
    """Default idempotency check: the canonical output file is already there."""
    return store.exists(job, kind)


def never_done(store: ArtifactStore, job: Job, kind: ArtifactKind) -> bool:
    """Idempotency check for stages whose effect is remote (always runs)."""
    return False


@dataclass(frozen=True)
class StageContext:
    """What a stage's collaborator call gets to see."""

    job: Job
    store: ArtifactStore
    inputs: Mapping[ArtifactKind, Artifact]
    scratch_dir: Path

    def artifact(self, kind: ArtifactKind) -> Artifact:
        try:
            return self.inputs[kind]
        except KeyError as e:
            raise MissingInputError("<context>", f"{kind.value} was not declared as an input") from e

    def text(self, kind: ArtifactKind) -> str:
        art = self.artifact(kind)
        if art.value is not None:
            return art.value
        return self.store.read_text(self.job, kind)

    def data(self, kind: ArtifactKind) -> bytes:
        art = self.artifact(kind)
        if art.location is None and art.value is not None:
            return art.value.encode("utf-8")
        return self.store.read_bytes(self.job, kind)

    def path(self, kind: ArtifactKind) -> Path:
        art = self.artifact(kind)
        return art.location or self.store.path(self.job, kind)


@dataclass(frozen=True)
class Stage:
    """One unit of pipeline work producing exactly one artifact kind."""

    name: str
    output_kind: ArtifactKind
    produce: Callable[[StageContext], StageOutput]
    input_kinds: tuple[ArtifactKind, ...] = ()
    policy: StagePolicy = StagePolicy.FATAL
    error_class: type[StageError] = StageError
    idempotency_check: IdempotencyCheck = output_exists
    timeout: Optional[float] = None
    fallback: Optional[str] = None
    # Stage names that must finish first without their outputs being consumed.
    after: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Stage name must be non-empty.")
        if self.policy is StagePolicy.DEGRADE and self.fallback is None:
            raise ValueError(f"Stage '{self.name}' degrades on failure but has no fallback value.")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Stage '{self.name}' timeout must be > 0.")


class StageExecutor:
    """Runs single stages against an artifact store."""

    def __init__(self, store: ArtifactStore) -> None:
        self.store = store

    async def run(
        self,
        stage: Stage,
        job: Job,
        available: Optional[Mapping[ArtifactKind, Artifact]] = None,
    ) -> Artifact:
        if stage.idempotency_check(self.store, job, stage.output_kind):
            logger.info(f"[{stage.name}] {self.store.path(job, stage.output_kind).name} already exists, skipping.")
            return replace(self.store.artifact(job, stage.output_kind, stage.name), reused=True)

        inputs = self._resolve_inputs(stage, job, available or {})
        tainted = [kind.value for kind, art in inputs.items() if art.degraded]

        logger.info(f"[{stage.name}] running")
        scratch = tempfile.TemporaryDirectory(
            dir=job.working_dir, prefix=f".{stage.name}-", ignore_cleanup_errors=True
        )
        ctx = StageContext(job=job, store=self.store, inputs=inputs, scratch_dir=Path(scratch.name))
        work = asyncio.get_running_loop().run_in_executor(None, stage.produce, ctx)
        try:
            try:
                # shield: a timed-out worker thread keeps running and may still use its scratch dir
                result = await asyncio.wait_for(asyncio.shield(work), timeout=stage.timeout)
                if tainted:
                    artifact = self._carry(stage, result, tainted)
                else:
                    artifact = self._commit(stage, job, result)
            except asyncio.TimeoutError:
                return self._failed(stage, TimeoutError(f"timed out after {stage.timeout:g}s"))
            except Exception as e:  # noqa: BLE001
                return self._failed(stage, e)
        finally:
            if work.done():
                scratch.cleanup()
            else:
                logger.warning(f"[{stage.name}] worker still running; its result will be discarded")
                work.add_done_callback(functools.partial(_cleanup_when_done, scratch))

        if artifact.location is not None:
            logger.info(f"[{stage.name}] wrote {artifact.location.name}")
        return artifact

    def _resolve_inputs(
        self,
        stage: Stage,
        job: Job,
        available: Mapping[ArtifactKind, Artifact],
    ) -> dict[ArtifactKind, Artifact]:
        inputs: dict[ArtifactKind, Artifact] = {}
        for kind in stage.input_kinds:
            art = available.get(kind)
            if art is None and self.store.exists(job, kind):
                art = self.store.artifact(job, kind, produced_by="store")
            if art is None:
                raise MissingInputError(stage.name, f"required input '{kind.value}' is missing")
            inputs[kind] = art
        return inputs

    def _commit(self, stage: Stage, job: Job, result: StageOutput) -> Artifact:
        if isinstance(result, Path):
            location = self.store.commit_file(job, stage.output_kind, result)
            value = None
        elif isinstance(result, (bytes, str)):
            location = self.store.write(job, stage.output_kind, result)
            value = result if isinstance(result, str) else None
        else:
            raise TypeError(f"Stage '{stage.name}' returned unsupported output type {type(result).__name__}")
        return Artifact(kind=stage.output_kind, produced_by=stage.name, location=location, value=value)

    def _carry(self, stage: Stage, result: StageOutput, tainted: list[str]) -> Artifact:
        """Keep a result derived from fallback inputs in memory only."""
        if not isinstance(result, str):
            raise TypeError(
                f"Stage '{stage.name}' has degraded inputs ({', '.join(tainted)}) "
                f"and a non-text output that cannot be held uncommitted"
            )
        logger.warning(f"[{stage.name}] built from fallback {', '.join(tainted)}; not saved, re-run to regenerate")
        return Artifact(kind=stage.output_kind, produced_by=stage.name, value=result, degraded=True)

    def _failed(self, stage: Stage, cause: BaseException) -> Artifact:
        error = stage.error_class(stage.name, cause)
        if stage.policy is not StagePolicy.DEGRADE:
            raise error from cause

        logger.warning(f"[{stage.name}] {error}; continuing with fallback value")
        return Artifact(
            kind=stage.output_kind,
            produced_by=stage.name,
            value=stage.fallback,
            degraded=True,
            error=error,
        )


def _cleanup_when_done(scratch: tempfile.TemporaryDirectory, work: asyncio.Future) -> None:
    if not work.cancelled():
        work.exception()  # mark a late failure as retrieved
    scratch.cleanup()
