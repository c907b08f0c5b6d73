"""Pipeline graph + orchestrator.

A `Pipeline` is the validated dependency graph of stages for one job. An edge runs
from the stage producing an artifact kind to every stage listing that kind as an
input, plus explicit `after` ordering edges.

`Orchestrator.run()` starts one asyncio task per stage. Each task waits for its
upstream tasks, then either runs its stage through the executor or records why it
was skipped:
- an upstream stage failed or was itself skipped
- a fatal error already stopped the pipeline
- the cancel token was set

Stages whose inputs are ready run concurrently. Once a fatal error is recorded no
new stage starts; stages already in flight are allowed to finish and commit.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from vid2post.errors import PipelineDefinitionError, StageError
from vid2post.pipeline.job import Job
from vid2post.pipeline.stages import Stage, StageExecutor, StagePolicy
from vid2post.pipeline.store import Artifact, ArtifactKind, ArtifactStore

logger = logging.getLogger(__name__)


class StageStatus(str, enum.Enum):
    PRODUCED = "produced"
    REUSED = "reused"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageOutcome:
    stage: str
    status: StageStatus
    artifact: Optional[Artifact] = None
    error: Optional[BaseException] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (StageStatus.PRODUCED, StageStatus.REUSED, StageStatus.DEGRADED)


@dataclass
class PipelineResult:
    """Per-stage outcomes of one run, in declaration order."""

    outcomes: dict[str, StageOutcome] = field(default_factory=dict)
    fatal_error: Optional[StageError] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.fatal_error is None and not self.cancelled

    @property
    def degraded(self) -> bool:
        return any(o.status is StageStatus.DEGRADED for o in self.outcomes.values())

    def failed(self) -> list[StageOutcome]:
        return [o for o in self.outcomes.values() if o.status is StageStatus.FAILED]

    def artifact(self, kind: ArtifactKind) -> Optional[Artifact]:
        for outcome in self.outcomes.values():
            if outcome.artifact is not None and outcome.artifact.kind is kind:
                return outcome.artifact
        return None

    def summary_lines(self) -> list[str]:
        lines = []
        for o in self.outcomes.values():
            detail = o.reason or (str(o.error) if o.error else "")
            lines.append(f"{o.stage:<12} {o.status.value:<9} {detail}".rstrip())
        return lines


class CancelToken:
    """Thread-safe cooperative cancellation flag, checked between stages."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Pipeline:
    """Validated stage graph bound to one job."""

    def __init__(self, job: Job, stages: Sequence[Stage]) -> None:
        self.job = job
        self._stages: dict[str, Stage] = {}
        producers: dict[ArtifactKind, str] = {}

        for stage in stages:
            if stage.name in self._stages:
                raise PipelineDefinitionError(f"Duplicate stage name '{stage.name}'.")
            if stage.output_kind in producers:
                raise PipelineDefinitionError(
                    f"Stages '{producers[stage.output_kind]}' and '{stage.name}' "
                    f"both produce {stage.output_kind.value}."
                )
            self._stages[stage.name] = stage
            producers[stage.output_kind] = stage.name

        self._deps: dict[str, tuple[str, ...]] = {}
        for stage in self._stages.values():
            deps: list[str] = []
            for kind in stage.input_kinds:
                if kind not in producers:
                    raise PipelineDefinitionError(
                        f"Stage '{stage.name}' needs {kind.value} but no stage produces it."
                    )
                deps.append(producers[kind])
            for name in stage.after:
                if name not in self._stages:
                    raise PipelineDefinitionError(f"Stage '{stage.name}' runs after unknown stage '{name}'.")
                deps.append(name)
            self._deps[stage.name] = tuple(dict.fromkeys(deps))

        self._order = self._topological_order()

    @property
    def stages(self) -> list[Stage]:
        """Stages in a dependency-respecting order (declaration order where free)."""
        return list(self._order)

    def stage(self, name: str) -> Stage:
        return self._stages[name]

    def dependencies(self, name: str) -> tuple[str, ...]:
        return self._deps[name]

    def consumers(self, name: str) -> list[Stage]:
        """Stages built, directly or transitively, from `name`'s output (ordering edges excluded)."""
        found: set[str] = set()
        pending = [self._stages[name].output_kind]
        while pending:
            kind = pending.pop()
            for stage in self._stages.values():
                if kind in stage.input_kinds and stage.name not in found:
                    found.add(stage.name)
                    pending.append(stage.output_kind)
        return [s for s in self._order if s.name in found]

    def producer_of(self, kind: ArtifactKind) -> Optional[Stage]:
        for stage in self._stages.values():
            if stage.output_kind is kind:
                return stage
        return None

    def _topological_order(self) -> list[Stage]:
        remaining = dict(self._deps)
        done: set[str] = set()
        order: list[Stage] = []
        while remaining:
            ready = [name for name, deps in remaining.items() if all(d in done for d in deps)]
            if not ready:
                raise PipelineDefinitionError(f"Stage graph has a cycle among: {', '.join(sorted(remaining))}")
            # Only take the first ready stage so declaration order wins among equals.
            name = ready[0]
            order.append(self._stages[name])
            done.add(name)
            del remaining[name]
        return order


class Orchestrator:
    """Drives one pipeline run."""

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        store: Optional[ArtifactStore] = None,
        executor: Optional[StageExecutor] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        self.pipeline = pipeline
        self.executor = executor or StageExecutor(store or ArtifactStore())
        self.cancel_token = cancel_token or CancelToken()
        self._fatal: Optional[StageError] = None

    def cancel(self) -> None:
        self.cancel_token.cancel()

    async def run(self) -> PipelineResult:
        self._fatal = None
        tasks: dict[str, asyncio.Task[StageOutcome]] = {}
        for stage in self.pipeline.stages:
            tasks[stage.name] = asyncio.create_task(self._run_stage(stage, tasks), name=f"stage:{stage.name}")

        try:
            finished = await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            raise

        by_name = {o.stage: o for o in finished}
        declared = [s.name for s in self.pipeline.stages]
        result = PipelineResult(
            outcomes={name: by_name[name] for name in declared},
            fatal_error=self._fatal,
            cancelled=any(o.reason == "cancelled" for o in finished),
        )
        return result

    async def _run_stage(self, stage: Stage, tasks: dict[str, asyncio.Task[StageOutcome]]) -> StageOutcome:
        upstream = [await tasks[name] for name in self.pipeline.dependencies(stage.name)]

        blocked = _first_not_ok(upstream)
        if blocked is not None:
            logger.info(f"[{stage.name}] skipped: upstream '{blocked.stage}' {blocked.status.value}")
            return StageOutcome(stage.name, StageStatus.SKIPPED, reason=f"upstream '{blocked.stage}' {blocked.status.value}")
        if self._fatal is not None:
            return StageOutcome(stage.name, StageStatus.SKIPPED, reason="pipeline stopped")
        if self.cancel_token.cancelled:
            logger.info(f"[{stage.name}] skipped: job cancelled")
            return StageOutcome(stage.name, StageStatus.SKIPPED, reason="cancelled")

        available = {o.artifact.kind: o.artifact for o in upstream if o.artifact is not None}
        try:
            artifact = await self.executor.run(stage, self.pipeline.job, available)
        except StageError as e:
            if stage.policy is StagePolicy.REPORT:
                logger.error(f"[{stage.name}] {e}")
            else:
                logger.error(f"[{stage.name}] {e}; stopping pipeline")
                if self._fatal is None:
                    self._fatal = e
            return StageOutcome(stage.name, StageStatus.FAILED, error=e)

        if artifact.reused:
            status = StageStatus.REUSED
        elif artifact.degraded:
            status = StageStatus.DEGRADED
        else:
            status = StageStatus.PRODUCED
        return StageOutcome(stage.name, status, artifact=artifact, error=artifact.error)


def _first_not_ok(outcomes: Iterable[StageOutcome]) -> Optional[StageOutcome]:
    for o in outcomes:
        if not o.ok:
            return o
    return None
