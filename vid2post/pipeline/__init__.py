"""
Pipeline core.

- `vid2post.pipeline.job`: job identity (source id + working directory)
- `vid2post.pipeline.store`: artifact store with atomic commits
- `vid2post.pipeline.stages`: stage definitions + executor (idempotency, failure policy)
- `vid2post.pipeline.orchestrator`: stage graph + concurrent orchestrator
- `vid2post.pipeline.article`: the concrete video -> article pipeline
"""

from vid2post.pipeline.article import (
    Collaborators,
    build_article_pipeline,
    collaborators_from_config,
    run_job,
    run_job_async,
)
from vid2post.pipeline.job import Job, extract_source_id
from vid2post.pipeline.orchestrator import (
    CancelToken,
    Orchestrator,
    Pipeline,
    PipelineResult,
    StageOutcome,
    StageStatus,
)
from vid2post.pipeline.stages import Stage, StageContext, StageExecutor, StagePolicy, never_done, output_exists
from vid2post.pipeline.store import Artifact, ArtifactKind, ArtifactStore, artifact_filename

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactStore",
    "CancelToken",
    "Collaborators",
    "Job",
    "Orchestrator",
    "Pipeline",
    "PipelineResult",
    "Stage",
    "StageContext",
    "StageExecutor",
    "StageOutcome",
    "StagePolicy",
    "StageStatus",
    "artifact_filename",
    "build_article_pipeline",
    "collaborators_from_config",
    "extract_source_id",
    "never_done",
    "output_exists",
    "run_job",
    "run_job_async",
]
