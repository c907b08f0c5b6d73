"""Error taxonomy shared by the pipeline and its adapters."""

from __future__ import annotations


class Vid2PostError(Exception):
    """Base class for every error raised on purpose by this package."""


class ConfigError(Vid2PostError):
    """Missing or invalid configuration. Raised before any stage runs."""


class SourceError(Vid2PostError):
    """The source URL carries no usable identifier."""


class PipelineDefinitionError(Vid2PostError):
    """The stage graph is malformed (cycle, duplicate output, unknown input)."""


class NotFoundError(Vid2PostError):
    """An artifact was read before it was produced."""


class JobCancelled(Vid2PostError):
    """The job was cancelled between stages."""


class StageError(Vid2PostError):
    """A stage failed. `cause` holds the collaborator exception."""

    def __init__(self, stage_name: str, cause: BaseException | str) -> None:
        self.stage_name = stage_name
        self.cause = cause
        super().__init__(f"stage '{stage_name}' failed: {cause}")


class MissingInputError(StageError):
    pass


class AcquisitionError(StageError):
    pass


class TranscriptionError(StageError):
    pass


class GenerationError(StageError):
    pass


class ImageError(StageError):
    pass


class PublishError(StageError):
    pass
