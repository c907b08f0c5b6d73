"""The video -> article pipeline.

Stage graph:

    acquire -> transcribe -> summary -> title  \
                     :               -> teaser  > publish
                     :               -> cta    /
                     :...> thumbnail -> compose /

`thumbnail` consumes nothing from the audio chain; it is only ordered after
`transcribe` so no image work happens for a job whose audio or transcript failed.
It then runs alongside text generation.

Per-stage failure policy:
- acquire / transcribe / thumbnail / compose: fatal
- summary / title / teaser / cta: degrade to the configured fallback text
- publish: reported only (everything it needs is already on disk for a re-run).
  Publishing has no local completion marker, so every run creates a new draft.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from vid2post.config import AppConfig
from vid2post.errors import (
    AcquisitionError,
    ConfigError,
    GenerationError,
    ImageError,
    JobCancelled,
    PublishError,
    TranscriptionError,
)
from vid2post.llm import LangChainGenerator, OllamaGenerator, TextGenerator, render_prompt
from vid2post.media.audio import AudioSource, FfmpegTranscoder, Transcoder, YtDlpAudioSource, acquire_audio
from vid2post.media.thumbnail import (
    HttpImageFetcher,
    ImageCompositor,
    ImageFetcher,
    PlayButtonCompositor,
    thumbnail_url,
)
from vid2post.media.transcribe import AssemblyAITranscriber, Transcriber, WhisperCliTranscriber
from vid2post.pipeline.job import Job
from vid2post.pipeline.orchestrator import CancelToken, Orchestrator, Pipeline, PipelineResult
from vid2post.pipeline.stages import Stage, StageContext, StagePolicy, never_done
from vid2post.pipeline.store import ArtifactKind, ArtifactStore, artifact_filename
from vid2post.publish.document import ArticleParts, build_draft
from vid2post.publish.ghost import GhostAdminClient, Publisher

logger = logging.getLogger(__name__)

K = ArtifactKind


@dataclass(frozen=True)
class Collaborators:
    """External capabilities the article stages call into."""

    audio_source: AudioSource
    transcoder: Transcoder
    transcriber: Transcriber
    generator: TextGenerator
    image_fetcher: ImageFetcher
    compositor: ImageCompositor
    publisher: Optional[Publisher] = None


def collaborators_from_config(config: AppConfig, *, publish: bool = True) -> Collaborators:
    """Build the default adapters described by `config`."""
    acq = config.acquisition
    stt = config.transcription
    gen = config.generation

    if stt.backend == "assemblyai":
        try:
            transcriber: Transcriber = AssemblyAITranscriber(http_timeout=stt.timeout_seconds)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    else:
        transcriber = WhisperCliTranscriber(
            stt.command,
            model=stt.model,
            fail_on_stderr=stt.fail_on_stderr,
            timeout=stt.timeout_seconds,
        )

    if gen.provider == "langchain":
        generator: TextGenerator = LangChainGenerator(timeout=gen.timeout_seconds)
    else:
        generator = OllamaGenerator(gen.endpoint, timeout=gen.timeout_seconds)

    publisher = None
    if publish:
        publisher = GhostAdminClient(
            config.ghost.url,
            config.ghost.key,
            api_version=config.publish.api_version,
            timeout=config.publish.timeout_seconds,
        )

    return Collaborators(
        audio_source=YtDlpAudioSource(acq.yt_dlp, timeout=acq.timeout_seconds),
        transcoder=FfmpegTranscoder(acq.ffmpeg, audio_bitrate=acq.audio_bitrate, timeout=acq.timeout_seconds),
        transcriber=transcriber,
        generator=generator,
        image_fetcher=HttpImageFetcher(timeout=config.thumbnail.timeout_seconds),
        compositor=PlayButtonCompositor(),
        publisher=publisher,
    )


def _generation_stage(
    name: str,
    template: str,
    input_kind: ArtifactKind,
    output_kind: ArtifactKind,
    generator: TextGenerator,
    config: AppConfig,
) -> Stage:
    model = config.generation.model

    def produce(ctx: StageContext) -> str:
        prompt = render_prompt(template, ctx.text(input_kind))
        return generator.generate(prompt, model)

    return Stage(
        name=name,
        output_kind=output_kind,
        produce=produce,
        input_kinds=(input_kind,),
        policy=StagePolicy.DEGRADE,
        error_class=GenerationError,
        timeout=config.generation.timeout_seconds,
        fallback=config.generation.fallback_text,
    )


def build_article_stages(job: Job, config: AppConfig, collab: Collaborators) -> list[Stage]:
    prompts = config.prompts

    def acquire(ctx: StageContext):
        target = ctx.scratch_dir / artifact_filename(job.source_id, K.RAW_AUDIO)
        return acquire_audio(collab.audio_source, collab.transcoder, job.source_url, target)

    def transcribe(ctx: StageContext):
        return collab.transcriber.transcribe(ctx.path(K.RAW_AUDIO), ctx.scratch_dir)

    def fetch_thumbnail(ctx: StageContext) -> bytes:
        return collab.image_fetcher.fetch(thumbnail_url(job.source_id, config.source.thumbnail_url_template))

    def compose(ctx: StageContext) -> bytes:
        return collab.compositor.composite(ctx.data(K.THUMBNAIL))

    stages = [
        Stage(
            name="acquire",
            output_kind=K.RAW_AUDIO,
            produce=acquire,
            error_class=AcquisitionError,
            timeout=config.acquisition.timeout_seconds,
        ),
        Stage(
            name="transcribe",
            output_kind=K.TRANSCRIPT,
            produce=transcribe,
            input_kinds=(K.RAW_AUDIO,),
            error_class=TranscriptionError,
            timeout=config.transcription.timeout_seconds,
        ),
        _generation_stage("summary", prompts.summary, K.TRANSCRIPT, K.SUMMARY_TEXT, collab.generator, config),
        _generation_stage("title", prompts.title, K.SUMMARY_TEXT, K.TITLE_TEXT, collab.generator, config),
        _generation_stage("teaser", prompts.teaser, K.SUMMARY_TEXT, K.TEASER_TEXT, collab.generator, config),
        _generation_stage("cta", prompts.cta, K.SUMMARY_TEXT, K.CTA_TEXT, collab.generator, config),
        Stage(
            name="thumbnail",
            output_kind=K.THUMBNAIL,
            produce=fetch_thumbnail,
            error_class=ImageError,
            timeout=config.thumbnail.timeout_seconds,
            after=("transcribe",),
        ),
        Stage(
            name="compose",
            output_kind=K.COMPOSED_THUMBNAIL,
            produce=compose,
            input_kinds=(K.THUMBNAIL,),
            error_class=ImageError,
            timeout=config.thumbnail.timeout_seconds,
        ),
    ]

    if collab.publisher is not None:
        stages.append(_publish_stage(job, config, collab.publisher))
    return stages


def _publish_stage(job: Job, config: AppConfig, publisher: Publisher) -> Stage:
    def publish(ctx: StageContext) -> str:
        title = ctx.text(K.TITLE_TEXT).strip()
        parts = ArticleParts(
            source_url=job.source_url,
            title=title,
            teaser=ctx.text(K.TEASER_TEXT).strip(),
            summary=ctx.text(K.SUMMARY_TEXT).strip(),
            cta=ctx.text(K.CTA_TEXT).strip(),
        )
        post_title = job.source_id if ctx.artifact(K.TITLE_TEXT).degraded or not title else title

        image_path = ctx.path(K.COMPOSED_THUMBNAIL)
        feature_image = publisher.upload_image(ctx.data(K.COMPOSED_THUMBNAIL), image_path.name)
        draft = build_draft(
            parts,
            post_title=post_title,
            feature_image=feature_image,
            codeinjection_head=config.publish.code_injection_head,
        )
        created = publisher.create_draft(draft)
        record = {
            "source_id": job.source_id,
            "source_url": job.source_url,
            "title": post_title,
            "feature_image": feature_image,
            "post": created,
            "published_at": datetime.now(timezone.utc).isoformat(),
        }
        return json.dumps(record, indent=2, ensure_ascii=False)

    return Stage(
        name="publish",
        output_kind=K.PUBLISHED_POST,
        produce=publish,
        input_kinds=(K.SUMMARY_TEXT, K.TITLE_TEXT, K.TEASER_TEXT, K.CTA_TEXT, K.COMPOSED_THUMBNAIL),
        policy=StagePolicy.REPORT,
        error_class=PublishError,
        idempotency_check=never_done,
        # No stage timeout: an abandoned upload/create would still land remotely.
        # Each request is bounded by the client's own timeout instead.
        timeout=None,
    )


def build_article_pipeline(job: Job, config: AppConfig, collab: Collaborators) -> Pipeline:
    return Pipeline(job, build_article_stages(job, config, collab))


async def run_job_async(
    job: Job,
    config: AppConfig,
    collab: Collaborators,
    *,
    store: Optional[ArtifactStore] = None,
    cancel_token: Optional[CancelToken] = None,
    force: Iterable[str] = (),
) -> PipelineResult:
    """Run the article pipeline for `job`.

    Raises the fatal StageError if one stopped the pipeline, JobCancelled if the
    cancel token was set. Degraded fields and a failed publish are reported in the
    returned result only.
    """
    store = store or ArtifactStore()
    pipeline = build_article_pipeline(job, config, collab)

    for name in force:
        try:
            stage = pipeline.stage(name)
        except KeyError as e:
            known = ", ".join(s.name for s in pipeline.stages)
            raise ConfigError(f"Unknown stage '{name}' (known: {known})") from e
        # outputs built from the forced one are stale too
        for target in [stage, *pipeline.consumers(name)]:
            if store.delete(job, target.output_kind):
                logger.info(f"[{target.name}] removed {store.path(job, target.output_kind).name} (forced re-run of {name})")

    logger.info(f"Job {job.source_id}: working directory {job.working_dir}")
    result = await Orchestrator(pipeline, store=store, cancel_token=cancel_token).run()

    for line in result.summary_lines():
        logger.info(line)

    if result.cancelled:
        raise JobCancelled(f"Job {job.source_id} was cancelled")
    if result.fatal_error is not None:
        raise result.fatal_error
    return result


def run_job(job: Job, config: AppConfig, collab: Collaborators, **kwargs) -> PipelineResult:
    return asyncio.run(run_job_async(job, config, collab, **kwargs))
