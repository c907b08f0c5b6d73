"""Tests for the stage graph and the concurrent orchestrator."""

from __future__ import annotations

import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

from vid2post.errors import PipelineDefinitionError, PublishError, StageError
from vid2post.pipeline.job import Job
from vid2post.pipeline.orchestrator import CancelToken, Orchestrator, Pipeline, StageStatus
from vid2post.pipeline.stages import Stage, StagePolicy, never_done
from vid2post.pipeline.store import ArtifactKind, ArtifactStore

K = ArtifactKind


def _stage(name, output, inputs=(), produce=None, **kw):
    return Stage(
        name=name,
        output_kind=output,
        produce=produce or (lambda ctx: f"{name} output"),
        input_kinds=tuple(inputs),
        **kw,
    )


class TestPipelineDefinition(unittest.TestCase):
    def setUp(self) -> None:
        self.job = Job(source_url="https://video.example/watch?v=abc123", source_id="abc123", working_dir=Path("."))

    def test_order_respects_dependencies(self) -> None:
        pipeline = Pipeline(
            self.job,
            [
                _stage("title", K.TITLE_TEXT, [K.SUMMARY_TEXT]),
                _stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT]),
                _stage("transcribe", K.TRANSCRIPT),
            ],
        )
        self.assertEqual([s.name for s in pipeline.stages], ["transcribe", "summary", "title"])
        self.assertEqual(pipeline.dependencies("title"), ("summary",))
        self.assertEqual(pipeline.producer_of(K.SUMMARY_TEXT).name, "summary")
        self.assertIsNone(pipeline.producer_of(K.THUMBNAIL))

    def test_after_adds_an_ordering_edge(self) -> None:
        pipeline = Pipeline(
            self.job,
            [_stage("thumbnail", K.THUMBNAIL, after=("transcribe",)), _stage("transcribe", K.TRANSCRIPT)],
        )
        self.assertEqual([s.name for s in pipeline.stages], ["transcribe", "thumbnail"])

    def test_cycle_is_rejected(self) -> None:
        with self.assertRaises(PipelineDefinitionError):
            Pipeline(
                self.job,
                [_stage("a", K.SUMMARY_TEXT, [K.TITLE_TEXT]), _stage("b", K.TITLE_TEXT, [K.SUMMARY_TEXT])],
            )

    def test_unproduced_input_is_rejected(self) -> None:
        with self.assertRaises(PipelineDefinitionError):
            Pipeline(self.job, [_stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT])])

    def test_two_producers_for_one_kind_are_rejected(self) -> None:
        with self.assertRaises(PipelineDefinitionError):
            Pipeline(self.job, [_stage("a", K.TRANSCRIPT), _stage("b", K.TRANSCRIPT)])

    def test_duplicate_names_are_rejected(self) -> None:
        with self.assertRaises(PipelineDefinitionError):
            Pipeline(self.job, [_stage("a", K.TRANSCRIPT), _stage("a", K.SUMMARY_TEXT)])

    def test_unknown_after_is_rejected(self) -> None:
        with self.assertRaises(PipelineDefinitionError):
            Pipeline(self.job, [_stage("a", K.TRANSCRIPT, after=("nope",))])

    def test_consumers_follow_inputs_transitively(self) -> None:
        pipeline = Pipeline(
            self.job,
            [
                _stage("transcribe", K.TRANSCRIPT),
                _stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT]),
                _stage("title", K.TITLE_TEXT, [K.SUMMARY_TEXT]),
                _stage("thumbnail", K.THUMBNAIL, after=("transcribe",)),
            ],
        )

        self.assertEqual([s.name for s in pipeline.consumers("transcribe")], ["summary", "title"])
        self.assertEqual(pipeline.consumers("title"), [])

    def test_unknown_stage_lookup(self) -> None:
        pipeline = Pipeline(self.job, [_stage("a", K.TRANSCRIPT)])
        with self.assertRaises(KeyError):
            pipeline.stage("b")


class TestOrchestrator(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.workdir = Path(self._tmp.name)
        self.job = Job(source_url="https://video.example/watch?v=abc123", source_id="abc123", working_dir=self.workdir)
        self.store = ArtifactStore()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, stages, cancel_token=None):
        orchestrator = Orchestrator(Pipeline(self.job, stages), store=self.store, cancel_token=cancel_token)
        return orchestrator, orchestrator.run()

    async def test_all_stages_produce(self) -> None:
        _, run = self._run(
            [_stage("transcribe", K.TRANSCRIPT), _stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT])]
        )
        result = await run

        self.assertTrue(result.ok)
        self.assertEqual(list(result.outcomes), ["transcribe", "summary"])
        self.assertEqual({o.status for o in result.outcomes.values()}, {StageStatus.PRODUCED})
        self.assertEqual(result.artifact(K.SUMMARY_TEXT).value, "summary output")
        self.assertEqual(len(result.summary_lines()), 2)

    async def test_second_run_reuses_everything(self) -> None:
        produce = mock.Mock(return_value="text")
        stages = [_stage("transcribe", K.TRANSCRIPT, produce=produce)]
        await self._run(stages)[1]
        result = await self._run(stages)[1]

        produce.assert_called_once()
        self.assertIs(result.outcomes["transcribe"].status, StageStatus.REUSED)

    async def test_fatal_failure_skips_downstream(self) -> None:
        downstream = mock.Mock(return_value="never")
        _, run = self._run(
            [
                _stage("transcribe", K.TRANSCRIPT, produce=mock.Mock(side_effect=RuntimeError("boom"))),
                _stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT], produce=downstream),
                _stage("thumbnail", K.THUMBNAIL, after=("transcribe",), produce=downstream),
            ]
        )
        result = await run

        downstream.assert_not_called()
        self.assertFalse(result.ok)
        self.assertIsInstance(result.fatal_error, StageError)
        self.assertEqual(result.fatal_error.stage_name, "transcribe")
        self.assertIs(result.outcomes["transcribe"].status, StageStatus.FAILED)
        self.assertIs(result.outcomes["summary"].status, StageStatus.SKIPPED)
        self.assertIs(result.outcomes["thumbnail"].status, StageStatus.SKIPPED)
        self.assertFalse(self.store.exists(self.job, K.SUMMARY_TEXT))

    async def test_degraded_stage_feeds_fallback_downstream(self) -> None:
        _, run = self._run(
            [
                _stage(
                    "summary",
                    K.SUMMARY_TEXT,
                    produce=mock.Mock(side_effect=RuntimeError("500")),
                    policy=StagePolicy.DEGRADE,
                    fallback="Failed to generate summary",
                ),
                _stage("title", K.TITLE_TEXT, [K.SUMMARY_TEXT], produce=lambda ctx: "t:" + ctx.text(K.SUMMARY_TEXT)),
            ]
        )
        result = await run

        self.assertTrue(result.ok)
        self.assertTrue(result.degraded)
        self.assertIs(result.outcomes["summary"].status, StageStatus.DEGRADED)
        self.assertEqual(result.artifact(K.TITLE_TEXT).value, "t:Failed to generate summary")

    async def test_reported_failure_is_not_fatal(self) -> None:
        _, run = self._run(
            [
                _stage("compose", K.COMPOSED_THUMBNAIL),
                _stage(
                    "publish",
                    K.PUBLISHED_POST,
                    [K.COMPOSED_THUMBNAIL],
                    produce=mock.Mock(side_effect=RuntimeError("401")),
                    policy=StagePolicy.REPORT,
                    error_class=PublishError,
                    idempotency_check=never_done,
                ),
            ]
        )
        result = await run

        self.assertTrue(result.ok)
        self.assertIsNone(result.fatal_error)
        [failed] = result.failed()
        self.assertEqual(failed.stage, "publish")
        self.assertIsInstance(failed.error, PublishError)

    async def test_independent_stages_run_concurrently(self) -> None:
        barrier = threading.Barrier(3, timeout=5)

        def meet(ctx):  # noqa: ANN001
            barrier.wait()
            return "met"

        _, run = self._run(
            [
                _stage("summary", K.SUMMARY_TEXT),
                _stage("title", K.TITLE_TEXT, [K.SUMMARY_TEXT], produce=meet),
                _stage("teaser", K.TEASER_TEXT, [K.SUMMARY_TEXT], produce=meet),
                _stage("cta", K.CTA_TEXT, [K.SUMMARY_TEXT], produce=meet),
            ]
        )
        result = await run

        self.assertTrue(result.ok)
        for name in ("title", "teaser", "cta"):
            self.assertIs(result.outcomes[name].status, StageStatus.PRODUCED)

    async def test_cancel_before_run_starts_nothing(self) -> None:
        token = CancelToken()
        token.cancel()
        produce = mock.Mock(return_value="x")
        _, run = self._run([_stage("transcribe", K.TRANSCRIPT, produce=produce)], cancel_token=token)
        result = await run

        produce.assert_not_called()
        self.assertTrue(result.cancelled)
        self.assertFalse(result.ok)
        self.assertEqual(result.outcomes["transcribe"].reason, "cancelled")

    async def test_cancel_between_stages_keeps_committed_work(self) -> None:
        token = CancelToken()

        def transcribe(ctx):  # noqa: ANN001
            token.cancel()
            return "transcript"

        downstream = mock.Mock(return_value="never")
        _, run = self._run(
            [
                _stage("transcribe", K.TRANSCRIPT, produce=transcribe),
                _stage("summary", K.SUMMARY_TEXT, [K.TRANSCRIPT], produce=downstream),
            ],
            cancel_token=token,
        )
        result = await run

        downstream.assert_not_called()
        self.assertTrue(result.cancelled)
        self.assertIs(result.outcomes["transcribe"].status, StageStatus.PRODUCED)
        self.assertEqual(self.store.read_text(self.job, K.TRANSCRIPT), "transcript")
