"""Command-line entrypoint.

    vid2post https://www.youtube.com/watch?v=<id> config.yaml

Re-running the same command resumes: every stage whose output file already exists in
the configured directory is skipped. Publishing always runs (and creates a new draft).

Exit codes:
- 0: article drafted (possibly with fallback text), or only publishing failed
- 1: a fatal stage failed, or the run was interrupted
- 2: configuration or source URL problem (nothing was run)
"""

from __future__ import annotations

import argparse
import logging
import signal
from typing import Sequence

from vid2post.config import load_config
from vid2post.errors import ConfigError, JobCancelled, PipelineDefinitionError, SourceError, StageError
from vid2post.pipeline.article import collaborators_from_config, run_job
from vid2post.pipeline.job import Job
from vid2post.pipeline.orchestrator import CancelToken

logger = logging.getLogger("vid2post")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vid2post",
        description="Process a video URL into a drafted blog post.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("url", help="Video URL (must carry the source id query parameter, e.g. ?v=...)")
    p.add_argument("config", help="YAML configuration file with prompts, directory and Ghost credentials")
    p.add_argument(
        "--force",
        action="append",
        default=[],
        metavar="STAGE",
        help="Delete this stage's output before running so it is regenerated (repeatable).",
    )
    p.add_argument("--dry-run", action="store_true", help="Run every stage except publishing.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _install_interrupt_handler(token: CancelToken):
    """First Ctrl-C stops the job between stages; a second one interrupts immediately."""

    def _handler(signum, frame):  # noqa: ANN001
        if token.cancelled:
            raise KeyboardInterrupt
        logger.warning("Interrupt received: finishing running stages, starting no new ones (Ctrl-C again to abort).")
        token.cancel()

    return signal.signal(signal.SIGINT, _handler)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        job = Job.from_url(args.url, config.directory, id_param=config.source.id_param)
        collaborators = collaborators_from_config(config, publish=not args.dry_run)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE
    except SourceError as e:
        logger.error(f"Invalid source URL, exiting: {e}")
        return EXIT_USAGE

    token = CancelToken()
    previous_handler = _install_interrupt_handler(token)

    try:
        result = run_job(job, config, collaborators, cancel_token=token, force=args.force)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE
    except PipelineDefinitionError as e:
        logger.error(f"Pipeline definition error: {e}")
        return EXIT_FAILED
    except StageError as e:
        logger.error(f"Job {job.source_id} failed in stage '{e.stage_name}': {e.cause}")
        return EXIT_FAILED
    except (JobCancelled, KeyboardInterrupt):
        logger.error(f"Job {job.source_id} interrupted; re-run the same command to resume.")
        return EXIT_FAILED
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    for outcome in result.failed():
        logger.warning(f"{outcome.stage} did not complete: {outcome.error}")
    if result.degraded:
        logger.warning("Some generated fields use fallback text; re-run to retry them.")
    logger.info(f"Done: {job.source_id}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
