"""Audio acquisition: stream the best audio track with yt-dlp, transcode with ffmpeg.

Both tools are external executables. yt-dlp writes the raw audio stream to stdout and
ffmpeg reads it from stdin, so no intermediate download file is kept.

Output format: WAV, PCM signed 16-bit little endian.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, ContextManager, Iterator, Protocol

logger = logging.getLogger(__name__)

WAV_CODEC = "pcm_s16le"


class AudioSource(Protocol):
    def open_stream(self, url: str) -> ContextManager[IO[bytes]]: ...


class Transcoder(Protocol):
    def transcode(self, stream: IO[bytes], output_path: Path) -> Path: ...


class YtDlpAudioSource:
    """Streams the highest quality audio of a video URL via the yt-dlp CLI."""

    def __init__(self, executable: str = "yt-dlp", *, timeout: float | None = None) -> None:
        self.executable = executable
        self.timeout = timeout

    def command(self, url: str) -> list[str]:
        return [
            self.executable,
            "--format",
            "bestaudio",
            "--no-playlist",
            "--no-progress",
            "--quiet",
            "--output",
            "-",
            url,
        ]

    @contextmanager
    def open_stream(self, url: str) -> Iterator[IO[bytes]]:
        # file, not a pipe: stderr is only read after stdout is drained
        with tempfile.TemporaryFile() as errlog:
            try:
                proc = subprocess.Popen(self.command(url), stdout=subprocess.PIPE, stderr=errlog)
            except FileNotFoundError as exc:
                raise RuntimeError(f"{self.executable} executable not found. Please install yt-dlp.") from exc

            assert proc.stdout is not None
            try:
                yield proc.stdout
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            finally:
                proc.stdout.close()

            try:
                returncode = proc.wait(timeout=self.timeout)
            except subprocess.TimeoutExpired as exc:
                proc.kill()
                proc.wait()
                raise RuntimeError(f"{self.executable} did not exit within {self.timeout}s") from exc
            if returncode != 0:
                errlog.seek(0)
                stderr = errlog.read().decode("utf-8", errors="replace").strip()
                raise RuntimeError(f"{self.executable} failed (rc={returncode}): {stderr or 'unknown error'}")


class FfmpegTranscoder:
    """Transcodes a byte stream to a PCM WAV file with ffmpeg."""

    def __init__(
        self,
        executable: str = "ffmpeg",
        *,
        audio_bitrate: str = "192k",
        timeout: float | None = None,
    ) -> None:
        self.executable = executable
        self.audio_bitrate = audio_bitrate
        self.timeout = timeout

    def command(self, output_path: Path) -> list[str]:
        return [
            self.executable,
            "-y",
            "-loglevel",
            "error",
            "-i",
            "pipe:0",
            "-vn",
            "-acodec",
            WAV_CODEC,
            "-b:a",
            self.audio_bitrate,
            "-f",
            "wav",
            str(output_path),
        ]

    def transcode(self, stream: IO[bytes], output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            subprocess.run(
                self.command(output_path),
                stdin=stream,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise RuntimeError("FFmpeg executable not found. Please install FFmpeg.") from exc
        except subprocess.CalledProcessError as exc:
            message = exc.stderr.decode("utf-8", errors="replace").strip() if exc.stderr else "unknown error"
            raise RuntimeError(f"FFmpeg failed: {message}") from exc

        logger.info(f"Audio conversion completed: {output_path.name}")
        return output_path


def acquire_audio(source: AudioSource, transcoder: Transcoder, url: str, output_path: Path) -> Path:
    """Stream `url` through `transcoder` into `output_path`."""
    with source.open_stream(url) as stream:
        return transcoder.transcode(stream, output_path)
