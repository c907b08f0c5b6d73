"""Speech-to-text backends.

- WhisperCliTranscriber: runs the `whisper` CLI (openai-whisper) as a subprocess and
  keeps its plain-text output.
- AssemblyAITranscriber: uploads the audio to AssemblyAI and writes the returned text.

Both write `<audio stem>.txt` into the given output directory and return its path.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Protocol

import assemblyai as aai  # type: ignore

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path, output_dir: Path) -> Path: ...


class WhisperCliTranscriber:
    """Whisper invoked as an external process.

    A non-zero exit code is a failure. With `fail_on_stderr` (the default) any stderr
    output is a failure too; `--fp16 False` keeps CPU runs from printing the FP16
    warning there.
    """

    def __init__(
        self,
        executable: str = "whisper",
        *,
        model: Optional[str] = None,
        fail_on_stderr: bool = True,
        timeout: float | None = None,
    ) -> None:
        self.executable = executable
        self.model = model
        self.fail_on_stderr = fail_on_stderr
        self.timeout = timeout

    def command(self, audio_path: Path, output_dir: Path) -> list[str]:
        cmd = [
            self.executable,
            str(audio_path),
            "--output_format",
            "txt",
            "--output_dir",
            str(output_dir),
            "--fp16",
            "False",
        ]
        if self.model:
            cmd += ["--model", self.model]
        return cmd

    def transcribe(self, audio_path: Path, output_dir: Path) -> Path:
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise FileNotFoundError(f"File not found: {audio_path}")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Transcribing: {audio_path.name}")
        try:
            proc = subprocess.run(
                self.command(audio_path, output_dir),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise RuntimeError(f"{self.executable} executable not found. Install with: pip install -U openai-whisper") from exc

        stderr = (proc.stderr or "").strip()
        if proc.returncode != 0:
            raise RuntimeError(f"whisper exited with code {proc.returncode}: {stderr or 'no output'}")
        if stderr and self.fail_on_stderr:
            raise RuntimeError(f"whisper reported errors: {stderr}")

        output_path = output_dir / f"{audio_path.stem}.txt"
        if not output_path.exists():
            raise RuntimeError(f"whisper finished but produced no transcript at {output_path}")
        return output_path


class AssemblyAITranscriber:
    """Hosted transcription through the AssemblyAI SDK."""

    def __init__(self, api_key: Optional[str] = None, *, http_timeout: float | None = None) -> None:
        api_key = api_key or os.getenv("ASSEMBLYAI_API_KEY")
        if not api_key:
            raise ValueError("Missing AssemblyAI API key. Set ASSEMBLYAI_API_KEY.")
        aai.settings.api_key = api_key
        # The SDK's default HTTP timeout is short for long uploads.
        if http_timeout is not None and hasattr(aai.settings, "http_timeout"):
            aai.settings.http_timeout = http_timeout  # type: ignore[attr-defined]

    def transcribe(self, audio_path: Path, output_dir: Path) -> Path:
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise FileNotFoundError(f"File not found: {audio_path}")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"Transcribing with AssemblyAI: {audio_path.name}")
        transcript = aai.Transcriber().transcribe(str(audio_path))
        if transcript.status == aai.TranscriptStatus.error:
            raise RuntimeError(f"Transcription failed: {transcript.error}")

        output_path = output_dir / f"{audio_path.stem}.txt"
        output_path.write_text(transcript.text or "", encoding="utf-8")
        return output_path
