"""
Media collaborators.

- `vid2post.media.audio`: yt-dlp -> ffmpeg audio acquisition
- `vid2post.media.transcribe`: whisper CLI / AssemblyAI transcription
- `vid2post.media.thumbnail`: cover image fetch + play-button overlay
"""

from vid2post.media.audio import FfmpegTranscoder, YtDlpAudioSource, acquire_audio
from vid2post.media.thumbnail import HttpImageFetcher, PlayButtonCompositor, thumbnail_url
from vid2post.media.transcribe import AssemblyAITranscriber, WhisperCliTranscriber

__all__ = [
    "YtDlpAudioSource",
    "FfmpegTranscoder",
    "acquire_audio",
    "WhisperCliTranscriber",
    "AssemblyAITranscriber",
    "HttpImageFetcher",
    "PlayButtonCompositor",
    "thumbnail_url",
]
