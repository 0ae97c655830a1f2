"""Drummer - External media engines.

The pipeline talks to three black-box tools through the MediaEngines
protocol:

- separate: Spleeter splits a track into one WAV per stem
- mix: ffmpeg sums a set of stems and encodes the result
- extract_audio / fetch_title: yt-dlp downloads remote audio and its title

LocalEngines runs Spleeter and ffmpeg as subprocesses and drives yt-dlp
in-process through its YoutubeDL API. Tests substitute an in-process fake
with the same methods.

Dependencies:
- Requires spleeter and ffmpeg installed and in PATH (ffmpeg is also used by
  yt-dlp's audio extraction postprocessor)
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

import yt_dlp
from yt_dlp.utils import YoutubeDLError

from app import config
from app.errors import EngineError

logger = logging.getLogger(__name__)


class MediaEngines(Protocol):
    """Narrow synchronous capability interface over the external tools."""

    def separate(self, input_file: Path, output_dir: Path) -> None: ...

    def mix(self, input_files: Sequence[Path], filter_graph: str, output_file: Path) -> None: ...

    def extract_audio(
        self,
        url: str,
        output_template: str,
        user_agent: str,
        headers: Mapping[str, str],
    ) -> str: ...

    def fetch_title(self, url: str, user_agent: str) -> str: ...


def run_command(cmd: list[str]) -> str:
    """Run a command to completion and return its combined output.

    No timeout is applied; a hung tool blocks the calling job.

    Raises:
        EngineError: If the binary is missing or exits non-zero.
    """
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except FileNotFoundError as e:
        logger.error("%s not found in PATH", cmd[0])
        raise EngineError(cmd, None, f"{cmd[0]} not found in PATH") from e
    except OSError as e:
        logger.error("%s execution failed: %s", cmd[0], e)
        raise EngineError(cmd, None, str(e)) from e

    output = result.stdout.decode("utf-8", errors="replace")
    if result.returncode != 0:
        raise EngineError(cmd, result.returncode, output)
    return output


class LocalEngines:
    """MediaEngines backed by spleeter/ffmpeg subprocesses and the yt_dlp library."""

    def __init__(
        self,
        separation_model: str = config.SEPARATION_MODEL,
        sample_rate: int = config.MIX_SAMPLE_RATE,
        channels: int = config.MIX_CHANNELS,
        audio_codec: str = config.MIX_AUDIO_CODEC,
        quality: str = config.MIX_QUALITY,
        audio_format: str = config.DOWNLOAD_AUDIO_FORMAT,
        audio_quality: str = config.DOWNLOAD_AUDIO_QUALITY,
        sleep_interval: int = config.DOWNLOAD_SLEEP_INTERVAL,
        max_sleep_interval: int = config.DOWNLOAD_MAX_SLEEP_INTERVAL,
    ):
        self.separation_model = separation_model
        self.sample_rate = sample_rate
        self.channels = channels
        self.audio_codec = audio_codec
        self.quality = quality
        self.audio_format = audio_format
        self.audio_quality = audio_quality
        self.sleep_interval = sleep_interval
        self.max_sleep_interval = max_sleep_interval

    def separate(self, input_file: Path, output_dir: Path) -> None:
        cmd = [
            "spleeter",
            "separate",
            "-p",
            self.separation_model,
            "-o",
            str(output_dir),
            str(input_file),
        ]
        run_command(cmd)

    def mix(self, input_files: Sequence[Path], filter_graph: str, output_file: Path) -> None:
        cmd = ["ffmpeg"]
        for path in input_files:
            cmd += ["-i", str(path)]
        cmd += [
            "-filter_complex",
            filter_graph,
            "-c:a",
            self.audio_codec,
            "-q:a",
            self.quality,
            "-ar",
            str(self.sample_rate),
            "-ac",
            str(self.channels),
            "-y",
            str(output_file),
        ]
        run_command(cmd)

    # --- yt-dlp ---

    def _base_options(self, user_agent: str, headers: Mapping[str, str] | None = None) -> dict:
        http_headers = dict(headers or {})
        http_headers["User-Agent"] = user_agent
        return {
            "http_headers": http_headers,
            "noplaylist": True,
            "logger": logger,
        }

    def download_options(
        self, output_template: str, user_agent: str, headers: Mapping[str, str]
    ) -> dict:
        """YoutubeDL options for one audio extraction attempt."""
        ydl_opts = self._base_options(user_agent, headers)
        ydl_opts.update(
            {
                "format": "bestaudio/best",
                "outtmpl": output_template,
                "sleep_interval": self.sleep_interval,
                "max_sleep_interval": self.max_sleep_interval,
                "postprocessors": [
                    {
                        "key": "FFmpegExtractAudio",
                        "preferredcodec": self.audio_format,
                        "preferredquality": self.audio_quality,
                    }
                ],
            }
        )
        return ydl_opts

    def extract_audio(
        self,
        url: str,
        output_template: str,
        user_agent: str,
        headers: Mapping[str, str],
    ) -> str:
        """Download and convert one remote audio track.

        Returns:
            Short description of the downloaded media, for logs.

        Raises:
            EngineError: If yt-dlp reports any error.
        """
        ydl_opts = self.download_options(output_template, user_agent, headers)
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=True)
        except YoutubeDLError as e:
            raise EngineError(["yt-dlp", url], None, str(e)) from e

        info = info or {}
        return f"{info.get('extractor', 'unknown')}:{info.get('id', '?')}"

    def fetch_title(self, url: str, user_agent: str) -> str:
        """Look up the media title without downloading.

        Raises:
            EngineError: If yt-dlp reports any error.
        """
        ydl_opts = self._base_options(user_agent)
        ydl_opts["skip_download"] = True
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except YoutubeDLError as e:
            raise EngineError(["yt-dlp", url], None, str(e)) from e

        return ((info or {}).get("title") or "").strip()
