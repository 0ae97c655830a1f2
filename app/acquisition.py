"""Drummer - Acquisition resolver.

Turns a job input into exactly one local audio file inside the job workspace.

Uploads: the claimed filename must carry the .mp3 extension (checked before
anything touches the filesystem); the stream is then written into the
workspace. Empty uploads and empty downloads are rejected, so a committed
job never has a zero-byte original.

Remote URLs: the extraction engine is retried up to MAX_DOWNLOAD_ATTEMPTS
times. Each attempt uses the next browser identity from a fixed pool and a
fixed set of browser-like headers. Between attempts (never after the last)
the resolver sleeps attempt**2 seconds plus up to one second of jitter.
Sleep and randomness are injected so tests can run without wall-clock delay.

The remote title is looked up separately once the download succeeded; a
failed lookup never fails the job, it only falls back to a generic name.
"""

from __future__ import annotations

import logging
import random
import shutil
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from app import config
from app.engines import MediaEngines
from app.errors import AcquisitionCategory, AcquisitionError, EngineError, ValidationError
from app.jobs import RemoteSource, UploadSource
from app.utils.atomic_io import atomic_stream_to_file
from app.workspace import Workspace

logger = logging.getLogger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
)

REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

# Checked in order; first match wins
ERROR_PATTERNS = (
    (AcquisitionCategory.NETWORK, ("network", "connection", "timed out")),
    (AcquisitionCategory.PERMISSION, ("permission", "forbidden")),
    (AcquisitionCategory.NOT_FOUND, ("not found", "404")),
    (
        AcquisitionCategory.RESTRICTED,
        ("age-restrict", "age restrict", "confirm your age", "login", "sign in"),
    ),
)


@dataclass
class AcquiredAudio:
    """The single local file a job input resolved to."""

    path: Path
    display_name: str


def sanitize_display_name(name: str, fallback: str) -> str:
    """Make a name safe to show and to use in download filenames.

    Path separators become "-", surrounding whitespace is stripped and the
    result is truncated to MAX_DISPLAY_NAME_LENGTH characters.
    """
    cleaned = name.replace("/", "-").replace("\\", "-").strip()
    cleaned = cleaned[: config.MAX_DISPLAY_NAME_LENGTH].strip()
    return cleaned or fallback


def validate_upload_name(filename: str | None) -> str:
    """Reject uploads whose claimed name lacks the audio extension.

    Returns:
        The filename, unchanged.

    Raises:
        ValidationError: If the name is missing or has the wrong extension.
    """
    if not filename:
        raise ValidationError("No file uploaded")
    if not filename.lower().endswith(config.UPLOAD_EXTENSION):
        raise ValidationError(
            f"Only {config.UPLOAD_EXTENSION.lstrip('.').upper()} files are supported"
        )
    return filename


def display_name_from_filename(filename: str) -> str:
    """Strip the audio extension from an uploaded filename and sanitize it."""
    stem = filename[: -len(config.UPLOAD_EXTENSION)]
    return sanitize_display_name(stem, config.DEFAULT_UPLOAD_NAME)


def validate_remote_url(url: str | None) -> str:
    """Check that a remote source is an http(s) URL.

    Raises:
        ValidationError: If the URL is empty or not http(s).
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("URL must be an http(s) address")
    return url


def classify_download_error(text: str | None) -> AcquisitionCategory:
    """Map raw extraction output to a coarse failure category."""
    lowered = (text or "").lower()
    for category, needles in ERROR_PATTERNS:
        if any(needle in lowered for needle in needles):
            return category
    return AcquisitionCategory.UNKNOWN


def backoff_delay(attempt: int, rng: random.Random) -> float:
    """Seconds to wait after a failed attempt: attempt**2 plus [0, 1) jitter."""
    return attempt * attempt + rng.random()


def _clear_directory(directory: Path) -> None:
    """Remove partial files an aborted download left behind."""
    if not directory.exists():
        return
    for entry in directory.iterdir():
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError:
            logger.warning("Failed to remove partial download %s", entry, exc_info=True)


class AcquisitionResolver:
    """Resolves uploads and remote URLs to one local audio file."""

    def __init__(
        self,
        engines: MediaEngines,
        max_attempts: int = config.MAX_DOWNLOAD_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        user_agents: Sequence[str] = USER_AGENTS,
        headers: Mapping[str, str] = REQUEST_HEADERS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not user_agents:
            raise ValueError("user_agents must not be empty")
        self.engines = engines
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.rng = rng if rng is not None else random.Random()
        self.user_agents = tuple(user_agents)
        self.headers = dict(headers)

    # --- Validation (never touches storage) ---

    def validate(self, source: UploadSource | RemoteSource) -> UploadSource | RemoteSource:
        """Check the input shape before a workspace is allocated.

        Returns:
            The source to resolve; remote URLs come back stripped.

        Raises:
            ValidationError: If the input is unusable.
        """
        if isinstance(source, UploadSource):
            validate_upload_name(source.filename)
            return source
        if isinstance(source, RemoteSource):
            return RemoteSource(url=validate_remote_url(source.url))
        raise ValidationError("Unsupported job source")

    # --- Resolution ---

    def resolve(self, source: UploadSource | RemoteSource, workspace: Workspace) -> AcquiredAudio:
        """Produce the job's local audio file inside the workspace.

        `source` must already have passed `validate`.

        Raises:
            AcquisitionError: If no single non-empty local file could be produced.
        """
        if isinstance(source, UploadSource):
            return self.resolve_upload(source, workspace)
        return self.resolve_remote(source, workspace)

    def resolve_upload(self, source: UploadSource, workspace: Workspace) -> AcquiredAudio:
        dest = workspace.source_dir / f"{workspace.job_id}{config.UPLOAD_EXTENSION}"
        try:
            size = atomic_stream_to_file(source.stream, dest)
        except OSError as e:
            logger.error("Failed to stage upload for job_id=%s: %s", workspace.job_id, e)
            raise AcquisitionError(AcquisitionCategory.STORAGE, str(e)) from e

        if size == 0:
            raise AcquisitionError(AcquisitionCategory.EMPTY_FILE, f"upload {source.filename!r}")

        logger.info(
            "Staged upload %r for job_id=%s (%d bytes)", source.filename, workspace.job_id, size
        )
        return AcquiredAudio(path=dest, display_name=display_name_from_filename(source.filename))

    def resolve_remote(self, source: RemoteSource, workspace: Workspace) -> AcquiredAudio:
        path = self.download(source.url, workspace.download_dir, workspace.job_id)
        title = self.fetch_title(source.url)
        return AcquiredAudio(path=path, display_name=title)

    def download(self, url: str, download_dir: Path, basename: str) -> Path:
        """Fetch remote audio with bounded retries.

        Args:
            url: Remote media URL.
            download_dir: Empty directory the engine writes into.
            basename: Output file name without extension.

        Returns:
            Path of the single downloaded file.

        Raises:
            AcquisitionError: After all attempts failed, or if the engine
                produced zero or several files.
        """
        download_dir.mkdir(parents=True, exist_ok=True)
        output_template = str(download_dir / f"{basename}.%(ext)s")
        offset = self.rng.randrange(len(self.user_agents))
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            user_agent = self.user_agents[(offset + attempt - 1) % len(self.user_agents)]
            logger.info("Download attempt %d/%d for URL: %s", attempt, self.max_attempts, url)
            try:
                output = self.engines.extract_audio(url, output_template, user_agent, self.headers)
            except EngineError as e:
                last_error = e.output or str(e)
                logger.warning(
                    "Download attempt %d/%d failed (exit=%s): %s",
                    attempt,
                    self.max_attempts,
                    e.returncode,
                    last_error,
                )
                _clear_directory(download_dir)
                if attempt < self.max_attempts:
                    delay = backoff_delay(attempt, self.rng)
                    logger.info("Waiting %.2fs before retry", delay)
                    self.sleep(delay)
                continue

            logger.info("Download successful on attempt %d", attempt)
            logger.debug("Extraction output: %s", output)
            return self._single_output(download_dir, attempt)

        category = classify_download_error(last_error)
        logger.error(
            "Download failed after %d attempts (category=%s) for URL: %s",
            self.max_attempts,
            category,
            url,
        )
        raise AcquisitionError(category, last_error, attempts=self.max_attempts)

    def _single_output(self, download_dir: Path, attempts: int) -> Path:
        files = sorted(p for p in download_dir.iterdir() if p.is_file())
        if not files:
            raise AcquisitionError(
                AcquisitionCategory.MISSING_OUTPUT,
                f"no file in {download_dir}",
                attempts=attempts,
            )
        if len(files) > 1:
            names = ", ".join(p.name for p in files)
            raise AcquisitionError(
                AcquisitionCategory.AMBIGUOUS_OUTPUT,
                f"expected one file in {download_dir}, found: {names}",
                attempts=attempts,
            )
        if files[0].stat().st_size == 0:
            raise AcquisitionError(
                AcquisitionCategory.EMPTY_FILE,
                f"downloaded file {files[0].name} is empty",
                attempts=attempts,
            )
        return files[0]

    def fetch_title(self, url: str) -> str:
        """Best-effort title lookup; falls back to DEFAULT_REMOTE_NAME."""
        user_agent = self.rng.choice(self.user_agents)
        try:
            title = self.engines.fetch_title(url, user_agent)
        except Exception:
            logger.warning("Title lookup failed for URL %s (non-fatal)", url, exc_info=True)
            return config.DEFAULT_REMOTE_NAME
        return sanitize_display_name(title, config.DEFAULT_REMOTE_NAME)
