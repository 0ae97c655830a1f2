"""Drummer - API service logic.

Wiring and song management around the media job pipeline:
- Building a JobPipeline from configuration
- Startup recovery (scratch sweep, orphan temp files)
- Delete and rename of committed songs
- Download filenames

NO HTTP concerns here; main.py maps results and errors to responses.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from pathlib import Path

from app import config
from app.acquisition import AcquisitionResolver, sanitize_display_name
from app.engines import MediaEngines, LocalEngines
from app.errors import ValidationError
from app.jobs import Job
from app.pipeline import JobPipeline
from app.stems import StemRemover, stem_names_for_model
from app.store import MetadataStore
from app.utils.atomic_io import cleanup_orphan_temp_files
from app.workspace import WorkspaceManager

logger = logging.getLogger(__name__)


def build_pipeline(
    store: MetadataStore,
    engines: MediaEngines | None = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> JobPipeline:
    """Assemble a JobPipeline over the configured directories.

    Args:
        store: Metadata store the pipeline commits to.
        engines: Media engines; defaults to the subprocess implementation.
        sleep: Sleep function used between download attempts.
        rng: Random source for identity rotation and jitter.

    Returns:
        A ready JobPipeline.
    """
    engines = engines if engines is not None else LocalEngines()
    return JobPipeline(
        store=store,
        resolver=AcquisitionResolver(engines, sleep=sleep, rng=rng),
        stem_remover=StemRemover(
            engines,
            stem_names=stem_names_for_model(config.SEPARATION_MODEL),
            excluded_stem=config.EXCLUDED_STEM,
        ),
        workspaces=WorkspaceManager(config.SCRATCH_DIR),
        uploads_dir=config.UPLOADS_DIR,
        processed_dir=config.PROCESSED_DIR,
    )


def ensure_data_dirs() -> None:
    """Create the uploads, processed and scratch roots."""
    for directory in (config.UPLOADS_DIR, config.PROCESSED_DIR, config.SCRATCH_DIR):
        Path(directory).mkdir(parents=True, exist_ok=True)


def startup_cleanup() -> dict[str, int]:
    """Repair state a crashed or killed process left behind.

    Empties the scratch root and removes orphan temp files from interrupted
    promotions under the uploads and processed roots.

    Returns:
        Counts of removed scratch entries and temp files.
    """
    swept = WorkspaceManager(config.SCRATCH_DIR).sweep()
    temp_files = cleanup_orphan_temp_files(config.UPLOADS_DIR) + cleanup_orphan_temp_files(
        config.PROCESSED_DIR
    )
    if swept or temp_files:
        logger.info(
            "Startup cleanup: removed %d scratch entries and %d orphan temp files",
            swept,
            temp_files,
        )
    return {"scratch_entries": swept, "temp_files": temp_files}


def delete_song(store: MetadataStore, song_id: str) -> Job:
    """Delete a song's record, then its files.

    The record goes first so no record ever points at a removed file. File
    removal is best-effort: a leftover file is logged, not an error.

    Raises:
        SongNotFound: If no record exists.
    """
    job = store.get(song_id)
    store.delete(song_id)

    for path in (job.original_path, job.processed_path):
        if not path:
            continue
        try:
            Path(path).unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove %s for song_id=%s", path, song_id, exc_info=True)

    logger.info("Deleted song_id=%s", song_id)
    return job


def rename_song(store: MetadataStore, song_id: str, name: str) -> Job:
    """Rename a song. Concurrent renames resolve last-writer-wins.

    Raises:
        ValidationError: If the sanitized name is empty.
        SongNotFound: If no record exists.
    """
    clean = sanitize_display_name(name, fallback="")
    if not clean:
        raise ValidationError("Name must not be empty")
    return store.rename(song_id, clean)


def download_filename(job: Job, original: bool = False) -> str:
    """Attachment filename offered for a song download."""
    suffix = "original" if original else f"no_{config.EXCLUDED_STEM}"
    return f"{job.display_name}_{suffix}{config.OUTPUT_EXTENSION}"
