"""Drummer - Canonical path utilities.

Returns canonical Paths for committed artifacts. Does NOT create
directories; directory creation is the responsibility of the caller.
"""

from pathlib import Path

from app import config


def original_audio_path(job_id: str, root: Path | None = None) -> Path:
    """Get the committed path of a job's original audio.

    Args:
        job_id: Job identifier.
        root: Uploads root override. Defaults to config.UPLOADS_DIR.

    Returns:
        Path: {uploads}/{job_id}.mp3
    """
    root = root if root is not None else config.UPLOADS_DIR
    return Path(root) / f"{job_id}{config.UPLOAD_EXTENSION}"


def processed_audio_path(job_id: str, root: Path | None = None) -> Path:
    """Get the committed path of a job's processed audio.

    Args:
        job_id: Job identifier.
        root: Processed root override. Defaults to config.PROCESSED_DIR.

    Returns:
        Path: {processed}/{job_id}.mp3
    """
    root = root if root is not None else config.PROCESSED_DIR
    return Path(root) / f"{job_id}{config.OUTPUT_EXTENSION}"


def stem_path(stems_dir: Path, input_file: Path, stem: str) -> Path:
    """Get where the decomposition engine writes one stem.

    The engine keys its output subdirectory by the input's base filename.

    Returns:
        Path: {stems_dir}/{input basename}/{stem}.wav
    """
    return Path(stems_dir) / Path(input_file).stem / f"{stem}.{config.STEM_FILE_EXTENSION}"
