"""Drummer - Utility modules."""

from app.utils.atomic_io import (
    atomic_copy_file,
    atomic_stream_to_file,
    cleanup_orphan_temp_files,
)
from app.utils.paths import original_audio_path, processed_audio_path, stem_path

__all__ = [
    # atomic_io
    "atomic_copy_file",
    "atomic_stream_to_file",
    "cleanup_orphan_temp_files",
    # paths
    "original_audio_path",
    "processed_audio_path",
    "stem_path",
]
