"""Drummer - Job workspaces.

Each job gets a private scratch directory under the scratch root. The
directory name combines the job id with a fresh random suffix, so a retried
job never reuses an earlier workspace and concurrent jobs never collide.

Release is guaranteed by `WorkspaceManager.open`, a context manager that
removes the directory on every exit path. On startup `sweep` empties the
scratch root, removing whatever a crashed process left behind.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from app.utils.atomic_io import atomic_copy_file

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """A job-private scratch directory."""

    job_id: str
    path: Path
    released: bool = False

    @property
    def source_dir(self) -> Path:
        """Staged upload input."""
        return self.path / "source"

    @property
    def download_dir(self) -> Path:
        """Raw output of the extraction engine."""
        return self.path / "download"

    @property
    def stems_dir(self) -> Path:
        """Output of the decomposition engine."""
        return self.path / "stems"

    @property
    def processed_file(self) -> Path:
        """Not-yet-final processed output."""
        return self.path / "processed.mp3"


class WorkspaceManager:
    """Allocates, releases and sweeps job workspaces under one scratch root."""

    def __init__(self, scratch_root: str | Path):
        self.scratch_root = Path(scratch_root)

    def allocate(self, job_id: str) -> Workspace:
        """Create a fresh, uniquely named directory for a job."""
        self.scratch_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=f"job-{job_id}-", dir=self.scratch_root))
        logger.debug("Allocated workspace %s for job_id=%s", path, job_id)
        return Workspace(job_id=job_id, path=path)

    def release(self, workspace: Workspace) -> None:
        """Recursively remove a workspace. A second call is a no-op."""
        if workspace.released:
            logger.warning("Workspace %s already released", workspace.path)
            return
        workspace.released = True
        try:
            shutil.rmtree(workspace.path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.error("Failed to remove workspace %s", workspace.path, exc_info=True)
            return
        logger.debug("Released workspace %s for job_id=%s", workspace.path, workspace.job_id)

    @contextmanager
    def open(self, job_id: str) -> Iterator[Workspace]:
        """Allocate a workspace and release it however the block exits."""
        workspace = self.allocate(job_id)
        try:
            yield workspace
        finally:
            self.release(workspace)

    def promote(self, temp_file: str | Path, final_path: str | Path) -> Path:
        """Copy a file into its permanent location, all or nothing.

        Raises:
            OSError: If the copy fails; nothing is left at final_path.
        """
        final_path = Path(final_path)
        size = atomic_copy_file(temp_file, final_path)
        logger.debug("Promoted %s -> %s (%d bytes)", temp_file, final_path, size)
        return final_path

    def sweep(self) -> int:
        """Remove every entry under the scratch root.

        Returns:
            Number of entries removed.
        """
        if not self.scratch_root.exists():
            return 0

        removed = 0
        for entry in self.scratch_root.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError:
                logger.warning("Failed to remove scratch entry %s", entry, exc_info=True)
        return removed
