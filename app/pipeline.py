"""Drummer - Job orchestrator.

Runs one job end to end on the calling thread:

    CREATED -> ACQUIRING -> PROCESSING -> COMMITTING -> DONE
                   |             |             |
                   +-------------+-------------+--> FAILED

Resource discipline:
- Input validation happens before the workspace exists.
- Everything else runs inside WorkspaceManager.open, so the workspace is
  released exactly once on every exit path.
- Acquired input and processed output live only in the workspace until
  commit; a failure before commit discards both together.
- Commit promotes the original, then the processed file, then saves the
  record. A failure at any commit step deletes every file promoted so far,
  so no record ever points at a missing file and no file outlives a failed
  job.
"""

from __future__ import annotations

import logging
from pathlib import Path

from app import config
from app.acquisition import AcquisitionResolver
from app.errors import CommitError, PipelineError, ValidationError
from app.jobs import TRANSITIONS, Job, JobState, RemoteSource, UploadSource, generate_job_id
from app.models import utc_now
from app.stems import StemRemover
from app.store import MetadataStore
from app.utils.paths import original_audio_path, processed_audio_path
from app.workspace import WorkspaceManager

logger = logging.getLogger(__name__)


def _transition(job: Job, state: JobState) -> None:
    if state not in TRANSITIONS[job.state]:
        raise RuntimeError(f"Illegal job transition {job.state} -> {state} for job {job.id}")
    logger.info("job_id=%s %s -> %s", job.id, job.state, state)
    job.state = state


def _discard(paths: list[Path]) -> None:
    """Best-effort removal of promoted files during rollback."""
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.error("Rollback could not remove %s", path, exc_info=True)


class JobPipeline:
    """Sequences acquisition, stem removal and commit for one job at a time.

    Holds no per-job state; concurrent calls each get their own workspace.
    """

    def __init__(
        self,
        store: MetadataStore,
        resolver: AcquisitionResolver,
        stem_remover: StemRemover,
        workspaces: WorkspaceManager,
        uploads_dir: str | Path | None = None,
        processed_dir: str | Path | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.stem_remover = stem_remover
        self.workspaces = workspaces
        self.uploads_dir = Path(uploads_dir if uploads_dir is not None else config.UPLOADS_DIR)
        self.processed_dir = Path(
            processed_dir if processed_dir is not None else config.PROCESSED_DIR
        )

    def run_upload(self, stream, filename: str) -> Job:
        """Process an uploaded file."""
        return self.run(UploadSource(stream=stream, filename=filename))

    def run_remote(self, url: str) -> Job:
        """Process a remote URL."""
        return self.run(RemoteSource(url=url))

    def run(self, source: UploadSource | RemoteSource) -> Job:
        """Run a job to DONE or FAILED.

        Returns:
            The committed job.

        Raises:
            ValidationError: Bad input; nothing was written.
            AcquisitionError: Input could not be fetched or staged.
            ProcessingError: An external media engine failed.
            CommitError: Promotion or record persistence failed.
        """
        job = Job(id=generate_job_id(), source=source)
        _transition(job, JobState.ACQUIRING)

        try:
            source = self.resolver.validate(source)
        except ValidationError as e:
            _transition(job, JobState.FAILED)
            logger.info("job_id=%s rejected: %s", job.id, e.message)
            raise
        job.source = source

        try:
            with self.workspaces.open(job.id) as workspace:
                acquired = self.resolver.resolve(source, workspace)
                job.display_name = acquired.display_name

                _transition(job, JobState.PROCESSING)
                self.stem_remover.remove_stem(
                    acquired.path, workspace.processed_file, workspace.stems_dir
                )

                _transition(job, JobState.COMMITTING)
                self._commit(job, acquired.path, workspace.processed_file)

                _transition(job, JobState.DONE)
        except PipelineError as e:
            if job.state != JobState.FAILED:
                _transition(job, JobState.FAILED)
            logger.error(
                "job_id=%s failed: %s (detail: %s)", job.id, e.message, e.detail or "none"
            )
            raise
        except Exception:
            if job.state != JobState.FAILED:
                _transition(job, JobState.FAILED)
            logger.exception("job_id=%s failed unexpectedly", job.id)
            raise

        logger.info("job_id=%s committed as %r", job.id, job.display_name)
        return job

    def _commit(self, job: Job, original_tmp: Path, processed_tmp: Path) -> None:
        original_final = original_audio_path(job.id, self.uploads_dir)
        processed_final = processed_audio_path(job.id, self.processed_dir)
        promoted: list[Path] = []

        try:
            self.workspaces.promote(original_tmp, original_final)
            promoted.append(original_final)
            self.workspaces.promote(processed_tmp, processed_final)
            promoted.append(processed_final)
        except OSError as e:
            _discard(promoted)
            raise CommitError("Failed to store audio files", detail=str(e)) from e

        job.original_path = str(original_final)
        job.processed_path = str(processed_final)
        job.created_at = utc_now()

        try:
            self.store.save(job)
        except Exception as e:
            _discard(promoted)
            job.original_path = None
            job.processed_path = None
            job.created_at = None
            raise CommitError("Failed to save song metadata", detail=str(e)) from e
