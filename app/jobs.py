"""Drummer - Job data model.

A Job is one end-to-end request: acquire an audio file, remove a stem,
commit the original/processed pair. Only committed jobs are persisted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import BinaryIO


class JobState(StrEnum):
    """Lifecycle states of a job."""

    CREATED = "created"
    ACQUIRING = "acquiring"
    PROCESSING = "processing"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


# Legal transitions; FAILED is terminal like DONE
TRANSITIONS = {
    JobState.CREATED: {JobState.ACQUIRING},
    JobState.ACQUIRING: {JobState.PROCESSING, JobState.FAILED},
    JobState.PROCESSING: {JobState.COMMITTING, JobState.FAILED},
    JobState.COMMITTING: {JobState.DONE, JobState.FAILED},
    JobState.DONE: set(),
    JobState.FAILED: set(),
}


@dataclass
class UploadSource:
    """Uploaded byte stream with the filename the client claimed."""

    stream: BinaryIO
    filename: str


@dataclass
class RemoteSource:
    """Remote media URL handed to the extraction engine."""

    url: str


@dataclass
class Job:
    """A single processing request and, once committed, its record."""

    id: str
    display_name: str = ""
    original_path: str | None = None
    processed_path: str | None = None
    created_at: datetime | None = None
    state: JobState = JobState.CREATED
    source: UploadSource | RemoteSource | None = field(default=None, repr=False)

    @property
    def is_committed(self) -> bool:
        return self.state == JobState.DONE


def generate_job_id() -> str:
    """Generate a unique job ID.

    Uses UUID4 for uniqueness. Format: uuid4 hex (32 chars).
    """
    return uuid.uuid4().hex
