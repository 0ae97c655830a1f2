"""Drummer - Pydantic models for API validation.

Song JSON keeps the field names the web client already consumes:
id, name, original, processed, created_at.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.jobs import Job


# --- Request Models ---


class RemoteRequest(BaseModel):
    """Request payload for processing a remote URL."""

    model_config = ConfigDict(extra="forbid")

    url: str = Field(default="", description="Remote media URL (http or https)")


class RenameRequest(BaseModel):
    """Request payload for renaming a song."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="New display name")


# --- Response Models ---


class SongResponse(BaseModel):
    """A committed song record."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Job identifier")
    name: str = Field(..., description="Display name")
    original: str = Field(..., description="Path of the original audio")
    processed: str = Field(..., description="Path of the audio with the stem removed")
    created_at: datetime = Field(..., description="Commit timestamp")

    @classmethod
    def from_job(cls, job: Job) -> "SongResponse":
        return cls(
            id=job.id,
            name=job.display_name,
            original=job.original_path,
            processed=job.processed_path,
            created_at=job.created_at,
        )


class ErrorResponse(BaseModel):
    """Response for failed operations. Messages are coarse and user-facing."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error taxonomy code")
    error_message: str = Field(..., description="Human-readable error description")


class MessageResponse(BaseModel):
    """Plain confirmation message."""

    model_config = ConfigDict(extra="forbid")

    message: str


class VersionResponse(BaseModel):
    """Service version."""

    model_config = ConfigDict(extra="forbid")

    version: str
    name: str


__all__ = [
    "RemoteRequest",
    "RenameRequest",
    "SongResponse",
    "ErrorResponse",
    "MessageResponse",
    "VersionResponse",
]
