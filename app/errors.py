"""Drummer - Pipeline error taxonomy.

Every error carries a coarse, user-facing message. Low-level detail (raw
engine output, OS errors) travels in `detail` and is only ever logged.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """Error codes surfaced to API callers."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    ACQUISITION_FAILED = "ACQUISITION_FAILED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AcquisitionCategory(StrEnum):
    """Coarse classification of remote acquisition failures."""

    NETWORK = "network"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    RESTRICTED = "restricted"
    MISSING_OUTPUT = "missing_output"
    AMBIGUOUS_OUTPUT = "ambiguous_output"
    EMPTY_FILE = "empty_file"
    STORAGE = "storage"
    UNKNOWN = "unknown"


ACQUISITION_MESSAGES = {
    AcquisitionCategory.NETWORK: "Network error: Unable to connect to the remote host",
    AcquisitionCategory.PERMISSION: "Permission error: Media may be private or restricted",
    AcquisitionCategory.NOT_FOUND: "Media not found: Please check the URL",
    AcquisitionCategory.RESTRICTED: "Media is age-restricted or requires login",
    AcquisitionCategory.MISSING_OUTPUT: "Downloaded file not found",
    AcquisitionCategory.AMBIGUOUS_OUTPUT: "Download produced more than one file",
    AcquisitionCategory.EMPTY_FILE: "Audio file is empty",
    AcquisitionCategory.STORAGE: "Failed to save file",
    AcquisitionCategory.UNKNOWN: "Failed to download audio",
}


class PipelineError(Exception):
    """Base exception for media job pipeline errors."""

    error_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(f"{self.error_code}: {message}")


class ValidationError(PipelineError):
    """Input has the wrong shape. Raised before any storage is touched."""

    error_code = ErrorCode.VALIDATION_FAILED


class AcquisitionError(PipelineError):
    """Input could not be turned into exactly one local audio file."""

    error_code = ErrorCode.ACQUISITION_FAILED

    def __init__(
        self,
        category: AcquisitionCategory,
        last_error: str | None = None,
        attempts: int = 0,
    ):
        self.category = category
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(ACQUISITION_MESSAGES[category], detail=last_error)


class ProcessingError(PipelineError):
    """The decomposition or mixing engine failed."""

    error_code = ErrorCode.PROCESSING_FAILED

    def __init__(self, detail: str | None = None):
        super().__init__("Failed to process audio", detail=detail)


class CommitError(PipelineError):
    """Promotion or metadata persistence failed after processing succeeded."""

    error_code = ErrorCode.COMMIT_FAILED


class EngineError(Exception):
    """An external media command exited non-zero or could not be started."""

    def __init__(self, command: list[str], returncode: int | None, output: str):
        self.command = command
        self.returncode = returncode
        self.output = output
        program = command[0] if command else "<empty>"
        super().__init__(f"{program} failed (exit={returncode}): {output.strip()[-2000:]}")


class SongNotFound(LookupError):
    """No record exists for the requested job id."""

    def __init__(self, song_id: str):
        self.song_id = song_id
        super().__init__(f"Song not found: {song_id}")
