"""Drummer - FastAPI application.

HTTP glue around the media job pipeline. Each processing request runs its
job synchronously on the request's worker thread; there is no queue.

Run with:
    uvicorn services.drummer_api.main:app --port 8080
or:
    python -m services.drummer_api.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated

from fastapi import Depends, FastAPI, File, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from app import __version__, config
from app.db import init_db
from app.engines import MediaEngines, LocalEngines
from app.errors import ErrorCode, PipelineError, SongNotFound, ValidationError
from app.pipeline import JobPipeline
from app.schemas import (
    ErrorResponse,
    MessageResponse,
    RemoteRequest,
    RenameRequest,
    SongResponse,
    VersionResponse,
)
from app.store import MetadataStore, SqlSongStore
from services.drummer_api.service import (
    build_pipeline,
    delete_song,
    download_filename,
    ensure_data_dirs,
    rename_song,
    startup_cleanup,
)

logger = logging.getLogger(__name__)

# --- Store Setup ---

# Module-level store (initialized on startup)
_store: MetadataStore | None = None


def get_store() -> MetadataStore:
    """Dependency that provides the metadata store.

    Raises:
        RuntimeError: If the store is not initialized (app lifespan not invoked).
    """
    if _store is None:
        raise RuntimeError("Store not initialized. App lifespan not invoked?")
    return _store


def get_engines() -> MediaEngines:
    """Dependency that provides the external media engines."""
    return LocalEngines()


def get_pipeline(
    store: Annotated[MetadataStore, Depends(get_store)],
    engines: Annotated[MediaEngines, Depends(get_engines)],
) -> JobPipeline:
    """Dependency that provides a pipeline over the current store and engines."""
    return build_pipeline(store, engines)


# --- Lifespan ---


def _startup_cleanup_safe() -> None:
    """Sweep scratch space and orphan temp files (best-effort, never raises)."""
    try:
        ensure_data_dirs()
        startup_cleanup()
    except Exception:
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Initializes the database and store, then cleans up leftovers from a
    previous run.
    """
    global _store
    engine = None
    if _store is None:
        engine, session_factory = init_db(config.DB_PATH)
        _store = SqlSongStore(session_factory)

    _startup_cleanup_safe()

    yield

    if engine is not None:
        engine.dispose()
        _store = None


# --- FastAPI App ---


app = FastAPI(
    title="Drummer API",
    description="Removes a stem (drums by default) from uploaded or remote audio.",
    version=__version__,
    lifespan=lifespan,
)


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - VALIDATION_FAILED -> 400
    - NOT_FOUND -> 404
    - everything else -> 500
    """
    if error_code == ErrorCode.VALIDATION_FAILED:
        return 400
    if error_code == ErrorCode.NOT_FOUND:
        return 404
    return 500


def make_error_response(error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=error_code_to_status(error_code),
        content=ErrorResponse(
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


def not_found_response() -> JSONResponse:
    return make_error_response(ErrorCode.NOT_FOUND, "Song not found")


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    500: {"model": ErrorResponse, "description": "Processing failed"},
}


# --- Endpoints ---


@app.post(
    "/api/upload",
    response_model=SongResponse,
    responses=ERROR_RESPONSES,
    summary="Upload an MP3 and remove a stem",
)
def upload_song(
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
    file: Annotated[UploadFile | None, File(description="MP3 file to process")] = None,
):
    """Run the pipeline on an uploaded file and return the committed song."""
    if file is None:
        return make_error_response(ErrorCode.VALIDATION_FAILED, "No file uploaded")

    try:
        job = pipeline.run_upload(file.file, file.filename or "")
        return SongResponse.from_job(job)
    except PipelineError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error during upload")
        return make_error_response(ErrorCode.INTERNAL_ERROR, "Failed to process audio")


@app.post(
    "/api/youtube",
    response_model=SongResponse,
    responses=ERROR_RESPONSES,
    summary="Download remote audio and remove a stem",
)
def process_remote(
    request: RemoteRequest,
    pipeline: Annotated[JobPipeline, Depends(get_pipeline)],
):
    """Run the pipeline on a remote URL and return the committed song."""
    try:
        job = pipeline.run_remote(request.url)
        return SongResponse.from_job(job)
    except PipelineError as e:
        return make_error_response(e.error_code, e.message)
    except Exception:
        logger.exception("Unexpected error during remote processing")
        return make_error_response(ErrorCode.INTERNAL_ERROR, "Failed to process audio")


@app.get("/api/songs", response_model=list[SongResponse], summary="List songs, newest first")
def list_songs(store: Annotated[MetadataStore, Depends(get_store)]):
    try:
        return [SongResponse.from_job(job) for job in store.list_all()]
    except Exception:
        logger.exception("Failed to list songs")
        return make_error_response(ErrorCode.INTERNAL_ERROR, "Failed to fetch songs")


def _download(store: MetadataStore, song_id: str, original: bool):
    try:
        job = store.get(song_id)
    except SongNotFound:
        return not_found_response()

    path = Path(job.original_path if original else job.processed_path)
    if not path.is_file():
        logger.error("Artifact missing on disk for song_id=%s: %s", song_id, path)
        return not_found_response()

    return FileResponse(
        path,
        media_type="audio/mpeg",
        filename=download_filename(job, original=original),
    )


@app.get(
    "/api/download/{song_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Download the processed file",
)
def download_processed(song_id: str, store: Annotated[MetadataStore, Depends(get_store)]):
    return _download(store, song_id, original=False)


@app.get(
    "/api/download/{song_id}/original",
    responses={404: {"model": ErrorResponse}},
    summary="Download the original file",
)
def download_original(song_id: str, store: Annotated[MetadataStore, Depends(get_store)]):
    return _download(store, song_id, original=True)


@app.delete(
    "/api/songs/{song_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Delete a song and its files",
)
def remove_song(song_id: str, store: Annotated[MetadataStore, Depends(get_store)]):
    try:
        delete_song(store, song_id)
    except SongNotFound:
        return not_found_response()
    except Exception:
        logger.exception("Failed to delete song_id=%s", song_id)
        return make_error_response(
            ErrorCode.INTERNAL_ERROR, "Failed to delete song from database"
        )
    return MessageResponse(message="Song deleted successfully")


@app.put(
    "/api/songs/{song_id}",
    response_model=SongResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Rename a song",
)
def update_song(
    song_id: str,
    request: RenameRequest,
    store: Annotated[MetadataStore, Depends(get_store)],
):
    try:
        job = rename_song(store, song_id, request.name)
    except ValidationError as e:
        return make_error_response(e.error_code, e.message)
    except SongNotFound:
        return not_found_response()
    except Exception:
        logger.exception("Failed to rename song_id=%s", song_id)
        return make_error_response(ErrorCode.INTERNAL_ERROR, "Failed to update song name")
    return SongResponse.from_job(job)


@app.get("/api/version", response_model=VersionResponse, summary="Service version")
def get_version():
    return VersionResponse(version=__version__, name=config.APP_NAME)


@app.get("/health", summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


# --- For testing: allow overriding the store ---


def override_store(store: MetadataStore | None) -> None:
    """Override the metadata store for testing."""
    global _store
    _store = store


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8080)
