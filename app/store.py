"""Drummer - Metadata store.

The orchestrator only depends on the MetadataStore protocol; SqlSongStore is
the SQLite implementation used by the HTTP service.

Rename policy: last-writer-wins. The UPDATE and the re-read happen in the same
transaction, so the returned job is what the store holds after the write, not
an in-memory copy patched by the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from app.errors import SongNotFound
from app.jobs import Job, JobState
from app.models import Song, utc_now

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    """Capability set the pipeline and song management rely on."""

    def save(self, job: Job) -> None: ...

    def get(self, song_id: str) -> Job: ...

    def delete(self, song_id: str) -> None: ...

    def rename(self, song_id: str, name: str) -> Job: ...

    def list_all(self) -> list[Job]: ...


def _to_job(song: Song) -> Job:
    return Job(
        id=song.id,
        display_name=song.name,
        original_path=song.original_path,
        processed_path=song.processed_path,
        created_at=song.created_at,
        state=JobState.DONE,
    )


class SqlSongStore:
    """SQLAlchemy-backed store, one session per operation."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def save(self, job: Job) -> None:
        """Insert the record for a committed job.

        Raises:
            ValueError: If the job has no artifact paths.
            sqlalchemy.exc.SQLAlchemyError: If the insert fails (e.g. duplicate id).
        """
        if not job.original_path or not job.processed_path:
            raise ValueError(f"Job {job.id} has no committed artifacts")

        song = Song(
            id=job.id,
            name=job.display_name,
            original_path=job.original_path,
            processed_path=job.processed_path,
            created_at=job.created_at or utc_now(),
        )
        session: Session = self._session_factory()
        try:
            session.add(song)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, song_id: str) -> Job:
        """Fetch a record by id.

        Raises:
            SongNotFound: If no record exists.
        """
        session: Session = self._session_factory()
        try:
            song = session.get(Song, song_id)
            if song is None:
                raise SongNotFound(song_id)
            return _to_job(song)
        finally:
            session.close()

    def delete(self, song_id: str) -> None:
        """Delete a record by id.

        Raises:
            SongNotFound: If no record exists.
        """
        session: Session = self._session_factory()
        try:
            result = session.execute(delete(Song).where(Song.id == song_id))
            if result.rowcount == 0:
                session.rollback()
                raise SongNotFound(song_id)
            session.commit()
        except SongNotFound:
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def rename(self, song_id: str, name: str) -> Job:
        """Update the display name and return the stored record.

        Raises:
            SongNotFound: If no record exists.
        """
        session: Session = self._session_factory()
        try:
            result = session.execute(update(Song).where(Song.id == song_id).values(name=name))
            if result.rowcount == 0:
                session.rollback()
                raise SongNotFound(song_id)
            song = session.execute(select(Song).where(Song.id == song_id)).scalar_one()
            session.commit()
            logger.debug("Renamed song_id=%s", song_id)
            return _to_job(song)
        except SongNotFound:
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def list_all(self) -> list[Job]:
        """Return every record, newest first."""
        session: Session = self._session_factory()
        try:
            stmt = select(Song).order_by(Song.created_at.desc(), Song.id)
            return [_to_job(song) for song in session.execute(stmt).scalars()]
        finally:
            session.close()
