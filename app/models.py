"""Drummer - SQLAlchemy ORM models.

One table: songs. A row exists only for jobs that reached the committed
state, so both paths always point at promoted files.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class Song(Base):
    """Committed job record: display name plus the original/processed pair."""

    __tablename__ = "songs"

    # Job id (uuid4 hex), also the basename of both artifact files
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    original_path: Mapped[str] = mapped_column(Text, nullable=False)
    processed_path: Mapped[str] = mapped_column(Text, nullable=False)

    # Assigned at commit time
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("ix_songs_created_at", "created_at"),)
