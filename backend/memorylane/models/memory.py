"""
Memory Lane Backend — Memory & MemoryImage SQLAlchemy Models
=============================================================

What:  ORM models for the `memories` table and the `memory_images` side table.
How:   Inherit from the shared DeclarativeBase; Alembic migrations in
       memorylane/migrations create the same shape.
Who:   MemoryRepository, the image stores, and SchemaManager's checks.

Table Design:
    memories
        id           UUID primary key (generated in Python, see ensure_valid_uuid)
        title        VARCHAR(255)
        content      TEXT
        date         TIMESTAMP WITH TIME ZONE  (when the memory happened)
        mood         VARCHAR(50), nullable
        tags         TEXT[] on PostgreSQL, JSON elsewhere
        has_image    BOOLEAN, mirrors the image store
        image_data   TEXT, base64 payload (inline strategy only)
        image_mime_type VARCHAR(50) (inline strategy only)

    memory_images
        memory_id    UUID primary key, FK → memories.id ON DELETE CASCADE
        data         BYTEA / BLOB
        mime_type    VARCHAR(50)
        created_at   TIMESTAMP WITH TIME ZONE

    Index on memories.date DESC serves the only list query.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    String,
    Text,
    Uuid,
    false,
    text,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from memorylane.database import Base

# PostgreSQL keeps tags as TEXT[]; other dialects store a JSON list.
TagList = JSON().with_variant(postgresql.ARRAY(Text), "postgresql")


class Memory(Base):
    """
    A single diary entry.

    Lifecycle:
        Created by POST /api/memories, fully replaced by PUT, removed by
        DELETE together with its image.
    """

    __tablename__ = "memories"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Stored in UTC. SQLite keeps the wall-clock value only, so the
    # repository normalizes every incoming date before it gets here.
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    mood: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Nullable as created by migration 001; NULL is returned as []
    tags: Mapped[Optional[List[str]]] = mapped_column(TagList, nullable=True, default=list)

    has_image: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    # Inline strategy columns. Deferred so list queries never load payloads.
    image_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True, deferred=True)
    image_mime_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Memory(id={self.id}, title='{self.title}', date='{self.date}')>"


# List queries always ORDER BY date DESC
Index("idx_memories_date", Memory.date.desc())


class MemoryImage(Base):
    """
    Image bytes for one memory (database strategy).

    One-to-one with Memory: the owning id is also the primary key, so a
    second save for the same memory must replace the row.
    """

    __tablename__ = "memory_images"

    memory_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("memories.id", ondelete="CASCADE"),
        primary_key=True,
    )

    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    mime_type: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<MemoryImage(memory_id={self.memory_id}, mime_type='{self.mime_type}')>"
