"""
Memory Lane Backend — Memory Repository
========================================

What:  CRUD for diary entries, coordinating the `memories` row with the
       configured ImageStore.
How:   Reads run as plain queries; every write runs inside unit_of_work so
       the row change and the image change commit or roll back together.
Who:   Called by the /api/memories and /api/images route handlers.

Write semantics:
    create   title required, content required, date → now, mood → "neutral",
             tags → []; the image (if any) is stored in the same transaction.
    update   full replace, not a patch: omitted title/content become "",
             omitted mood/date/tags get the create defaults. Image handling
             in priority order: new image replaces, else deleteImage removes,
             else the existing image is left alone.
    delete   image first (through the store), then the row.

    After a commit the store's finalize() applies staged file changes;
    after a rollback discard() drops them.

Error Handling Strategy:
    NotFoundError / ValidationError / StorageError propagate unchanged.
    Anything else raised while talking to the database is wrapped in
    DatabaseError with the original type name in its context.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from memorylane.database import unit_of_work
from memorylane.exceptions import DatabaseError, MemoryLaneError, NotFoundError, ValidationError
from memorylane.models.memory import Memory
from memorylane.schemas.memory import (
    DEFAULT_MOOD,
    MemoryFields,
    MemoryResponse,
    ensure_valid_uuid,
)
from memorylane.services.image_store import ImageStore, StoredImage
from memorylane.services.upload_service import ImageUpload

logger = logging.getLogger(__name__)


class MemoryRepository:
    """
    Business logic layer for memory entries.

    Holds no per-request state: the session is passed to every call and the
    image store is fixed at construction.
    """

    def __init__(self, image_store: ImageStore):
        self.image_store = image_store

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_memories(self, db: AsyncSession) -> List[MemoryResponse]:
        """
        Every memory, newest `date` first. No pagination.

        Query plan:
            SELECT ... FROM memories ORDER BY date DESC
            → idx_memories_date
        """
        try:
            result = await db.execute(select(Memory).order_by(desc(Memory.date)))
            memories = result.scalars().all()
        except Exception as e:
            logger.error("Database error listing memories: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="An error occurred while fetching memories",
                context={"error_type": type(e).__name__},
            )
        return [MemoryResponse.from_model(memory) for memory in memories]

    async def get_memory(self, db: AsyncSession, memory_id) -> MemoryResponse:
        """
        Retrieve a single memory.

        A malformed id is swapped for a fresh UUID, which is then simply not
        found.
        """
        memory = await self._load(db, ensure_valid_uuid(memory_id))
        return MemoryResponse.from_model(memory)

    async def fetch_image(self, db: AsyncSession, memory_id: uuid.UUID) -> StoredImage:
        """Return the image bytes for `memory_id` or raise NotFoundError."""
        return await self._guard(
            self.image_store.fetch(db, memory_id),
            "fetching the image",
            memory_id,
        )

    # ── Writes ────────────────────────────────────────────────────────────

    async def create_memory(
        self,
        db: AsyncSession,
        fields: MemoryFields,
        image: Optional[ImageUpload] = None,
    ) -> MemoryResponse:
        """
        Insert a new memory and, optionally, its image in one transaction.

        Raises:
            ValidationError: title missing/blank, content missing, or the
                client-supplied id is already taken.
        """
        if not fields.title or not fields.title.strip():
            raise ValidationError(message="Title is required", field="title")
        if fields.content is None:
            raise ValidationError(message="Content is required", field="content")

        memory_id = ensure_valid_uuid(fields.id)
        touched_store = False

        try:
            async with unit_of_work(db):
                if await db.get(Memory, memory_id) is not None:
                    raise ValidationError(
                        message=f"A memory with ID '{memory_id}' already exists",
                        field="id",
                    )

                memory = Memory(
                    id=memory_id,
                    title=fields.title,
                    content=fields.content,
                    date=fields.date or datetime.now(timezone.utc),
                    mood=fields.mood or DEFAULT_MOOD,
                    tags=fields.tags or [],
                    has_image=image is not None,
                )
                db.add(memory)
                await db.flush()

                if image is not None:
                    touched_store = True
                    await self.image_store.save(db, memory_id, image.data, image.mime_type)

                response = MemoryResponse.from_model(memory)
        except Exception as e:
            if touched_store:
                await self.image_store.discard(memory_id)
            raise self._translate(e, "creating the memory", memory_id)
        if touched_store:
            await self.image_store.finalize(memory_id)

        logger.info(
            "Memory created: %s (tags=%d, image=%s)",
            memory_id,
            len(response.tags),
            image is not None,
        )
        return response

    async def update_memory(
        self,
        db: AsyncSession,
        memory_id,
        fields: MemoryFields,
        image: Optional[ImageUpload] = None,
        delete_image: bool = False,
    ) -> MemoryResponse:
        """
        Replace every field of an existing memory.

        Raises:
            NotFoundError: no memory with that id (after normalization).
        """
        memory_id = ensure_valid_uuid(memory_id)
        touched_store = False

        try:
            async with unit_of_work(db):
                memory = await db.get(Memory, memory_id)
                if memory is None:
                    raise NotFoundError(resource="memory", resource_id=str(memory_id))

                memory.title = fields.title or ""
                memory.content = fields.content or ""
                memory.date = fields.date or datetime.now(timezone.utc)
                memory.mood = fields.mood or DEFAULT_MOOD
                memory.tags = fields.tags or []

                if image is not None:
                    memory.has_image = True
                    await db.flush()
                    touched_store = True
                    await self.image_store.save(db, memory_id, image.data, image.mime_type)
                elif delete_image:
                    memory.has_image = False
                    await db.flush()
                    touched_store = True
                    await self.image_store.delete(db, memory_id)
                else:
                    await db.flush()

                response = MemoryResponse.from_model(memory)
        except Exception as e:
            if touched_store:
                await self.image_store.discard(memory_id)
            raise self._translate(e, "updating the memory", memory_id)
        if touched_store:
            await self.image_store.finalize(memory_id)

        logger.info(
            "Memory updated: %s (image=%s)",
            memory_id,
            "replaced" if image is not None else "removed" if delete_image else "unchanged",
        )
        return response

    async def delete_memory(self, db: AsyncSession, memory_id) -> None:
        """
        Delete a memory and its image.

        The image goes through the store explicitly as well as through the
        ON DELETE CASCADE foreign key, so SQLite databases without foreign
        key enforcement and the filesystem store are covered too. Files are
        only removed once the row deletion has committed.
        """
        memory_id = ensure_valid_uuid(memory_id)
        touched_store = False

        try:
            async with unit_of_work(db):
                memory = await db.get(Memory, memory_id)
                if memory is None:
                    raise NotFoundError(resource="memory", resource_id=str(memory_id))

                touched_store = True
                await self.image_store.delete(db, memory_id)
                await db.delete(memory)
                await db.flush()
        except Exception as e:
            if touched_store:
                await self.image_store.discard(memory_id)
            raise self._translate(e, "deleting the memory", memory_id)
        await self.image_store.finalize(memory_id)

        logger.info("Memory deleted: %s", memory_id)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _load(self, db: AsyncSession, memory_id: uuid.UUID) -> Memory:
        memory = await self._guard(db.get(Memory, memory_id), "fetching the memory", memory_id)
        if memory is None:
            raise NotFoundError(resource="memory", resource_id=str(memory_id))
        return memory

    async def _guard(self, awaitable, action: str, memory_id: uuid.UUID):
        try:
            return await awaitable
        except Exception as e:
            raise self._translate(e, action, memory_id)

    @staticmethod
    def _translate(error: Exception, action: str, memory_id: uuid.UUID) -> Exception:
        """Pass our own exceptions through; wrap the rest in DatabaseError."""
        if isinstance(error, MemoryLaneError):
            return error
        logger.error(
            "Unexpected error while %s %s: %s",
            action,
            memory_id,
            str(error),
            exc_info=error,
        )
        return DatabaseError(
            message=f"An error occurred while {action}",
            context={"memory_id": str(memory_id), "original_error": type(error).__name__},
        )
