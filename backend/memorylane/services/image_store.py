"""
Memory Lane Backend — Image Storage Strategies
===============================================

What:  Abstract ImageStore contract and its three interchangeable
       implementations, selected by the IMAGE_STORAGE setting.
How:   Every method receives the caller's AsyncSession so database-backed
       stores take part in the repository's transaction.
Who:   MemoryRepository (save/fetch/delete), SchemaManager (asset_ids).

Contract:
    save(session, memory_id, data, mime_type)   replaces any existing image
    fetch(session, memory_id) -> StoredImage    raises NotFoundError
    delete(session, memory_id)                  no-op when nothing is stored
    asset_ids(session) -> set of memory ids that currently have an image
    finalize(memory_id)                         after commit
    discard(memory_id)                          after rollback

Strategies:
    DatabaseImageStore    memory_images side table (default)
    InlineImageStore      base64 text in memories.image_data
    FilesystemImageStore  <storage_root>/<memory_id><ext>, written with aiofiles

The two database-backed strategies are atomic with the entry row. The
filesystem store stages its changes and applies them in finalize(), so a
rolled-back write never removes or replaces the previous file.
"""

import base64
import binascii
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import aiofiles
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from memorylane.exceptions import FileStorageError, NotFoundError, ValidationError
from memorylane.models.memory import Memory, MemoryImage
from memorylane.services.upload_service import EXTENSION_MIME_TYPES

logger = logging.getLogger(__name__)

# Canonical MIME type → file extension used on disk
MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


@dataclass(frozen=True)
class StoredImage:
    data: bytes
    mime_type: str


class ImageStore(ABC):
    """
    Where image bytes live for a memory.

    Implementations never touch the memories.has_image flag; keeping it in
    step with the store is the repository's job.
    """

    name: str = "abstract"

    @abstractmethod
    async def save(
        self, session: AsyncSession, memory_id: uuid.UUID, data: bytes, mime_type: str
    ) -> None:
        """Store `data` for `memory_id`, replacing any previous image."""
        ...

    @abstractmethod
    async def fetch(self, session: AsyncSession, memory_id: uuid.UUID) -> StoredImage:
        """Return the stored image or raise NotFoundError."""
        ...

    @abstractmethod
    async def delete(self, session: AsyncSession, memory_id: uuid.UUID) -> None:
        """Remove the image for `memory_id`; nothing to remove is not an error."""
        ...

    @abstractmethod
    async def asset_ids(self, session: AsyncSession) -> Set[uuid.UUID]:
        """Ids of every memory that currently has an image in this store."""
        ...

    async def finalize(self, memory_id: uuid.UUID) -> None:
        """
        Apply work that must wait until the repository's transaction has
        committed. Database-backed stores have none.
        """
        return None

    async def discard(self, memory_id: uuid.UUID) -> None:
        """
        Drop work staged for a transaction that rolled back.

        Database-backed stores have none.
        """
        return None


# ══════════════════════════════════════════════════════════════════════════
# Side Table
# ══════════════════════════════════════════════════════════════════════════

class DatabaseImageStore(ImageStore):
    """Bytes in the memory_images table, one row per memory."""

    name = "database"

    async def save(self, session, memory_id, data, mime_type):
        existing = await session.get(MemoryImage, memory_id)
        if existing is None:
            session.add(MemoryImage(memory_id=memory_id, data=data, mime_type=mime_type))
        else:
            existing.data = data
            existing.mime_type = mime_type
        await session.flush()
        logger.debug("Stored image for memory %s in memory_images (%d bytes)", memory_id, len(data))

    async def fetch(self, session, memory_id):
        result = await session.execute(
            select(MemoryImage.data, MemoryImage.mime_type).where(
                MemoryImage.memory_id == memory_id
            )
        )
        row = result.first()
        if row is None:
            raise NotFoundError(resource="image", resource_id=str(memory_id))
        return StoredImage(data=bytes(row.data), mime_type=row.mime_type)

    async def delete(self, session, memory_id):
        existing = await session.get(MemoryImage, memory_id)
        if existing is not None:
            await session.delete(existing)
            await session.flush()

    async def asset_ids(self, session):
        result = await session.execute(select(MemoryImage.memory_id))
        return set(result.scalars().all())


# ══════════════════════════════════════════════════════════════════════════
# Inline Column
# ══════════════════════════════════════════════════════════════════════════

class InlineImageStore(ImageStore):
    """Base64 text in the entry's own row (memories.image_data)."""

    name = "inline"

    async def save(self, session, memory_id, data, mime_type):
        encoded = base64.b64encode(data).decode("ascii")
        result = await session.execute(
            update(Memory)
            .where(Memory.id == memory_id)
            .values(image_data=encoded, image_mime_type=mime_type)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(resource="memory", resource_id=str(memory_id))

    async def fetch(self, session, memory_id):
        result = await session.execute(
            select(Memory.image_data, Memory.image_mime_type).where(Memory.id == memory_id)
        )
        row = result.first()
        if row is None or row.image_data is None:
            raise NotFoundError(resource="image", resource_id=str(memory_id))
        try:
            data = base64.b64decode(row.image_data, validate=True)
        except (binascii.Error, ValueError):
            logger.error("Corrupt inline image for memory %s", memory_id)
            raise NotFoundError(resource="image", resource_id=str(memory_id))
        return StoredImage(data=data, mime_type=row.image_mime_type or "application/octet-stream")

    async def delete(self, session, memory_id):
        await session.execute(
            update(Memory)
            .where(Memory.id == memory_id)
            .values(image_data=None, image_mime_type=None)
            .execution_options(synchronize_session=False)
        )

    async def asset_ids(self, session):
        result = await session.execute(select(Memory.id).where(Memory.image_data.is_not(None)))
        return set(result.scalars().all())


# ══════════════════════════════════════════════════════════════════════════
# Filesystem
# ══════════════════════════════════════════════════════════════════════════

class FilesystemImageStore(ImageStore):
    """
    One file per memory under storage_root, named <memory_id><ext>.

    The directory is also mounted at /uploads by main.py, so files can be
    served statically as well as through GET /api/images/{id}.

    Writes and removals are staged while the repository's transaction is
    open and applied by finalize() after it commits:
        save     bytes go to <memory_id><ext>.<token>.tmp
        delete   the removal is queued, nothing is touched yet
        finalize staged file renamed into place, other extensions removed
        discard  staged file removed, queued removal dropped

    Directory layout:
        uploads/
        ├── 0b6c...e1.jpg
        └── 9f3a...07.png
    """

    name = "filesystem"

    def __init__(self, storage_root: str):
        self.storage_root = Path(storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        # memory_id → (staged file, final path), or None for a queued removal
        self._pending: Dict[uuid.UUID, Optional[Tuple[Path, Path]]] = {}
        logger.info("FilesystemImageStore initialized with storage_root=%s", self.storage_root)

    def _existing_paths(self, memory_id: uuid.UUID) -> List[Path]:
        return [
            self.storage_root / f"{memory_id}{ext}"
            for ext in MIME_EXTENSIONS.values()
            if (self.storage_root / f"{memory_id}{ext}").exists()
        ]

    def path_for(self, memory_id: uuid.UUID, mime_type: str) -> Path:
        ext = MIME_EXTENSIONS.get(mime_type)
        if ext is None:
            raise ValidationError(
                message=f"Content type '{mime_type}' cannot be stored",
                field="image",
            )
        return self.storage_root / f"{memory_id}{ext}"

    def _remove(self, path: Path) -> None:
        """Best-effort delete; failures are logged, never raised."""
        try:
            os.remove(path)
            logger.info("Removed image file: %s", path.name)
        except FileNotFoundError:
            logger.debug("Image file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to remove image file %s: %s", path, str(e))

    def _drop_pending(self, memory_id: uuid.UUID) -> None:
        staged = self._pending.pop(memory_id, None)
        if staged is not None:
            self._remove(staged[0])

    async def save(self, session, memory_id, data, mime_type):
        target = self.path_for(memory_id, mime_type)
        staged = target.with_name(f"{target.name}.{uuid.uuid4().hex[:8]}.tmp")

        try:
            async with aiofiles.open(staged, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to stage image at %s: %s", staged, str(e))
            self._remove(staged)
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(staged), "os_error": str(e)},
            )

        self._drop_pending(memory_id)
        self._pending[memory_id] = (staged, target)
        logger.debug("Image staged: %s (%d bytes)", staged.name, len(data))

    async def fetch(self, session, memory_id):
        paths = self._existing_paths(memory_id)
        if not paths:
            raise NotFoundError(resource="image", resource_id=str(memory_id))
        path = paths[0]
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError:
            raise NotFoundError(resource="image", resource_id=str(memory_id))
        except OSError as e:
            raise FileStorageError(
                message="Failed to read stored image.",
                context={"path": str(path), "os_error": str(e)},
            )
        return StoredImage(data=data, mime_type=EXTENSION_MIME_TYPES[path.suffix])

    async def delete(self, session, memory_id):
        self._drop_pending(memory_id)
        self._pending[memory_id] = None

    async def finalize(self, memory_id):
        if memory_id not in self._pending:
            return
        staged = self._pending.pop(memory_id)

        keep = None
        if staged is not None:
            staged_path, target = staged
            try:
                os.replace(staged_path, target)
            except OSError as e:
                # The row is already committed; nothing left to roll back.
                logger.error("Failed to move %s into place: %s", staged_path.name, str(e))
                self._remove(staged_path)
                return
            keep = target
            logger.info("Image stored: %s", target.name)

        for path in self._existing_paths(memory_id):
            if path != keep:
                self._remove(path)

    async def discard(self, memory_id):
        self._drop_pending(memory_id)

    async def asset_ids(self, session):
        ids: Set[uuid.UUID] = set()
        for path in self.storage_root.iterdir():
            if path.suffix not in EXTENSION_MIME_TYPES:
                continue
            try:
                ids.add(uuid.UUID(path.stem))
            except ValueError:
                continue
        return ids


def build_image_store(strategy: str, storage_root: Optional[str] = None) -> ImageStore:
    """Instantiate the store named by the IMAGE_STORAGE setting."""
    if strategy == "database":
        return DatabaseImageStore()
    if strategy == "inline":
        return InlineImageStore()
    if strategy == "filesystem":
        return FilesystemImageStore(storage_root or "./uploads")
    raise ValueError(f"Unknown image storage strategy '{strategy}'")
