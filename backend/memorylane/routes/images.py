"""
Memory Lane Backend — Image Route Handler
==========================================

What:  GET /api/images/{id} returns the raw bytes of a memory's image with
       its stored Content-Type, whichever storage strategy is active.

Unlike the memory routes, a malformed id here is a client error (400).
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from memorylane.database import get_db_session
from memorylane.dependencies import get_repository
from memorylane.exceptions import ValidationError
from memorylane.schemas.memory import UUID_PATTERN, ErrorResponse
from memorylane.services.memory_repository import MemoryRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Images"])


@router.get(
    "/images/{memory_id}",
    response_class=Response,
    responses={
        200: {"description": "Image bytes", "content": {"image/*": {}}},
        400: {"description": "Invalid id", "model": ErrorResponse},
        404: {"description": "No image for this memory", "model": ErrorResponse},
    },
    summary="Fetch the image attached to a memory",
)
async def get_image(
    memory_id: str,
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
) -> Response:
    if not UUID_PATTERN.fullmatch(memory_id):
        raise ValidationError(
            message=f"'{memory_id}' is not a valid image id",
            field="memory_id",
        )
    parsed_id = uuid.UUID(memory_id)

    image = await repository.fetch_image(db, parsed_id)

    # Images change when a memory is updated, so clients must revalidate.
    return Response(
        content=image.data,
        media_type=image.mime_type,
        headers={"Cache-Control": "private, no-cache"},
    )
