"""
Memory Lane Backend — Memory Route Handlers
============================================

What:  The five CRUD routes under /api/memories.
How:   Write routes accept either a JSON object or a multipart/urlencoded
       form. Form submissions may carry one image under the `image` field;
       it is validated before the repository is called, so a rejected upload
       never reaches the database.
Who:   Called by the diary frontend.

Request Flow (POST/PUT):
    1. read_write_request(): body → dict of fields + optional UploadFile
    2. UploadService.read_upload(): type/extension/size checks → ImageUpload
    3. MemoryFields.parse(): tags, date, deleteImage normalization
    4. MemoryRepository: transactional write
    5. 201 (create) / 200 (update) with the stored entry
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from memorylane.database import get_db_session
from memorylane.dependencies import get_repository, get_upload_service
from memorylane.exceptions import ValidationError
from memorylane.schemas.memory import (
    DeleteResponse,
    ErrorResponse,
    MemoryFields,
    MemoryResponse,
)
from memorylane.services.memory_repository import MemoryRepository
from memorylane.services.upload_service import IMAGE_FIELD, ImageUpload, UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Memories"])

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

# Multi-valued form fields that are kept as lists (tags=a&tags=b)
LIST_FIELDS = {"tags"}


async def read_write_request(
    request: Request,
    upload_service: UploadService,
) -> Tuple[MemoryFields, Optional[ImageUpload]]:
    """
    Extract fields and the optional image from a JSON or form body.

    Raises:
        ValidationError: malformed JSON, more than one image, or an image
            that fails upload validation.
    """
    content_type = request.headers.get("content-type", "").lower()
    data: Dict[str, Any] = {}
    image: Optional[ImageUpload] = None

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        files = [v for v in form.getlist(IMAGE_FIELD) if isinstance(v, UploadFile)]
        if len(files) > 1:
            raise ValidationError(
                message="Only one image can be uploaded per memory",
                field=IMAGE_FIELD,
                context={"received": len(files)},
            )

        for key in set(form.keys()):
            if key == IMAGE_FIELD:
                continue
            values: List[str] = [v for v in form.getlist(key) if isinstance(v, str)]
            if not values:
                continue
            if key in LIST_FIELDS and len(values) > 1:
                data[key] = values
            else:
                data[key] = values[-1]

        image = await upload_service.read_upload(files[0] if files else None)
    else:
        body = await request.body()
        if body.strip():
            try:
                data = json.loads(body)
            except ValueError:
                raise ValidationError(message="Request body is not valid JSON")
            if not isinstance(data, dict):
                raise ValidationError(message="Request body must be a JSON object")

    return MemoryFields.parse(data), image


@router.get(
    "/memories",
    response_model=List[MemoryResponse],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="List all memories",
    description="Returns every memory ordered by date, newest first.",
)
async def list_memories(
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
) -> List[MemoryResponse]:
    return await repository.list_memories(db)


@router.get(
    "/memories/{memory_id}",
    response_model=MemoryResponse,
    responses={
        404: {"description": "Memory not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Get a single memory",
)
async def get_memory(
    memory_id: str,
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
) -> MemoryResponse:
    """
    memory_id is taken as a plain string: a malformed id is not a 422, it is
    looked up as a fresh UUID and reported as 404.
    """
    return await repository.get_memory(db, memory_id)


@router.post(
    "/memories",
    status_code=status.HTTP_201_CREATED,
    response_model=MemoryResponse,
    responses={
        400: {"description": "Invalid field or image", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Create a memory",
    description=(
        "Accepts JSON or multipart/form-data with title, content, date, mood, tags "
        "and an optional `image` file (JPEG, PNG, GIF or WebP, max 5MB). "
        "Tags may be a list, a JSON-encoded list, or a comma-separated string."
    ),
)
async def create_memory(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
    upload_service: UploadService = Depends(get_upload_service),
) -> MemoryResponse:
    fields, image = await read_write_request(request, upload_service)
    return await repository.create_memory(db, fields, image)


@router.put(
    "/memories/{memory_id}",
    response_model=MemoryResponse,
    responses={
        400: {"description": "Invalid field or image", "model": ErrorResponse},
        404: {"description": "Memory not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Replace a memory",
    description=(
        "Full replace: omitted text fields become empty, omitted mood becomes "
        "'neutral', omitted date becomes now. A new `image` replaces the old one; "
        "otherwise `deleteImage=true` removes it; otherwise the image is kept."
    ),
)
async def update_memory(
    memory_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
    upload_service: UploadService = Depends(get_upload_service),
) -> MemoryResponse:
    fields, image = await read_write_request(request, upload_service)
    return await repository.update_memory(
        db,
        memory_id,
        fields,
        image=image,
        delete_image=fields.delete_image,
    )


@router.delete(
    "/memories/{memory_id}",
    response_model=DeleteResponse,
    responses={
        404: {"description": "Memory not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Delete a memory and its image",
)
async def delete_memory(
    memory_id: str,
    db: AsyncSession = Depends(get_db_session),
    repository: MemoryRepository = Depends(get_repository),
) -> DeleteResponse:
    await repository.delete_memory(db, memory_id)
    return DeleteResponse()
