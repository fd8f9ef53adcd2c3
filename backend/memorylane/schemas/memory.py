"""
Memory Lane Backend — Pydantic Request/Response Schemas
========================================================

What:  Pydantic models defining the API contract, plus the small parsing
       helpers shared by the routes and the repository.
How:   Write routes collect JSON or form fields into a plain dict and hand it
       to MemoryFields.parse(); responses are built with MemoryResponse.

Field normalization on writes:
    tags         list, JSON-encoded list string, or comma-separated string
    date         ISO 8601; naive values are taken as UTC; stored in UTC
    deleteImage  true/false, 1/0, yes/no, on/off
    ""           an empty form value for date or mood counts as omitted
"""

import json
import re
import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from memorylane.exceptions import ValidationError

DEFAULT_MOOD = "neutral"

# Hyphenated 8-4-4-4-12 form only; no braces, urn: prefix or bare hex
UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


# ══════════════════════════════════════════════════════════════════════════
# Parsing Helpers
# ══════════════════════════════════════════════════════════════════════════

def ensure_valid_uuid(value: Any) -> uuid.UUID:
    """
    Return `value` as a UUID, or a freshly generated one if it is not a UUID.

    A missing or malformed id never raises: lookups with it simply find
    nothing, and creates get a new id.
    """
    if isinstance(value, uuid.UUID):
        return value
    if value and UUID_PATTERN.fullmatch(str(value)):
        return uuid.UUID(str(value))
    return uuid.uuid4()


def parse_tags(value: Any) -> List[str]:
    """
    Normalize the tags field into an ordered list of strings.

    Strings are JSON-decoded first; a string that does not decode to a list
    falls back to a comma split with whitespace stripped and blanks dropped.

        "a,b,c"        → ["a", "b", "c"]
        '["a", "b"]'   → ["a", "b"]
        None / ""      → []
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(tag) for tag in value if tag is not None]
    if not isinstance(value, str):
        return [str(value)]

    raw = value.strip()
    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        decoded = None
    if isinstance(decoded, list):
        return [str(tag) for tag in decoded if tag is not None]
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════

class MemoryFields(BaseModel):
    """
    Normalized fields of a create or update request.

    Every field is optional here; which omissions are errors and which get
    defaults is decided by MemoryRepository (create vs. full-replace update).
    """

    id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None
    date: Optional[datetime] = None
    mood: Optional[str] = Field(default=None, max_length=50)
    tags: Optional[List[str]] = None
    delete_image: bool = Field(default=False, alias="deleteImage")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return None if v is None else str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        return None if v is None else parse_tags(v)

    @field_validator("date", "mood", mode="before")
    @classmethod
    def blank_is_omitted(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else to_utc(v)

    @field_validator("delete_image", mode="before")
    @classmethod
    def parse_flag(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return False
        return v

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "MemoryFields":
        """
        Validate raw request fields, translating pydantic errors into our
        ValidationError (HTTP 400 with per-field details).
        """
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            first = errors[0] if errors else {"field": None, "message": "Invalid request body"}
            raise ValidationError(
                message=f"Invalid value for '{first['field']}': {first['message']}",
                field=first["field"],
                context={"errors": errors},
            )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════

class MemoryResponse(BaseModel):
    """
    What:  Full representation of a memory entry.
    Who:   Returned by every /api/memories route (alone or in a list).

    image_url points at GET /api/images/{id} and is null when the memory has
    no image.
    """
    id: uuid.UUID = Field(description="Unique memory identifier (UUID)")
    title: str = Field(description="Short title")
    content: str = Field(description="Free text body")
    date: datetime = Field(description="When the memory happened (UTC ISO 8601)")
    mood: Optional[str] = Field(default=None, description="Free-form mood label")
    tags: List[str] = Field(default_factory=list, description="Ordered tags")
    has_image: bool = Field(default=False, description="Whether an image is attached")
    image_url: Optional[str] = Field(default=None, description="URL of the attached image")

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags(cls, v):
        return [] if v is None else v

    @field_validator("date")
    @classmethod
    def aware_date(cls, v: datetime) -> datetime:
        # SQLite hands back naive values; they were stored in UTC.
        return to_utc(v)

    @classmethod
    def from_model(cls, memory) -> "MemoryResponse":
        response = cls.model_validate(memory)
        if response.has_image:
            response.image_url = f"/api/images/{response.id}"
        return response


class DeleteResponse(BaseModel):
    message: str = Field(default="Memory deleted successfully")


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "File type '.pdf' is not supported",
            "details": {"field": "image"},
            "request_id": "1a2b3c4d"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    traceback: Optional[List[str]] = Field(
        default=None,
        description="Stack trace lines (development mode only)",
    )


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    image_storage: str = Field(description="Active image storage strategy")
    uptime_seconds: float = Field(description="Seconds since service started")
