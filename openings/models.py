"""
openings/models.py -- Domain types for recruitment openings.

Opening is a pure data container, like the dataclasses in auth/models.py.
OpeningDraft and OpeningPatch are the validated inputs for create() and
update(): the lifecycle runs every payload through them before any SQL is
issued, so a rejected payload never reaches the store.

Length limits are measured after trimming whitespace and mirror the column
sizes in core/db.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.errors import Failure

MAX_TAGS = 8
MAX_TAG_LENGTH = 32


class OpeningCategory(str, Enum):
    BUSINESS = "Business"
    GANG = "Gang"
    DEPARTMENT = "Department"


class OpeningState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Opening:
    """A recruitment post.

    author_name is a snapshot of the author's display name at posting (or
    transfer) time; it is not kept in sync with the identities table.
    closed_at is set once by close() and never cleared.
    """

    id: str
    title: str
    description: str
    category: str  # OpeningCategory value
    contact: str
    author_id: str
    author_name: str
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    closed_at: Optional[str] = None

    @property
    def state(self) -> OpeningState:
        return OpeningState.CLOSED if self.closed_at else OpeningState.OPEN


@dataclass(frozen=True)
class OpeningResult:
    """Outcome of a lifecycle operation: an opening, or a typed Failure."""

    opening: Optional[Opening] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


# ---------------------------------------------------------------------------
# Validated inputs
# ---------------------------------------------------------------------------


def _clean_tags(value):
    """Accept a list or a comma-separated string; trim entries and drop blanks."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return value
    return [str(tag).strip() for tag in value if str(tag).strip()]


class OpeningDraft(BaseModel):
    """Everything needed to post a new opening."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(min_length=4, max_length=80)
    description: str = Field(min_length=15, max_length=360)
    category: OpeningCategory
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)
    contact: str = Field(min_length=3, max_length=120)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        return _clean_tags(value)

    @field_validator("tags")
    @classmethod
    def check_tag_length(cls, value: list[str]) -> list[str]:
        for tag in value:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters.")
        return value


class OpeningPatch(BaseModel):
    """A partial update. Fields left as None keep their stored value."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=4, max_length=80)
    description: Optional[str] = Field(default=None, min_length=15, max_length=360)
    category: Optional[OpeningCategory] = None
    tags: Optional[list[str]] = Field(default=None, max_length=MAX_TAGS)
    contact: Optional[str] = Field(default=None, min_length=3, max_length=120)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value):
        return _clean_tags(value)

    @field_validator("tags")
    @classmethod
    def check_tag_length(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        for tag in value or []:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tags must be at most {MAX_TAG_LENGTH} characters.")
        return value

    @model_validator(mode="after")
    def require_a_change(self) -> "OpeningPatch":
        if not self.changes():
            raise ValueError("No fields to update.")
        return self

    def changes(self) -> dict:
        """Column -> new value for every field that was supplied."""
        data = self.model_dump(exclude_none=True)
        if "category" in data:
            data["category"] = OpeningCategory(data["category"]).value
        return data
