"""
Data schemas for the AI Form Builder

Each Pydantic model corresponds to a collection in the JSON store.
- FormSchema -> "forms"
- Submission -> "submissions"

Field names follow the JSON documents exchanged with the presentation layer
and the language model (camelCase), so models dump straight to the stored form.
"""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from errors import UnknownFieldType

# Anything below this is a placeholder (0, seconds instead of ms, ...) not a real epoch value.
MIN_VALID_TIMESTAMP = 1_000_000


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    SELECT = "select"
    CHECKBOX = "checkbox"
    CHECKBOX_GROUP = "checkbox-group"
    RADIO = "radio"
    RATING = "rating"
    DATE = "date"
    FILE = "file"


# Types that cannot be rendered without an option list
CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX_GROUP})


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_created_at(value: Any) -> int:
    """Return a usable epoch-millisecond timestamp, replacing missing or placeholder values with now."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return now_ms()
    if value < MIN_VALID_TIMESTAMP:
        return now_ms()
    return int(value)


class JumpRule(BaseModel):
    condition: str = Field("", description="Answer value that triggers the jump; '*' or '' always matches")
    destination: str = Field(..., description="Id of the field to jump to")

    @field_validator("condition", mode="before")
    @classmethod
    def _condition_to_str(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @property
    def is_wildcard(self) -> bool:
        return self.condition in ("*", "")


class FormField(BaseModel):
    id: str
    label: str
    type: FieldType = Field(..., description="text, textarea, number, email, select, checkbox, checkbox-group, radio, rating, date, file")
    placeholder: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None
    logic: Optional[List[JumpRule]] = None

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value: Any, info: ValidationInfo) -> Any:
        try:
            return FieldType(value)
        except ValueError:
            raise UnknownFieldType(info.data.get("id"), value) from None

    @model_validator(mode="after")
    def _options_for_choices(self) -> "FormField":
        if self.type in CHOICE_TYPES and not self.options:
            raise ValueError(f"Field '{self.id}' of type '{self.type.value}' needs at least one option")
        return self


class FormSchema(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: Optional[str] = None
    fields: List[FormField]
    createdAt: int = Field(default_factory=now_ms)
    sheetName: Optional[str] = None

    @field_validator("createdAt", mode="before")
    @classmethod
    def _valid_created_at(cls, value: Any) -> int:
        return normalize_created_at(value)

    @model_validator(mode="after")
    def _unique_field_ids(self) -> "FormSchema":
        seen = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id '{field.id}'")
            seen.add(field.id)
        return self


class Submission(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    formId: str
    data: Dict[str, Any]
    submittedAt: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
