"""Form field to API field mapping schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class FieldKind(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"


class FieldMapping(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    api_name: str | None = Field(default=None, max_length=255)
    kind: FieldKind = FieldKind.TEXT

    @property
    def target(self) -> str:
        return self.api_name or self.name
