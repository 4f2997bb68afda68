from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class IngestRecord(BaseModel):
    """Upstream record; only ``id`` is required, everything else passes through."""

    id: str

    model_config = ConfigDict(extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return str(int(value)) if float(value).is_integer() else str(value)
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator("id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("id must not be empty")
        return value
