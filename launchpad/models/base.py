"""Shared base fields for all registry models."""

import json
import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import Column, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


def load_json(raw: str | None, default: Any) -> Any:
    """Decode a JSON text column, tolerating NULL / empty values."""
    if not raw:
        return default
    return json.loads(raw)


def enum_column(enum_type: type[StrEnum], *, length: int = 20, **kwargs: Any) -> Column:
    """VARCHAR column persisting enum values (`"active"`), not member names."""
    return Column(
        sa.Enum(
            enum_type,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            length=length,
        ),
        **kwargs,
    )


class CamelModel(BaseModel):
    """API schema serialized with camelCase keys; accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
