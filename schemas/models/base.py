"""
Base model for all MongoDB document models.

PyObjectId handles the mismatch between BSON ObjectId and Pydantic v2.
MongoBaseModel provides to_mongo() / from_mongo() for round-tripping between
Python objects and raw MongoDB dicts, and normalises every datetime it reads
to timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler, field_validator
from pydantic_core import core_schema

from shared.datetime_utils import ensure_utc

DocT = TypeVar("DocT", bound="MongoBaseModel")


class PyObjectId(ObjectId):
    """BSON ObjectId that Pydantic v2 knows how to validate and serialize."""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.to_string_ser_schema(),
        )

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Coerce a str/ObjectId to ObjectId, returning None when it is not one."""
    try:
        return PyObjectId._validate(value)
    except ValueError:
        return None


class MongoBaseModel(BaseModel):
    """
    Base for the `users` and `otps` document models.

    The MongoDB ``_id`` is exposed as ``id``. Datetimes are coerced to aware
    UTC on validation, whether they come from a naive driver read or from
    the service layer.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_as_utc(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    def to_mongo(self) -> dict:
        """Dump for insert_one: ``id`` becomes ``_id``, omitted while unset."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls: Type[DocT], data: Optional[dict]) -> Optional[DocT]:
        """Validate a raw driver document; ``None`` (no match) passes through."""
        if data is None:
            return None
        return cls.model_validate(data)
