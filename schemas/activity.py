from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schemas.imports import ActivityStatus, ActivityType, ObjectId, ReferenceType, as_object_id

ObjectRef = Union[ObjectId, str]


class ActivityMetadata(BaseModel):
    action: str
    oldAsset: str = "none"
    newAsset: str | None = None
    profile: str | None = None
    extra: dict[str, Any] | None = None


class ActivityCreate(BaseModel):
    user: ObjectRef
    type: ActivityType
    message: str = ""
    referenceId: ObjectRef | None = None
    referenceType: ReferenceType | None = None
    status: ActivityStatus = ActivityStatus.COMPLETED
    metadata: ActivityMetadata
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("user", "referenceId", mode="before")
    @classmethod
    def store_as_object_id(cls, value):
        return as_object_id(value)

    def to_document(self) -> dict[str, Any]:
        document = self.model_dump()
        document["type"] = self.type.value
        document["status"] = self.status.value
        if self.referenceType is not None:
            document["referenceType"] = self.referenceType.value
        return document


class ActivityOut(BaseModel):
    id: str | None = Field(default=None, alias="_id")
    user: str
    type: ActivityType
    message: str = ""
    referenceId: str | None = None
    referenceType: ReferenceType | None = None
    status: ActivityStatus
    metadata: ActivityMetadata
    createdAt: datetime

    @model_validator(mode="before")
    @classmethod
    def convert_objectid(cls, values):
        if isinstance(values, dict):
            for key in ("_id", "user", "referenceId"):
                if isinstance(values.get(key), ObjectId):
                    values[key] = str(values[key])
        return values

    model_config = ConfigDict(populate_by_name=True)
