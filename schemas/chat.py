from __future__ import annotations

from datetime import datetime
from typing import Union

from pydantic import BaseModel, Field, field_validator

from schemas.imports import ChatFileType, ObjectId, as_object_id


class FileMessage(BaseModel):
    fileUrl: str
    fileName: str
    fileSize: int
    fileType: ChatFileType
    mimeType: str
    publicId: str
    expiresAt: datetime
    isDeleted: bool = False


class VoiceMessage(BaseModel):
    fileUrl: str
    fileSize: int
    mimeType: str
    publicId: str
    duration: float | None = None


class ChatFileMessage(BaseModel):
    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    sender: Union[ObjectId, str]
    content: str
    type: ChatFileType
    timestamp: datetime
    fileMessage: FileMessage | None = None
    voiceMessage: VoiceMessage | None = None

    model_config = {"populate_by_name": True, "arbitrary_types_allowed": True}

    @field_validator("sender", mode="before")
    @classmethod
    def sender_as_object_id(cls, value):
        return as_object_id(value)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def classify_chat_file(mime_type: str) -> ChatFileType:
    if mime_type.startswith("image/"):
        return ChatFileType.IMAGE
    if mime_type == "application/pdf":
        return ChatFileType.PDF
    if mime_type.startswith("audio/"):
        return ChatFileType.VOICE
    if "document" in mime_type or "word" in mime_type or mime_type.startswith("text/"):
        return ChatFileType.DOCUMENT
    return ChatFileType.FILE


LAST_MESSAGE_TEXT = {
    ChatFileType.IMAGE: "Image sent",
    ChatFileType.PDF: "PDF sent",
    ChatFileType.DOCUMENT: "Document sent",
    ChatFileType.FILE: "File sent",
    ChatFileType.VOICE: "Voice message sent",
}
