from bson import ObjectId
from enum import Enum


class ActivityType(str, Enum):
    AVATAR_UPDATE = "avatar_update"
    COMMUNITY_UPDATE = "community_update"
    POST_CREATE = "post_create"
    FILE_SHARED = "file_shared"
    VOICE_MESSAGE = "voice_message"
    FILE_DELETED = "file_deleted"
    CHAT_UPDATE = "chat_update"


class ReferenceType(str, Enum):
    USER = "User"
    COMMUNITY = "Community"
    POST = "Post"
    CHAT = "Chat"


class ActivityStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PostType(str, Enum):
    LEARNING_UPDATE = "Learning update"
    ASK_QUESTION = "Ask Question"
    SHARE_TIPS = "Share Tips"
    STUDY_GROUPS = "Study Groups"


class Visibility(str, Enum):
    PUBLIC = "public"
    COMMUNITY = "community"
    PRIVATE = "private"


class ChatFileType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"
    FILE = "file"
    VOICE = "voice"


def as_object_id(value):
    """References are stored as ObjectIds whenever the value is a valid one."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


__all__ = [
    "ActivityStatus",
    "ActivityType",
    "ChatFileType",
    "ObjectId",
    "PostType",
    "ReferenceType",
    "Visibility",
    "as_object_id",
]
