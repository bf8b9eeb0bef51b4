from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPLOAD_PROFILE_UNKNOWN = "UPLOAD_PROFILE_UNKNOWN"
    UPLOAD_MIME_DISALLOWED = "UPLOAD_MIME_DISALLOWED"
    UPLOAD_TOO_LARGE = "UPLOAD_TOO_LARGE"
    UPLOAD_TOO_MANY_FILES = "UPLOAD_TOO_MANY_FILES"
    UPLOAD_UNEXPECTED_FIELD = "UPLOAD_UNEXPECTED_FIELD"
    UPLOAD_MALFORMED = "UPLOAD_MALFORMED"
    UPLOAD_MISSING_FILE = "UPLOAD_MISSING_FILE"
    SCRATCH_COLLISION = "SCRATCH_COLLISION"
    ASSET_SERVICE_UNAVAILABLE = "ASSET_SERVICE_UNAVAILABLE"
    OWNER_NOT_FOUND = "OWNER_NOT_FOUND"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @property
    def code(self) -> str:
        return self.detail["code"]


def _megabytes(max_bytes: int) -> str:
    value = max_bytes / (1024 * 1024)
    return f"{value:g}"


def auth_invalid_token(details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        code=ErrorCode.AUTH_INVALID_TOKEN,
        message="Invalid token",
        details=details,
    )


def auth_permission_denied(action: str) -> AppException:
    return AppException(
        status_code=status.HTTP_403_FORBIDDEN,
        code=ErrorCode.AUTH_PERMISSION_DENIED,
        message="Insufficient permissions",
        details={"action": action},
    )


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def validation_failed(message: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.VALIDATION_FAILED,
        message=message,
        details=details,
    )


def unknown_profile(profile_name: str) -> AppException:
    return AppException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=ErrorCode.UPLOAD_PROFILE_UNKNOWN,
        message="Upload profile is not configured",
        details={"profile": profile_name},
    )


def disallowed_mime(mime_type: str, allowed: Iterable[str]) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_MIME_DISALLOWED,
        message=f"Invalid file type. Allowed types: {', '.join(sorted(allowed))}",
        details={"mime_type": mime_type},
    )


def too_large(max_bytes: int) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_TOO_LARGE,
        message="File too large",
        details=f"Maximum file size is {_megabytes(max_bytes)}MB",
    )


def too_many_files(max_count: int) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_TOO_MANY_FILES,
        message="Too many files",
        details=f"Maximum {max_count} files allowed",
    )


def unexpected_field(field_name: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_UNEXPECTED_FIELD,
        message="Unexpected file field",
        details=f"Field '{field_name}' does not accept files",
    )


def malformed_upload(reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_MALFORMED,
        message="File upload error",
        details=reason,
    )


def missing_file(field_name: str) -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.UPLOAD_MISSING_FILE,
        message="No file uploaded",
        details=f"Expected a file in field '{field_name}'",
    )


def scratch_collision(path: str) -> AppException:
    return AppException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=ErrorCode.SCRATCH_COLLISION,
        message="Temporary upload storage collision",
        details={"path": path},
    )


def asset_service_unavailable(reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        code=ErrorCode.ASSET_SERVICE_UNAVAILABLE,
        message="Asset service unavailable",
        details=reason,
    )


def owner_not_found(kind: str, owner_id: str) -> AppException:
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.OWNER_NOT_FOUND,
        message=f"{kind.capitalize()} not found",
        details={"resource": kind, "resource_id": owner_id},
    )


def concurrent_modification(kind: str, owner_id: str) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.CONCURRENT_MODIFICATION,
        message=f"{kind.capitalize()} was modified concurrently",
        details={"resource": kind, "resource_id": owner_id},
    )


def store_unavailable(reason: str) -> AppException:
    return AppException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=ErrorCode.STORE_UNAVAILABLE,
        message="Document store unavailable",
        details=reason,
    )
