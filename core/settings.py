from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from core.uploads.policy import DEFAULT_PROFILES

load_dotenv()

CLOUDINARY_ENV_VARS = ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")
TRUTHY = {"1", "true", "yes"}


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in TRUTHY


def _enabled_profile_backends() -> set[str]:
    disabled = set(_split_csv(_env("DISABLED_UPLOAD_PROFILES")))
    if not _env_flag("AUDIO_STORAGE_ENABLED"):
        disabled.add("audio-message")
    return {profile.backend for profile in DEFAULT_PROFILES if profile.name not in disabled}


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    if _env("JWT_SECRET") is None:
        missing.append("JWT_SECRET")

    backends = _enabled_profile_backends()
    if "cloudinary" in backends:
        for var_name in CLOUDINARY_ENV_VARS:
            if _env(var_name) is None:
                missing.append(var_name)

    if "s3" in backends:
        for var_name in ("S3_BUCKET_NAME", "AUDIO_PUBLIC_BASE_URL"):
            if _env(var_name) is None:
                missing.append(var_name)

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    timeout = _env("ASSET_SERVICE_TIMEOUT_SECONDS")
    if timeout is not None:
        try:
            if float(timeout) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append("ASSET_SERVICE_TIMEOUT_SECONDS must be a positive number")

    for var_name in ("CHAT_FILE_RETENTION_DAYS", "ATTACHMENT_SWEEP_INTERVAL_MINUTES", "MONGO_TIMEOUT_MS"):
        value = _env(var_name)
        if value is None:
            continue
        try:
            if int(value) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append(f"{var_name} must be a positive integer")

    known = {profile.name for profile in DEFAULT_PROFILES}
    unknown = [name for name in _split_csv(_env("DISABLED_UPLOAD_PROFILES")) if name not in known]
    if unknown:
        invalid_values.append(
            f"DISABLED_UPLOAD_PROFILES contains unknown profiles: {', '.join(sorted(unknown))}"
        )

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    jwt_secret: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    log_level: str
    mongo_url: str
    db_name: str
    mongo_timeout_ms: int
    redis_url: str
    celery_broker_url: str
    celery_result_backend: str
    rate_limit_storage_uri: str
    upload_rate_limit: str
    cloudinary_cloud_name: str | None
    cloudinary_api_key: str | None
    cloudinary_api_secret: str | None
    asset_service_timeout_seconds: float
    audio_storage_enabled: bool
    s3_bucket_name: str | None
    s3_region: str | None
    s3_endpoint_url: str | None
    audio_public_base_url: str | None
    upload_scratch_dir: str
    disabled_upload_profiles: tuple[str, ...]
    chat_file_retention_days: int
    attachment_sweep_interval_minutes: int

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    default_redis = os.getenv("REDIS_URL") or "redis://127.0.0.1:6379/0"
    disabled_profiles = _split_csv(os.getenv("DISABLED_UPLOAD_PROFILES"))
    audio_enabled = _env_flag("AUDIO_STORAGE_ENABLED")
    if not audio_enabled and "audio-message" not in disabled_profiles:
        disabled_profiles = disabled_profiles + ("audio-message",)

    return Settings(
        env=os.getenv("ENV", "development"),
        jwt_secret=os.getenv("JWT_SECRET", ""),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=_env_flag("DEBUG_INCLUDE_ERROR_DETAILS"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        db_name=os.getenv("DB_NAME", "skillswap"),
        mongo_timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", "10000")),
        redis_url=default_redis,
        celery_broker_url=os.getenv("CELERY_BROKER_URL") or default_redis,
        celery_result_backend=os.getenv("CELERY_RESULT_BACKEND") or default_redis,
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI") or default_redis,
        upload_rate_limit=os.getenv("UPLOAD_RATE_LIMIT", "30/minute"),
        cloudinary_cloud_name=_env("CLOUDINARY_CLOUD_NAME"),
        cloudinary_api_key=_env("CLOUDINARY_API_KEY"),
        cloudinary_api_secret=_env("CLOUDINARY_API_SECRET"),
        asset_service_timeout_seconds=float(os.getenv("ASSET_SERVICE_TIMEOUT_SECONDS", "30")),
        audio_storage_enabled=audio_enabled,
        s3_bucket_name=_env("S3_BUCKET_NAME"),
        s3_region=_env("S3_REGION"),
        s3_endpoint_url=_env("S3_ENDPOINT_URL"),
        audio_public_base_url=_env("AUDIO_PUBLIC_BASE_URL"),
        upload_scratch_dir=os.getenv("UPLOAD_SCRATCH_DIR", "uploads"),
        disabled_upload_profiles=disabled_profiles,
        chat_file_retention_days=int(os.getenv("CHAT_FILE_RETENTION_DAYS", "7")),
        attachment_sweep_interval_minutes=int(os.getenv("ATTACHMENT_SWEEP_INTERVAL_MINUTES", "60")),
    )
