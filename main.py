from __future__ import annotations

import logging
import math
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from celery_worker import celery_app
from core.database import client as mongo_client
from core.errors import AppException
from core.logging_config import configure_logging
from core.queue.manager import QueueManager
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_response,
    http_exception_response,
    request_id_from_request,
)
from core.scheduler import scheduler
from core.settings import get_settings
from core.uploads.manager import UploadManager
from security.auth import decode_access_token

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=2, decode_responses=True)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response


UPLOAD_RATE_LIMIT = parse(settings.upload_rate_limit)
limiter = FixedWindowRateLimiter(storage_from_string(settings.rate_limit_storage_uri))


def get_rate_limit_identity(request: Request) -> str:
    fallback_id = request.headers.get("X-Forwarded-For") or (request.client.host if request.client else "unknown")
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return fallback_id
    try:
        return decode_access_token(auth_header.split(" ", maxsplit=1)[1]).user_id
    except AppException:
        return fallback_id


def is_upload_request(request: Request) -> bool:
    content_type = request.headers.get("content-type", "")
    return request.method in {"POST", "PATCH", "PUT"} and content_type.startswith("multipart/form-data")


class RateLimitingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if not is_upload_request(request):
            return await call_next(request)

        identity = get_rate_limit_identity(request)
        allowed = limiter.hit(UPLOAD_RATE_LIMIT, "upload", identity)
        reset_time, remaining = limiter.get_window_stats(UPLOAD_RATE_LIMIT, "upload", identity)
        seconds_until_reset = max(math.ceil(reset_time - time.time()), 0)

        headers = {
            "X-RateLimit-Limit": str(UPLOAD_RATE_LIMIT.amount),
            "X-RateLimit-Remaining": str(max(remaining, 0)),
            "X-RateLimit-Reset": str(seconds_until_reset),
        }

        if not allowed:
            headers["Retry-After"] = str(seconds_until_reset)
            return error_response(
                status_code=429,
                message="Too Many Requests",
                code="TOO_MANY_REQUESTS",
                details={"retry_after_seconds": seconds_until_reset},
                headers=headers,
                request_id=request_id_from_request(request),
            )

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response


def apscheduler_heartbeat() -> None:
    redis_client.set("apscheduler:heartbeat", str(time.time()), ex=60)


def enqueue_attachment_sweep() -> None:
    QueueManager.get_instance().enqueue("purge_expired_attachments", {})


@asynccontextmanager
async def lifespan(app: FastAPI):
    QueueManager.configure_from_celery(celery_app)
    UploadManager.configure_from_settings(settings)

    scheduler.add_job(
        apscheduler_heartbeat,
        trigger=IntervalTrigger(seconds=15),
        id="apscheduler_heartbeat",
        name="APScheduler Heartbeat",
        replace_existing=True,
    )
    scheduler.add_job(
        enqueue_attachment_sweep,
        trigger=IntervalTrigger(minutes=settings.attachment_sweep_interval_minutes),
        id="chat_attachment_sweep",
        name="Expired chat attachment sweep",
        replace_existing=True,
    )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown()


app = FastAPI(lifespan=lifespan, title="Skill Swap API")
app.add_middleware(RateLimitingMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        code="VALIDATION_FAILED",
        details=[
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ],
        request_id=request_id_from_request(request),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        code="INTERNAL_ERROR",
        details=details,
        request_id=request_id_from_request(request),
    )


async def _probe(check) -> dict[str, str | float]:
    start = time.perf_counter()
    try:
        message = await check()
    except Exception as exc:
        return {"status": "unhealthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2), "message": str(exc)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - start) * 1000, 2), "message": message}


async def _ping_mongo() -> str:
    await mongo_client.admin.command("ping")
    return "MongoDB ping successful"


async def _ping_redis() -> str:
    await run_in_threadpool(redis_client.ping)
    return "Redis ping successful"


async def _check_uploads() -> str:
    manager = UploadManager.get_instance()
    if not manager.scratch.root.is_dir():
        raise RuntimeError(f"Scratch directory {manager.scratch.root} is missing")
    return f"{len(manager.registry.names())} profile(s) on {', '.join(sorted(manager.assets.backends)) or 'no'} backend(s)"


@app.get("/health", tags=["Health"])
@document_response(
    message="Health check completed",
    success_example={"status": "healthy", "services": {"mongo": {"status": "healthy"}, "redis": {"status": "healthy"}}},
)
async def health_check():
    services = {
        "mongo": await _probe(_ping_mongo),
        "redis": await _probe(_ping_redis),
        "uploads": await _probe(_check_uploads),
        "scheduler": {
            "status": "healthy" if scheduler.running else "degraded",
            "latency_ms": 0,
            "message": f"{len(scheduler.get_jobs())} job(s) scheduled" if scheduler.running else "Scheduler not running",
        },
    }
    overall_status = "healthy" if all(service["status"] == "healthy" for service in services.values()) else "degraded"
    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }


from api.v1.chat_route import router as v1_chat_route_router
from api.v1.communities_route import router as v1_communities_route_router
from api.v1.posts_route import router as v1_posts_route_router
from api.v1.users_route import router as v1_users_route_router

app.include_router(v1_chat_route_router, prefix='/v1')
app.include_router(v1_communities_route_router, prefix='/v1')
app.include_router(v1_posts_route_router, prefix='/v1')
app.include_router(v1_users_route_router, prefix='/v1')

apply_response_documentation(app)
