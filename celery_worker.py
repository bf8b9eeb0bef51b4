from __future__ import annotations

import asyncio

from celery import Celery
from dotenv import load_dotenv

from core.queue.celery_provider import RUN_TASK_NAME
from core.queue.tasks import execute_registered_task
from core.settings import get_settings
from core import task as _task_registration  # noqa: F401

load_dotenv()

settings = get_settings()

celery_app = Celery("worker", broker=settings.celery_broker_url, backend=settings.celery_result_backend)
celery_app.conf.update(task_track_started=True)

# The async store client is bound to one loop, so every task in this worker shares it.
_loop: asyncio.AbstractEventLoop | None = None


def _worker_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


@celery_app.task(name=RUN_TASK_NAME)
def run_async_task(task_key: str, kwargs: dict):
    return _worker_loop().run_until_complete(execute_registered_task(task_key=task_key, payload=kwargs))
