from __future__ import annotations

from typing import Any

from core.queue.types import QueueJobResult, QueueTaskKey

RUN_TASK_NAME = "celery_worker.run_async_task"


class CeleryQueueProvider:
    """Hands registered task keys to the worker's single dispatch task."""

    backend_name = "celery"

    def __init__(self, celery_app: Any, *, queue_name: str | None = None) -> None:
        self._celery_app = celery_app
        self._queue_name = queue_name

    def enqueue(self, task_key: QueueTaskKey, payload: dict[str, Any]) -> QueueJobResult:
        options: dict[str, Any] = {}
        if self._queue_name:
            options["queue"] = self._queue_name
        result = self._celery_app.send_task(RUN_TASK_NAME, args=[str(task_key), payload], **options)
        return QueueJobResult(task_id=result.id, backend=self.backend_name, task_key=str(task_key))
