from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from core.queue.types import QueueJobResult, QueueProvider, QueueTaskKey

logger = logging.getLogger(__name__)


class QueueManager:
    _instance: "QueueManager | None" = None
    _lock = Lock()

    def __init__(self, provider: QueueProvider) -> None:
        self._provider = provider

    @classmethod
    def configure(cls, provider: QueueProvider) -> "QueueManager":
        with cls._lock:
            cls._instance = cls(provider=provider)
            logger.info("Background queue configured with %s backend", provider.backend_name)
            return cls._instance

    @classmethod
    def configure_from_celery(cls, celery_app: Any, *, queue_name: str | None = None) -> "QueueManager":
        from core.queue.celery_provider import CeleryQueueProvider

        return cls.configure(CeleryQueueProvider(celery_app, queue_name=queue_name))

    @classmethod
    def get_instance(cls) -> "QueueManager":
        if cls._instance is None:
            raise RuntimeError("QueueManager is not configured")
        return cls._instance

    @property
    def backend_name(self) -> str:
        return self._provider.backend_name

    def enqueue(self, task_key: str, payload: dict[str, Any]) -> QueueJobResult:
        result = self._provider.enqueue(QueueTaskKey(task_key), payload)
        logger.debug("Queued %s as %s on %s", task_key, result.task_id, result.backend)
        return result
