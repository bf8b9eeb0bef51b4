from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NewType, Protocol

QueueTaskKey = NewType("QueueTaskKey", str)


@dataclass(frozen=True)
class QueueJobResult:
    task_id: str
    backend: str
    task_key: str
    status: str = "queued"


class QueueProvider(Protocol):
    backend_name: str

    def enqueue(self, task_key: QueueTaskKey, payload: dict[str, Any]) -> QueueJobResult:
        ...
