from core.queue.manager import QueueManager
from core.queue.tasks import execute_registered_task, list_registered_task_keys, task
from core.queue.types import QueueJobResult, QueueProvider

__all__ = [
    "QueueJobResult",
    "QueueManager",
    "QueueProvider",
    "execute_registered_task",
    "list_registered_task_keys",
    "task",
]
