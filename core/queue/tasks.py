from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TaskFunc = Callable[..., Awaitable[Any]]
_TASK_REGISTRY: dict[str, TaskFunc] = {}


def register_task(task_key: str, func: TaskFunc) -> None:
    if task_key in _TASK_REGISTRY:
        raise ValueError(f"Task key '{task_key}' is already registered")
    _TASK_REGISTRY[task_key] = func


def task(task_key: str) -> Callable[[TaskFunc], TaskFunc]:
    def decorator(func: TaskFunc) -> TaskFunc:
        register_task(task_key, func)
        return func

    return decorator


async def execute_registered_task(task_key: str, payload: dict[str, Any] | None = None) -> Any:
    target = _TASK_REGISTRY.get(task_key)
    if target is None:
        valid_keys = ", ".join(sorted(_TASK_REGISTRY)) or "<none>"
        raise ValueError(f"Task key '{task_key}' is not registered. Available keys: {valid_keys}")
    try:
        return await target(**(payload or {}))
    except Exception:
        logger.exception("Background task %s failed", task_key)
        raise


def list_registered_task_keys() -> list[str]:
    return sorted(_TASK_REGISTRY.keys())
