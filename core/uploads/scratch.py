from __future__ import annotations

import logging
import os
import re
import secrets
import time
from pathlib import Path

from core.errors import scratch_collision

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


def _safe_field(field_name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("", field_name)[:40]
    return cleaned or "file"


def _safe_extension(file_name: str | None) -> str:
    suffix = Path(file_name or "").suffix.lower()
    return suffix if _EXTENSION.match(suffix) else ""


class ScratchStore:
    """Flat directory of request-scoped temp files named ``<field>-<timestamp>-<rand>.<ext>``.

    The store does not track what it hands out; the cleanup sentinel owns release.
    """

    def __init__(self, root_dir: str | Path) -> None:
        self._root = Path(root_dir).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root

    def acquire(self, field_name: str, file_name: str | None = None) -> Path:
        name = (
            f"{_safe_field(field_name)}-{time.time_ns()}-{secrets.token_hex(8)}"
            f"{_safe_extension(file_name)}"
        )
        path = self._root / name
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError as err:
            raise scratch_collision(str(path)) from err
        os.close(fd)
        return path

    def release(self, path: str | Path) -> bool:
        """Remove ``path``. Returns ``False`` when it was already gone."""
        target = Path(path)
        if target.parent.resolve() != self._root:
            raise ValueError(f"{target} is outside the scratch root")
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        return True
