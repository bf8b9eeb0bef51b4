from __future__ import annotations

import logging

from core.uploads.scratch import ScratchStore
from core.uploads.types import StagedFile, StagedFileState, UploadProfile

logger = logging.getLogger(__name__)


class CleanupSentinel:
    """Per-request owner of every scratch acquisition.

    Files are registered at acquisition time, so an error raised between
    ``stage`` and the first byte written still leaves the path accounted for.
    """

    def __init__(self, scratch: ScratchStore) -> None:
        self._scratch = scratch
        self._staged: list[StagedFile] = []
        self.acquisitions = 0
        self.releases = 0

    def stage(
        self,
        *,
        field_name: str,
        declared_mime: str,
        declared_name: str,
        profile: UploadProfile,
    ) -> StagedFile:
        path = self._scratch.acquire(field_name, declared_name)
        staged = StagedFile(
            temp_path=path,
            field_name=field_name,
            declared_mime=declared_mime,
            declared_name=declared_name,
            profile=profile,
        )
        self._staged.append(staged)
        self.acquisitions += 1
        return staged

    def release(self, staged: StagedFile) -> None:
        if staged.released:
            return
        try:
            removed = self._scratch.release(staged.temp_path)
        except OSError:
            logger.warning("Could not remove scratch file %s", staged.temp_path, exc_info=True)
            removed = False
        else:
            if not removed:
                logger.warning("Scratch file %s was already removed", staged.temp_path.name)
        staged.advance(StagedFileState.RELEASED)
        self.releases += 1

    def release_all(self) -> None:
        for staged in self._staged:
            self.release(staged)

    @property
    def staged(self) -> tuple[StagedFile, ...]:
        return tuple(self._staged)

    @property
    def pending(self) -> tuple[StagedFile, ...]:
        return tuple(staged for staged in self._staged if not staged.released)

    @property
    def balanced(self) -> bool:
        return self.acquisitions == self.releases
