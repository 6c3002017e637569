"""Write-once staging tree that becomes the archive contents."""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath

from .errors import StagingConflictError
from .hashing import encode_text


class StagingTree:
    """Scratch directory where every relative path is written exactly once."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.written: list[str] = []
        self.root.mkdir(parents=True, exist_ok=True)

    def _claim(self, relative: str) -> Path:
        posix = PurePosixPath(relative)
        if posix.is_absolute() or ".." in posix.parts:
            raise ValueError(f"Staging paths must stay inside the tree: {relative}")
        key = posix.as_posix()
        target = self.root.joinpath(*posix.parts)
        if key in self.written or target.exists():
            raise StagingConflictError(f"{key} was already written to staging")
        target.parent.mkdir(parents=True, exist_ok=True)
        self.written.append(key)
        return target

    def write_bytes(self, relative: str, data: bytes) -> Path:
        target = self._claim(relative)
        target.write_bytes(data)
        return target

    def write_text(self, relative: str, text: str) -> Path:
        # Bytes are written directly so newlines are never translated.
        return self.write_bytes(relative, encode_text(text))

    def copy_file(self, relative: str, source: Path) -> Path:
        target = self._claim(relative)
        shutil.copyfile(source, target)
        return target
