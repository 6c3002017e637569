"""Deterministic zip serialisation of a staging tree."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

logger = logging.getLogger("handoffpack.archive")

FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FIXED_MODE = 0o644
UNIX_SYSTEM = 3


def iter_staged_files(source: Path, exclude: Path | None = None) -> list[Path]:
    files = [path for path in source.rglob("*") if path.is_file()]
    if exclude is not None:
        files = [path for path in files if path.resolve() != exclude]
    return sorted(files, key=lambda path: path.relative_to(source).as_posix())


def write_archive(staging_root: Path, destination: Path) -> Path:
    """Zip every file under ``staging_root`` into ``destination``.

    Entries are sorted and carry fixed timestamps, permissions, and creator
    system with no extra fields, so identical trees produce identical bytes.
    An existing file at ``destination`` is replaced. I/O errors propagate.
    """
    source = staging_root.resolve()
    if not source.is_dir():
        raise NotADirectoryError(f"Archive source must be a directory (got {source})")

    dest = destination.resolve()
    if dest.exists():
        dest.unlink()
    dest.parent.mkdir(parents=True, exist_ok=True)

    files = iter_staged_files(source, exclude=dest)
    with ZipFile(dest, mode="x", compression=ZIP_DEFLATED) as archive:
        for path in files:
            info = ZipInfo(path.relative_to(source).as_posix(), date_time=FIXED_DATE_TIME)
            info.compress_type = ZIP_DEFLATED
            info.create_system = UNIX_SYSTEM
            info.external_attr = FIXED_MODE << 16
            with path.open("rb") as data, archive.open(info, "w") as zip_file:
                shutil.copyfileobj(data, zip_file, length=1 << 20)

    logger.info("archive_written", extra={"archive": str(dest), "files": len(files)})
    return dest
