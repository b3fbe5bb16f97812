"""File I/O operations for materialization."""

from __future__ import annotations

import errno
import os
import tempfile
from contextlib import suppress
from pathlib import Path

# errno values meaning "this filesystem cannot hard-link", not "target exists"
_LINK_UNSUPPORTED = {
    errno.EPERM,
    errno.ENOTSUP,
    errno.EOPNOTSUPP,
    errno.EXDEV,
    errno.EMLINK,
    errno.ENOSYS,
}


def ensure_parent(path: Path, *, parents: bool = False) -> None:
    """Ensure the parent directory of ``path`` exists.

    Args:
        path: Path whose parent directory should be created
        parents: Also create missing ancestors of the parent
    """
    path.parent.mkdir(parents=parents, exist_ok=True)


def _publish_exclusive(tmp_name: str, path: Path) -> None:
    try:
        os.link(tmp_name, path)
    except FileExistsError:
        raise
    except OSError as exc:
        if exc.errno not in _LINK_UNSUPPORTED:
            raise
        if os.path.lexists(path):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(path)) from exc
        os.replace(tmp_name, path)


def atomic_write_bytes(
    path: Path, data: bytes, *, mode: int = 0o644, replace: bool = True
) -> None:
    """Write bytes to a file atomically using a temporary file.

    The temporary file lives next to ``path`` so the final rename never
    crosses filesystems.

    Args:
        path: Destination file path; its parent must exist
        data: Content to write
        mode: File permissions (octal)
        replace: Replace an existing file; when False an existing file raises
            ``FileExistsError`` and is left untouched

    Raises:
        FileExistsError: If ``replace`` is False and ``path`` exists
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        if replace:
            os.replace(tmp_name, path)
        else:
            _publish_exclusive(tmp_name, path)
    finally:
        with suppress(FileNotFoundError):
            os.remove(tmp_name)
