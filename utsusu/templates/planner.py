"""Lazy, ordered traversal of template trees."""

from __future__ import annotations

import logging
import os
import stat
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from ..core.errors import UnsupportedEntryError, io_error
from ..core.models import (
    DEFAULT_IGNORE_PATTERNS,
    EntryKind,
    SymlinkPolicy,
    TraversalEntry,
)

logger = logging.getLogger(__name__)


def _matches(rel_path: PurePosixPath, patterns: Iterable[str]) -> bool:
    name = rel_path.name
    posix = rel_path.as_posix()
    return any(fnmatchcase(name, p) or fnmatchcase(posix, p) for p in patterns)


class TraversalPlan:
    """Restartable, lazy sequence of the entries of a template directory.

    Siblings are visited in name order and directories are emitted before
    their contents. Ignored directories are never opened. With include
    patterns, only matching files are emitted and a directory appears only
    right before its first included descendant.

    Args:
        root: Template content directory
        ignore: Glob patterns matched against entry names and relative paths
        include: Glob patterns selecting files; empty selects every file
        symlink_policy: Reject symlinks or follow them
    """

    def __init__(
        self,
        root: Path,
        *,
        ignore: Iterable[str] = DEFAULT_IGNORE_PATTERNS,
        include: Iterable[str] = (),
        symlink_policy: SymlinkPolicy = SymlinkPolicy.REJECT,
    ) -> None:
        self.root = Path(root)
        self.ignore = tuple(ignore)
        self.include = tuple(include)
        self.symlink_policy = symlink_policy

    def __iter__(self) -> Iterator[TraversalEntry]:
        try:
            root_stat = os.stat(self.root)
        except OSError as exc:
            raise io_error("inspect", self.root, exc) from exc
        pending: list[TraversalEntry] = []
        return self._walk(
            self.root, PurePosixPath(), ((root_stat.st_dev, root_stat.st_ino),), pending
        )

    def _classify(self, entry: os.DirEntry[str], rel_path: PurePosixPath) -> os.stat_result:
        if entry.is_symlink():
            if self.symlink_policy is SymlinkPolicy.REJECT:
                raise UnsupportedEntryError(
                    f"Symlink in template is not allowed: {rel_path}", path=rel_path
                )
            try:
                return os.stat(entry.path)
            except OSError as exc:
                raise UnsupportedEntryError(
                    f"Broken symlink in template: {rel_path}", path=rel_path
                ) from exc
        try:
            return entry.stat(follow_symlinks=False)
        except OSError as exc:
            raise io_error("inspect", Path(entry.path), exc) from exc

    def _walk(
        self,
        directory: Path,
        rel_dir: PurePosixPath,
        ancestors: tuple[tuple[int, int], ...],
        pending: list[TraversalEntry],
    ) -> Iterator[TraversalEntry]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            raise io_error("list", directory, exc) from exc

        for entry in entries:
            rel_path = rel_dir / entry.name
            if _matches(rel_path, self.ignore):
                logger.debug(f"Ignoring template entry: {rel_path}")
                continue

            st = self._classify(entry, rel_path)
            source = Path(entry.path)

            if stat.S_ISDIR(st.st_mode):
                key = (st.st_dev, st.st_ino)
                if key in ancestors:
                    raise UnsupportedEntryError(
                        f"Symlink cycle in template at: {rel_path}", path=rel_path
                    )
                dir_entry = TraversalEntry(rel_path, EntryKind.DIRECTORY, source)
                if self.include:
                    pending.append(dir_entry)
                else:
                    yield dir_entry
                yield from self._walk(source, rel_path, ancestors + (key,), pending)
                if pending and pending[-1] is dir_entry:
                    pending.pop()
            elif stat.S_ISREG(st.st_mode):
                if self.include and not _matches(rel_path, self.include):
                    continue
                yield from pending
                pending.clear()
                yield TraversalEntry(rel_path, EntryKind.FILE, source)
            else:
                raise UnsupportedEntryError(
                    f"Special file in template is not allowed: {rel_path}", path=rel_path
                )


def single_file_plan(source: Path) -> list[TraversalEntry]:
    """Plan for a single-file template: exactly one file entry."""
    return [TraversalEntry(PurePosixPath(source.name), EntryKind.FILE, source)]
