"""Render traversal plans and write them to a destination."""

from __future__ import annotations

import logging
import os
import stat
import threading
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping

from ..core.errors import (
    ConflictError,
    RenderError,
    StampCancelledError,
    StampError,
    StampIOError,
    io_error,
)
from ..core.models import (
    ConflictPolicy,
    EntryKind,
    MaterializationResult,
    StampOptions,
    TraversalEntry,
)
from .capability import Renderer, RenderFailure
from .io import atomic_write_bytes, ensure_parent

logger = logging.getLogger(__name__)

_FORBIDDEN_SEGMENTS = {"", ".", ".."}


def is_valid_name(name: str) -> bool:
    """Whether ``name`` is one path segment that cannot leave its parent."""
    if name in _FORBIDDEN_SEGMENTS or "/" in name or os.sep in name:
        return False
    return not (os.altsep and os.altsep in name)


class _Materializer:
    def __init__(
        self,
        context: Mapping[str, str],
        destination: Path,
        renderer: Renderer,
        mode: EntryKind,
        options: StampOptions,
        result: MaterializationResult,
    ) -> None:
        self.context = context
        self.destination = destination
        self.renderer = renderer
        self.mode = mode
        self.options = options
        self.policy = options.conflict_policy
        self.result = result
        self.into_directory = mode is EntryKind.FILE and (
            options.into_directory or destination.is_dir()
        )
        # destinations claimed by this run, and skipped non-directories whose
        # subtrees cannot be written
        self.claimed: set[Path] = set()
        self.blocked: set[PurePosixPath] = set()

    def prepare(self) -> None:
        if self.mode is EntryKind.DIRECTORY or self.into_directory:
            root = self.destination
        else:
            root = self.destination.parent

        if os.path.lexists(root):
            if not root.is_dir():
                raise ConflictError(f"Destination {root} exists and is not a directory", path=root)
            return
        try:
            root.mkdir(parents=self.options.create_parents)
        except FileNotFoundError as exc:
            error = StampIOError(
                f"Parent of destination {root} does not exist (allow creating parents to create it)",
                path=root,
            )
            raise error from exc
        except OSError as exc:
            raise io_error("create directory", root, exc) from exc
        logger.debug(f"Created destination directory: {root}")

    def render_text(self, text: str, rel_path: PurePosixPath) -> str:
        try:
            return self.renderer.render(text, self.context)
        except RenderFailure as exc:
            raise RenderError(f"Failed to render {rel_path}: {exc}", path=rel_path) from exc

    def render_path(self, entry: TraversalEntry) -> PurePosixPath:
        parts: list[str] = []
        last = len(entry.rel_path.parts) - 1
        suffix = self.options.template_suffix
        for index, part in enumerate(entry.rel_path.parts):
            rendered = self.render_text(part, entry.rel_path)
            if (
                index == last
                and entry.kind is EntryKind.FILE
                and suffix
                and rendered.endswith(suffix)
                and rendered != suffix
            ):
                rendered = rendered[: -len(suffix)]
            if not is_valid_name(rendered):
                raise RenderError(
                    f"Path segment {part!r} of {entry.rel_path} renders to invalid name {rendered!r}",
                    path=entry.rel_path,
                )
            parts.append(rendered)
        return PurePosixPath(*parts)

    def target_for(self, rendered: PurePosixPath) -> Path:
        if self.mode is EntryKind.DIRECTORY:
            return self.destination.joinpath(*rendered.parts)
        if self.into_directory:
            return self.destination / rendered.name
        return self.destination

    def claim(self, target: Path, entry: TraversalEntry) -> None:
        if target in self.claimed:
            raise ConflictError(
                f"Template entry {entry.rel_path} renders to {target}, "
                "which this run already produced",
                path=target,
            )
        self.claimed.add(target)

    def skip(self, target: Path, reason: str) -> None:
        logger.info(f"Skipped {target}: {reason}")
        self.result.skipped.append(target)

    def apply(self, entry: TraversalEntry) -> None:
        rendered = self.render_path(entry)
        target = self.target_for(rendered)
        self.claim(target, entry)

        if any(parent in self.blocked for parent in rendered.parents):
            self.blocked.add(rendered)
            self.skip(target, "parent directory was skipped")
            return

        if entry.kind is EntryKind.DIRECTORY:
            self.make_directory(target, rendered)
        else:
            self.write_file(entry, target)

    def make_directory(self, target: Path, rendered: PurePosixPath) -> None:
        if os.path.lexists(target):
            # a symlink to a directory would carry the subtree outside the destination
            if target.is_dir() and not target.is_symlink():
                self.result.skipped.append(target)
                return
            if self.policy is ConflictPolicy.SKIP:
                self.blocked.add(rendered)
                self.skip(target, "exists and is not a directory")
                return
            raise ConflictError(f"{target} exists and is not a directory", path=target)

        try:
            target.mkdir(parents=True)
        except OSError as exc:
            raise io_error("create directory", target, exc) from exc
        logger.debug(f"Created directory {target}")
        self.result.written.append(target)

    def render_content(self, entry: TraversalEntry) -> bytes:
        try:
            raw = entry.read_bytes()
        except OSError as exc:
            raise io_error("read", entry.source, exc) from exc
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Copying binary template file verbatim: {entry.rel_path}")
            return raw
        return self.render_text(text, entry.rel_path).encode("utf-8")

    def write_file(self, entry: TraversalEntry, target: Path) -> None:
        data = self.render_content(entry)

        if os.path.lexists(target):
            if target.is_dir() and not target.is_symlink():
                if self.policy is ConflictPolicy.SKIP:
                    self.skip(target, "exists and is a directory")
                    return
                raise ConflictError(f"{target} exists and is a directory", path=target)
            if self.policy is ConflictPolicy.FAIL:
                raise ConflictError(f"{target} already exists", path=target)
            if self.policy is ConflictPolicy.SKIP:
                self.skip(target, "already exists")
                return

        if self.options.file_mode is not None:
            mode = self.options.file_mode
        else:
            try:
                mode = stat.S_IMODE(entry.source.stat().st_mode)
            except OSError as exc:
                raise io_error("inspect", entry.source, exc) from exc

        try:
            if self.mode is EntryKind.DIRECTORY:
                ensure_parent(target)
            atomic_write_bytes(
                target, data, mode=mode, replace=self.policy is ConflictPolicy.OVERWRITE
            )
        except FileExistsError as exc:
            if self.policy is ConflictPolicy.SKIP:
                self.skip(target, "appeared while writing")
                return
            raise ConflictError(f"{target} already exists", path=target) from exc
        except OSError as exc:
            raise io_error("write", target, exc) from exc

        logger.debug(f"Wrote {entry.rel_path} -> {target}")
        self.result.written.append(target)


def materialize(
    plan: Iterable[TraversalEntry],
    context: Mapping[str, str],
    destination: Path,
    *,
    renderer: Renderer,
    mode: EntryKind = EntryKind.DIRECTORY,
    options: StampOptions | None = None,
    cancel: threading.Event | None = None,
) -> MaterializationResult:
    """Render every planned entry and write it under ``destination``.

    In ``file`` mode the plan holds one file and ``destination`` is the output
    file, or the directory to write it into. In ``directory`` mode
    ``destination`` is the root of the rendered tree.

    Args:
        plan: Entries in traversal order
        context: Variable bindings for every render call
        destination: Output file or root directory
        renderer: Rendering capability used for paths and contents
        mode: Whether the plan produces one file or a tree
        options: Conflict policy and write settings
        cancel: Checked between entries; when set, no further entry starts

    Returns:
        Paths written and paths skipped

    Raises:
        StampError: Any failure; ``result`` on the exception lists what was
            written before the abort
    """
    options = options or StampOptions()
    destination = Path(destination)
    result = MaterializationResult(destination=destination)

    try:
        worker = _Materializer(context, destination, renderer, mode, options, result)
        worker.prepare()
        for entry in plan:
            if cancel is not None and cancel.is_set():
                raise StampCancelledError(
                    f"Stamping cancelled before {entry.rel_path}", path=entry.rel_path
                )
            worker.apply(entry)
    except StampError as exc:
        exc.result = result
        raise

    return result
