"""Error taxonomy for template stamping.

Every failure the core can report is a ``StampError``. Errors raised while
materializing carry the partial result in ``result`` so callers can see what
was written before the abort; nothing is rolled back.
"""

from __future__ import annotations

from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from .models import MaterializationResult


class StampError(Exception):
    """Base class for all stamping failures."""

    kind = "error"
    exit_code = 1

    def __init__(self, message: str, *, path: PurePath | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.result: MaterializationResult | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "message": str(self)}
        if self.path is not None:
            data["path"] = str(self.path)
        if self.result is not None:
            data["written"] = [str(p) for p in self.result.written]
            data["skipped"] = [str(p) for p in self.result.skipped]
        return data


class TemplateNotFoundError(StampError):
    """Raised when a named template does not exist under the templates root."""

    kind = "not_found"
    exit_code = 3


class InvalidTemplateError(StampError):
    """Raised when a template entry is malformed or of an unusable type."""

    kind = "invalid_template"
    exit_code = 4


class UnsupportedEntryError(StampError):
    """Raised when traversal meets a symlink or special file it may not use."""

    kind = "unsupported_entry"
    exit_code = 5


class ContextError(StampError):
    """Raised when variable bindings cannot form a render context."""

    kind = "context"
    exit_code = 6


class MissingVariableError(ContextError):
    """Raised when required variables are unresolved; lists all of them."""

    kind = "missing_variable"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = sorted(missing)
        super().__init__(f"Missing required variable(s): {', '.join(self.missing)}")


class MaterializationError(StampError):
    """Base class for failures while writing a template to its destination."""


class RenderError(MaterializationError):
    kind = "render"
    exit_code = 7


class ConflictError(MaterializationError):
    kind = "conflict"
    exit_code = 8


class StampIOError(MaterializationError):
    """Raised on underlying read/write failures; the OS error is ``__cause__``."""

    kind = "io"
    exit_code = 9


class StampCancelledError(MaterializationError):
    kind = "cancelled"
    exit_code = 10


def io_error(action: str, path: Path, exc: OSError) -> StampIOError:
    """Wrap an ``OSError`` with the path it happened on."""
    reason = exc.strerror or str(exc)
    error = StampIOError(f"Failed to {action} {path}: {reason}", path=path)
    error.__cause__ = exc
    return error
