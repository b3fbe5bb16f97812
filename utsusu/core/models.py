"""Domain models for template stamping."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, Field

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    ".bzr",
    "__pycache__",
    ".DS_Store",
)


class TemplateKind(str, Enum):
    """Filesystem shape of a template entry."""

    FILE = "file"
    DIRECTORY = "directory"


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class ConflictPolicy(str, Enum):
    """What to do when a destination entry already exists."""

    OVERWRITE = "overwrite"
    SKIP = "skip"
    FAIL = "fail"


class SymlinkPolicy(str, Enum):
    REJECT = "reject"
    FOLLOW = "follow"


@dataclass(frozen=True)
class TemplateRef:
    """A located template: its name, kind and canonical source path."""

    name: str
    kind: TemplateKind
    path: Path


@dataclass(frozen=True)
class TraversalEntry:
    """One node of a template tree scheduled for materialization."""

    rel_path: PurePosixPath
    kind: EntryKind
    source: Path

    def read_bytes(self) -> bytes:
        return self.source.read_bytes()


class StampOptions(BaseModel):
    """Options for one stamping operation."""

    conflict_policy: ConflictPolicy = Field(
        default=ConflictPolicy.FAIL, description="Behaviour for existing targets"
    )
    symlink_policy: SymlinkPolicy = Field(
        default=SymlinkPolicy.REJECT, description="Behaviour for symlinks in templates"
    )
    ignore: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS),
        description="Glob patterns of template entries to skip",
    )
    create_parents: bool = Field(
        default=False, description="Create missing ancestors of the destination"
    )
    into_directory: bool = Field(
        default=False,
        description="Single-file templates: write into the destination directory",
    )
    template_suffix: str = Field(
        default=".j2", description="Suffix stripped from rendered file names"
    )
    file_mode: int | None = Field(
        default=None, description="File permissions (octal); None copies the source's"
    )


class MaterializationResult(BaseModel):
    """What a stamping operation wrote and what it left untouched."""

    destination: Path = Field(..., description="Destination file or root directory")
    written: list[Path] = Field(
        default_factory=list, description="Files and directories created by this run"
    )
    skipped: list[Path] = Field(
        default_factory=list, description="Existing destination entries left untouched"
    )
