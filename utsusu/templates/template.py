"""A located template together with its manifest and traversal plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..core.errors import InvalidTemplateError
from ..core.models import (
    EntryKind,
    StampOptions,
    TemplateKind,
    TemplateRef,
    TraversalEntry,
)
from .locator import locate
from .manifest import CONTENT_DIRNAME, TemplateManifest, load_manifest
from .planner import TraversalPlan, single_file_plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Template:
    """Everything known about a template before any variable is bound."""

    ref: TemplateRef
    content_root: Path
    manifest: TemplateManifest | None = None

    @property
    def output_kind(self) -> EntryKind:
        if self.manifest is not None:
            return self.manifest.type
        if self.ref.kind is TemplateKind.FILE:
            return EntryKind.FILE
        return EntryKind.DIRECTORY

    @property
    def defaults(self) -> dict[str, str]:
        return self.manifest.defaults if self.manifest else {}

    @property
    def required(self) -> list[str]:
        return self.manifest.required if self.manifest else []

    def default_output_name(self, template_suffix: str = ".j2") -> str:
        """Unrendered name to stamp into when the caller gives no destination."""
        if self.manifest is not None and self.manifest.output_name:
            return self.manifest.output_name
        name = self.ref.path.name
        if template_suffix and name.endswith(template_suffix) and name != template_suffix:
            name = name[: -len(template_suffix)]
        return name

    def plan(self, options: StampOptions | None = None) -> Iterable[TraversalEntry]:
        """Entries to materialize, in order.

        Raises:
            InvalidTemplateError: If a single-file manifest template does not
                select exactly one file, or if include globs match no file
        """
        options = options or StampOptions()
        if self.ref.kind is TemplateKind.FILE:
            return single_file_plan(self.content_root)

        ignore = list(options.ignore)
        include: list[str] = []
        if self.manifest is not None:
            ignore.extend(self.manifest.exclude)
            include = self.manifest.include

        plan = TraversalPlan(
            self.content_root,
            ignore=ignore,
            include=include,
            symlink_policy=options.symlink_policy,
        )
        if self.output_kind is EntryKind.DIRECTORY:
            if include and not any(entry.kind is EntryKind.FILE for entry in plan):
                raise InvalidTemplateError(
                    f"Template '{self.ref.name}' has no files matching its include "
                    f"globs ({', '.join(include)})",
                    path=self.content_root,
                )
            return plan

        files = [entry for entry in plan if entry.kind is EntryKind.FILE]
        if len(files) != 1:
            raise InvalidTemplateError(
                f"Template '{self.ref.name}' must select exactly one file, "
                f"found {len(files)}",
                path=self.content_root,
            )
        return single_file_plan(files[0].source)


def load_template(templates_root: Path, name: str) -> Template:
    """Locate a template and read its manifest.

    Raises:
        TemplateNotFoundError: If the template does not exist
        InvalidTemplateError: If the template or its manifest is malformed
    """
    ref = locate(templates_root, name)
    if ref.kind is TemplateKind.FILE:
        return Template(ref=ref, content_root=ref.path)

    manifest = load_manifest(ref.path)
    if manifest is None:
        return Template(ref=ref, content_root=ref.path)

    content_root = ref.path / CONTENT_DIRNAME
    if not content_root.is_dir():
        raise InvalidTemplateError(
            f"Template '{name}' has a manifest but no '{CONTENT_DIRNAME}/' directory",
            path=ref.path,
        )
    logger.debug(
        f"Loaded manifest for '{name}': {manifest.type.value} output, "
        f"{len(manifest.variables)} variable(s)"
    )
    return Template(ref=ref, content_root=content_root, manifest=manifest)
