"""Template stamping pipeline: locate, build context, plan, materialize."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Mapping

from .context.builder import RenderContext, build_context
from .core.errors import RenderError
from .core.models import EntryKind, MaterializationResult, StampOptions
from .rendering.capability import Renderer, RenderFailure
from .rendering.engine import JinjaRenderer
from .rendering.materializer import is_valid_name, materialize
from .templates.template import Template, load_template

logger = logging.getLogger(__name__)


def default_destination(
    template: Template,
    context: RenderContext,
    renderer: Renderer,
    *,
    base: Path | None = None,
    template_suffix: str = ".j2",
) -> Path:
    """Destination used when the caller names none.

    Args:
        template: Loaded template
        context: Render context the output name is rendered with
        renderer: Rendering capability
        base: Directory the name is relative to (default: cwd)
        template_suffix: Suffix stripped from template file names

    Returns:
        ``base`` joined with the rendered default output name
    """
    raw_name = template.default_output_name(template_suffix)
    try:
        name = renderer.render(raw_name, context)
    except RenderFailure as exc:
        raise RenderError(f"Failed to render output name {raw_name!r}: {exc}") from exc
    if not name.strip():
        raise RenderError(f"Output name {raw_name!r} renders to an empty string")
    if not is_valid_name(name):
        raise RenderError(f"Output name {raw_name!r} renders to invalid name {name!r}")
    return (base or Path.cwd()) / name


def stamp(
    templates_root: Path,
    name: str,
    variables: Mapping[str, str],
    destination: Path | None = None,
    *,
    options: StampOptions | None = None,
    renderer: Renderer | None = None,
    cancel: threading.Event | None = None,
) -> MaterializationResult:
    """Stamp the template ``name`` with ``variables`` into ``destination``.

    Args:
        templates_root: Directory holding named templates
        name: Template name relative to the root
        variables: Caller-supplied values; these override template defaults
        destination: Output file (single-file templates) or root directory;
            None uses the template's default output name under the cwd
        options: Conflict policy, symlink policy and write settings
        renderer: Rendering capability (default: Jinja2)
        cancel: Event checked between entries to stop early

    Returns:
        Paths written and skipped

    Raises:
        StampError: On any failure; see ``utsusu.core.errors``
    """
    options = options or StampOptions()
    renderer = renderer or JinjaRenderer()

    template = load_template(Path(templates_root), name)
    context = build_context(template.defaults, variables, template.required)

    if destination is None:
        destination = default_destination(
            template, context, renderer, template_suffix=options.template_suffix
        )

    mode = template.output_kind
    logger.info(
        f"Stamping {mode.value} template '{name}' into {destination} "
        f"(on conflict: {options.conflict_policy.value})"
    )

    result = materialize(
        template.plan(options),
        context,
        Path(destination),
        renderer=renderer,
        mode=mode,
        options=options,
        cancel=cancel,
    )

    files = sum(1 for p in result.written if mode is EntryKind.FILE or not p.is_dir())
    logger.info(
        f"Stamped '{name}': {files} file(s) written, {len(result.skipped)} skipped"
    )
    return result
