"""Resolve template names against a templates root."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path, PurePath

from ..core.errors import InvalidTemplateError, TemplateNotFoundError
from ..core.models import TemplateKind, TemplateRef

logger = logging.getLogger(__name__)


def _canonical(path: Path) -> Path:
    return Path(os.path.realpath(path))


def locate(templates_root: Path, name: str) -> TemplateRef:
    """Find the template called ``name`` under ``templates_root``.

    The name may contain sub-directories but must stay inside the root once
    symlinks and ``..`` segments are resolved.

    Args:
        templates_root: Directory holding named templates
        name: Template name relative to the root

    Returns:
        Reference tagged with the template kind and its canonical path

    Raises:
        TemplateNotFoundError: If the root or the template is missing, or the
            name escapes the root
        InvalidTemplateError: If the entry is neither a file nor a directory
    """
    root = Path(templates_root)
    if not root.is_dir():
        raise TemplateNotFoundError(f"Templates root is not a directory: {root}", path=root)

    if not name or PurePath(name).is_absolute() or PurePath(name).drive:
        raise TemplateNotFoundError(f"Invalid template name: {name!r}")

    canonical_root = _canonical(root)
    candidate = _canonical(canonical_root / name)
    if candidate == canonical_root or not candidate.is_relative_to(canonical_root):
        logger.debug(f"Rejected template name escaping the root: {name!r} -> {candidate}")
        raise TemplateNotFoundError(f"Template '{name}' not found under {root}")

    try:
        st = os.stat(candidate)
    except FileNotFoundError:
        raise TemplateNotFoundError(f"Template '{name}' not found under {root}") from None
    except OSError as exc:
        raise InvalidTemplateError(
            f"Template '{name}' cannot be inspected: {exc.strerror or exc}", path=candidate
        ) from exc

    if stat.S_ISDIR(st.st_mode):
        kind = TemplateKind.DIRECTORY
    elif stat.S_ISREG(st.st_mode):
        kind = TemplateKind.FILE
    else:
        raise InvalidTemplateError(
            f"Template '{name}' is neither a file nor a directory", path=candidate
        )

    logger.debug(f"Located {kind.value} template '{name}' at {candidate}")
    return TemplateRef(name=name, kind=kind, path=candidate)
