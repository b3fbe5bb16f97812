"""Render context assembly."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from ..core.errors import ContextError, MissingVariableError

logger = logging.getLogger(__name__)


class RenderContext(Mapping[str, str]):
    """Immutable variable bindings for one stamping operation."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"RenderContext({self._values!r})"


def _check_values(source: str, values: Mapping[str, str]) -> None:
    for name, value in values.items():
        if not isinstance(name, str):
            raise ContextError(f"Variable names must be strings, got {name!r} ({source})")
        if not isinstance(value, str):
            raise ContextError(
                f"Variable '{name}' must be a string, got {type(value).__name__} ({source})"
            )


def build_context(
    defaults: Mapping[str, str],
    overrides: Mapping[str, str],
    required: Iterable[str] = (),
) -> RenderContext:
    """Merge template defaults and caller overrides into a render context.

    Args:
        defaults: Values declared by the template
        overrides: Values supplied by the caller; these win
        required: Names that must end up bound

    Returns:
        Context holding every default, overridden where the caller says so

    Raises:
        ContextError: If a name or value is not a string
        MissingVariableError: Listing every required name left unbound
    """
    _check_values("template default", defaults)
    _check_values("caller override", overrides)

    merged: dict[str, str] = dict(defaults)
    merged.update(overrides)

    missing = [name for name in required if name not in merged]
    if missing:
        raise MissingVariableError(missing)

    logger.debug(
        f"Built render context: {len(merged)} variable(s), "
        f"{len(set(overrides) & set(defaults))} default(s) overridden"
    )
    return RenderContext(merged)
