"""Template rendering engines."""

from __future__ import annotations

import logging
import re
from typing import Callable, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from .capability import Renderer, RenderFailure

logger = logging.getLogger(__name__)

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def create_environment() -> Environment:
    """Create the Jinja2 environment used for paths and file bodies."""
    return Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


class JinjaRenderer:
    """Render text with Jinja2; undefined variables are errors."""

    def __init__(self, environment: Environment | None = None) -> None:
        self.env = environment or create_environment()

    def render(self, text: str, context: Mapping[str, str]) -> str:
        try:
            template = self.env.from_string(text)
            return template.render(dict(context))
        except TemplateError as exc:
            raise RenderFailure(f"{type(exc).__name__}: {exc}") from exc
        except Exception as exc:
            # expressions evaluated at render time, e.g. `{{ name + 1 }}`
            raise RenderFailure(f"{type(exc).__name__} in template expression: {exc}") from exc


class PlaceholderRenderer:
    """Replace ``{{VARIABLE}}`` placeholders and nothing else.

    Args:
        strict: Fail on placeholders with no binding instead of leaving them
            as-is.
    """

    def __init__(self, *, strict: bool = True) -> None:
        self.strict = strict

    def render(self, text: str, context: Mapping[str, str]) -> str:
        unknown: list[str] = []

        def replacer(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in context:
                return context[key]
            unknown.append(key)
            return match.group(0)

        rendered = _PLACEHOLDER_PATTERN.sub(replacer, text)
        if unknown and self.strict:
            names = ", ".join(sorted(set(unknown)))
            raise RenderFailure(f"Undefined placeholder(s): {names}")
        return rendered


_ENGINES: dict[str, Callable[[], Renderer]] = {
    "jinja": JinjaRenderer,
    "placeholder": PlaceholderRenderer,
}


def available_engines() -> list[str]:
    return sorted(_ENGINES)


def get_renderer(name: str = "jinja") -> Renderer:
    """Instantiate a rendering engine by name.

    Raises:
        ValueError: If no engine is registered under ``name``
    """
    try:
        factory = _ENGINES[name]
    except KeyError:
        raise ValueError(
            f"Unknown rendering engine: {name!r} (choose from {', '.join(available_engines())})"
        ) from None
    logger.debug(f"Using rendering engine: {name}")
    return factory()
