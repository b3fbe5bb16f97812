"""Rendering capability contract."""

from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable


class RenderFailure(Exception):
    """Raised by a renderer when a text body cannot be rendered."""


@runtime_checkable
class Renderer(Protocol):
    """Anything that substitutes variables into a text body.

    Implementations must raise ``RenderFailure`` for every engine error so the
    materializer can attach the offending template path.
    """

    def render(self, text: str, context: Mapping[str, str]) -> str: ...
