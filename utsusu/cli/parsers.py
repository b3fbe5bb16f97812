"""CLI argument parsers and validators."""

from __future__ import annotations

import typer

from ..core.models import ConflictPolicy


def parse_variable(value: str) -> tuple[str, str]:
    """Parse a variable argument in format KEY=VALUE."""
    if "=" not in value:
        raise typer.BadParameter(f"Must be KEY=VALUE, got: {value!r}")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise typer.BadParameter(f"Variable name is empty in: {value!r}")
    return key, val


def parse_variables(values: list[str]) -> dict[str, str]:
    return dict(map(parse_variable, values))


def parse_conflict_policy(value: str) -> ConflictPolicy:
    try:
        return ConflictPolicy(value.strip().lower())
    except ValueError as e:
        choices = ", ".join(p.value for p in ConflictPolicy)
        raise typer.BadParameter(f"Invalid conflict policy {value!r} (choose from {choices})") from e


def parse_file_mode(value: str) -> int:
    """Parse octal file mode string."""
    try:
        return int(value, 8)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid octal mode: {value!r}") from e
