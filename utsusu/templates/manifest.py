"""Template manifest: variables and output settings declared by a template."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..core.errors import InvalidTemplateError
from ..core.models import EntryKind

MANIFEST_FILENAME = "config.yml"
CONTENT_DIRNAME = "files"


def stringify_scalar(value: Any) -> str:
    """Turn a YAML scalar into the text value used for rendering."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueError(f"must be a scalar, got {type(value).__name__}")


class OutputConfig(BaseModel):
    filename: str | None = None
    directory: str | None = None


class TemplateManifest(BaseModel):
    """Parsed ``config.yml`` of a directory template.

    A variable declared with a ``null`` default is required.
    """

    type: EntryKind = Field(default=EntryKind.DIRECTORY, description="Output type")
    output: OutputConfig = Field(default_factory=OutputConfig)
    include: list[str] = Field(default_factory=list, description="Included file globs")
    exclude: list[str] = Field(default_factory=list, description="Excluded globs")
    variables: dict[str, str | None] = Field(default_factory=dict)

    @field_validator("include", "exclude", mode="before")
    @classmethod
    def _single_glob(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify_defaults(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("variables must be a mapping")
        variables: dict[str, str | None] = {}
        for name, default in value.items():
            if not isinstance(name, str):
                raise ValueError(f"variable name must be a string, got {name!r}")
            if default is None:
                variables[name] = None
                continue
            try:
                variables[name] = stringify_scalar(default)
            except ValueError as exc:
                raise ValueError(f"default for '{name}' {exc}") from None
        return variables

    @model_validator(mode="after")
    def _single_file_include(self) -> TemplateManifest:
        if self.type is EntryKind.FILE and len(self.include) > 1:
            raise ValueError("a 'file' template may include only one file glob")
        return self

    @property
    def defaults(self) -> dict[str, str]:
        return {k: v for k, v in self.variables.items() if v is not None}

    @property
    def required(self) -> list[str]:
        return [k for k, v in self.variables.items() if v is None]

    @property
    def output_name(self) -> str | None:
        if self.type is EntryKind.FILE:
            return self.output.filename
        return self.output.directory


def parse_manifest(text: str, *, source: Path | None = None) -> TemplateManifest:
    """Parse manifest YAML text.

    Raises:
        InvalidTemplateError: On YAML syntax errors or schema violations
    """
    where = f" in {source}" if source else ""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidTemplateError(f"Invalid manifest YAML{where}: {exc}", path=source) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidTemplateError(f"Manifest must be a mapping{where}", path=source)

    try:
        return TemplateManifest.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'manifest'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidTemplateError(f"Invalid manifest{where}: {problems}", path=source) from exc


def load_manifest(template_dir: Path) -> TemplateManifest | None:
    """Load ``config.yml`` from a directory template, if it has one."""
    manifest_path = template_dir / MANIFEST_FILENAME
    if not manifest_path.is_file():
        return None
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidTemplateError(
            f"Cannot read manifest {manifest_path}: {exc}", path=manifest_path
        ) from exc
    return parse_manifest(text, source=manifest_path)
