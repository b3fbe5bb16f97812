"""Pytest fixtures for building template trees."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Mapping

import pytest

TreeLayout = Mapping[str, "str | bytes | None"]


def write_tree(root: Path, layout: TreeLayout) -> Path:
    """Create files (str/bytes content) and directories (None) under root."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in layout.items():
        path = root / rel
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def read_tree(root: Path) -> dict[str, bytes | None]:
    """Snapshot a directory: relative POSIX path -> bytes, or None for dirs."""
    snapshot: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        snapshot[rel] = None if path.is_dir() else path.read_bytes()
    return snapshot


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep UTSUSU_* settings from the developer's environment out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("UTSUSU_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("UTSUSU_CONFIG_FILE", str(tmp_path / "no-such-config.yml"))


@pytest.fixture
def templates_root(tmp_path: Path) -> Path:
    root = tmp_path / "templates"
    root.mkdir()
    return root


@pytest.fixture
def make_tree() -> Callable[[Path, TreeLayout], Path]:
    return write_tree


@pytest.fixture
def snapshot() -> Callable[[Path], dict[str, bytes | None]]:
    return read_tree
