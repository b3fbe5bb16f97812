from __future__ import annotations

import stat
import threading
from pathlib import Path, PurePosixPath

import pytest

from utsusu.context.builder import build_context
from utsusu.core.errors import (
    ConflictError,
    RenderError,
    StampCancelledError,
    StampIOError,
)
from utsusu.core.models import ConflictPolicy, EntryKind, StampOptions, TraversalEntry
from utsusu.rendering.engine import JinjaRenderer
from utsusu.rendering.materializer import materialize
from utsusu.templates.planner import TraversalPlan, single_file_plan


def _run(source: Path, dest: Path, variables: dict[str, str] | None = None, **option_kwargs):
    return materialize(
        TraversalPlan(source),
        build_context({}, variables or {}),
        dest,
        renderer=JinjaRenderer(),
        options=StampOptions(**option_kwargs),
    )


def test_renders_paths_and_contents(tmp_path: Path, make_tree) -> None:
    source = make_tree(
        tmp_path / "tpl",
        {"{{project}}/README.md": "# {{project}}", "{{project}}/src/__init__.py.j2": ""},
    )
    dest = tmp_path / "dest"

    result = _run(source, dest, {"project": "demo"})

    assert (dest / "demo").is_dir()
    assert (dest / "demo" / "README.md").read_text() == "# demo"
    assert (dest / "demo" / "src" / "__init__.py").exists()
    assert result.written == [
        dest / "demo",
        dest / "demo" / "README.md",
        dest / "demo" / "src",
        dest / "demo" / "src" / "__init__.py",
    ]
    assert result.skipped == []
    assert result.destination == dest


@pytest.mark.parametrize("value", ["a/b", "..", "", "."])
def test_invalid_rendered_segment(tmp_path: Path, make_tree, value: str) -> None:
    source = make_tree(tmp_path / "tpl", {"{{name}}.txt": "x", "{{name}}": None})
    source_file_only = make_tree(tmp_path / "tpl2", {"{{name}}": "x"})

    with pytest.raises(RenderError):
        _run(source_file_only, tmp_path / "dest", {"name": value})
    with pytest.raises(RenderError):
        _run(source, tmp_path / "dest2", {"name": value})


def test_render_error_carries_path_and_partial_result(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "ok", "b.txt": "{{ missing }}", "c.txt": "c"})
    dest = tmp_path / "dest"

    with pytest.raises(RenderError) as exc_info:
        _run(source, dest)

    error = exc_info.value
    assert error.path == PurePosixPath("b.txt")
    assert error.result is not None
    assert error.result.written == [dest / "a.txt"]
    assert not (dest / "b.txt").exists()
    assert not (dest / "c.txt").exists()


def test_expression_error_is_a_render_error(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "ok", "b.txt": "{{ name + 1 }}"})
    dest = tmp_path / "dest"

    with pytest.raises(RenderError) as exc_info:
        _run(source, dest, {"name": "x"})

    assert exc_info.value.path == PurePosixPath("b.txt")
    assert exc_info.value.result.written == [dest / "a.txt"]


class _VanishingEntry(TraversalEntry):
    def read_bytes(self) -> bytes:
        data = super().read_bytes()
        self.source.unlink()
        return data


def test_source_removed_while_writing(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "a", "b.txt": "b"})
    plan = [
        TraversalEntry(PurePosixPath("a.txt"), EntryKind.FILE, source / "a.txt"),
        _VanishingEntry(PurePosixPath("b.txt"), EntryKind.FILE, source / "b.txt"),
    ]
    dest = tmp_path / "dest"

    with pytest.raises(StampIOError) as exc_info:
        materialize(plan, build_context({}, {}), dest, renderer=JinjaRenderer())

    assert exc_info.value.path == source / "b.txt"
    assert exc_info.value.result.written == [dest / "a.txt"]
    assert not (dest / "b.txt").exists()


def test_symlinked_directory_in_destination_conflicts(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"sub/new.txt": "n"})
    elsewhere = make_tree(tmp_path / "elsewhere", {})
    dest = make_tree(tmp_path / "out", {})
    (dest / "sub").symlink_to(elsewhere, target_is_directory=True)

    with pytest.raises(ConflictError) as exc_info:
        _run(source, dest, conflict_policy=ConflictPolicy.OVERWRITE)

    assert exc_info.value.path == dest / "sub"
    assert not (elsewhere / "new.txt").exists()


def test_symlinked_directory_in_destination_skips_subtree(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"sub/new.txt": "n"})
    elsewhere = make_tree(tmp_path / "elsewhere", {})
    dest = make_tree(tmp_path / "out", {})
    (dest / "sub").symlink_to(elsewhere, target_is_directory=True)

    result = _run(source, dest, conflict_policy=ConflictPolicy.SKIP)

    assert result.written == []
    assert result.skipped == [dest / "sub", dest / "sub" / "new.txt"]
    assert not (elsewhere / "new.txt").exists()


def test_conflict_fail_aborts_without_rollback(tmp_path: Path, make_tree) -> None:
    source = make_tree(
        tmp_path / "tpl", {"a.txt": "a", "existing.txt": "new", "z.txt": "z"}
    )
    dest = make_tree(tmp_path / "out", {"existing.txt": "mine"})

    with pytest.raises(ConflictError) as exc_info:
        _run(source, dest)

    assert exc_info.value.path == dest / "existing.txt"
    assert "existing.txt" in str(exc_info.value)
    assert (dest / "existing.txt").read_text() == "mine"
    assert (dest / "a.txt").read_text() == "a"
    assert not (dest / "z.txt").exists()
    assert exc_info.value.result.written == [dest / "a.txt"]


def test_conflict_skip_keeps_existing(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"existing.txt": "new", "fresh.txt": "f"})
    dest = make_tree(tmp_path / "out", {"existing.txt": "mine"})

    result = _run(source, dest, conflict_policy=ConflictPolicy.SKIP)

    assert (dest / "existing.txt").read_text() == "mine"
    assert result.skipped == [dest / "existing.txt"]
    assert result.written == [dest / "fresh.txt"]


def test_conflict_overwrite_replaces(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"existing.txt": "new"})
    dest = make_tree(tmp_path / "out", {"existing.txt": "mine"})

    result = _run(source, dest, conflict_policy=ConflictPolicy.OVERWRITE)

    assert (dest / "existing.txt").read_text() == "new"
    assert result.written == [dest / "existing.txt"]


def test_existing_directories_are_merged(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"sub/new.txt": "n"})
    dest = make_tree(tmp_path / "out", {"sub/old.txt": "o"})

    result = _run(source, dest)

    assert (dest / "sub" / "old.txt").read_text() == "o"
    assert (dest / "sub" / "new.txt").read_text() == "n"
    assert result.skipped == [dest / "sub"]
    assert result.written == [dest / "sub" / "new.txt"]


@pytest.mark.parametrize("policy", [ConflictPolicy.FAIL, ConflictPolicy.OVERWRITE])
def test_directory_never_replaced_by_file(tmp_path: Path, make_tree, policy) -> None:
    source = make_tree(tmp_path / "tpl", {"thing": "file content"})
    dest = make_tree(tmp_path / "out", {"thing/keep.txt": "k"})

    with pytest.raises(ConflictError):
        _run(source, dest, conflict_policy=policy)

    assert (dest / "thing" / "keep.txt").read_text() == "k"


def test_file_in_place_of_directory_skips_subtree(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"pkg/a.txt": "a", "pkg/deep/b.txt": "b", "z.txt": "z"})
    dest = make_tree(tmp_path / "out", {"pkg": "I am a file"})

    result = _run(source, dest, conflict_policy=ConflictPolicy.SKIP)

    assert (dest / "pkg").read_text() == "I am a file"
    assert result.skipped == [
        dest / "pkg",
        dest / "pkg" / "a.txt",
        dest / "pkg" / "deep",
        dest / "pkg" / "deep" / "b.txt",
    ]
    assert result.written == [dest / "z.txt"]


def test_file_in_place_of_directory_fails(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"pkg/a.txt": "a"})
    dest = make_tree(tmp_path / "out", {"pkg": "I am a file"})

    with pytest.raises(ConflictError):
        _run(source, dest, conflict_policy=ConflictPolicy.OVERWRITE)


def test_two_entries_rendering_to_same_target(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"{{a}}.txt": "1", "{{b}}.txt": "2"})
    dest = tmp_path / "dest"

    with pytest.raises(ConflictError) as exc_info:
        _run(source, dest, {"a": "same", "b": "same"}, conflict_policy=ConflictPolicy.OVERWRITE)

    assert exc_info.value.result.written == [dest / "same.txt"]
    assert (dest / "same.txt").read_text() == "1"


def test_destination_parent_must_exist(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "a"})
    dest = tmp_path / "missing" / "deeper" / "dest"

    with pytest.raises(StampIOError):
        _run(source, dest)
    assert not (tmp_path / "missing").exists()

    _run(source, dest, create_parents=True)
    assert (dest / "a.txt").read_text() == "a"


def test_destination_that_is_a_file_conflicts(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "a"})
    dest = tmp_path / "dest"
    dest.write_text("file")

    with pytest.raises(ConflictError):
        _run(source, dest)


def test_empty_template_directories_are_created(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"logs": None})
    dest = tmp_path / "dest"

    result = _run(source, dest)

    assert (dest / "logs").is_dir()
    assert result.written == [dest / "logs"]


class TestSingleFileMode:
    @pytest.fixture
    def source(self, tmp_path: Path) -> Path:
        path = tmp_path / "{{name}}.txt.j2"
        path.write_text("Hello, {{name}}!")
        return path

    def _run(self, source: Path, dest: Path, **option_kwargs):
        return materialize(
            single_file_plan(source),
            build_context({}, {"name": "World"}),
            dest,
            renderer=JinjaRenderer(),
            mode=EntryKind.FILE,
            options=StampOptions(**option_kwargs),
        )

    def test_writes_exact_path(self, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "out.txt"

        result = self._run(source, dest)

        assert dest.read_text() == "Hello, World!"
        assert result.written == [dest]

    def test_existing_directory_receives_rendered_name(self, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "outdir"
        dest.mkdir()

        result = self._run(source, dest)

        assert (dest / "World.txt").read_text() == "Hello, World!"
        assert result.written == [dest / "World.txt"]

    def test_into_directory_creates_it(self, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "newdir"

        self._run(source, dest, into_directory=True)

        assert (dest / "World.txt").read_text() == "Hello, World!"

    def test_missing_parent(self, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "a" / "b" / "out.txt"

        with pytest.raises(StampIOError):
            self._run(source, dest)

        self._run(source, dest, create_parents=True)
        assert dest.read_text() == "Hello, World!"

    def test_conflict_policies(self, source: Path, tmp_path: Path) -> None:
        dest = tmp_path / "out.txt"
        dest.write_text("mine")

        with pytest.raises(ConflictError):
            self._run(source, dest)
        assert self._run(source, dest, conflict_policy=ConflictPolicy.SKIP).skipped == [dest]
        assert dest.read_text() == "mine"
        self._run(source, dest, conflict_policy=ConflictPolicy.OVERWRITE)
        assert dest.read_text() == "Hello, World!"


def test_binary_files_are_copied_verbatim(tmp_path: Path, make_tree) -> None:
    payload = b"\x89PNG\r\n\x1a\n\xff\xfe{{name}}"
    source = make_tree(tmp_path / "tpl", {"logo.png": payload})
    dest = tmp_path / "dest"

    _run(source, dest)

    assert (dest / "logo.png").read_bytes() == payload


def test_file_mode_copied_from_source_or_forced(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"run.sh": "#!/bin/sh\n"})
    (source / "run.sh").chmod(0o755)

    _run(source, tmp_path / "copied")
    _run(source, tmp_path / "forced", file_mode=0o600)

    assert stat.S_IMODE((tmp_path / "copied" / "run.sh").stat().st_mode) == 0o755
    assert stat.S_IMODE((tmp_path / "forced" / "run.sh").stat().st_mode) == 0o600


def test_cancel_before_start(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "a"})
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(StampCancelledError) as exc_info:
        materialize(
            TraversalPlan(source),
            build_context({}, {}),
            tmp_path / "dest",
            renderer=JinjaRenderer(),
            cancel=cancel,
        )

    assert exc_info.value.result.written == []
    assert not (tmp_path / "dest" / "a.txt").exists()


def test_cancel_between_entries(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"a.txt": "a", "b.txt": "b"})
    dest = tmp_path / "dest"
    cancel = threading.Event()

    def plan():
        for entry in TraversalPlan(source):
            yield entry
            cancel.set()

    with pytest.raises(StampCancelledError) as exc_info:
        materialize(plan(), build_context({}, {}), dest, renderer=JinjaRenderer(), cancel=cancel)

    assert exc_info.value.result.written == [dest / "a.txt"]
    assert not (dest / "b.txt").exists()


def test_missing_parent_inside_destination_is_tolerated(tmp_path: Path, make_tree) -> None:
    source = make_tree(tmp_path / "tpl", {"sub/file.txt": "x"})
    entry = TraversalEntry(PurePosixPath("sub/file.txt"), EntryKind.FILE, source / "sub" / "file.txt")
    dest = tmp_path / "dest"

    result = materialize([entry], build_context({}, {}), dest, renderer=JinjaRenderer())

    assert (dest / "sub" / "file.txt").read_text() == "x"
    assert result.written == [dest / "sub" / "file.txt"]
