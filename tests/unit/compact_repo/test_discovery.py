from __future__ import annotations

import os
import queue
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from compact_repo import discovery
from compact_repo.discovery import FileDiscoverer, ensure_root, is_regular_file, relpath
from compact_repo.exceptions import CompactRepoError, RootNotFoundError
from compact_repo.policy import build_policy


def _write(root: Path, rel: str, content: str = "x") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    _write(tmp_path, "Program.cs", "class Program {}")
    _write(tmp_path, "src/app.cs", "class App {}")
    _write(tmp_path, "src/deep/nested/util.cs", "class Util {}")
    _write(tmp_path, "bin/Debug/app.dll")
    _write(tmp_path, ".git/config", "[core]")
    _write(tmp_path, "node_modules/pkg/index.js", "module.exports = 1;")
    _write(tmp_path, "assets/logo.png")
    _write(tmp_path, "debug.log", "noise")
    _write(tmp_path, "generated/out.cs", "class Out {}")
    _write(tmp_path, ".gitignore", "generated/\n")
    return tmp_path


@pytest.mark.unit
def test_relpath_uses_posix_separators(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.cs", tmp_path) == "a/b.cs"


@pytest.mark.unit
def test_relpath_outside_root_returns_path(tmp_path: Path) -> None:
    other = Path("/elsewhere/file.cs")

    assert relpath(other, tmp_path) == "/elsewhere/file.cs"


@pytest.mark.unit
def test_is_regular_file(tmp_path: Path) -> None:
    f = _write(tmp_path, "a.txt")

    assert is_regular_file(f)
    assert not is_regular_file(tmp_path)
    assert not is_regular_file(tmp_path / "missing.txt")


@pytest.mark.unit
def test_ensure_root_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(RootNotFoundError) as exc_info:
        ensure_root(tmp_path / "missing")

    assert exc_info.value.folder == (tmp_path / "missing").resolve()
    assert isinstance(exc_info.value, CompactRepoError)


@pytest.mark.unit
def test_ensure_root_rejects_file(tmp_path: Path) -> None:
    f = _write(tmp_path, "a.txt")

    with pytest.raises(RootNotFoundError):
        ensure_root(f)


@pytest.mark.unit
def test_iter_candidates_applies_policy(tree: Path) -> None:
    discoverer = FileDiscoverer(tree, build_policy(tree))

    rels = {c.rel for c in discoverer.iter_candidates()}

    assert rels == {"Program.cs", "src/app.cs", "src/deep/nested/util.cs"}


@pytest.mark.unit
def test_iter_candidates_without_gitignore(tree: Path) -> None:
    discoverer = FileDiscoverer(tree, build_policy(tree, use_gitignore=False), workers=1)

    rels = {c.rel for c in discoverer.iter_candidates()}

    assert "generated/out.cs" in rels


@pytest.mark.unit
def test_candidate_exposes_name_and_extension(tree: Path) -> None:
    discoverer = FileDiscoverer(tree, build_policy(tree))

    by_rel = {c.rel: c for c in discoverer.iter_candidates()}
    candidate = by_rel["src/app.cs"]

    assert candidate.name == "app.cs"
    assert candidate.extension == ".cs"
    assert candidate.path == tree.resolve() / "src" / "app.cs"


@pytest.mark.unit
def test_discover_puts_every_candidate_on_the_queue(tree: Path) -> None:
    discoverer = FileDiscoverer(tree, build_policy(tree))
    sink: queue.Queue = queue.Queue()

    count = discoverer.discover(sink)

    items = []
    while not sink.empty():
        items.append(sink.get_nowait())
    assert count == 3
    assert len(items) == 3
    assert len({c.rel for c in items}) == 3


@pytest.mark.unit
def test_pruned_directories_are_never_listed(tree: Path, mocker: MockerFixture) -> None:
    policy = build_policy(tree)
    discoverer = FileDiscoverer(tree, policy)
    check = mocker.spy(discoverer, "_check")

    list(discoverer.iter_candidates())

    checked = {relpath(call.args[-1], discoverer.root) for call in check.call_args_list}
    assert not any(rel.startswith(("bin/", ".git/", "node_modules/")) for rel in checked)


@pytest.mark.unit
def test_discoverer_requires_existing_root(tmp_path: Path) -> None:
    with pytest.raises(RootNotFoundError):
        FileDiscoverer(tmp_path / "nope", build_policy(gitignore_lines=[]))


def _deny_listing(mocker: MockerFixture, denied: str) -> None:
    real_scandir = os.scandir

    def scandir(path):  # noqa: ANN001, ANN202
        if str(path).endswith(denied):
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    mocker.patch.object(os, "scandir", side_effect=scandir)


@pytest.mark.unit
def test_unlistable_directory_is_logged_and_skipped(tree: Path, mocker: MockerFixture) -> None:
    _write(tree, "secret/hidden.cs", "class Hidden {}")
    _deny_listing(mocker, "secret")
    log = mocker.patch.object(discovery, "logger")
    discoverer = FileDiscoverer(tree, build_policy(tree))

    rels = {c.rel for c in discoverer.iter_candidates()}

    assert rels == {"Program.cs", "src/app.cs", "src/deep/nested/util.cs"}
    log.warning.assert_called_once()
    fmt, filename, err = log.warning.call_args.args
    assert fmt == "Cannot list %s: %s"
    assert filename == str(tree.resolve() / "secret")
    assert isinstance(err, PermissionError)
