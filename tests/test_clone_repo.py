"""Tests for cloning into and cleaning up workspaces."""

import os

import pytest
from git import Repo

from reporeader.clone_repo import cleanup, clear_workspace_root, clone_repo, new_workspace_path
from reporeader.errors import CloneError


@pytest.fixture
def origin(tmp_path):
    path = tmp_path / "origin"
    repo = Repo.init(path)
    (path / "main.py").write_text("def main():\n    return 1\n")
    repo.index.add(["main.py"])
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test")
        config.set_value("user", "email", "test@example.com")
    repo.index.commit("initial")
    return path


def test_clone_into_fresh_workspace(origin, tmp_path):
    workspace = new_workspace_path(str(tmp_path / "workspaces"))

    assert clone_repo(f"file://{origin}", workspace) == workspace

    assert (tmp_path / "workspaces" / os.path.basename(workspace) / "main.py").exists()


def test_clone_failure_raises_clone_error(tmp_path):
    workspace = new_workspace_path(str(tmp_path / "workspaces"))

    with pytest.raises(CloneError):
        clone_repo(str(tmp_path / "no-such-repo"), workspace)


def test_workspace_paths_are_unique(tmp_path):
    paths = {new_workspace_path(str(tmp_path)) for _ in range(50)}

    assert len(paths) == 50
    assert all(os.path.dirname(p) == str(tmp_path) for p in paths)
    assert not any(os.path.exists(p) for p in paths)


def test_cleanup_removes_workspace_and_tolerates_missing(tmp_path):
    workspace = tmp_path / "ws"
    (workspace / "nested").mkdir(parents=True)
    (workspace / "nested" / "file.txt").write_text("x")

    cleanup(str(workspace))
    cleanup(str(workspace))
    cleanup(None)

    assert not workspace.exists()


def test_clear_workspace_root(tmp_path):
    root = tmp_path / "temp-root"
    (root / "old-run").mkdir(parents=True)
    (root / "old-run" / "a.ts").write_text("x")
    (root / "stray.txt").write_text("x")

    clear_workspace_root(str(root))

    assert root.exists()
    assert os.listdir(root) == []
