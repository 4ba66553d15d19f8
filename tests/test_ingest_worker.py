"""Tests for per-file processing and full ingestion runs."""

import os
import shutil

import pytest

from conftest import FakeEmbedder, no_sleep
from reporeader.embeddings import EmbeddingClient
from reporeader.errors import CloneError
from reporeader.file_tree import FileNode
from reporeader import ingest_worker
from reporeader.ingest_worker import FileProcessor, IngestionWorker
from reporeader.models import RepoStatus


def copy_clone(source_dir):
    """Stand-in for a git clone: copy a local directory into the workspace."""
    calls = []

    def clone(repo_url, workspace):
        calls.append((repo_url, workspace))
        shutil.copytree(source_dir, workspace)
        return workspace

    clone.calls = calls
    return clone


@pytest.fixture
def source_repo(tmp_path, ts_source, md_source):
    root = tmp_path / "origin"
    (root / "src").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "src" / "user.ts").write_text(ts_source)
    (root / "docs" / "guide.md").write_text(md_source)
    return root


def make_worker(repo_store, vector_store, clone, embedder=None):
    client = EmbeddingClient(embedder or FakeEmbedder(), sleep=no_sleep)
    return IngestionWorker(repo_store, vector_store, client, batch_size=5, clone=clone, sleep=no_sleep)


class TestIngestionWorker:

    def test_two_file_repository(self, tmp_path, source_repo, repo_store, vector_store):
        repo = repo_store.create("user-1", "https://github.com/acme/app", "app", RepoStatus.INGESTING)
        embedder = FakeEmbedder()
        workspace = str(tmp_path / "work" / "abc")

        stats = make_worker(repo_store, vector_store, copy_clone(source_repo), embedder).run(
            repo.id, "https://github.com/acme/app", workspace)

        assert (stats.total, stats.processed, stats.skipped) == (1, 1, 0)
        assert repo_store.get(repo.id).status == RepoStatus.COMPLETED
        files = vector_store.list_files(repo.id)
        assert [f["file_path"] for f in files] == ["src/user.ts"]
        assert vector_store.count_chunks(repo.id) == 1
        content = vector_store.file_content(files[0]["id"])
        assert content.startswith("export function loadUser")
        assert len(embedder.calls) == 1
        assert not os.path.exists(workspace)

    def test_clone_failure_marks_failed_and_cleans_up(self, tmp_path, repo_store, vector_store):
        repo = repo_store.create("user-1", "https://github.com/acme/private", "private", RepoStatus.INGESTING)
        workspace = tmp_path / "work" / "def"

        def failing_clone(repo_url, ws):
            os.makedirs(ws)
            raise CloneError("Authentication failed")

        with pytest.raises(CloneError):
            make_worker(repo_store, vector_store, failing_clone).run(repo.id, "https://github.com/acme/private",
                                                                     str(workspace))

        assert repo_store.get(repo.id).status == RepoStatus.FAILED
        assert vector_store.list_files(repo.id) == []
        assert not workspace.exists()

    def test_tree_walk_failure_marks_failed(self, tmp_path, repo_store, vector_store):
        repo = repo_store.create("user-1", "https://github.com/acme/app", "app", RepoStatus.INGESTING)

        with pytest.raises(OSError):
            make_worker(repo_store, vector_store, lambda url, ws: ws).run(
                repo.id, "https://github.com/acme/app", str(tmp_path / "never-created"))

        assert repo_store.get(repo.id).status == RepoStatus.FAILED

    def test_bad_files_are_skipped_but_run_completes(self, tmp_path, source_repo, repo_store, vector_store):
        (source_repo / "src" / "blob.js").write_bytes(b"\xff\xfe\x00binary")
        (source_repo / "src" / "empty.py").write_text("")
        repo = repo_store.create("user-1", "https://github.com/acme/app", "app", RepoStatus.INGESTING)

        stats = make_worker(repo_store, vector_store, copy_clone(source_repo)).run(
            repo.id, "https://github.com/acme/app", str(tmp_path / "work" / "ghi"))

        assert (stats.total, stats.processed, stats.skipped) == (3, 1, 2)
        assert repo_store.get(repo.id).status == RepoStatus.COMPLETED


class TestFileProcessor:

    def make(self, tmp_path, repo_store, vector_store, embedder=None, max_file_size=30000):
        repo = repo_store.create("user-1", "https://github.com/acme/app", "app", RepoStatus.INGESTING)
        sleeps = []
        client = EmbeddingClient(embedder or FakeEmbedder(), sleep=no_sleep)
        processor = FileProcessor(repo.id, str(tmp_path), vector_store, client,
                                  max_file_size=max_file_size, chunk_delay=0.1, sleep=sleeps.append)
        return processor, repo, sleeps

    def test_embedding_failure_skips_only_that_chunk(self, tmp_path, repo_store, vector_store):
        lines = [f"int x{i} = {i};" for i in range(120)]
        lines[70] = "String MARK = null;"
        (tmp_path / "Main.java").write_text("\n".join(lines))
        processor, repo, sleeps = self.make(tmp_path, repo_store, vector_store, FakeEmbedder(fail_on="MARK"))

        assert processor(FileNode(path="Main.java", name="Main.java", type="file")) is True

        assert vector_store.count_chunks(repo.id) == 2
        file_id = vector_store.list_files(repo.id)[0]["id"]
        assert vector_store.file_content(file_id) == "\n".join(lines[:50] + lines[100:])
        assert sleeps == [0.1, 0.1]

    def test_empty_file_is_skipped(self, tmp_path, repo_store, vector_store):
        (tmp_path / "empty.ts").write_text("")
        processor, repo, _ = self.make(tmp_path, repo_store, vector_store)

        assert processor(FileNode(path="empty.ts", name="empty.ts", type="file")) is False
        assert vector_store.list_files(repo.id) == []

    def test_oversized_file_is_skipped(self, tmp_path, repo_store, vector_store):
        (tmp_path / "big.ts").write_text("x" * 101)
        processor, repo, _ = self.make(tmp_path, repo_store, vector_store, max_file_size=100)

        assert processor(FileNode(path="big.ts", name="big.ts", type="file")) is False
        assert vector_store.list_files(repo.id) == []

    def test_unreadable_file_is_skipped(self, tmp_path, repo_store, vector_store):
        processor, repo, _ = self.make(tmp_path, repo_store, vector_store)

        assert processor(FileNode(path="missing.ts", name="missing.ts", type="file")) is False

    def test_oversized_file_is_not_read_in_full(self, tmp_path, repo_store, vector_store, monkeypatch):
        (tmp_path / "huge.ts").write_text("x" * 5000)
        processor, repo, _ = self.make(tmp_path, repo_store, vector_store, max_file_size=100)
        read_sizes = []
        real_open = open

        class RecordingFile:
            def __init__(self, fh):
                self.fh = fh

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                self.fh.close()

            def read(self, size=-1):
                read_sizes.append(size)
                return self.fh.read(size)

        monkeypatch.setattr(ingest_worker, "open",
                            lambda *args, **kwargs: RecordingFile(real_open(*args, **kwargs)), raising=False)

        assert processor(FileNode(path="huge.ts", name="huge.ts", type="file")) is False
        assert read_sizes == [101]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
def test_symlink_out_of_the_clone_is_never_stored(tmp_path, source_repo, repo_store, vector_store):
    secret = tmp_path / "host" / "secrets.env"
    secret.parent.mkdir()
    secret.write_text("GEMINI_API_KEY=super-secret\n")
    os.symlink(secret, source_repo / "config.py")
    repo = repo_store.create("user-1", "https://github.com/acme/app", "app", RepoStatus.INGESTING)

    def clone(repo_url, workspace):
        shutil.copytree(source_repo, workspace, symlinks=True)

    make_worker(repo_store, vector_store, clone).run(
        repo.id, "https://github.com/acme/app", str(tmp_path / "work" / "jkl"))

    assert [f["file_path"] for f in vector_store.list_files(repo.id)] == ["src/user.ts"]
