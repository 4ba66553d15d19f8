# reporeader/ingest_worker.py

import logging
import os
import time
from typing import Callable

from reporeader.clone_repo import cleanup, clone_repo
from reporeader.embeddings import EmbeddingClient
from reporeader.file_tree import FileNode, list_source_files
from reporeader.ingest import chunk_source
from reporeader.models import RepoStatus
from reporeader.repositories import RepositoryStore
from reporeader.scheduler import BatchScheduler, BatchStats
from reporeader.vector_store import VectorStore

logger = logging.getLogger(__name__)


class FileProcessor:
    """Read -> chunk -> embed -> store for the files of one repository."""

    def __init__(self, repo_id: str, workspace: str, vector_store: VectorStore,
                 embedding_client: EmbeddingClient, max_file_size: int = 30000,
                 chunk_delay: float = 0.1, sleep: Callable[[float], None] = time.sleep):
        self.repo_id = repo_id
        self.workspace = workspace
        self.vector_store = vector_store
        self.embedding_client = embedding_client
        self.max_file_size = max_file_size
        self.chunk_delay = chunk_delay
        self.sleep = sleep

    def __call__(self, file: FileNode) -> bool:
        full_path = os.path.join(self.workspace, *file.path.split("/"))

        try:
            with open(full_path, "r", encoding="utf-8") as fh:
                # One character past the limit is enough to know the file is too big
                content = fh.read(self.max_file_size + 1)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("[INGEST] Skipping unreadable file %s: %s", file.path, e)
            return False

        if not content or len(content) > self.max_file_size:
            logger.debug("[INGEST] Skipping %s: empty or over %d chars", file.path, self.max_file_size)
            return False

        file_id = self.vector_store.create_file(self.repo_id, file.path)

        stored = 0
        chunks = chunk_source(content, file.name)
        for chunk in chunks:
            try:
                vector = self.embedding_client.embed(chunk.content)
            except Exception as e:
                logger.warning("[EMBED] Skipping chunk %s:%d-%d: %s", file.path, chunk.start_line, chunk.end_line, e)
                continue

            self.vector_store.add_chunk(file_id, chunk.start_line, chunk.end_line, chunk.content, vector)
            stored += 1

            # Rate-limit courtesy towards the embedding provider
            self.sleep(self.chunk_delay)

        logger.debug("[INGEST] %s: stored %d/%d chunks", file.path, stored, len(chunks))
        return True


class IngestionWorker:
    """One full ingestion run: clone, walk, chunk + embed in batches, mark the outcome."""

    def __init__(self, repo_store: RepositoryStore, vector_store: VectorStore, embedding_client: EmbeddingClient,
                 batch_size: int = 5, max_file_size: int = 30000, chunk_delay: float = 0.1,
                 clone: Callable[[str, str], str] = clone_repo, sleep: Callable[[float], None] = time.sleep):
        self.repo_store = repo_store
        self.vector_store = vector_store
        self.embedding_client = embedding_client
        self.batch_size = batch_size
        self.max_file_size = max_file_size
        self.chunk_delay = chunk_delay
        self.clone = clone
        self.sleep = sleep

    def run(self, repo_id: str, repo_url: str, workspace: str) -> BatchStats:
        logger.info("[INGEST] Starting background job for: %s", repo_url)

        try:
            self.clone(repo_url, workspace)
            files = list_source_files(workspace)

            processor = FileProcessor(
                repo_id, workspace, self.vector_store, self.embedding_client,
                max_file_size=self.max_file_size, chunk_delay=self.chunk_delay, sleep=self.sleep,
            )
            stats = BatchScheduler(processor, self.batch_size).run(files)

            self.repo_store.set_status(repo_id, RepoStatus.COMPLETED)
            logger.info("[INGEST] Job complete for %s: %d processed, %d skipped.",
                        repo_url, stats.processed, stats.skipped)
            return stats

        except Exception:
            logger.exception("[INGEST] FAILED: %s", repo_url)
            try:
                self.repo_store.set_status(repo_id, RepoStatus.FAILED)
            except Exception:
                logger.exception("[INGEST] Could not mark repo %s as FAILED", repo_id)
            raise

        finally:
            cleanup(workspace)
