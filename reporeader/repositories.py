# reporeader/repositories.py

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from reporeader.clone_repo import new_workspace_path
from reporeader.db import SessionLocal
from reporeader.errors import InvalidTransition, PolicyError, RepositoryNotFound
from reporeader.jobs import JobRegistry
from reporeader.models import ALLOWED_TRANSITIONS, Repository, RepoStatus
from reporeader.vector_store import session_scope

logger = logging.getLogger(__name__)

REPO_TOO_LARGE = "REPO_TOO_LARGE"


@dataclass
class RepoSummary:
    id: str
    name: str
    url: str
    status: RepoStatus

    @classmethod
    def from_row(cls, repo: Repository) -> "RepoSummary":
        return cls(id=repo.id, name=repo.name, url=repo.url, status=repo.status)


@dataclass
class StartResult:
    id: str
    status: RepoStatus
    created: bool


class RepositoryStore:
    """Repository rows and their status transitions."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def find(self, owner_id: str, repo_url: str) -> Optional[RepoSummary]:
        with session_scope(self.session_factory) as session:
            repo = (
                session.query(Repository)
                .filter(Repository.user_id == owner_id, Repository.url == repo_url)
                .first()
            )
            return RepoSummary.from_row(repo) if repo else None

    def get(self, repo_id: str) -> Optional[RepoSummary]:
        with session_scope(self.session_factory) as session:
            repo = session.get(Repository, repo_id)
            return RepoSummary.from_row(repo) if repo else None

    def create(self, owner_id: str, repo_url: str, repo_name: str,
               status: RepoStatus = RepoStatus.PENDING) -> RepoSummary:
        with session_scope(self.session_factory) as session:
            repo = Repository(user_id=owner_id, url=repo_url, name=repo_name, status=status)
            session.add(repo)
            session.flush()
            return RepoSummary.from_row(repo)

    def set_status(self, repo_id: str, status: RepoStatus) -> None:
        with session_scope(self.session_factory) as session:
            repo = session.get(Repository, repo_id)
            if repo is None:
                raise RepositoryNotFound(repo_id)
            if status == repo.status:
                return
            if status not in ALLOWED_TRANSITIONS[repo.status]:
                raise InvalidTransition(f"{repo.status.value} -> {status.value} for repo {repo_id}")
            repo.status = status

    def list_for_owner(self, owner_id: str) -> List[RepoSummary]:
        with session_scope(self.session_factory) as session:
            repos = (
                session.query(Repository)
                .filter(Repository.user_id == owner_id)
                .order_by(Repository.created_at.desc())
                .all()
            )
            return [RepoSummary.from_row(r) for r in repos]

    def list_with_status(self, status: RepoStatus) -> List[RepoSummary]:
        with session_scope(self.session_factory) as session:
            repos = session.query(Repository).filter(Repository.status == status).all()
            return [RepoSummary.from_row(r) for r in repos]

    def delete(self, owner_id: str, repo_id: str) -> bool:
        """Delete the owner's repository with its files and chunks. False when not found."""
        with session_scope(self.session_factory) as session:
            repo = (
                session.query(Repository)
                .filter(Repository.id == repo_id, Repository.user_id == owner_id)
                .first()
            )
            if repo is None:
                return False
            session.delete(repo)
            return True


class RepositoryService:
    """
    Lifecycle of a repository ingestion.

    start_ingestion is idempotent per (owner, URL): a known pair returns the
    existing row untouched. A new pair is checked against the file-count
    ceiling, created as INGESTING and handed to the job registry; the call
    returns without waiting for the run.
    """

    def __init__(self, store: RepositoryStore, jobs: JobRegistry, run_ingestion: Callable[[str, str, str], object],
                 count_files: Callable[[str], Optional[int]], file_limit: int = 300,
                 temp_root: Optional[str] = None):
        self.store = store
        self.jobs = jobs
        self.run_ingestion = run_ingestion
        self.count_files = count_files
        self.file_limit = file_limit
        self.temp_root = temp_root
        self._locks_guard = threading.Lock()
        self._key_locks = {}

    def start_ingestion(self, owner_id: str, repo_url: str, repo_name: str) -> StartResult:
        with self._lock_for(owner_id, repo_url):
            existing = self.store.find(owner_id, repo_url)
            if existing is not None:
                logger.info("[INGEST] Repository already exists: %s (%s)", existing.id, existing.status.value)
                return StartResult(id=existing.id, status=existing.status, created=False)

            file_count = self.count_files(repo_url)
            if file_count is not None and file_count > self.file_limit:
                raise PolicyError(
                    REPO_TOO_LARGE,
                    f"This repository has {file_count} source files. The limit is {self.file_limit} files.",
                    file_count=file_count,
                    limit=self.file_limit,
                )

            repo = self.store.create(owner_id, repo_url, repo_name, status=RepoStatus.INGESTING)

        workspace = new_workspace_path(self.temp_root)
        self.jobs.submit(repo.id, self.run_ingestion, repo.id, repo_url, workspace)
        return StartResult(id=repo.id, status=RepoStatus.INGESTING, created=True)

    def _lock_for(self, owner_id: str, repo_url: str) -> threading.Lock:
        # Requests for one (owner, URL) run one at a time; other pairs are not held up
        with self._locks_guard:
            return self._key_locks.setdefault((owner_id, repo_url), threading.Lock())

    def get_status(self, repo_id: str) -> RepoSummary:
        repo = self.store.get(repo_id)
        if repo is None:
            raise RepositoryNotFound(repo_id)
        return repo

    def list_repositories(self, owner_id: str) -> List[RepoSummary]:
        return self.store.list_for_owner(owner_id)

    def delete_repository(self, owner_id: str, repo_id: str) -> None:
        if not self.store.delete(owner_id, repo_id):
            raise RepositoryNotFound(repo_id)
        logger.info("[REPO] Deleted repository %s", repo_id)

    def recover_interrupted(self) -> int:
        """Mark INGESTING rows with no live job (left by a dead process) as FAILED."""
        recovered = 0
        for repo in self.store.list_with_status(RepoStatus.INGESTING):
            if self.jobs.is_active(repo.id):
                continue
            self.store.set_status(repo.id, RepoStatus.FAILED)
            recovered += 1
            logger.warning("[REPO] Ingestion of %s was interrupted; marked FAILED", repo.id)
        return recovered
