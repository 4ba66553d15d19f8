# reporeader/vector_store.py

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from reporeader.db import SessionLocal
from reporeader.errors import StorageError
from reporeader.models import CodeChunk, RepoFile

logger = logging.getLogger(__name__)


@dataclass
class RetrievedChunk:
    file_path: str
    start_line: int
    end_line: int
    content: str
    similarity: float


def search_statement(repo_id: str, vector: Sequence[float], top_k: int):
    """Nearest chunks of one repository, ordered by pgvector cosine distance (`<=>`)."""
    distance = CodeChunk.vector.cosine_distance(list(vector))
    return (
        select(
            CodeChunk.content,
            CodeChunk.start_line,
            CodeChunk.end_line,
            RepoFile.file_path,
            (1 - distance).label("similarity"),
        )
        .join(RepoFile, CodeChunk.file_id == RepoFile.id)
        .where(RepoFile.repo_id == repo_id)
        .order_by(distance)
        .limit(top_k)
    )


@contextmanager
def session_scope(session_factory):
    """Commit on success, roll back on error; SQLAlchemy failures surface as StorageError."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageError(str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class VectorStore:
    """Chunks with their vectors, file paths and line ranges, partitioned by repository."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def create_file(self, repo_id: str, file_path: str) -> str:
        with session_scope(self.session_factory) as session:
            record = RepoFile(repo_id=repo_id, file_path=file_path.replace("\\", "/"))
            session.add(record)
            session.flush()
            return record.id

    def add_chunk(self, file_id: str, start_line: int, end_line: int, content: str,
                  vector: Sequence[float]) -> str:
        with session_scope(self.session_factory) as session:
            chunk = CodeChunk(
                file_id=file_id,
                start_line=start_line,
                end_line=end_line,
                content=content,
                vector=list(vector),
            )
            session.add(chunk)
            session.flush()
            return chunk.id

    def search(self, repo_id: str, vector: Sequence[float], top_k: int = 5) -> List[RetrievedChunk]:
        """Top `top_k` chunks of one repository by cosine similarity."""
        with session_scope(self.session_factory) as session:
            rows = session.execute(search_statement(repo_id, vector, top_k)).all()

        return [
            RetrievedChunk(
                file_path=row.file_path,
                start_line=row.start_line,
                end_line=row.end_line,
                content=row.content,
                similarity=float(row.similarity),
            )
            for row in rows
        ]

    def file_content(self, file_id: str) -> Optional[str]:
        """The file's chunks joined in start_line order, or None when it has none."""
        with session_scope(self.session_factory) as session:
            contents = (
                session.query(CodeChunk.content)
                .filter(CodeChunk.file_id == file_id)
                .order_by(CodeChunk.start_line)
                .all()
            )

        if not contents:
            return None
        return "\n".join(c.content for c in contents)

    def list_files(self, repo_id: str) -> List[Dict[str, str]]:
        with session_scope(self.session_factory) as session:
            files = (
                session.query(RepoFile.id, RepoFile.file_path)
                .filter(RepoFile.repo_id == repo_id)
                .order_by(RepoFile.file_path)
                .all()
            )
        return [{"id": f.id, "file_path": f.file_path} for f in files]

    def count_chunks(self, repo_id: str) -> int:
        with session_scope(self.session_factory) as session:
            return (
                session.query(func.count(CodeChunk.id))
                .join(RepoFile, CodeChunk.file_id == RepoFile.id)
                .filter(RepoFile.repo_id == repo_id)
                .scalar()
            )
