# reporeader/models.py

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector

from reporeader.config import settings
from reporeader.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RepoStatus(str, enum.Enum):
    PENDING = "PENDING"
    INGESTING = "INGESTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Forward-only lifecycle; COMPLETED and FAILED are terminal.
ALLOWED_TRANSITIONS = {
    RepoStatus.PENDING: {RepoStatus.INGESTING, RepoStatus.FAILED},
    RepoStatus.INGESTING: {RepoStatus.COMPLETED, RepoStatus.FAILED},
    RepoStatus.COMPLETED: set(),
    RepoStatus.FAILED: set(),
}


class Repository(Base):
    __tablename__ = "repositories"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, index=True, nullable=False)   # owning user
    url = Column(String, nullable=False)
    name = Column(String, nullable=False)
    status = Column(Enum(RepoStatus, name="repo_status"), nullable=False, default=RepoStatus.PENDING)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    files = relationship("RepoFile", back_populates="repository", cascade="all, delete-orphan")


class RepoFile(Base):
    __tablename__ = "repo_files"

    id = Column(String(36), primary_key=True, default=_new_id)
    repo_id = Column(String(36), ForeignKey("repositories.id", ondelete="CASCADE"), index=True, nullable=False)
    file_path = Column(String, nullable=False)              # relative, forward slashes

    repository = relationship("Repository", back_populates="files")
    chunks = relationship("CodeChunk", back_populates="file", cascade="all, delete-orphan")


class CodeChunk(Base):
    __tablename__ = "code_chunks"

    id = Column(String(36), primary_key=True, default=_new_id)
    file_id = Column(String(36), ForeignKey("repo_files.id", ondelete="CASCADE"), index=True, nullable=False)
    start_line = Column(Integer, nullable=False)            # 1-based, inclusive
    end_line = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    # Only ever read through the similarity query
    vector = Column(Vector(settings.embedding_dim), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    file = relationship("RepoFile", back_populates="chunks")
