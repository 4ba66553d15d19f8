# reporeader/main.py

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from reporeader.clone_repo import clear_workspace_root
from reporeader.config import Settings, settings
from reporeader.db import SessionLocal, configure_engine, init_db
from reporeader.embeddings import build_embedding_client
from reporeader.errors import PolicyError, RepositoryNotFound, StorageError
from reporeader.generation import build_generation_client
from reporeader.github_api import GitHubClient
from reporeader.ingest_worker import IngestionWorker
from reporeader.jobs import JobRegistry
from reporeader.query_search import AnswerGenerator, AnswerResult, Retriever, answer_question
from reporeader.repositories import RepositoryService, RepositoryStore
from reporeader.vector_store import VectorStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=True,
    )


# ======================= Wiring =======================

@dataclass
class Services:
    repositories: RepositoryService
    vector_store: VectorStore
    retriever: Retriever
    answer_generator: AnswerGenerator
    jobs: JobRegistry


def build_services(config: Settings) -> Services:
    """Production wiring: PostgreSQL, configured embedding + generation providers, GitHub."""
    configure_engine(config.database_url)
    init_db()

    vector_store = VectorStore(SessionLocal)
    repo_store = RepositoryStore(SessionLocal)
    embedding_client = build_embedding_client(config)
    jobs = JobRegistry(max_workers=config.max_concurrent_ingestions)

    worker = IngestionWorker(
        repo_store, vector_store, embedding_client,
        batch_size=config.batch_size,
        max_file_size=config.max_file_size,
        chunk_delay=config.chunk_delay,
    )
    github = GitHubClient(token=config.github_token)

    repositories = RepositoryService(
        repo_store, jobs, worker.run, github.count_files,
        file_limit=config.file_limit,
        temp_root=config.temp_dir,
    )

    return Services(
        repositories=repositories,
        vector_store=vector_store,
        retriever=Retriever(embedding_client, vector_store, top_k=config.top_k),
        answer_generator=AnswerGenerator(build_generation_client(config)),
        jobs=jobs,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


# ======================= Request Models =======================

class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_url: str = Field(..., alias="repoUrl", min_length=1)
    repo_name: str = Field(..., alias="repoName", min_length=1)
    owner_id: str = Field(..., alias="ownerId", min_length=1)


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1)


class RepoResponse(BaseModel):
    id: str
    name: str
    url: str
    status: str


# ========================= App =========================

def create_app(services: Optional[Services] = None, config: Settings = settings) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            configure_logging(config.log_level)
            app.state.services = build_services(config)
            clear_workspace_root(config.temp_dir)
        app.state.services.repositories.recover_interrupted()
        yield
        app.state.services.jobs.shutdown(wait=False)

    app = FastAPI(title="RepoReader", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ===================== Error mapping =====================

    @app.exception_handler(PolicyError)
    async def policy_error_handler(request: Request, exc: PolicyError):
        return JSONResponse(
            status_code=400,
            content={"error": exc.code, "message": exc.message, "fileCount": exc.file_count},
        )

    @app.exception_handler(RepositoryNotFound)
    async def not_found_handler(request: Request, exc: RepositoryNotFound):
        return JSONResponse(status_code=404, content={"error": "Repository not found"})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Storage failure"})

    # ===================== Health Check ======================

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {
            "message": "RepoReader backend is running",
            "docs": "/docs",
            "endpoints": {
                "POST /api/ingest": "Clone repo -> chunk -> embed -> store (in the background)",
                "GET /api/repos/{repoId}/status": "Ingestion status of a repository",
                "POST /api/chat/{repoId}": "Ask a question about an ingested repository",
            },
        }

    # ====================== INGEST API =======================

    @app.post("/api/ingest")
    def ingest_api(req: IngestRequest, services: Services = Depends(get_services)):
        result = services.repositories.start_ingestion(req.owner_id, req.repo_url, req.repo_name)
        return {
            "message": "Ingestion started." if result.created else "Repository already exists",
            "id": result.id,
            "status": result.status.value,
        }

    # ====================== REPOSITORIES =====================

    @app.get("/api/repos", response_model=List[RepoResponse])
    def list_repos(owner_id: str = Query(..., alias="ownerId"), services: Services = Depends(get_services)):
        return [
            RepoResponse(id=r.id, name=r.name, url=r.url, status=r.status.value)
            for r in services.repositories.list_repositories(owner_id)
        ]

    @app.get("/api/repos/{repo_id}/status")
    def repo_status(repo_id: str, services: Services = Depends(get_services)):
        repo = services.repositories.get_status(repo_id)
        return {"status": repo.status.value, "url": repo.url, "name": repo.name}

    @app.delete("/api/repos/{repo_id}")
    def delete_repo(repo_id: str, owner_id: str = Query(..., alias="ownerId"),
                    services: Services = Depends(get_services)):
        services.repositories.delete_repository(owner_id, repo_id)
        return {"message": "Repository deleted successfully"}

    @app.get("/api/repos/{repo_id}/files")
    def repo_files(repo_id: str, services: Services = Depends(get_services)):
        services.repositories.get_status(repo_id)
        return [{"id": f["id"], "filePath": f["file_path"]} for f in services.vector_store.list_files(repo_id)]

    @app.get("/api/files/{file_id}/content")
    def file_content(file_id: str, services: Services = Depends(get_services)):
        content = services.vector_store.file_content(file_id)
        if content is None:
            return JSONResponse(status_code=404, content={"error": "File content not found"})
        return {"content": content}

    # ======================== CHAT API =======================

    @app.post("/api/chat/{repo_id}", response_model=AnswerResult)
    def chat_api(repo_id: str, req: QueryRequest, services: Services = Depends(get_services)):
        services.repositories.get_status(repo_id)
        return answer_question(services.retriever, services.answer_generator, repo_id, req.question)

    return app


app = create_app()
