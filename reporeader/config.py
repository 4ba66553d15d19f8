# reporeader/config.py

import os
import tempfile
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

# LOAD .env FILE
load_dotenv()


def _int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


@dataclass
class Settings:
    """Deployment-time settings, read from the environment (and .env)."""

    database_url: str = ""

    # Embeddings
    embedding_provider: str = "local"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = 384
    huggingface_api_key: str = ""
    hf_inference_url: str = "https://router.huggingface.co/hf-inference/models"

    # Generation
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    hf_generation_model: str = "HuggingFaceH4/zephyr-7b-beta"

    github_token: str = ""

    # Ingestion
    batch_size: int = 5
    chunk_delay: float = 0.1
    embed_max_retries: int = 3
    embed_retry_delay: float = 5.0
    file_limit: int = 300
    max_file_size: int = 30000
    temp_dir: str = field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "reporeader"))
    max_concurrent_ingestions: int = 4

    # Question answering
    gen_max_retries: int = 3
    gen_base_delay: float = 0.5
    top_k: int = 5

    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            database_url=os.getenv("DATABASE_URL", ""),
            embedding_provider=os.getenv("EMBEDDING_PROVIDER", defaults.embedding_provider).lower(),
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dim=_int("EMBEDDING_DIM", defaults.embedding_dim),
            huggingface_api_key=os.getenv("HUGGINGFACE_API_KEY", ""),
            hf_inference_url=os.getenv("HF_INFERENCE_URL", defaults.hf_inference_url).rstrip("/"),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
            hf_generation_model=os.getenv("HF_GENERATION_MODEL", defaults.hf_generation_model),
            github_token=os.getenv("GITHUB_TOKEN", ""),
            batch_size=_int("BATCH_SIZE", defaults.batch_size),
            chunk_delay=_float("CHUNK_DELAY", defaults.chunk_delay),
            embed_max_retries=_int("EMBED_MAX_RETRIES", defaults.embed_max_retries),
            embed_retry_delay=_float("EMBED_RETRY_DELAY", defaults.embed_retry_delay),
            file_limit=_int("FILE_LIMIT", defaults.file_limit),
            max_file_size=_int("MAX_FILE_SIZE", defaults.max_file_size),
            temp_dir=os.getenv("TEMP_DIR") or defaults.temp_dir,
            max_concurrent_ingestions=_int("MAX_CONCURRENT_INGESTIONS", defaults.max_concurrent_ingestions),
            gen_max_retries=_int("GEN_MAX_RETRIES", defaults.gen_max_retries),
            gen_base_delay=_float("GEN_BASE_DELAY", defaults.gen_base_delay),
            top_k=_int("TOP_K", defaults.top_k),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
        )


settings = Settings.from_env()
