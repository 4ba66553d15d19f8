# reporeader/embeddings.py

import logging
import threading
import time
from typing import Callable, List, Optional, Protocol, Sequence

import requests

from reporeader.config import Settings
from reporeader.errors import ProviderFatal, ProviderTransient, ProviderUnavailable

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that turns one text into a vector."""

    def embed(self, text: str) -> Sequence[float]:
        ...


class LocalEmbedder:
    """sentence-transformers model running in this process."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def model(self):
        # Loaded on first use, once, even when batch threads race for it
        if self._model is None:
            with self._load_lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    logger.info("[EMBED] Loading local model %s", self.model_name)
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> Sequence[float]:
        try:
            return self.model.encode(text, convert_to_numpy=True, normalize_embeddings=True)
        except Exception as e:
            raise ProviderFatal(f"Local embedding failed: {e}") from e


class HuggingFaceEmbedder:
    """Feature-extraction call against the Hugging Face Inference API."""

    TRANSIENT_STATUS = {429, 503}
    TRANSIENT_MARKERS = ("loading", "unavailable")

    def __init__(self, api_key: str, model_name: str, base_url: str, timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.url = f"{base_url}/{model_name}/pipeline/feature-extraction"
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def embed(self, text: str) -> Sequence[float]:
        try:
            response = self.session.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"inputs": text},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderFatal(f"Embedding request failed: {e}") from e

        if response.ok:
            return response.json()

        body = response.text or ""
        if response.status_code in self.TRANSIENT_STATUS or any(m in body.lower() for m in self.TRANSIENT_MARKERS):
            raise ProviderTransient(f"Embedding model unavailable ({response.status_code}): {body[:200]}")
        raise ProviderFatal(f"Embedding request failed ({response.status_code}): {body[:200]}")


def normalize_vector(output) -> List[float]:
    """Provider output -> flat list of floats. Nested output uses its first row."""
    if hasattr(output, "tolist"):
        output = output.tolist()

    if isinstance(output, (list, tuple)) and output and isinstance(output[0], (list, tuple)):
        output = output[0]

    if not isinstance(output, (list, tuple)) or not output:
        raise ProviderFatal("Invalid embedding output format")

    try:
        return [float(x) for x in output]
    except (TypeError, ValueError) as e:
        raise ProviderFatal("Invalid embedding output format") from e


class EmbeddingClient:
    """
    Wraps an Embedder with the retry policy.

    Only ProviderTransient is retried: after a fixed delay, for at most
    `max_retries` calls in total, then ProviderUnavailable. Everything else
    propagates on the first failure.
    """

    def __init__(self, embedder: Embedder, max_retries: int = 3, retry_delay: float = 5.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.embedder = embedder
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    def embed(self, text: str) -> List[float]:
        for attempt in range(1, self.max_retries + 1):
            try:
                return normalize_vector(self.embedder.embed(text))
            except ProviderTransient as e:
                logger.warning("[EMBED] Embedding model loading (attempt %d/%d): %s", attempt, self.max_retries, e)
                if attempt < self.max_retries:
                    self.sleep(self.retry_delay)

        raise ProviderUnavailable("Embedding model unavailable after retries")


def build_embedder(settings: Settings) -> Embedder:
    if settings.embedding_provider == "huggingface":
        if not settings.huggingface_api_key:
            raise ValueError("HUGGINGFACE_API_KEY not found in .env file")
        return HuggingFaceEmbedder(settings.huggingface_api_key, settings.embedding_model, settings.hf_inference_url)
    if settings.embedding_provider == "local":
        return LocalEmbedder(settings.embedding_model)
    raise ValueError(f"Unknown EMBEDDING_PROVIDER: {settings.embedding_provider}")


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    return EmbeddingClient(
        build_embedder(settings),
        max_retries=settings.embed_max_retries,
        retry_delay=settings.embed_retry_delay,
    )
