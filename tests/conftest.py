"""Pytest configuration and fixtures."""

import hashlib
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reporeader.config import settings
from reporeader.db import init_db
from reporeader.errors import ProviderFatal, ProviderTransient
from reporeader.repositories import RepositoryStore
from reporeader.vector_store import VectorStore

DIM = settings.embedding_dim


def make_vector(text: str, dim: int = DIM):
    """Deterministic pseudo-embedding for a text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i % len(digest)] + 1) / 256.0 for i in range(dim)]


class FakeEmbedder:
    """Embedder double: deterministic vectors, optional scripted failures."""

    def __init__(self, fail_on=None, transient_failures=0):
        self.fail_on = fail_on
        self.transient_failures = transient_failures
        self.calls = []
        self._lock = threading.Lock()

    def embed(self, text):
        with self._lock:
            self.calls.append(text)
            if self.transient_failures > 0:
                self.transient_failures -= 1
                raise ProviderTransient("model is currently loading")
        if self.fail_on is not None and self.fail_on in text:
            raise ProviderFatal("bad input")
        return make_vector(text)


class FakeGenerator:
    """Generator double replaying scripted outcomes (strings or exceptions)."""

    def __init__(self, name, outcomes):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = 0
        self.prompts = []

    def generate(self, prompt):
        self.calls += 1
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json

    def raise_for_status(self):
        import requests

        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """requests.Session double returning queued responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


def no_sleep(seconds):
    return None


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'reporeader.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def repo_store(session_factory):
    return RepositoryStore(session_factory)


@pytest.fixture
def vector_store(session_factory):
    return VectorStore(session_factory)


@pytest.fixture
def ts_source():
    """20-line TypeScript file with one exported function on lines 3-18."""
    lines = [
        'import { db } from "./db";',
        "",
        "export function loadUser(id: string) {",
        "    if (!id) {",
        '        throw new Error("missing id");',
        "    }",
        "    const user = db.find(id);",
        "    if (!user) {",
        "        return null;",
        "    }",
        "    const name = user.first + user.last;",
        "    const email = user.email;",
        "    return {",
        "        id,",
        "        name,",
        "        email,",
        "    };",
        "}",
        "",
        "const VERSION = 1;",
    ]
    assert len(lines) == 20
    return "\n".join(lines)


@pytest.fixture
def md_source():
    return "\n".join(f"Line {i} of the readme" for i in range(1, 11))
