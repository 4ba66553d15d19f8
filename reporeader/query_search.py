# reporeader/query_search.py

import logging
import re
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from reporeader.embeddings import EmbeddingClient
from reporeader.errors import ProviderError
from reporeader.generation import GenerationClient
from reporeader.vector_store import RetrievedChunk, VectorStore

logger = logging.getLogger(__name__)

TOP_K = 5

NO_CONTEXT_ANSWER = "I could not find relevant code in this repository."
DEGRADED_ANSWER = "The AI service is currently under heavy load. Please try again shortly."

SOURCE_TAG_RE = re.compile(r"\[SOURCE:\s*(\d+)\]", re.IGNORECASE)


# ======================= Result Models =======================

class Highlight(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_line: int = Field(..., alias="startLine", ge=1)
    end_line: int = Field(..., alias="endLine", ge=1)


class AnswerResult(BaseModel):
    """What a chat request gets back: the answer and where in the repo it comes from."""

    model_config = ConfigDict(populate_by_name=True)

    answer: str
    attributed_path: Optional[str] = Field(None, alias="attributedPath")
    highlight: Optional[Highlight] = None


def normalize_path(path: str) -> str:
    """Forward slashes, no leading slash ("\\src\\a.ts" -> "src/a.ts")."""
    return path.replace("\\", "/").lstrip("/")


# ========================= Retrieval =========================

class Retriever:
    def __init__(self, embedding_client: EmbeddingClient, vector_store: VectorStore, top_k: int = TOP_K):
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.top_k = top_k

    def retrieve(self, repo_id: str, question: str) -> List[RetrievedChunk]:
        logger.info("[QUERY] Searching context for repo %s", repo_id)
        vector = self.embedding_client.embed(question)
        return self.vector_store.search(repo_id, vector, self.top_k)


# ========================= Prompting =========================

def build_prompt(question: str, chunks: Sequence[RetrievedChunk]) -> str:
    context = "\n\n---\n\n".join(
        f"[Source {i}]: File: {c.file_path} (Lines {c.start_line}-{c.end_line})\n{c.content}"
        for i, c in enumerate(chunks)
    )

    return f"""
You are an expert software engineer.
Answer the question strictly using the provided code context.

Question:
"{question}"

Context:
{context}

Rules:
1. Cite files and functions explicitly in your explanation.
2. If the answer is not present in the context, say "I cannot answer this based on the provided code."
3. CRITICAL: At the very end of your response, on a new line, output strictly the tag "[SOURCE: X]" where X is the index number (0-{len(chunks) - 1}) of the single most relevant source code block you used.
   Example:
   The login logic is in Auth.ts...

   [SOURCE: 0]
"""


def parse_source_tag(raw: str, n_chunks: int) -> Tuple[str, int]:
    """
    Split a raw model response into (clean answer, attributed chunk index).

    The model is asked to end with [SOURCE: X]. When the tag is missing or X
    is out of range the top-ranked chunk (index 0) is used. Every tag is
    removed from the answer.
    """
    match = SOURCE_TAG_RE.search(raw)
    if not match:
        logger.info("[QUERY] No source tag found. Defaulting to vector search rank #1.")
        return raw.strip(), 0

    index = int(match.group(1))
    if index >= n_chunks:
        logger.info("[QUERY] Source tag %d out of range. Defaulting to rank #1.", index)
        index = 0

    return SOURCE_TAG_RE.sub("", raw).strip(), index


# ======================= Answering ==========================

class AnswerGenerator:
    def __init__(self, generation_client: GenerationClient):
        self.generation_client = generation_client

    def answer(self, question: str, chunks: Sequence[RetrievedChunk]) -> AnswerResult:
        if not chunks:
            return AnswerResult(answer=NO_CONTEXT_ANSWER)

        prompt = build_prompt(question, chunks)

        try:
            raw = self.generation_client.generate(prompt)
        except ProviderError as e:
            logger.error("[QUERY] Generation failed: %s", e)
            return AnswerResult(answer=DEGRADED_ANSWER)

        answer, index = parse_source_tag(raw, len(chunks))
        best = chunks[index]

        return AnswerResult(
            answer=answer,
            attributed_path=normalize_path(best.file_path),
            highlight=Highlight(start_line=best.start_line, end_line=best.end_line),
        )


def answer_question(retriever: Retriever, generator: AnswerGenerator, repo_id: str, question: str) -> AnswerResult:
    """Retrieve context for `question` in one repository and answer from it."""
    try:
        chunks = retriever.retrieve(repo_id, question)
    except ProviderError as e:
        logger.error("[QUERY] Could not embed question for repo %s: %s", repo_id, e)
        return AnswerResult(answer=DEGRADED_ANSWER)

    logger.info("[QUERY] Top-%d matches: %s", len(chunks), [f"{c.file_path}:{c.start_line}" for c in chunks])
    return generator.answer(question, chunks)
