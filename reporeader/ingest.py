# reporeader/ingest.py

import ast
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Parser

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"

SOURCE_WINDOW = 100    # fallback when a source file has no functions/classes
TEXT_WINDOW = 50       # any other file


@dataclass
class Chunk:
    kind: str          # "function" | "class" | "other"
    name: str
    content: str
    start_line: int    # 1-based, inclusive
    end_line: int


# ================================================================
# === PART 1 - FIXED-WINDOW CHUNKING ==============================
# ================================================================

def chunk_by_lines(content: str, max_lines: int = TEXT_WINDOW) -> List[Chunk]:
    """Partition the lines of `content` into consecutive windows of `max_lines`."""
    lines = content.split("\n")
    chunks = []

    for i in range(0, len(lines), max_lines):
        window = lines[i:i + max_lines]
        start_line = i + 1
        end_line = i + len(window)
        chunks.append(Chunk(
            kind="other",
            name=f"Lines {start_line}-{end_line}",
            content="\n".join(window),
            start_line=start_line,
            end_line=end_line,
        ))

    return chunks


# ================================================================
# === PART 2 - PYTHON AST PARSING =================================
# ================================================================

def parse_python_source(source: str) -> List[Chunk]:
    """
    Every def / async def / class / lambda in `source` as a chunk.
    Raises SyntaxError for invalid Python.
    """
    tree = ast.parse(source)
    nodes = [
        node for node in ast.walk(tree)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda))
    ]
    nodes.sort(key=lambda n: (n.lineno, n.col_offset))

    chunks = []
    for node in nodes:
        code = ast.get_source_segment(source, node)
        if code is None:
            continue
        chunks.append(Chunk(
            kind="class" if isinstance(node, ast.ClassDef) else "function",
            name=getattr(node, "name", ANONYMOUS),
            content=code,
            start_line=node.lineno,
            end_line=node.end_lineno,
        ))

    return chunks


# ================================================================
# === PART 3 - TREE-SITTER PARSING FOR JS / TS ====================
# ================================================================

SUPPORTED_LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

FUNCTION_NODE_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "method_definition",
    "arrow_function",
    "function_expression",
    "function",               # anonymous function expression in older grammars
}

CLASS_NODE_TYPES = {"class_declaration", "abstract_class_declaration"}

NAME_NODE_TYPES = {"identifier", "property_identifier", "type_identifier"}


@lru_cache(maxsize=None)
def _get_language(lang_name: str) -> Language:
    if lang_name == "javascript":
        return Language(tree_sitter_javascript.language())
    if lang_name == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    if lang_name == "tsx":
        return Language(tree_sitter_typescript.language_tsx())
    raise ValueError(f"Unsupported language: {lang_name}")


def get_parser(lang_name: str) -> Parser:
    # Parsers are cheap and not shared between threads
    return Parser(_get_language(lang_name))


def _node_name(node) -> str:
    name_node = node.child_by_field_name("name")
    if name_node is not None and name_node.type in NAME_NODE_TYPES:
        return name_node.text.decode("utf-8", errors="replace")
    return ANONYMOUS


def parse_with_treesitter(source: str, lang_name: str) -> List[Chunk]:
    source_bytes = source.encode("utf-8")
    tree = get_parser(lang_name).parse(source_bytes)

    chunks = []
    stack = [tree.root_node]

    # Pre-order walk, so chunks come out in source order
    while stack:
        node = stack.pop()
        stack.extend(reversed(node.children))

        if not node.is_named:
            continue
        if node.type not in FUNCTION_NODE_TYPES and node.type not in CLASS_NODE_TYPES:
            continue

        # `export function f` / `export class C`: the export keyword is part of the declaration
        span = node
        if node.parent is not None and node.parent.type == "export_statement":
            span = node.parent

        chunks.append(Chunk(
            kind="class" if node.type in CLASS_NODE_TYPES else "function",
            name=_node_name(node),
            content=source_bytes[span.start_byte:span.end_byte].decode("utf-8"),
            start_line=span.start_point[0] + 1,
            end_line=span.end_point[0] + 1,
        ))

    return chunks


# ================================================================
# === PART 4 - ENTRY POINT ========================================
# ================================================================

def is_source_file(file_name: str) -> bool:
    ext = os.path.splitext(file_name)[1].lower()
    return ext == ".py" or ext in SUPPORTED_LANGUAGES


def chunk_source(content: str, file_name: str) -> List[Chunk]:
    """
    Split one file into chunks.

    Recognized source files yield one chunk per function/class/method/anonymous
    function; ranges may nest (a class chunk contains its method chunks). When
    nothing is found the file is cut into 100-line windows instead. Every other
    file is cut into 50-line windows.
    """
    ext = os.path.splitext(file_name)[1].lower()

    if not is_source_file(file_name):
        return chunk_by_lines(content, TEXT_WINDOW)

    if not content.strip():
        return []

    if ext == ".py":
        try:
            chunks = parse_python_source(content)
        except SyntaxError:
            logger.warning("[CHUNK] Invalid Python in %s, using line windows", file_name)
            chunks = []
    else:
        chunks = parse_with_treesitter(content, SUPPORTED_LANGUAGES[ext])

    if not chunks:
        return chunk_by_lines(content, SOURCE_WINDOW)

    return chunks
