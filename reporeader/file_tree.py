# reporeader/file_tree.py

import logging
import os
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)

IGNORED_DIRS = {
    ".git", "node_modules", "dist", "build", "coverage", ".next",
    "__pycache__", ".idea", ".venv",
}

IGNORED_FILES = {
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", ".DS_Store", ".env",
}

IGNORED_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".pdf", ".json",
    ".lock", ".md", ".txt", ".map", ".css", ".scss", ".html",
    ".xml", ".yml", ".yaml", ".config", ".toml", ".csv", ".ipynb",
    ".editorconfig", ".gitignore",
}

MAX_DEPTH = 64


@dataclass
class FileNode:
    path: str                   # relative to the tree root, forward slashes
    name: str
    type: str                   # "file" | "directory"
    children: List["FileNode"] = field(default_factory=list)


def generate_file_tree(root_dir: str, max_depth: int = MAX_DEPTH) -> List[FileNode]:
    """
    Depth-first listing of `root_dir` as a tree of FileNodes.

    Ignored directory names and filenames are dropped here, before any
    extension filtering. Entries are visited in sorted order, symlinks (to
    files or directories) are never followed and directories deeper than
    `max_depth` are not descended into.
    """
    nodes: List[FileNode] = []
    seen = {os.path.realpath(root_dir)}
    stack = [(root_dir, "", nodes, 0)]

    while stack:
        dir_path, rel_path, siblings, depth = stack.pop()
        try:
            items = sorted(os.listdir(dir_path))
        except OSError as e:
            if depth == 0:
                raise
            logger.warning("[WALK] Cannot list %s: %s", dir_path, e)
            continue

        for item in items:
            if item in IGNORED_FILES or item in IGNORED_DIRS:
                continue

            full_path = os.path.join(dir_path, item)
            item_rel = f"{rel_path}/{item}" if rel_path else item

            # Links may point outside the clone
            if os.path.islink(full_path):
                continue

            if os.path.isdir(full_path):
                node = FileNode(path=item_rel, name=item, type="directory")
                siblings.append(node)

                real = os.path.realpath(full_path)
                if real in seen:
                    continue
                seen.add(real)
                if depth + 1 > max_depth:
                    logger.warning("[WALK] Max depth reached at %s", item_rel)
                    continue
                stack.append((full_path, item_rel, node.children, depth + 1))
            elif os.path.isfile(full_path):
                siblings.append(FileNode(path=item_rel, name=item, type="file"))

    return nodes


def flatten_files(nodes: List[FileNode]) -> Iterator[FileNode]:
    """Yield the file nodes of a tree in traversal order."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        if node.type == "file":
            yield node
        else:
            stack.extend(reversed(node.children))


def _extension(name: str) -> str:
    ext = os.path.splitext(name)[1].lower()
    # splitext gives dotfiles such as .gitignore no extension
    return ext or name.lower()


def filter_source_files(files: List[FileNode]) -> List[FileNode]:
    """Keep the files worth chunking: no ignored path segment, no ignored extension."""
    kept = []
    for f in files:
        if any(part in IGNORED_DIRS for part in f.path.split("/")[:-1]):
            continue
        if _extension(f.name) in IGNORED_EXTENSIONS:
            continue
        kept.append(f)
    return kept


def is_ingestible_path(path: str) -> bool:
    """Same rules as the walker plus filter_source_files, for a bare relative path."""
    parts = path.replace("\\", "/").strip("/").split("/")
    if any(part in IGNORED_DIRS for part in parts[:-1]):
        return False
    name = parts[-1]
    if name in IGNORED_FILES or name in IGNORED_DIRS:
        return False
    return _extension(name) not in IGNORED_EXTENSIONS


def list_source_files(root_dir: str, max_depth: Optional[int] = None) -> List[FileNode]:
    tree = generate_file_tree(root_dir, max_depth if max_depth is not None else MAX_DEPTH)
    all_files = list(flatten_files(tree))
    files = filter_source_files(all_files)
    logger.info("[WALK] Filtered down to %d valid files (of %d).", len(files), len(all_files))
    return files
