# reporeader/clone_repo.py

import logging
import os
import shutil
import uuid
from typing import Optional

from git import Repo, GitCommandError

from reporeader.config import settings
from reporeader.errors import CloneError

logger = logging.getLogger(__name__)


def new_workspace_path(temp_root: Optional[str] = None) -> str:
    """Return a fresh, randomly named workspace path under the temp root (not created)."""
    root = temp_root or settings.temp_dir
    return os.path.join(root, uuid.uuid4().hex)


def clone_repo(repo_url: str, workspace: str) -> str:
    """Shallow-clone `repo_url` into `workspace`. Raises CloneError on any git failure."""
    os.makedirs(os.path.dirname(workspace), exist_ok=True)

    logger.info("[CLONE] Cloning %s into: %s", repo_url, workspace)

    try:
        Repo.clone_from(repo_url, workspace, depth=1)
    except GitCommandError as e:
        raise CloneError(f"Git clone failed: {e}") from e

    return workspace


def cleanup(workspace: Optional[str]) -> None:
    if workspace and os.path.exists(workspace):
        shutil.rmtree(workspace, ignore_errors=True)
        logger.info("[CLONE] Removed workspace: %s", workspace)


def clear_workspace_root(temp_root: Optional[str] = None) -> None:
    """Empty the temp root; workspaces left there belong to runs of a previous process."""
    root = temp_root or settings.temp_dir
    os.makedirs(root, exist_ok=True)
    for entry in os.listdir(root):
        path = os.path.join(root, entry)
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path, ignore_errors=True)
        else:
            os.remove(path)
    logger.info("[CLONE] Temp directory cleared: %s", root)
