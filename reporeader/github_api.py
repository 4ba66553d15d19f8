# reporeader/github_api.py

import logging
import re
from typing import Optional, Tuple

import requests

from reporeader.file_tree import is_ingestible_path

logger = logging.getLogger(__name__)

GITHUB_URL_RE = re.compile(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$")


def parse_github_url(repo_url: str) -> Optional[Tuple[str, str]]:
    match = GITHUB_URL_RE.search(repo_url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


class GitHubClient:
    """Read-only GitHub REST calls used before a clone is attempted."""

    API_URL = "https://api.github.com"

    def __init__(self, token: str = "", timeout: float = 15, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/vnd.github+json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _get(self, path: str, **params) -> dict:
        response = self.session.get(f"{self.API_URL}{path}", headers=self.headers, params=params,
                                    timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def count_files(self, repo_url: str) -> Optional[int]:
        """
        Number of files in the default branch that ingestion would look at,
        or None when it cannot be determined (not a GitHub URL, API error).
        """
        parsed = parse_github_url(repo_url)
        if parsed is None:
            logger.info("[GITHUB] Not a GitHub URL, skipping file count: %s", repo_url)
            return None
        owner, repo = parsed

        try:
            branch = self._get(f"/repos/{owner}/{repo}")["default_branch"]
            tree = self._get(f"/repos/{owner}/{repo}/git/trees/{branch}", recursive=1)
        except (requests.RequestException, KeyError, ValueError) as e:
            logger.warning("[GITHUB] Could not count files for %s: %s", repo_url, e)
            return None

        if tree.get("truncated"):
            logger.warning("[GITHUB] Tree listing truncated for %s; count is a lower bound", repo_url)

        return sum(
            1 for entry in tree.get("tree", [])
            if entry.get("type") == "blob" and is_ingestible_path(entry.get("path", ""))
        )
