from __future__ import annotations

from urllib.parse import quote

import httpx

from .config import DEFAULT_HTTP_TIMEOUT_S

RAW_CONTENT_BASE_URL = "https://raw.githubusercontent.com"
MANIFEST_FILENAME = "SKILL.md"


def manifest_repo_path(subpath: str | None) -> str:
    return f"{subpath.strip('/')}/{MANIFEST_FILENAME}" if subpath else MANIFEST_FILENAME


def manifest_blob_url(owner_repo: str, branch: str, subpath: str | None) -> str:
    return f"https://github.com/{owner_repo}/blob/{branch}/{manifest_repo_path(subpath)}"


class GitHubClient:
    """
    Anonymous reads of public repository files through raw.githubusercontent.com.

    Used to confirm a manifest exists on the remote before committing to a clone.
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_HTTP_TIMEOUT_S,
        base_url: str = RAW_CONTENT_BASE_URL,
        http: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout_s, follow_redirects=True)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def raw_url(self, owner_repo: str, branch: str, repo_path: str) -> str:
        return f"{self.base_url}/{owner_repo}/{quote(branch, safe='/')}/{quote(repo_path, safe='/')}"

    def manifest_exists(self, owner_repo: str, branch: str, subpath: str | None = None) -> bool | None:
        """
        True/False when the remote answered definitively, None when it could not
        be asked (network failure, rate limiting, unexpected status).
        """
        url = self.raw_url(owner_repo, branch, manifest_repo_path(subpath))
        try:
            resp = self._http.head(url)
        except httpx.HTTPError:
            return None
        if 200 <= resp.status_code < 300:
            return True
        if resp.status_code == 404:
            return False
        return None
