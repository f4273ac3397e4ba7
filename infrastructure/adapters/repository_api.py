# infrastructure/adapters/repository_api.py
import base64
from typing import Dict, Any, Optional

import httpx

from domain.exceptions import ExternalCallFailure
from shared.logging import logger

GITHUB_API_URL = "https://api.github.com"

class RepositoryClient:
    """File content access through a GitHub-style contents API.

    Writing a file commits to the configured branch, which triggers the
    downstream deployment; callers reach ``write_file`` only through a
    privileged tool.
    """

    def __init__(self, owner: Optional[str], name: Optional[str],
                 token: Optional[str] = None, branch: str = "main",
                 base_url: str = GITHUB_API_URL,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.owner = owner
        self.name = name
        self.branch = branch
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0, headers=headers)

    def _contents_url(self, path: str) -> str:
        if not (self.owner and self.name):
            raise ExternalCallFailure("repository", "repository is not configured")
        return f"{self.base_url}/repos/{self.owner}/{self.name}/contents/{path.lstrip('/')}"

    async def _get_contents(self, path: str) -> Optional[Dict[str, Any]]:
        url = self._contents_url(path)
        try:
            response = await self.http_client.get(url, params={"ref": self.branch})
        except httpx.HTTPError as e:
            raise ExternalCallFailure("repository", str(e)) from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ExternalCallFailure("repository", f"HTTP {response.status_code} reading {path}")
        return response.json()

    async def read_file(self, path: str) -> Dict[str, Any]:
        contents = await self._get_contents(path)
        if contents is None:
            raise ExternalCallFailure("repository", f"File not found: {path}")

        text = base64.b64decode(contents.get("content", "")).decode("utf-8")
        return {"path": path, "sha": contents.get("sha"), "content": text}

    async def write_file(self, path: str, content: str, message: str) -> Dict[str, Any]:
        existing = await self._get_contents(path)
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if existing:
            body["sha"] = existing.get("sha")

        try:
            response = await self.http_client.put(self._contents_url(path), json=body)
        except httpx.HTTPError as e:
            raise ExternalCallFailure("repository", str(e)) from e

        if response.status_code not in (200, 201):
            raise ExternalCallFailure("repository", f"HTTP {response.status_code} writing {path}")

        commit = (response.json().get("commit") or {}).get("sha")
        logger.info("Repository file written", path=path, branch=self.branch, commit=commit)
        return {"path": path, "commit": commit, "created": existing is None}

    async def close(self):
        await self.http_client.aclose()
