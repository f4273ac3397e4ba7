# tests/unit/infrastructure/adapters/test_repository_api.py
import base64
import json

import httpx
import pytest

from domain.exceptions import ExternalCallFailure
from infrastructure.adapters.repository_api import RepositoryClient

def encoded(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")

class FakeContentsApi:
    """Minimal contents endpoint holding files in memory"""

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.puts = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.split("/contents/", 1)[1]
        if request.method == "GET":
            if path not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"sha": f"sha-{path}", "content": encoded(self.files[path])})

        body = json.loads(request.content)
        self.puts.append(body)
        self.files[path] = base64.b64decode(body["content"]).decode("utf-8")
        return httpx.Response(201 if "sha" not in body else 200, json={"commit": {"sha": "c0ffee"}})

def client_for(api: FakeContentsApi) -> RepositoryClient:
    return RepositoryClient("acme", "site", token="ghp_test",
                            http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)))

class TestRepositoryClient:

    @pytest.mark.asyncio
    async def test_read_file_decodes_content(self):
        client = client_for(FakeContentsApi({"index.html": "<h1>Soldes</h1>"}))

        result = await client.read_file("index.html")

        assert result == {"path": "index.html", "sha": "sha-index.html", "content": "<h1>Soldes</h1>"}

    @pytest.mark.asyncio
    async def test_read_missing_file(self):
        client = client_for(FakeContentsApi())

        with pytest.raises(ExternalCallFailure):
            await client.read_file("missing.html")

    @pytest.mark.asyncio
    async def test_update_sends_existing_sha(self):
        api = FakeContentsApi({"index.html": "old"})
        client = client_for(api)

        result = await client.write_file("index.html", "new", "Update banner")

        assert result == {"path": "index.html", "commit": "c0ffee", "created": False}
        assert api.puts[0]["sha"] == "sha-index.html"
        assert api.puts[0]["branch"] == "main"
        assert api.files["index.html"] == "new"

    @pytest.mark.asyncio
    async def test_create_new_file(self):
        api = FakeContentsApi()
        client = client_for(api)

        result = await client.write_file("promo.html", "<p>-20%</p>", "Add promo page")

        assert result["created"] is True
        assert "sha" not in api.puts[0]

    @pytest.mark.asyncio
    async def test_unconfigured_repository(self):
        client = RepositoryClient(None, None, http_client=httpx.AsyncClient())

        with pytest.raises(ExternalCallFailure):
            await client.read_file("index.html")
        await client.close()
