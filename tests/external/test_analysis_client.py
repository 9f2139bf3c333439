"""
Tests for the analysis service client against a live HTTP server.
"""

from typing import Any, Dict, List

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from core.config import AnalysisServiceConfig
from core.exceptions import ExternalServiceError
from external.analysis import AnalysisClient


@pytest.fixture
def received() -> List[Dict[str, Any]]:
    return []


@pytest_asyncio.fixture
async def analysis_server(received):
    known = set()

    async def data_owners(request):
        body = await request.json()
        received.append({"body": body, "auth": request.headers.get("Authorization")})
        if body["public_key"] in known:
            return web.json_response({"detail": "exists"}, status=400)
        known.add(body["public_key"])
        return web.json_response({"public_key": body["public_key"]}, status=201)

    async def task(request):
        return web.json_response({"id": request.match_info["task_id"], "status": "RUNNING"})

    app = web.Application()
    app.router.add_post("/data_owners/", data_owners)
    app.router.add_get("/tasks/{task_id}", task)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def client(analysis_server):
    client = AnalysisClient(AnalysisServiceConfig(
        base_url=str(analysis_server.make_url("/")),
        api_token="secret",
        timeout_seconds=5.0,
    ))
    yield client
    await client.close()


class TestAnalysisClient:
    """Tests for AnalysisClient."""

    @pytest.mark.asyncio
    async def test_register_data_owner(self, client, received):
        await client.register_data_owner("acct-1")

        assert received == [{"body": {"public_key": "acct-1"}, "auth": "Token secret"}]

    @pytest.mark.asyncio
    async def test_known_data_owner_refused(self, client):
        await client.register_data_owner("acct-1")

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.register_data_owner("acct-1")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_status(self, client):
        assert await client.status("t-9") == "RUNNING"
