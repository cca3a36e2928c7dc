"""Tests for the MCP session tools against a mocked Session Manager."""

import json

import httpx
import pytest

from upwork_applier.tools import session_tools


@pytest.fixture
def mock_manager(monkeypatch):
    """Route the tools' httpx client through a handler; returns the recorded requests."""
    requests = []
    responses = {}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        key = (request.method, request.url.path)
        if key not in responses:
            return httpx.Response(404, json={"error": "not_found", "message": f"Session {request.url.path} not found."})
        status, body = responses[key]
        return httpx.Response(status, json=body)

    monkeypatch.setattr(
        session_tools.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return requests, responses


class TestCallSessionManager:

    @pytest.mark.asyncio
    async def test_error_body_mapped(self, mock_manager):
        _, responses = mock_manager
        responses[("POST", "/session/s1/start-processing")] = (
            409, {"error": "invalid_session_state", "message": "Cannot start processing while session is created."},
        )

        result = await session_tools._call_session_manager("POST", "/session/s1/start-processing")

        assert result == {
            "error": "Cannot start processing while session is created.",
            "kind": "invalid_session_state",
        }

    @pytest.mark.asyncio
    async def test_unreachable_manager(self, monkeypatch):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            session_tools.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(refuse), **kwargs),
        )

        result = await session_tools._call_session_manager("GET", "/session/s1")

        assert "not reachable" in result["error"]


class TestTools:

    @pytest.mark.asyncio
    async def test_create_session_posts_jobs(self, mock_manager):
        requests, responses = mock_manager
        responses[("POST", "/session")] = (200, {
            "sessionId": "abc",
            "status": "waiting_for_driver",
            "driverMode": "extension",
            "websocketUrl": "ws://localhost:8024/ws/abc",
            "message": "Session created! Connect the browser extension to continue.",
        })

        text = await session_tools.create_session(
            ["https://www.upwork.com/jobs/~01", " ", "https://www.upwork.com/jobs/~02"], keep_alive=True,
        )

        body = json.loads(requests[0].content)
        assert body["jobs"] == [
            {"jobUrl": "https://www.upwork.com/jobs/~01"},
            {"jobUrl": "https://www.upwork.com/jobs/~02"},
        ]
        assert body["keepAlive"] is True
        assert "driverMode" not in body
        assert "Session abc created" in text
        assert "ws://localhost:8024/ws/abc" in text

    @pytest.mark.asyncio
    async def test_session_results_summary(self, mock_manager):
        _, responses = mock_manager
        responses[("GET", "/session/abc/results")] = (200, {
            "sessionId": "abc",
            "status": "completed",
            "results": [
                {"jobNumber": 1, "outcome": "applied", "message": "Successfully applied",
                 "jobUrl": "https://www.upwork.com/jobs/~01"},
                {"jobNumber": 2, "outcome": "timeout", "message": "cloudflare challenge did not clear within 120s",
                 "jobUrl": "https://www.upwork.com/jobs/~02"},
            ],
            "summary": {"total": 2, "completed": 2, "pending": 0, "errors": 1},
        })

        text = await session_tools.session_results("abc")

        assert "2/2 jobs processed, 0 pending, 1 errors" in text
        assert "Job 2: timeout" in text

    @pytest.mark.asyncio
    async def test_missing_session_reported(self, mock_manager):
        text = await session_tools.session_status("missing")

        assert text.startswith("Error: ")
        assert "not found" in text

    @pytest.mark.asyncio
    async def test_start_processing_and_keep_alive(self, mock_manager):
        _, responses = mock_manager
        responses[("POST", "/session/abc/start-processing")] = (
            200, {"started": False, "message": "Job processing already in progress"},
        )
        responses[("POST", "/session/abc/keep-alive")] = (200, {"message": "Session kept alive"})

        assert await session_tools.start_processing("abc") == "Job processing already in progress"
        assert await session_tools.keep_alive("abc") == "Session kept alive"

    @pytest.mark.asyncio
    async def test_reuse_session(self, mock_manager):
        requests, responses = mock_manager
        responses[("POST", "/session/abc/reuse")] = (
            200, {"status": "ready", "message": "Session updated with new jobs", "jobsCount": 1},
        )

        text = await session_tools.reuse_session("abc", ["https://www.upwork.com/jobs/~09"])

        assert json.loads(requests[0].content) == {"jobs": [{"jobUrl": "https://www.upwork.com/jobs/~09"}]}
        assert "(1 jobs)" in text
