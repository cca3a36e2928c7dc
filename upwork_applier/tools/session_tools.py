"""MCP tools for driving job-application sessions through the Session Manager."""

from __future__ import annotations

import json

import httpx

from ..config import SESSION_MANAGER_URL


async def _call_session_manager(method: str, path: str, json_body: dict | None = None) -> dict:
    """Make a request to the session manager HTTP service."""
    url = f"{SESSION_MANAGER_URL}{path}"
    try:
        async with httpx.AsyncClient(timeout=120.0) as client:
            if method == "GET":
                resp = await client.get(url)
            else:
                resp = await client.post(url, json=json_body or {})

            if resp.status_code >= 400:
                data = resp.json()
                return {
                    "error": data.get("message") or data.get("error", f"HTTP {resp.status_code}"),
                    "kind": data.get("error", ""),
                }
            return resp.json()

    except httpx.ConnectError:
        return {
            "error": "Session Manager is not reachable at "
            f"{SESSION_MANAGER_URL}. It should auto-start with the MCP server. "
            "If running standalone: python -m upwork_applier.session_manager"
        }
    except httpx.TimeoutException:
        return {"error": "Session Manager timed out."}
    except Exception as e:
        return {"error": f"Failed to connect to Session Manager: {e}"}


def _jobs_payload(job_urls: list[str]) -> list[dict]:
    return [{"jobUrl": url} for url in job_urls if url.strip()]


async def create_session(
    job_urls: list[str],
    keep_alive: bool = False,
    close_after_run: bool = True,
    driver_mode: str = "",
) -> str:
    """Create an application session for a batch of Upwork job URLs.

    Args:
        job_urls: Upwork job posting URLs, applied to in this order.
        keep_alive: Keep the session (and its browser) for reuse after the run.
        close_after_run: Release the browser once every job has settled.
        driver_mode: "embedded" or "extension"; empty uses the server default.

    Returns:
        Session id plus next steps.
    """
    body: dict = {
        "jobs": _jobs_payload(job_urls),
        "keepAlive": keep_alive,
        "closeAfterRun": close_after_run,
    }
    if driver_mode:
        body["driverMode"] = driver_mode

    result = await _call_session_manager("POST", "/session", body)
    if "error" in result:
        return f"Error: {result['error']}"

    lines = [
        f"Session {result['sessionId']} created ({result.get('driverMode', '')} mode).",
        result.get("message", ""),
    ]
    if result.get("driverMode") == "extension":
        lines.append(f"Extension WebSocket: {result.get('websocketUrl')}")
    lines.append("Applications start automatically once the Upwork login is detected.")
    return "\n".join(line for line in lines if line)


async def session_status(session_id: str) -> str:
    """Return the session's state, login flag, connectivity and results as JSON."""
    result = await _call_session_manager("GET", f"/session/{session_id}")
    if "error" in result:
        return f"Error: {result['error']}"
    return json.dumps(result, indent=2)


async def session_results(session_id: str) -> str:
    """Summarize the results of a session's run."""
    result = await _call_session_manager("GET", f"/session/{session_id}/results")
    if "error" in result:
        return f"Error: {result['error']}"

    summary = result.get("summary", {})
    lines = [
        f"Session {session_id}: {result.get('status')}",
        f"{summary.get('completed', 0)}/{summary.get('total', 0)} jobs processed, "
        f"{summary.get('pending', 0)} pending, {summary.get('errors', 0)} errors",
        "",
    ]
    for r in result.get("results", []):
        lines.append(f"Job {r['jobNumber']}: {r['outcome']} - {r['message']} ({r['jobUrl']})")
    if not result.get("results"):
        lines.append("No results yet.")
    return "\n".join(lines)


async def start_processing(session_id: str) -> str:
    """Start applying to the session's jobs once logged in. Safe to call twice."""
    result = await _call_session_manager("POST", f"/session/{session_id}/start-processing")
    if "error" in result:
        return f"Error: {result['error']}"
    return result.get("message", "Job processing started")


async def reuse_session(session_id: str, job_urls: list[str]) -> str:
    """Load a new batch of jobs into a keep-alive session."""
    result = await _call_session_manager(
        "POST", f"/session/{session_id}/reuse", {"jobs": _jobs_payload(job_urls)}
    )
    if "error" in result:
        return f"Error: {result['error']}"
    return f"{result.get('message', 'Session updated')} ({result.get('jobsCount', 0)} jobs). Call start_processing to run them."


async def keep_alive(session_id: str) -> str:
    """Refresh the session's inactivity timer."""
    result = await _call_session_manager("POST", f"/session/{session_id}/keep-alive")
    if "error" in result:
        return f"Error: {result['error']}"
    return result.get("message", "Session kept alive")
