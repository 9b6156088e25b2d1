"""
Async HTTP client for the JobHound API (scripts, integration tests, other services).

    async with JobHoundClient("http://localhost:8000", token=token) as api:
        created = await api.create_scan(job_id=1, resume_id=2, mode="background")
        scan = await api.wait_for_scan(created["scanId"])
"""
import logging
from typing import Any, Callable

import httpx

from .services.scan_poller import PollPolicy, wait_for_scan

logger = logging.getLogger(__name__)


class JobHoundAPIError(RuntimeError):
    def __init__(self, status_code: int, message: str, details: Any = None):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.details = details


class JobHoundClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> "JobHoundClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {"error": resp.text}
        raise JobHoundAPIError(resp.status_code, body.get("error") or resp.reason_phrase, body.get("details"))

    async def create_scan(self, *, job_id: int, resume_id: int, mode: str = "background") -> dict[str, Any]:
        """
        Start a scan. In background mode returns the JSON body; in stream mode the
        streamed text is drained and returned as ``{"scanId", "text"}``.
        """
        payload = {"jobId": job_id, "resumeId": resume_id}
        if mode == "stream":
            async with self._http.stream("POST", "/api/create-scan", params={"mode": mode}, json=payload) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    self._raise_for_error(resp)
                chunks = [chunk async for chunk in resp.aiter_text()]
                return {"scanId": int(resp.headers["x-scan-id"]), "text": "".join(chunks)}

        resp = await self._http.post("/api/create-scan", params={"mode": mode}, json=payload)
        self._raise_for_error(resp)
        return resp.json()

    async def get_scan(self, scan_id: int) -> dict[str, Any]:
        resp = await self._http.get(f"/api/scans/{int(scan_id)}")
        self._raise_for_error(resp)
        return resp.json()["scan"]

    async def wait_for_scan(
        self,
        scan_id: int,
        *,
        policy: PollPolicy = PollPolicy(),
        on_complete: Callable[[dict[str, Any]], Any] | None = None,
    ) -> dict[str, Any]:
        return await wait_for_scan(self.get_scan, scan_id, policy=policy, on_complete=on_complete)
