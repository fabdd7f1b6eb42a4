"""
Async HTTP client for the proctoring service, used by the session monitor.
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from .config import CLIENT_TIMEOUT_SECONDS, SERVICE_URL
from .models import as_naive_utc


class ProctoringClient:
    def __init__(self, base_url: str = SERVICE_URL, timeout: float = CLIENT_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ProctoringClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._http.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def start_session(self, session_id: str, name: str) -> Dict[str, Any]:
        return await self._post_json("/sessions", {"sessionId": session_id, "name": name})

    async def end_session(self, session_id: str) -> Dict[str, Any]:
        return await self._post_json("/sessions/end", {"sessionId": session_id})

    async def send_event(self, session_id: str, kind: str, occurred_at: datetime) -> None:
        # Fire-and-forget: the stored event echoed back is not needed
        response = await self._http.post("/events", json={
            "sessionId": session_id,
            "kind": kind,
            "occurredAt": as_naive_utc(occurred_at).isoformat(),
        })
        response.raise_for_status()

    async def upload_recording(self, session_id: str, path: Path) -> Dict[str, Any]:
        response = await self._http.post(
            "/recordings",
            data={"sessionId": session_id},
            files={"file": (path.name, path.read_bytes(), "application/octet-stream")},
        )
        response.raise_for_status()
        return response.json()
