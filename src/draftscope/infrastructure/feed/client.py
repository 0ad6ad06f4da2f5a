"""Upstream replay store client.

Read-only access to keyframes, diffs, flags and work sessions of a monitored
submission, plus the capture-control actions (pause/resume/force poll) and
the flag review update. Every transport or decoding problem is raised as
:class:`FetchFailure`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx
import structlog

from ...config import Settings
from ...domain.entities import Flag, FlagStatus
from ...domain.exceptions import FetchFailure
from .payloads import (
    ReplayFeed,
    SessionSummary,
    normalize_flags,
    normalize_replay_payload,
    raw_payload_from_body,
)

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class ReplayQuery:
    session_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: Optional[int] = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        if self.session_id:
            params["session_id"] = self.session_id
        if self.start_time is not None:
            params["start_time"] = self.start_time.isoformat()
        if self.end_time is not None:
            params["end_time"] = self.end_time.isoformat()
        if self.limit:
            params["limit"] = str(self.limit)
        return params


class ReplayFeedClient:
    """Async HTTP client for the replay store."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "ReplayFeedClient":
        return cls(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
            **kwargs,
        )

    async def __aenter__(self) -> "ReplayFeedClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------
    # Transport
    # ------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, params=params, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("feed_http_error", method=method, path=path, status=status)
            raise FetchFailure(
                f"{method} {path} failed with HTTP {status}",
                status_code=status,
                retryable=status in _RETRYABLE_STATUS,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("feed_unreachable", method=method, path=path, error=str(exc))
            raise FetchFailure(f"{method} {path} failed: {exc}") from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            # some deployments answer with the encoded payload as plain text
            return resp.text

    # ------------------------------------------
    # Reads
    # ------------------------------------------

    async def get_replay(self, submission_id: str, query: ReplayQuery | None = None) -> ReplayFeed:
        body = await self._request(
            "GET",
            f"/api/submissions/{submission_id}/replay",
            params=(query or ReplayQuery()).to_params() or None,
        )
        feed = normalize_replay_payload(raw_payload_from_body(body))
        logger.debug(
            "replay_fetched",
            submission_id=submission_id,
            keyframes=len(feed.keyframes),
            diffs=len(feed.diffs),
        )
        return feed

    async def get_flags(self, submission_id: str) -> list[Flag]:
        body = await self._request("GET", f"/api/submissions/{submission_id}/flags")
        return normalize_flags(body)

    async def list_sessions(self, project_id: str, file_id: str) -> list[SessionSummary]:
        body = await self._request("GET", f"/api/projects/{project_id}/files/{file_id}/sessions")
        if not isinstance(body, list):
            return []
        sessions: list[SessionSummary] = []
        for raw in body:
            try:
                sessions.append(SessionSummary.model_validate(raw))
            except ValueError:
                logger.warning("session_entry_dropped", project_id=project_id, file_id=file_id)
        return sessions

    # ------------------------------------------
    # Actions
    # ------------------------------------------

    async def update_flag(self, submission_id: str, flag_id: str, status: FlagStatus) -> None:
        await self._request(
            "PUT",
            f"/api/submissions/{submission_id}/flags/{flag_id}",
            body={"teacher_status": status.value},
        )

    async def pause_capture(self, submission_id: str) -> None:
        await self._request("POST", f"/api/monitoring/submission/{submission_id}/pause")

    async def resume_capture(self, submission_id: str) -> None:
        await self._request("POST", f"/api/monitoring/submission/{submission_id}/resume")

    async def force_poll(self, submission_id: str) -> dict[str, Any]:
        body = await self._request("POST", f"/api/monitoring/submission/{submission_id}/poll")
        return body if isinstance(body, dict) else {}
