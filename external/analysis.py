"""
External - Archive Analysis Service Client.

============================================================
PURPOSE
============================================================
HTTP client of the service that analyzes uploaded archives
and answers record and sentiment queries.

ENDPOINTS:
- POST /data_owners/           register the owning account
- POST /archives/              upload an archive (multipart)
- POST /tasks/extraction/      start the analysis of an upload
- GET  /tasks/{id}             task status
- GET  /posts, /reactions      records ordered by timestamp
- GET  /sentiments             weekly sentiment score

Every failure is raised as ExternalServiceError, which the
orchestrator classifies as transient.

============================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from core.config import AnalysisServiceConfig
from core.exceptions import ExternalServiceError


logger = logging.getLogger(__name__)


SERVICE_NAME = "analysis"

# Task statuses reported by the service
TASK_FINISHED = "FINISHED"
TASK_FAILED = "FAILED"
TASK_INTERRUPTED = "INTERRUPTED"

RECORD_KINDS = ("post", "reaction")


@dataclass(frozen=True)
class AnalysisRecord:
    """A post or reaction as returned by the service."""

    kind: str
    timestamp: int
    data: Dict[str, Any]


class AnalysisClient:
    """
    Async client of the analysis service.

    The HTTP session is created lazily and must be released with
    close().
    """

    def __init__(self, config: Optional[AnalysisServiceConfig] = None):
        self._config = config or AnalysisServiceConfig.from_env()
        self._base_url = self._config.base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            headers = {}
            if self._config.api_token:
                headers["Authorization"] = f"Token {self._config.api_token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        """Close the client."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request and decode the JSON answer.

        Raises:
            ExternalServiceError: On transport errors or a status >= 300
        """
        url = f"{self._base_url}{path}"
        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 300:
                    body = await response.text()
                    raise ExternalServiceError(
                        f"{method} {path} failed: {response.status} - {body[:200]}",
                        service=SERVICE_NAME,
                        status_code=response.status,
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ExternalServiceError(
                f"{method} {path} failed: {e}",
                service=SERVICE_NAME,
                cause=e,
            ) from e

    # --------------------------------------------------------
    # ARCHIVE ANALYSIS
    # --------------------------------------------------------

    async def register_data_owner(self, account_number: str) -> None:
        """
        Register an account as a data owner of the analysis service.

        Raises:
            ExternalServiceError: If the service refuses, which it
                also does for owners it already knows
        """
        await self._request("POST", "/data_owners/", json={"public_key": account_number})
        logger.debug(f"Registered data owner {account_number}")

    async def submit(self, account_number: str, archive_path: str) -> str:
        """
        Upload an archive file and start its analysis.

        Args:
            account_number: Data owner of the archive
            archive_path: Local path of the zip file

        Returns:
            Identifier of the analysis task
        """
        with open(archive_path, "rb") as fh:
            form = aiohttp.FormData()
            form.add_field("data_owner", account_number)
            form.add_field(
                "file",
                fh,
                filename=os.path.basename(archive_path) or "data.zip",
                content_type="application/zip",
            )
            uploaded = await self._request("POST", "/archives/", data=form)

        task = await self._request(
            "POST",
            "/tasks/extraction/",
            json={"archive": str(uploaded["id"]), "data_owner": account_number},
        )
        logger.info(f"Submitted archive of {account_number} for analysis, task {task['id']}")
        return str(task["id"])

    async def status(self, task_id: str) -> str:
        """Current status of an analysis task."""
        body = await self._request("GET", f"/tasks/{task_id}")
        return str(body.get("status", ""))

    # --------------------------------------------------------
    # RECORD QUERIES
    # --------------------------------------------------------

    async def _edge_record(self, account_number: str, kind: str, order_by: str) -> Optional[AnalysisRecord]:
        if kind not in RECORD_KINDS:
            raise ValueError(f"Unknown record kind: {kind}")

        body = await self._request(
            "GET",
            f"/{kind}s",
            params={"data_owner": account_number, "order_by": order_by, "offset": 0, "limit": 1},
        )
        results = body.get("results") or []
        if not results:
            return None
        return AnalysisRecord(kind=kind, timestamp=int(results[0]["timestamp"]), data=results[0])

    async def first_record(self, account_number: str, kind: str) -> Optional[AnalysisRecord]:
        """Oldest post or reaction of an account, None when it has none."""
        return await self._edge_record(account_number, kind, "asc")

    async def last_record(self, account_number: str, kind: str) -> Optional[AnalysisRecord]:
        """Newest post or reaction of an account, None when it has none."""
        return await self._edge_record(account_number, kind, "des")

    async def sentiment_for_week(self, account_number: str, timestamp: int) -> float:
        """Sentiment score of the seven days ending at timestamp."""
        body = await self._request(
            "GET",
            "/sentiments",
            params={"data_owner": account_number, "timestamp": timestamp},
        )
        return float(body.get("score", 0.0))


__all__ = [
    "AnalysisClient",
    "AnalysisRecord",
    "TASK_FINISHED",
    "TASK_FAILED",
    "TASK_INTERRUPTED",
]
