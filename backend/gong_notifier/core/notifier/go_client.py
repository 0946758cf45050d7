"""
GoCD Server API Client
======================

Reads pipeline run history from the GoCD REST API. This is the history
source behind PipelineHistoryCache.

Endpoint: GET {server_url}/api/pipelines/{name}/history
Pages are followed through ``_links.next.href`` until a run older than the
requested counter shows up or the page limit is hit.
"""

import re
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
import structlog

from gong_notifier.core.errors import HistoryAuthError, HistorySourceError
from gong_notifier.core.notifier.history import PipelineHistory, PipelineRun
from gong_notifier.core.notifier.transitions import StageState

logger = structlog.get_logger()

HISTORY_ACCEPT = "application/vnd.go.cd.v1+json"

# "Jane Doe <jane@example.com>"
_EMAIL_IN_USER = re.compile(r"<([^<>\s]+@[^<>\s]+)>")


class HistorySource(Protocol):
    """Anything that can supply the run history of a pipeline."""

    async def fetch_history(
        self, pipeline_name: str, before_counter: Optional[int] = None
    ) -> PipelineHistory:
        ...

    async def aclose(self) -> None:
        ...


def parse_run(payload: dict[str, Any]) -> PipelineRun:
    """Parse one entry of the ``pipelines`` array of a history page."""
    stage_results = {}
    for stage in payload.get("stages") or []:
        try:
            result = StageState(stage.get("result"))
        except ValueError:
            # Unknown / in-flight stages have no result yet
            continue
        if result is not StageState.BUILDING:
            stage_results[stage["name"]] = result

    committers: list[str] = []
    build_cause = payload.get("build_cause") or {}
    for revision in build_cause.get("material_revisions") or []:
        for modification in revision.get("modifications") or []:
            match = _EMAIL_IN_USER.search(modification.get("user_name") or "")
            if match and match.group(1) not in committers:
                committers.append(match.group(1))

    return PipelineRun(
        counter=int(payload["counter"]),
        stage_results=stage_results,
        committers=tuple(committers),
    )


class GoServerClient:
    """
    Client for the GoCD pipeline history API.
    Uses basic auth when REST credentials are configured.
    """

    def __init__(
        self,
        server_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 10.0,
        page_size: int = 10,
        max_pages: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            auth=auth,
            timeout=timeout,
            headers={"Accept": HISTORY_ACCEPT},
            transport=transport,
        )

    async def fetch_history(
        self, pipeline_name: str, before_counter: Optional[int] = None
    ) -> PipelineHistory:
        """
        Fetch the run history of a pipeline, most recent first.

        Args:
            pipeline_name: Pipeline to read
            before_counter: Stop paging once a run below this counter is seen.
                None reads up to the page limit.

        Returns:
            The history; empty and complete when the server does not know
            the pipeline

        Raises:
            HistoryAuthError: Credentials rejected
            HistorySourceError: Transport failure, unexpected status or payload,
                or the page limit was hit before a run below before_counter
        """
        url: Optional[str] = f"/api/pipelines/{quote(pipeline_name, safe='')}/history"
        params: Optional[dict[str, Any]] = {"page_size": self.page_size}
        runs: list[PipelineRun] = []
        complete = False
        reached = before_counter is not None and before_counter <= 1

        for _ in range(self.max_pages):
            payload = await self._get_page(pipeline_name, url, params)
            if payload is None:
                complete = True
                break

            try:
                page_runs = [parse_run(entry) for entry in payload.get("pipelines") or []]
            except (KeyError, TypeError, ValueError) as e:
                raise HistorySourceError(
                    f"Malformed history for pipeline {pipeline_name!r}: {e}"
                ) from e
            runs.extend(page_runs)

            url = ((payload.get("_links") or {}).get("next") or {}).get("href")
            params = None
            if not url or not page_runs:
                complete = True
                break

            if before_counter is not None and any(r.counter < before_counter for r in page_runs):
                reached = True
            if reached:
                break
        else:
            logger.debug("go_history_page_limit", pipeline=pipeline_name, pages=self.max_pages)
            if before_counter is not None and not reached:
                raise HistorySourceError(
                    f"History for {pipeline_name!r} does not reach below counter "
                    f"{before_counter} within {self.max_pages} pages"
                )

        logger.debug(
            "go_history_fetched",
            pipeline=pipeline_name,
            runs=len(runs),
            before_counter=before_counter,
            complete=complete,
        )
        return PipelineHistory.from_runs(pipeline_name, runs, complete=complete)

    async def _get_page(
        self, pipeline_name: str, url: str, params: Optional[dict[str, Any]]
    ) -> Optional[dict[str, Any]]:
        """GET one history page. None means the pipeline has no history."""
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning("go_history_request_failed", pipeline=pipeline_name, error=str(e))
            raise HistorySourceError(f"Request for {pipeline_name!r} history failed: {e}") from e

        if response.status_code == 404:
            logger.info("go_history_not_found", pipeline=pipeline_name)
            return None
        if response.status_code in (401, 403):
            raise HistoryAuthError(
                f"GoCD rejected credentials reading {pipeline_name!r} history "
                f"({response.status_code})"
            )
        if response.status_code >= 400:
            raise HistorySourceError(
                f"GoCD answered {response.status_code} for {pipeline_name!r} history"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise HistorySourceError(f"History for {pipeline_name!r} is not JSON") from e
        if not isinstance(payload, dict):
            raise HistorySourceError(f"History for {pipeline_name!r} is not a JSON object")
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()
