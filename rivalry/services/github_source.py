"""
rivalry.services.github_source — GitHub REST Event Source
==========================================================

Fetches newest-first batches of commits, workflow runs, merged pull
requests and closed issues for one repository and decodes them into the
raw records in :mod:`rivalry.engine.events`.

Any transport failure, non-200 response or undecodable payload raises
:class:`EventSourceError`; the engine treats that as "skip this unit of
work", never as fatal.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any

import httpx

from rivalry.engine.events import (
    CommitRecord,
    DiffFile,
    IssueRecord,
    PullRequestRecord,
    WorkflowRunRecord,
)
from rivalry.errors import EventSourceError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# Payload decoders
# ---------------------------------------------------------------------------
def _commit(raw: dict) -> CommitRecord:
    detail = raw["commit"]
    author = raw.get("author") or {}
    return CommitRecord(
        sha=raw["sha"],
        author=author.get("login") or detail["author"]["name"],
        message=detail["message"],
        timestamp=_parse_dt(detail["author"]["date"]),
        html_url=raw.get("html_url"),
    )


def _diff_file(raw: dict) -> DiffFile:
    return DiffFile(
        filename=raw["filename"],
        additions=int(raw.get("additions") or 0),
        deletions=int(raw.get("deletions") or 0),
    )


def _workflow_run(raw: dict) -> WorkflowRunRecord:
    return WorkflowRunRecord(
        id=int(raw["id"]),
        name=raw.get("name") or "workflow",
        status=raw["status"],
        conclusion=raw.get("conclusion"),
        created_at=_parse_dt(raw["created_at"]),
        head_branch=raw.get("head_branch") or "",
        html_url=raw.get("html_url"),
    )


def _pull_request(raw: dict) -> PullRequestRecord:
    return PullRequestRecord(
        number=int(raw["number"]),
        title=raw["title"],
        author=raw["user"]["login"],
        merged_at=_parse_dt(raw.get("merged_at")),
        html_url=raw.get("html_url"),
    )


def _issue(raw: dict) -> IssueRecord:
    assignee = raw.get("assignee") or {}
    return IssueRecord(
        number=int(raw["number"]),
        title=raw["title"],
        author=raw["user"]["login"],
        assignee=assignee.get("login"),
        labels=tuple(label["name"] for label in raw.get("labels") or []),
        closed_at=_parse_dt(raw.get("closed_at")),
        html_url=raw.get("html_url"),
    )


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------
class GitHubEventSource:
    """Newest-first event batches for ``owner/name`` on GitHub."""

    def __init__(
        self,
        repository: str,
        *,
        token: str | None = None,
        per_page: int = 10,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.repository = repository
        self.per_page = per_page
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=GITHUB_API,
            timeout=10,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )
        self._headers = headers

    async def _get(self, path: str, **params: Any) -> Any:
        url = f"/repos/{self.repository}/{path}"
        try:
            resp = await self._client.get(url, params=params or None, headers=self._headers)
        except httpx.HTTPError as exc:
            raise EventSourceError(f"GET {url} failed: {exc}") from exc
        if resp.status_code != 200:
            raise EventSourceError(f"GET {url} returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise EventSourceError(f"GET {url} returned invalid JSON") from exc

    @staticmethod
    def _decode(decoder, items: list, what: str) -> list:
        try:
            return [decoder(item) for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise EventSourceError(f"Unexpected {what} payload: {exc}") from exc

    async def fetch_commits(self) -> list[CommitRecord]:
        data = await self._get("commits", per_page=self.per_page)
        return self._decode(_commit, data, "commit")

    async def fetch_commit_diff(self, sha: str) -> list[DiffFile]:
        data = await self._get(f"commits/{sha}")
        if not isinstance(data, dict):
            raise EventSourceError(f"Unexpected diff payload for {sha[:7]}")
        return self._decode(_diff_file, data.get("files") or [], "diff")

    async def fetch_workflow_runs(self) -> list[WorkflowRunRecord]:
        data = await self._get("actions/runs", per_page=self.per_page)
        if not isinstance(data, dict):
            raise EventSourceError("Unexpected workflow runs payload")
        return self._decode(_workflow_run, data.get("workflow_runs") or [], "workflow run")

    async def fetch_merged_pull_requests(self) -> list[PullRequestRecord]:
        """Merged PRs, most recently merged first."""
        data = await self._get(
            "pulls", state="closed", sort="updated", direction="desc", per_page=self.per_page
        )
        prs = [pr for pr in self._decode(_pull_request, data, "pull request") if pr.merged_at]
        prs.sort(key=lambda pr: pr.merged_at, reverse=True)
        return prs

    async def fetch_closed_issues(self) -> list[IssueRecord]:
        data = await self._get("issues", state="closed", per_page=self.per_page)
        # The issues endpoint also lists pull requests.
        issues = [item for item in data if "pull_request" not in item]
        return self._decode(_issue, issues, "issue")

    async def aclose(self) -> None:
        await self._client.aclose()


def get_event_source(repository: str) -> GitHubEventSource:
    token = os.getenv("GITHUB_TOKEN")
    if not token:
        logger.warning("GITHUB_TOKEN not set — using unauthenticated GitHub API (low rate limit)")
    return GitHubEventSource(repository, token=token)
