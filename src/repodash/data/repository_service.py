"""
Repository service: the dashboard's view of the cached GitHub data.

Builds structured cache keys for each resource and routes every request
through CacheManager.fetch. Repositories are loaded in small concurrent
batches to bound the number of simultaneous outbound requests.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable

from repodash.cache.manager import CacheManager
from repodash.data.github_client import GitHubClient
from repodash.exceptions import NoDataAvailableError
from repodash.logging import get_logger, log_context
from repodash.types import DEFAULT_BRANCH, CacheKey, RepoRef, ResourceKind

logger = get_logger(__name__)

OVERVIEW_COMMITS = 5
DETAIL_COMMITS_PER_PAGE = 10


@dataclass
class RepoOverview:
    """Card data for one repository; error is set when it could not load."""

    repo: RepoRef
    info: dict[str, Any] | None = None
    commits: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stars(self) -> int | None:
        return self.info.get("stargazers_count") if self.info else None

    @property
    def forks(self) -> int | None:
        return self.info.get("forks_count") if self.info else None


@dataclass
class RepoDetail:
    """Detail page data. Optional sections that failed are listed in errors."""

    repo: RepoRef
    info: dict[str, Any]
    branch: str = DEFAULT_BRANCH
    page: int = 1
    readme: str | None = None
    branches: list[dict[str, Any]] = field(default_factory=list)
    commits: list[dict[str, Any]] = field(default_factory=list)
    tags: list[dict[str, Any]] = field(default_factory=list)
    releases: list[dict[str, Any]] = field(default_factory=list)
    issues: list[dict[str, Any]] = field(default_factory=list)
    contributors: list[dict[str, Any]] = field(default_factory=list)
    community: dict[str, Any] | None = None
    errors: dict[str, str] = field(default_factory=dict)


class RepositoryService:
    """Cached access to repository resources."""

    def __init__(
        self, cache: CacheManager, client: GitHubClient, batch_size: int = 3
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.cache = cache
        self.client = client
        self.batch_size = batch_size

    async def _get(self, kind: ResourceKind, repo: RepoRef, **params: Any) -> Any:
        key = CacheKey.create(kind, repo.owner, repo.name, **params)
        with log_context(repo=repo.full_name, resource=kind.value):
            return await self.cache.fetch(key, self.client.loader_for(key))

    async def repo_info(self, repo: RepoRef) -> dict[str, Any]:
        return await self._get(ResourceKind.REPO, repo)

    async def commits(
        self,
        repo: RepoRef,
        branch: str | None = None,
        page: int = 1,
        per_page: int = DETAIL_COMMITS_PER_PAGE,
    ) -> list[dict[str, Any]]:
        return await self._get(
            ResourceKind.COMMITS,
            repo,
            branch=branch or repo.branch or DEFAULT_BRANCH,
            page=page,
            per_page=per_page,
        )

    async def branches(self, repo: RepoRef) -> list[dict[str, Any]]:
        return await self._get(ResourceKind.BRANCHES, repo)

    async def tags(self, repo: RepoRef) -> list[dict[str, Any]]:
        return await self._get(ResourceKind.TAGS, repo)

    async def releases(self, repo: RepoRef, per_page: int = 5) -> list[dict[str, Any]]:
        return await self._get(ResourceKind.RELEASES, repo, per_page=per_page)

    async def issues(self, repo: RepoRef, per_page: int = 5) -> list[dict[str, Any]]:
        return await self._get(ResourceKind.ISSUES, repo, per_page=per_page)

    async def readme(self, repo: RepoRef) -> str:
        return await self._get(ResourceKind.README, repo)

    async def contributors(self, repo: RepoRef) -> list[dict[str, Any]]:
        return await self._get(ResourceKind.CONTRIBUTORS, repo)

    async def community(self, repo: RepoRef) -> dict[str, Any]:
        return await self._get(ResourceKind.COMMUNITY, repo)

    async def languages(self, repo: RepoRef) -> dict[str, int]:
        return await self._get(ResourceKind.LANGUAGES, repo)

    async def overview(self, repo: RepoRef) -> RepoOverview:
        """Repository info and its latest commits, loaded concurrently.

        Raises:
            NoDataAvailableError: If either resource is unavailable.
        """
        info, commits = await asyncio.gather(
            self.repo_info(repo),
            self.commits(repo, page=1, per_page=OVERVIEW_COMMITS),
            return_exceptions=True,
        )
        for result in (info, commits):
            if isinstance(result, BaseException):
                raise result
        return RepoOverview(repo=repo, info=info, commits=commits)

    async def _safe_overview(self, repo: RepoRef) -> RepoOverview:
        try:
            return await self.overview(repo)
        except NoDataAvailableError as e:
            logger.error("Failed to load repository", repo=repo.full_name, error=str(e))
            return RepoOverview(repo=repo, error=str(e.cause or e))

    async def load_all(self, repos: list[RepoRef]) -> list[RepoOverview]:
        """Load overviews batch by batch, preserving input order.

        A repository that fails yields an overview with error set; the
        remaining repositories still load.
        """
        results: list[RepoOverview] = []
        for start in range(0, len(repos), self.batch_size):
            batch = repos[start : start + self.batch_size]
            results.extend(await asyncio.gather(*(self._safe_overview(r) for r in batch)))
        logger.info(
            "Loaded repositories",
            total=len(results),
            failed=sum(1 for r in results if not r.ok),
        )
        return results

    async def detail(self, repo: RepoRef, page: int = 1) -> RepoDetail:
        """Everything the detail page shows.

        Repository info is required; the other sections load concurrently and
        degrade to an entry in RepoDetail.errors. Commits are listed for
        repo.branch when set, otherwise for the repository's default branch.

        Args:
            repo: Repository to load.
            page: Page of the commit list.

        Raises:
            NoDataAvailableError: If the repository info is unavailable.
        """
        if page < 1:
            raise ValueError("page must be at least 1")
        info = await self.repo_info(repo)
        branch = repo.branch or info.get("default_branch") or DEFAULT_BRANCH
        detail = RepoDetail(repo=repo, info=info, branch=branch, page=page)

        sections: dict[str, Awaitable[Any]] = {
            "readme": self.readme(repo),
            "branches": self.branches(repo),
            "commits": self.commits(repo, branch=branch, page=page),
            "tags": self.tags(repo),
            "releases": self.releases(repo),
            "issues": self.issues(repo),
            "contributors": self.contributors(repo),
            "community": self.community(repo),
        }
        results = await asyncio.gather(*sections.values(), return_exceptions=True)
        for name, result in zip(sections, results):
            if isinstance(result, NoDataAvailableError):
                detail.errors[name] = str(result.cause or result)
            elif isinstance(result, BaseException):
                raise result
            else:
                setattr(detail, name, result)
        return detail

    async def refresh(self) -> None:
        """Drop every cached entry; the next request reloads from the API."""
        await self.cache.invalidate_all()
