"""
Data fetching package.

This package handles fetching repository data:
- GitHub REST API client (the live loaders)
- RepositoryService, which routes every request through the cache
"""

from repodash.data.github_client import GitHubClient
from repodash.data.repository_service import RepoDetail, RepoOverview, RepositoryService

__all__ = [
    "GitHubClient",
    "RepoDetail",
    "RepoOverview",
    "RepositoryService",
]
