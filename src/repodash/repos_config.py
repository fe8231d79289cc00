"""
Dashboard repository list.

Reads the ``repositories`` list from a YAML file:

    repositories:
      - owner: acme
        name: widget
        branch: develop   # optional, defaults to main

A missing or unreadable file falls back to DEFAULT_REPOSITORIES so the
dashboard still renders something.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from repodash.exceptions import ConfigurationError
from repodash.logging import get_logger
from repodash.types import DEFAULT_BRANCH, RepoRef

logger = get_logger(__name__)

DEFAULT_REPOSITORIES: tuple[RepoRef, ...] = (
    RepoRef(owner="huanhuan0812", name="classtools", branch=DEFAULT_BRANCH),
)


def parse_repositories(data: Any) -> list[RepoRef]:
    """Convert the parsed YAML document into RepoRefs.

    Raises:
        ConfigurationError: If the document or an entry is malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get("repositories"), list):
        raise ConfigurationError("Expected a 'repositories' list")

    repos: list[RepoRef] = []
    for index, item in enumerate(data["repositories"]):
        if isinstance(item, str):
            try:
                repos.append(RepoRef.parse(item, branch=DEFAULT_BRANCH))
            except ValueError as e:
                raise ConfigurationError(str(e), context={"index": index}) from e
            continue
        if not isinstance(item, dict) or not item.get("owner") or not item.get("name"):
            raise ConfigurationError(
                "Repository entry needs owner and name",
                context={"index": index, "entry": item},
            )
        repos.append(
            RepoRef(
                owner=str(item["owner"]),
                name=str(item["name"]),
                branch=str(item.get("branch") or DEFAULT_BRANCH),
            )
        )
    return repos


def load_repositories(path: str | Path) -> list[RepoRef]:
    """Load the configured repositories, falling back to the defaults.

    Raises:
        ConfigurationError: If the file parses but its content is invalid.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load repositories config", path=str(path), error=str(e))
        return list(DEFAULT_REPOSITORIES)

    repos = parse_repositories(data)
    logger.info("Loaded repositories config", path=str(path), count=len(repos))
    return repos
