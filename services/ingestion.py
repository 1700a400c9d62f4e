from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Union

from config import AppConfig
from services.cache import SnapshotCache
from services.errors import ErrorKind, RepoError
from services.github import GitHubClient, RepoInfo, RepositoryIdentity, parse_repo_url
from services.prioritize import prioritize
from services.repo_ingest import CodeFile, ImportantFile, RepositoryWalker

_LOGGER = logging.getLogger(__name__)

SnapshotFile = Union[CodeFile, ImportantFile]


@dataclass(frozen=True)
class RepositorySnapshot:
    identity: RepositoryIdentity
    repo_info: RepoInfo
    code_files: tuple[CodeFile, ...]
    important_files: tuple[ImportantFile, ...]
    all_files: tuple[SnapshotFile, ...]
    total_files: int
    analyzed_at: datetime

    def to_summary(self) -> dict[str, Any]:
        return {
            "repo": self.identity.key,
            "repoInfo": self.repo_info.to_dict(),
            "filesAnalyzed": [code_file.path for code_file in self.code_files],
            "importantFiles": [important.path for important in self.important_files],
            "totalFiles": self.total_files,
            "analyzedAt": self.analyzed_at.isoformat(),
        }


def ingest_repo(
    identity: RepositoryIdentity,
    config: AppConfig,
    token: str | None = None,
    client: GitHubClient | None = None,
) -> RepositorySnapshot:
    client = client or GitHubClient(config.github, token=token)
    walker = RepositoryWalker(client, config.walker)
    walked = walker.walk(identity)
    selected = prioritize(
        walked.code_files,
        keywords=config.walker.entry_point_keywords,
        limit=config.walker.max_code_files,
    )
    _LOGGER.info(
        "Ingested %s: %d code files (%d kept), %d config/doc files",
        identity,
        len(walked.code_files),
        len(selected),
        len(walked.important_files),
    )
    # Search reads every discovered file; only the prompt context is capped.
    all_files: tuple[SnapshotFile, ...] = (*walked.code_files, *walked.important_files)
    return RepositorySnapshot(
        identity=identity,
        repo_info=walked.repo_info,
        code_files=tuple(selected),
        important_files=tuple(walked.important_files),
        all_files=all_files,
        total_files=len(walked.code_files) + len(walked.important_files),
        analyzed_at=datetime.now(tz=timezone.utc),
    )


class RepositoryService:
    """Entry point for the request layer: analysis plus cached snapshot lookup.

    Chat and search both require an explicit ``analyze`` first and raise
    ``NOT_YET_ANALYZED`` otherwise.
    """

    def __init__(
        self,
        config: AppConfig,
        cache: SnapshotCache,
        client_factory: Callable[[], GitHubClient] | None = None,
        token: str | None = None,
    ) -> None:
        self._config = config
        self._cache = cache
        self._client_factory = client_factory or (
            lambda: GitHubClient(config.github, token=token)
        )

    def analyze(self, repo_url: str, refresh: bool = False) -> RepositorySnapshot:
        identity = parse_repo_url(repo_url)
        if refresh and self._cache.invalidate(identity):
            _LOGGER.info("Refreshing cached snapshot for %s", identity)
        return self._cache.get_or_load(identity, self._load)

    def require_snapshot(self, repo_url: str) -> RepositorySnapshot:
        identity = parse_repo_url(repo_url)
        snapshot = self._cache.get(identity)
        if snapshot is None:
            raise RepoError(
                ErrorKind.NOT_YET_ANALYZED,
                f"Repository {identity} has not been analyzed yet; analyze it first.",
            )
        return snapshot

    def cached_repositories(self) -> list[str]:
        return self._cache.keys()

    def _load(self, identity: RepositoryIdentity) -> RepositorySnapshot:
        _LOGGER.info("Analyzing repository %s", identity)
        return ingest_repo(identity, self._config, client=self._client_factory())
