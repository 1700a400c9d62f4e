from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import sys
import threading
from typing import Any

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from config import AppConfig, load_config
from services.errors import ErrorKind
from services.github import (
    DirectoryEntry,
    DirectoryListing,
    FetchError,
    FetchResult,
    RepoInfo,
    RepositoryIdentity,
)
from services.ingestion import RepositorySnapshot
from services.repo_ingest import CodeFile, ImportantFile


@dataclass(frozen=True)
class FakeFile:
    content: str
    size: int | None = None


def make_file(content: str, size: int | None = None) -> FakeFile:
    return FakeFile(content=content, size=size)


class FakeGitHubClient:
    """In-memory stand-in for GitHubClient driven by a nested dict tree.

    Dict values are directories, ``FakeFile`` or ``str`` values are files.
    Every call is recorded so tests can assert what was (not) fetched.
    """

    def __init__(
        self,
        tree: dict[str, Any],
        repo_info: RepoInfo | None = None,
        metadata_error: Exception | None = None,
        failing_paths: set[str] | None = None,
        failure_kinds: dict[str, ErrorKind] | None = None,
        rate_limit_remaining: int | None = None,
    ) -> None:
        self._tree = tree
        self._repo_info = repo_info or RepoInfo(
            name="demo",
            description="Demo repository",
            language="JavaScript",
            stars=3,
            forks=1,
            topics=["demo"],
            homepage=None,
        )
        self._metadata_error = metadata_error
        self._failing = set(failing_paths or ()) | set(failure_kinds or ())
        self._failure_kinds = failure_kinds or {}
        self.rate_limit_remaining = rate_limit_remaining
        self._lock = threading.Lock()
        self.metadata_calls = 0
        self.directory_calls: list[str] = []
        self.file_calls: list[str] = []

    def fetch_repo_info(self, identity: RepositoryIdentity) -> RepoInfo:
        with self._lock:
            self.metadata_calls += 1
        if self._metadata_error is not None:
            raise self._metadata_error
        return self._repo_info

    def fetch_directory(self, identity: RepositoryIdentity, path: str = "") -> DirectoryListing:
        with self._lock:
            self.directory_calls.append(path)
        node = self._resolve(path)
        if path in self._failing or not isinstance(node, dict):
            return DirectoryListing(error=self._error(path))
        entries = []
        for name, value in node.items():
            child = f"{path}/{name}" if path else name
            if isinstance(value, dict):
                entries.append(DirectoryEntry(name=name, type="dir", size=0, path=child))
            else:
                fake = value if isinstance(value, FakeFile) else FakeFile(str(value))
                size = fake.size if fake.size is not None else len(fake.content.encode("utf-8"))
                entries.append(DirectoryEntry(name=name, type="file", size=size, path=child))
        return DirectoryListing(entries=tuple(entries))

    def fetch_file(self, identity: RepositoryIdentity, path: str) -> FetchResult:
        with self._lock:
            self.file_calls.append(path)
        node = self._resolve(path)
        if path in self._failing or node is None or isinstance(node, dict):
            return FetchResult(error=self._error(path))
        fake = node if isinstance(node, FakeFile) else FakeFile(str(node))
        return FetchResult(content=fake.content)

    def _error(self, path: str) -> FetchError:
        return FetchError(self._failure_kinds.get(path, ErrorKind.UPSTREAM_UNAVAILABLE), "boom")

    def _resolve(self, path: str) -> Any:
        node: Any = self._tree
        for part in [p for p in path.split("/") if p]:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node


def make_snapshot(
    identity: RepositoryIdentity | None = None,
    code_files: list[CodeFile] | None = None,
    important_files: list[ImportantFile] | None = None,
) -> RepositorySnapshot:
    identity = identity or RepositoryIdentity(owner="octo", repo="demo")
    code_files = code_files or []
    important_files = important_files or []
    return RepositorySnapshot(
        identity=identity,
        repo_info=RepoInfo(
            name=identity.repo,
            description="Demo repository",
            language="JavaScript",
            stars=0,
            forks=0,
            topics=["cli", "demo"],
        ),
        code_files=tuple(code_files),
        important_files=tuple(important_files),
        all_files=(*code_files, *important_files),
        total_files=len(code_files) + len(important_files),
        analyzed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def code_file(path: str, content: str, size: int | None = None, language: str = "JavaScript") -> CodeFile:
    name = path.rsplit("/", 1)[-1]
    return CodeFile(
        path=path,
        name=name,
        content=content[:20_000],
        full_content=content,
        language=language,
        size=size if size is not None else len(content),
    )


def important_file(path: str, content: str) -> ImportantFile:
    name = path.rsplit("/", 1)[-1]
    return ImportantFile(
        path=path,
        name=name,
        content=content[:8_000],
        full_content=content,
        size=len(content),
    )


@pytest.fixture
def app_config() -> AppConfig:
    return load_config(Path(__file__).resolve().parents[1] / "config" / "config.yaml")


@pytest.fixture
def identity() -> RepositoryIdentity:
    return RepositoryIdentity(owner="octo", repo="demo")
