from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging

from config import WalkerConfig
from services.github import (
    DirectoryEntry,
    DirectoryListing,
    FetchResult,
    GitHubClient,
    RepoInfo,
    RepositoryIdentity,
)

_LOGGER = logging.getLogger(__name__)

_LANGUAGE_BY_EXTENSION = {
    "js": "JavaScript",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "jsx": "JavaScript",
    "py": "Python",
    "java": "Java",
    "cpp": "C++",
    "c": "C",
    "go": "Go",
    "rs": "Rust",
    "php": "PHP",
    "rb": "Ruby",
    "swift": "Swift",
    "kt": "Kotlin",
    "vue": "Vue",
    "svelte": "Svelte",
}


@dataclass(frozen=True)
class CodeFile:
    path: str
    name: str
    content: str
    full_content: str
    language: str
    size: int


@dataclass(frozen=True)
class ImportantFile:
    path: str
    name: str
    content: str
    full_content: str
    size: int = 0
    type: str = "config"


@dataclass(frozen=True)
class WalkResult:
    repo_info: RepoInfo
    code_files: tuple[CodeFile, ...]
    important_files: tuple[ImportantFile, ...]


@dataclass(frozen=True)
class _PendingDir:
    path: str
    depth: int
    order: tuple[int, ...]


@dataclass(frozen=True)
class _Candidate:
    entry: DirectoryEntry
    order: tuple[int, ...]
    is_code: bool
    is_important: bool


class RepositoryWalker:
    """Bounded traversal of a remote repository tree.

    Directories are listed one depth level at a time; the listings of a level
    and the file fetches they produce fan out over a bounded thread pool.
    Every discovered file carries the index path of its position in the tree
    and the output is sorted by it, so results come back in depth-first
    listing order no matter which request finishes first.

    Only the first ``max_entries_per_dir`` entries of each listing are looked
    at. Very large directories are therefore covered partially.
    """

    def __init__(self, client: GitHubClient, config: WalkerConfig) -> None:
        self._client = client
        self._config = config
        self._code_extensions = tuple(ext.lower() for ext in config.code_extensions)
        self._important_names = {name.lower() for name in config.important_files}
        self._excluded_dirs = set(config.excluded_dirs)
        self._allowed_dirs = {name.lower() for name in config.allowed_dirs}

    def walk(self, identity: RepositoryIdentity) -> WalkResult:
        repo_info = self._client.fetch_repo_info(identity)
        code_files: list[tuple[tuple[int, ...], CodeFile]] = []
        important_files: list[tuple[tuple[int, ...], ImportantFile]] = []
        frontier = [_PendingDir(path="", depth=0, order=())]
        with ThreadPoolExecutor(max_workers=max(1, self._config.max_workers)) as pool:
            while frontier:
                listings = list(
                    pool.map(lambda d: self._client.fetch_directory(identity, d.path), frontier)
                )
                candidates, next_frontier = self._classify(identity, frontier, listings)
                results = list(
                    pool.map(lambda c: self._client.fetch_file(identity, c.entry.path), candidates)
                )
                for candidate, result in zip(candidates, results):
                    self._collect(identity, candidate, result, code_files, important_files)
                if next_frontier and self._client.rate_limit_remaining == 0:
                    _LOGGER.warning(
                        "GitHub rate limit quota exhausted while walking %s; skipping %d deeper directories.",
                        identity,
                        len(next_frontier),
                    )
                    break
                frontier = next_frontier
        code_files.sort(key=lambda item: item[0])
        important_files.sort(key=lambda item: item[0])
        return WalkResult(
            repo_info=repo_info,
            code_files=tuple(code_file for _, code_file in code_files),
            important_files=tuple(important for _, important in important_files),
        )

    def should_descend(self, name: str, depth: int) -> bool:
        """Whether a directory named ``name`` listed at ``depth`` is traversed."""
        if name.startswith(".") or name in self._excluded_dirs:
            return False
        if depth == 0:
            return True
        return name.lower() in self._allowed_dirs

    def _classify(
        self,
        identity: RepositoryIdentity,
        frontier: list[_PendingDir],
        listings: list[DirectoryListing],
    ) -> tuple[list[_Candidate], list[_PendingDir]]:
        candidates: list[_Candidate] = []
        next_frontier: list[_PendingDir] = []
        limit = self._config.max_entries_per_dir
        for pending, listing in zip(frontier, listings):
            if not listing.ok:
                _LOGGER.warning(
                    "Skipping directory %s in %s: %s",
                    pending.path or "/",
                    identity,
                    listing.error.reason if listing.error else "unknown error",
                )
                continue
            if len(listing.entries) > limit:
                _LOGGER.debug(
                    "Directory %s in %s has %d entries; considering the first %d.",
                    pending.path or "/",
                    identity,
                    len(listing.entries),
                    limit,
                )
            for index, entry in enumerate(listing.entries[:limit]):
                order = pending.order + (index,)
                if entry.type == "dir":
                    if pending.depth + 1 > self._config.max_depth:
                        continue
                    if self.should_descend(entry.name, pending.depth):
                        next_frontier.append(
                            _PendingDir(path=entry.path, depth=pending.depth + 1, order=order)
                        )
                    continue
                candidate = self._candidate(entry, order)
                if candidate is not None:
                    candidates.append(candidate)
        return candidates, next_frontier

    def _candidate(self, entry: DirectoryEntry, order: tuple[int, ...]) -> _Candidate | None:
        name = entry.name.lower()
        is_important = name in self._important_names
        is_source = name.endswith(self._code_extensions)
        is_code = is_source and entry.size < self._config.max_code_file_bytes
        if is_source and not is_code:
            _LOGGER.debug("Skipping %s: %d bytes exceeds the code file ceiling.", entry.path, entry.size)
        if not (is_important or is_code):
            return None
        return _Candidate(entry=entry, order=order, is_code=is_code, is_important=is_important)

    def _collect(
        self,
        identity: RepositoryIdentity,
        candidate: _Candidate,
        result: FetchResult,
        code_files: list[tuple[tuple[int, ...], CodeFile]],
        important_files: list[tuple[tuple[int, ...], ImportantFile]],
    ) -> None:
        entry = candidate.entry
        if not result.ok:
            _LOGGER.warning(
                "Excluding %s from %s: %s",
                entry.path,
                identity,
                result.error.reason if result.error else "no content",
            )
            return
        text = result.content or ""
        if not text:
            _LOGGER.debug("Excluding %s from %s: empty file.", entry.path, identity)
            return
        if candidate.is_important:
            important_files.append(
                (
                    candidate.order,
                    ImportantFile(
                        path=entry.path,
                        name=entry.name,
                        content=text[: self._config.important_content_chars],
                        full_content=text,
                        size=entry.size,
                    ),
                )
            )
        if candidate.is_code:
            code_files.append(
                (
                    candidate.order,
                    CodeFile(
                        path=entry.path,
                        name=entry.name,
                        content=text[: self._config.code_content_chars],
                        full_content=text,
                        language=language_for(entry.name),
                        size=entry.size,
                    ),
                )
            )


def language_for(filename: str) -> str:
    extension = filename.lower().rsplit(".", 1)[-1]
    return _LANGUAGE_BY_EXTENSION.get(extension, extension.upper())
