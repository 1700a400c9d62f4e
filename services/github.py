from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any
from urllib.parse import quote, urlparse

import requests

from config import GitHubConfig
from services.errors import ErrorKind, RepoError

_LOGGER = logging.getLogger(__name__)

_GITHUB_HOSTS = {"github.com", "www.github.com"}


@dataclass(frozen=True)
class RepositoryIdentity:
    owner: str
    repo: str

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class RepoInfo:
    name: str
    description: str | None
    language: str | None
    stars: int
    forks: int
    topics: list[str] = field(default_factory=list)
    homepage: str | None = None
    default_branch: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "topics": list(self.topics),
            "homepage": self.homepage,
        }


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    type: str
    size: int
    path: str


@dataclass(frozen=True)
class FetchError:
    kind: ErrorKind
    reason: str


@dataclass(frozen=True)
class FetchResult:
    content: str | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None


@dataclass(frozen=True)
class DirectoryListing:
    entries: tuple[DirectoryEntry, ...] = ()
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GitHubClient:
    """Thin client over the GitHub REST contents API.

    Directory and file fetches never raise: failures come back as
    ``DirectoryListing``/``FetchResult`` values carrying a ``FetchError`` so the
    caller decides whether to degrade or abort. Only ``fetch_repo_info`` raises,
    since an ingestion cannot proceed without repository metadata.
    """

    def __init__(self, config: GitHubConfig, token: str | None = None) -> None:
        self._base = config.api_base.rstrip("/")
        self._timeout = config.timeout_seconds
        self._user_agent = config.user_agent
        self._max_file_bytes = config.max_file_bytes
        self._warn_threshold = config.rate_limit_warn_threshold
        self._token = token
        self._low_budget_warned = False
        self.rate_limit_remaining: int | None = None

    def fetch_repo_info(self, identity: RepositoryIdentity) -> RepoInfo:
        try:
            resp = self._get(f"/repos/{identity.owner}/{identity.repo}")
        except requests.RequestException as exc:
            raise RepoError(
                ErrorKind.UPSTREAM_UNAVAILABLE, f"Failed to analyze repository: {exc}"
            ) from exc
        limited = _rate_limit_reason(resp, "repository metadata fetch")
        if limited:
            raise RepoError(ErrorKind.RATE_LIMITED, f"Failed to analyze repository: {limited}")
        if resp.status_code == 404:
            raise RepoError(
                ErrorKind.REPOSITORY_NOT_FOUND,
                f"Failed to analyze repository: {identity} not found or is private.",
            )
        if resp.status_code != 200:
            raise RepoError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"Failed to analyze repository: GitHub API error {resp.status_code}: "
                f"{resp.text[:300]}",
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RepoError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "Failed to analyze repository: unreadable GitHub API response.",
            ) from exc
        if not isinstance(payload, dict):
            raise RepoError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                "Failed to analyze repository: unexpected GitHub API response format.",
            )
        topics = payload.get("topics")
        return RepoInfo(
            name=str(payload.get("name") or identity.repo),
            description=payload.get("description"),
            language=payload.get("language"),
            stars=int(payload.get("stargazers_count") or 0),
            forks=int(payload.get("forks_count") or 0),
            topics=[str(topic) for topic in topics] if isinstance(topics, list) else [],
            homepage=payload.get("homepage") or None,
            default_branch=str(payload.get("default_branch", "")),
        )

    def fetch_directory(self, identity: RepositoryIdentity, path: str = "") -> DirectoryListing:
        payload, error = self._get_contents(identity, path)
        if error is not None:
            _LOGGER.debug("Error fetching directory %s in %s: %s", path or "/", identity, error.reason)
            return DirectoryListing(error=error)
        if not isinstance(payload, list):
            error = FetchError(ErrorKind.UPSTREAM_UNAVAILABLE, f"{path or '/'} is not a directory.")
            _LOGGER.debug("Error fetching directory %s in %s: %s", path or "/", identity, error.reason)
            return DirectoryListing(error=error)
        entries: list[DirectoryEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            entry_type = item.get("type")
            name = item.get("name")
            if entry_type not in {"file", "dir"} or not isinstance(name, str):
                continue
            entries.append(
                DirectoryEntry(
                    name=name,
                    type=entry_type,
                    size=int(item.get("size") or 0),
                    path=str(item.get("path") or _join(path, name)),
                )
            )
        return DirectoryListing(entries=tuple(entries))

    def fetch_file(self, identity: RepositoryIdentity, path: str) -> FetchResult:
        payload, error = self._get_contents(identity, path)
        if error is None:
            error = self._check_file_payload(payload, path)
        if error is not None:
            _LOGGER.debug("Error fetching file %s in %s: %s", path, identity, error.reason)
            return FetchResult(error=error)
        try:
            raw = base64.b64decode(payload.get("content") or "")
        except (binascii.Error, ValueError) as exc:
            error = FetchError(ErrorKind.UPSTREAM_UNAVAILABLE, f"undecodable content: {exc}")
            _LOGGER.debug("Error fetching file %s in %s: %s", path, identity, error.reason)
            return FetchResult(error=error)
        return FetchResult(content=raw.decode("utf-8", errors="replace"))

    def _check_file_payload(self, payload: Any, path: str) -> FetchError | None:
        if not isinstance(payload, dict) or payload.get("type") != "file":
            return FetchError(ErrorKind.UPSTREAM_UNAVAILABLE, f"{path} is not a file.")
        size = int(payload.get("size") or 0)
        if size >= self._max_file_bytes:
            return FetchError(
                ErrorKind.SIZE_LIMIT_EXCEEDED,
                f"{path} is {size} bytes; limit is {self._max_file_bytes}.",
            )
        if payload.get("encoding", "base64") != "base64":
            return FetchError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"{path} content is not inlined (encoding={payload.get('encoding')}).",
            )
        return None

    def _get_contents(
        self, identity: RepositoryIdentity, path: str
    ) -> tuple[Any, FetchError | None]:
        suffix = f"/{quote(path.strip('/'), safe='/')}" if path.strip("/") else ""
        try:
            resp = self._get(f"/repos/{identity.owner}/{identity.repo}/contents{suffix}")
        except requests.RequestException as exc:
            return None, FetchError(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
        limited = _rate_limit_reason(resp, f"content fetch for {path or '/'}")
        if limited:
            return None, FetchError(ErrorKind.RATE_LIMITED, limited)
        if resp.status_code == 404:
            return None, FetchError(ErrorKind.REPOSITORY_NOT_FOUND, f"{path or '/'} not found.")
        if resp.status_code != 200:
            return None, FetchError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"GitHub API error {resp.status_code}: {resp.text[:300]}",
            )
        try:
            return resp.json(), None
        except ValueError:
            return None, FetchError(ErrorKind.UPSTREAM_UNAVAILABLE, "unreadable GitHub API response.")

    def _get(self, path: str) -> requests.Response:
        url = f"{self._base}{path}"
        headers = {"Accept": "application/vnd.github+json", "User-Agent": self._user_agent}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        resp = requests.get(url, headers=headers, timeout=self._timeout)
        self._record_rate_limit(resp)
        return resp

    def _record_rate_limit(self, resp: requests.Response) -> None:
        remaining = resp.headers.get("X-RateLimit-Remaining")
        if remaining is None or not remaining.isdigit():
            return
        self.rate_limit_remaining = int(remaining)
        if self.rate_limit_remaining < self._warn_threshold and not self._low_budget_warned:
            self._low_budget_warned = True
            _LOGGER.warning(
                "GitHub rate limit budget low: %s",
                _rate_limit_details(resp) or f"remaining={remaining}",
            )


def parse_repo_url(repo_url: str) -> RepositoryIdentity:
    candidate = repo_url.strip()
    if "://" not in candidate and candidate.lower().startswith(("github.com/", "www.github.com/")):
        candidate = f"https://{candidate}"
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise RepoError(ErrorKind.INVALID_IDENTITY, "Repo URL must start with http or https.")
    if parsed.netloc.lower() not in _GITHUB_HOSTS:
        raise RepoError(ErrorKind.INVALID_IDENTITY, "Repo URL must be hosted on github.com.")
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise RepoError(ErrorKind.INVALID_IDENTITY, "Repo URL must include owner and repo name.")
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[:-4]
    if not name:
        raise RepoError(ErrorKind.INVALID_IDENTITY, "Repo URL must include owner and repo name.")
    return RepositoryIdentity(owner=owner, repo=name)


def _join(parent: str, name: str) -> str:
    parent = parent.strip("/")
    return f"{parent}/{name}" if parent else name


def _rate_limit_details(resp: requests.Response) -> str:
    remaining = resp.headers.get("X-RateLimit-Remaining")
    limit = resp.headers.get("X-RateLimit-Limit")
    reset = resp.headers.get("X-RateLimit-Reset")
    parts: list[str] = []
    if remaining is not None:
        parts.append(f"remaining={remaining}")
    if limit is not None:
        parts.append(f"limit={limit}")
    if reset and reset.isdigit():
        reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)
        parts.append(f"reset_utc={reset_at.isoformat()}")
    return " ".join(parts)


def _rate_limit_reason(resp: requests.Response, context: str) -> str | None:
    if resp.status_code not in (403, 429):
        return None
    body = (resp.text or "").lower()
    if "rate limit" not in body and resp.headers.get("X-RateLimit-Remaining") != "0":
        return None
    details = _rate_limit_details(resp)
    message = f"GitHub rate limit hit during {context}."
    return f"{message} {details}" if details else message
