from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_IDENTITY = "invalid_identity"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    REPOSITORY_NOT_FOUND = "repository_not_found"
    SIZE_LIMIT_EXCEEDED = "size_limit_exceeded"
    NOT_YET_ANALYZED = "not_yet_analyzed"
    RATE_LIMITED = "rate_limited"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_IDENTITY: 400,
    ErrorKind.REPOSITORY_NOT_FOUND: 404,
    ErrorKind.NOT_YET_ANALYZED: 409,
    ErrorKind.SIZE_LIMIT_EXCEEDED: 413,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 502,
}


class RepoError(ValueError):
    """Domain failure carrying an ErrorKind for the request boundary."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": self.kind.value}
