from __future__ import annotations

from typing import Iterable, Sequence

from services.repo_ingest import CodeFile

DEFAULT_ENTRY_POINT_KEYWORDS = ("index", "main", "app", "server", "router")


def entry_point_rank(name: str, keywords: Sequence[str] = DEFAULT_ENTRY_POINT_KEYWORDS) -> int | None:
    lowered = name.lower()
    for index, keyword in enumerate(keywords):
        if keyword.lower() in lowered:
            return index
    return None


def prioritize(
    code_files: Iterable[CodeFile],
    keywords: Sequence[str] = DEFAULT_ENTRY_POINT_KEYWORDS,
    limit: int = 25,
) -> list[CodeFile]:
    """Order files by entry-point keyword, then size, and keep the first ``limit``.

    Files matching an earlier keyword come first and keep their input order
    among themselves; files matching nothing follow, smallest first.
    """

    def sort_key(code_file: CodeFile) -> tuple[int, int, int]:
        rank = entry_point_rank(code_file.name, keywords)
        if rank is not None:
            return (0, rank, 0)
        return (1, 0, code_file.size)

    ordered = sorted(code_files, key=sort_key)
    if limit < 0:
        return ordered
    return ordered[:limit]
