from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Iterable, Sequence

from config import SearchConfig
from services.ingestion import RepositorySnapshot, SnapshotFile

# Shaped for JavaScript-family sources. Other languages are matched only
# where their syntax happens to look similar.
_PATTERNS: dict[str, re.Pattern[str]] = {
    "function": re.compile(
        r"(?:function\s+|const\s+\w+\s*=\s*(?:async\s+)?(?:\([^)]*\)\s*=>\s*|function)"
        r"|\w+\s*\([^)]*\)\s*\{)",
        re.IGNORECASE,
    ),
    "class": re.compile(r"class\s+\w+", re.IGNORECASE),
    "import": re.compile(r"(?:import|require)\s*.*?['\"`]", re.IGNORECASE),
    "export": re.compile(
        r"export\s+(?:default\s+)?(?:function|class|const|let|var)\s+\w+", re.IGNORECASE
    ),
}


@dataclass(frozen=True)
class ContextLine:
    line_number: int
    content: str
    is_match: bool

    def to_dict(self) -> dict[str, Any]:
        return {"lineNumber": self.line_number, "content": self.content, "isMatch": self.is_match}


@dataclass(frozen=True)
class LineMatch:
    line_number: int
    line: str
    context: list[ContextLine]
    match_start: int
    match_length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineNumber": self.line_number,
            "line": self.line,
            "context": [line.to_dict() for line in self.context],
            "matchStart": self.match_start,
            "matchLength": self.match_length,
        }


@dataclass(frozen=True)
class FileMatches:
    path: str
    name: str
    language: str
    size: int
    matches: list[LineMatch]
    total_matches: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": {
                "path": self.path,
                "name": self.name,
                "language": self.language,
                "size": self.size,
            },
            "matches": [match.to_dict() for match in self.matches],
            "totalMatches": self.total_matches,
        }


@dataclass(frozen=True)
class SearchResults:
    results: list[FileMatches] = field(default_factory=list)
    total_matches: int = 0
    query: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "results": [result.to_dict() for result in self.results],
            "totalMatches": self.total_matches,
        }
        if self.query is not None:
            data["query"] = self.query
        return data


@dataclass(frozen=True)
class PatternMatch:
    path: str
    name: str
    language: str
    type: str
    text: str
    line_number: int
    context: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": {"path": self.path, "name": self.name, "language": self.language},
            "match": {
                "type": self.type,
                "text": self.text,
                "lineNumber": self.line_number,
                "context": self.context,
            },
        }


def search_in_files(snapshot: RepositorySnapshot, query: str, config: SearchConfig) -> SearchResults:
    """Case-insensitive substring search over every discovered file.

    Queries shorter than ``min_query_length`` return an empty result set.
    Files named like entry points or manifests rank first, then files with
    more matches.
    """
    needle = (query or "").strip().lower()
    if len(needle) < config.min_query_length:
        return SearchResults()

    results: list[FileMatches] = []
    total_matches = 0
    for repo_file in snapshot.all_files:
        lines = [line.rstrip("\r") for line in repo_file.full_content.split("\n")]
        matches: list[LineMatch] = []
        for index, line in enumerate(lines):
            start = line.lower().find(needle)
            if start < 0:
                continue
            matches.append(
                LineMatch(
                    line_number=index + 1,
                    line=line.strip(),
                    context=get_context_lines(lines, index, config.context_lines),
                    match_start=start,
                    match_length=len(needle),
                )
            )
        if not matches:
            continue
        total_matches += len(matches)
        results.append(
            FileMatches(
                path=repo_file.path,
                name=repo_file.name,
                language=_language(repo_file),
                size=repo_file.size,
                matches=matches[: config.max_matches_per_file],
                total_matches=len(matches),
            )
        )

    results.sort(
        key=lambda result: (
            0 if is_important_file(result.name, config.important_names) else 1,
            -result.total_matches,
        )
    )
    return SearchResults(
        results=results[: config.max_files],
        total_matches=total_matches,
        query=needle,
    )


def get_context_lines(lines: Sequence[str], center: int, size: int = 2) -> list[ContextLine]:
    start = max(0, center - size)
    end = min(len(lines), center + size + 1)
    return [
        ContextLine(line_number=index + 1, content=lines[index], is_match=index == center)
        for index in range(start, end)
    ]


def is_important_file(name: str, important_names: Iterable[str]) -> bool:
    lowered = name.lower()
    return any(important.lower() in lowered for important in important_names)


def search_patterns(snapshot: RepositorySnapshot, query: str, config: SearchConfig) -> list[PatternMatch]:
    """Heuristic grep for function, class, import and export constructs.

    This is a lexical scan, not a parse: it is tuned for JavaScript-like
    syntax and will miss or mislabel constructs in other languages.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return []
    results: list[PatternMatch] = []
    for repo_file in snapshot.all_files:
        content = repo_file.full_content
        lines = content.split("\n")
        for pattern_name, pattern in _PATTERNS.items():
            for match in pattern.finditer(content):
                text = match.group(0)
                if needle not in text.lower():
                    continue
                line_number = content.count("\n", 0, match.start()) + 1
                results.append(
                    PatternMatch(
                        path=repo_file.path,
                        name=repo_file.name,
                        language=_language(repo_file),
                        type=pattern_name,
                        text=text.strip(),
                        line_number=line_number,
                        context=lines[line_number - 1].strip(),
                    )
                )
                if len(results) >= config.max_pattern_results:
                    return results
    return results


def _language(repo_file: SnapshotFile) -> str:
    return getattr(repo_file, "language", None) or "text"
