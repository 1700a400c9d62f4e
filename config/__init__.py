from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class GitHubConfig:
    api_base: str
    timeout_seconds: float
    user_agent: str
    max_file_bytes: int
    rate_limit_warn_threshold: int


@dataclass(frozen=True)
class WalkerConfig:
    max_depth: int
    max_entries_per_dir: int
    max_code_file_bytes: int
    code_content_chars: int
    important_content_chars: int
    max_workers: int
    code_extensions: list[str]
    important_files: list[str]
    excluded_dirs: list[str]
    allowed_dirs: list[str]
    entry_point_keywords: list[str]
    max_code_files: int


@dataclass(frozen=True)
class CacheConfig:
    capacity: int


@dataclass(frozen=True)
class SearchConfig:
    min_query_length: int
    context_lines: int
    max_matches_per_file: int
    max_files: int
    max_pattern_results: int
    important_names: list[str]


@dataclass(frozen=True)
class LlmConfig:
    provider: str
    api_base: str
    model: str
    temperature: float
    max_output_tokens: int | None
    timeout_seconds: float
    max_retries: int
    retry_backoff_seconds: float
    rate_limit_per_minute: float
    max_context_files: int
    important_excerpt_chars: int
    max_history_turns: int


@dataclass(frozen=True)
class AppConfig:
    github: GitHubConfig
    walker: WalkerConfig
    cache: CacheConfig
    search: SearchConfig
    llm: LlmConfig
    cors_allowed_origins: list[str]
    log_level: str


_DEFAULT_CODE_EXTENSIONS = [
    ".js",
    ".ts",
    ".tsx",
    ".jsx",
    ".py",
    ".java",
    ".cpp",
    ".c",
    ".go",
    ".rs",
    ".php",
    ".rb",
    ".swift",
    ".kt",
    ".vue",
    ".svelte",
]

_DEFAULT_IMPORTANT_FILES = [
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "pom.xml",
    "build.gradle",
    "Dockerfile",
    "docker-compose.yml",
    ".env.example",
    "README.md",
    "CHANGELOG.md",
    "CONTRIBUTING.md",
    "docs.md",
]

_DEFAULT_EXCLUDED_DIRS = [
    "node_modules",
    "dist",
    "build",
    "target",
    "__pycache__",
    "vendor",
    ".git",
]

_DEFAULT_ALLOWED_DIRS = [
    "src",
    "lib",
    "app",
    "components",
    "utils",
    "services",
    "controllers",
    "models",
    "routes",
    "middleware",
    "config",
]

_DEFAULT_IMPORTANT_NAMES = [
    "index.js",
    "main.js",
    "app.js",
    "server.js",
    "package.json",
    "readme.md",
    "config.js",
]


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a mapping, got {type(data)}")
    return data


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping.")
    return value


def load_config(config_path: Path | None = None) -> AppConfig:
    path = config_path or Path(__file__).parent / "config.yaml"
    raw = _read_yaml(path)
    github = _section(raw, "github")
    walker = _section(raw, "walker")
    cache = _section(raw, "cache")
    search = _section(raw, "search")
    llm = _section(raw, "llm")
    logging_cfg = _section(raw, "logging")
    max_output_tokens = llm.get("max_output_tokens")
    return AppConfig(
        github=GitHubConfig(
            api_base=str(github.get("api_base", "https://api.github.com")),
            timeout_seconds=float(github.get("timeout_seconds", 10)),
            user_agent=str(github.get("user_agent", "repochat")),
            max_file_bytes=int(github.get("max_file_bytes", 200_000)),
            rate_limit_warn_threshold=int(github.get("rate_limit_warn_threshold", 10)),
        ),
        walker=WalkerConfig(
            max_depth=int(walker.get("max_depth", 3)),
            max_entries_per_dir=int(walker.get("max_entries_per_dir", 60)),
            max_code_file_bytes=int(walker.get("max_code_file_bytes", 300_000)),
            code_content_chars=int(walker.get("code_content_chars", 20_000)),
            important_content_chars=int(walker.get("important_content_chars", 8_000)),
            max_workers=int(walker.get("max_workers", 4)),
            code_extensions=list(walker.get("code_extensions", _DEFAULT_CODE_EXTENSIONS)),
            important_files=list(walker.get("important_files", _DEFAULT_IMPORTANT_FILES)),
            excluded_dirs=list(walker.get("excluded_dirs", _DEFAULT_EXCLUDED_DIRS)),
            allowed_dirs=list(walker.get("allowed_dirs", _DEFAULT_ALLOWED_DIRS)),
            entry_point_keywords=list(
                walker.get("entry_point_keywords", ["index", "main", "app", "server", "router"])
            ),
            max_code_files=int(walker.get("max_code_files", 25)),
        ),
        cache=CacheConfig(capacity=int(cache.get("capacity", 64))),
        search=SearchConfig(
            min_query_length=int(search.get("min_query_length", 2)),
            context_lines=int(search.get("context_lines", 2)),
            max_matches_per_file=int(search.get("max_matches_per_file", 5)),
            max_files=int(search.get("max_files", 10)),
            max_pattern_results=int(search.get("max_pattern_results", 15)),
            important_names=list(search.get("important_names", _DEFAULT_IMPORTANT_NAMES)),
        ),
        llm=LlmConfig(
            provider=str(llm.get("provider", "openai")),
            api_base=str(llm.get("api_base", "https://api.openai.com/v1")),
            model=str(llm.get("model", "gpt-4o-mini")),
            temperature=float(llm.get("temperature", 0.7)),
            max_output_tokens=int(max_output_tokens) if max_output_tokens is not None else None,
            timeout_seconds=float(llm.get("timeout_seconds", 30.0)),
            max_retries=int(llm.get("max_retries", 2)),
            retry_backoff_seconds=float(llm.get("retry_backoff_seconds", 1.0)),
            rate_limit_per_minute=float(llm.get("rate_limit_per_minute", 0)),
            max_context_files=int(llm.get("max_context_files", 15)),
            important_excerpt_chars=int(llm.get("important_excerpt_chars", 3_000)),
            max_history_turns=int(llm.get("max_history_turns", 10)),
        ),
        cors_allowed_origins=list(raw.get("cors_allowed_origins", [])),
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
    )
