from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from flask import Flask, Response, jsonify, request

from config import AppConfig
from llm.interface import chat_with_repo
from services.ingestion import RepositoryService
from services.search import search_in_files, search_patterns

_LOGGER = logging.getLogger(__name__)


def register_routes(app: Flask) -> None:
    @app.post("/api/analyze")
    def analyze_repo() -> tuple[Response, int]:
        data = _require_json(request.get_json(silent=True))
        repo_url = _require_field(data, "repoUrl")
        refresh = bool(data.get("refresh", False))
        snapshot = _service(app).analyze(repo_url, refresh=refresh)
        return jsonify({"success": True, **snapshot.to_summary()}), 200

    @app.post("/api/chat")
    def chat() -> tuple[Response, int]:
        data = _require_json(request.get_json(silent=True))
        repo_url = _require_field(data, "repoUrl")
        question = _require_field(data, "question")
        history = data.get("conversationHistory") or []
        if not isinstance(history, list):
            raise ValueError("conversationHistory must be a list.")
        config: AppConfig = app.config["APP_CONFIG"]
        snapshot = _service(app).require_snapshot(repo_url)
        _LOGGER.info("Chat question for %s", snapshot.identity)
        result = chat_with_repo(snapshot, question, config.llm, history=history)
        return (
            jsonify(
                {
                    "success": True,
                    "answer": result.answer,
                    "model": result.model,
                    "filesAnalyzed": result.files_used,
                    "repoInfo": snapshot.repo_info.to_dict(),
                }
            ),
            200,
        )

    @app.post("/api/search")
    def search() -> tuple[Response, int]:
        data = _require_json(request.get_json(silent=True))
        repo_url = _require_field(data, "repoUrl")
        query = _require_text(data, "query")
        config: AppConfig = app.config["APP_CONFIG"]
        snapshot = _service(app).require_snapshot(repo_url)
        return jsonify(search_in_files(snapshot, query, config.search).to_dict()), 200

    @app.post("/api/search/patterns")
    def search_code_patterns() -> tuple[Response, int]:
        data = _require_json(request.get_json(silent=True))
        repo_url = _require_field(data, "repoUrl")
        query = _require_text(data, "query")
        config: AppConfig = app.config["APP_CONFIG"]
        snapshot = _service(app).require_snapshot(repo_url)
        matches = search_patterns(snapshot, query, config.search)
        return jsonify({"results": [match.to_dict() for match in matches]}), 200

    @app.get("/api/repos")
    def cached_repos() -> tuple[Response, int]:
        return jsonify({"repos": _service(app).cached_repositories()}), 200

    @app.get("/api/health")
    def health() -> tuple[Response, int]:
        timestamp = datetime.now(tz=timezone.utc).isoformat()
        return jsonify({"status": "ok", "timestamp": timestamp}), 200


def _service(app: Flask) -> RepositoryService:
    return app.config["REPO_SERVICE"]


def _require_json(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("JSON body required.")
    return data


def _require_field(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing or invalid field: {field}")
    return value.strip()


def _require_text(data: dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise ValueError(f"Missing or invalid field: {field}")
    return value
