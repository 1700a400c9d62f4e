from __future__ import annotations

import logging
import os
from typing import Callable

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS

from api.routes import register_routes
from config import AppConfig, load_config
from services.cache import SnapshotCache
from services.errors import RepoError
from services.github import GitHubClient
from services.ingestion import RepositoryService

_LOGGER = logging.getLogger(__name__)


def create_app(
    app_config: AppConfig | None = None,
    cache: SnapshotCache | None = None,
    client_factory: Callable[[], GitHubClient] | None = None,
) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app_config = app_config or load_config()
    logging.basicConfig(
        level=getattr(logging, app_config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    CORS(app, origins=app_config.cors_allowed_origins or "*")
    cache = cache or SnapshotCache(app_config.cache.capacity)
    token = os.getenv("GITHUB_TOKEN", "").strip() or None
    if token is None:
        _LOGGER.info("GITHUB_TOKEN not set; using unauthenticated GitHub API limits.")
    app.config["APP_CONFIG"] = app_config
    app.config["SNAPSHOT_CACHE"] = cache
    app.config["REPO_SERVICE"] = RepositoryService(
        app_config, cache, client_factory=client_factory, token=token
    )
    register_routes(app)

    @app.errorhandler(RepoError)
    def handle_repo_error(err: RepoError):
        _LOGGER.warning("Request failed (%s): %s", err.kind.value, err.message)
        return jsonify(err.to_dict()), err.http_status

    @app.errorhandler(ValueError)
    def handle_value_error(err: ValueError):
        return jsonify({"error": str(err)}), 400

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "3001")), debug=True)
