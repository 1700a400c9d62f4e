from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
import re
import threading
import time
from typing import Any, Mapping, Sequence

import requests

from config import LlmConfig
from llm.module import build_chat_prompt, validate_llm_response
from services.ingestion import RepositorySnapshot

_LOGGER = logging.getLogger(__name__)
_LAST_CALL_TS = 0.0
_RATE_LOCK = threading.Lock()
_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]{2,}")


@dataclass(frozen=True)
class ChatAnswer:
    answer: str
    model: str
    files_used: list[str] = field(default_factory=list)


def chat_with_repo(
    snapshot: RepositorySnapshot,
    question: str,
    config: LlmConfig,
    history: Sequence[Mapping[str, Any]] | None = None,
) -> ChatAnswer:
    if not question.strip():
        raise ValueError("Question must not be empty.")
    prompt = build_chat_prompt(snapshot, question, history or [], config)

    api_key = _get_api_key(config)
    if not api_key:
        _LOGGER.info("LLM API key missing; using fallback answer.")
        return _fallback_answer(snapshot, question)

    response = _call_llm(prompt["messages"], prompt["response_schema"], api_key, config)
    if response is None:
        return _fallback_answer(snapshot, question)
    answer = str(response.get("answer", "")).strip()
    if not answer:
        return _fallback_answer(snapshot, question)
    return ChatAnswer(answer=answer, model=config.model, files_used=prompt["files"])


def _call_llm(
    messages: list[dict[str, str]],
    response_schema: dict[str, Any],
    api_key: str,
    config: LlmConfig,
) -> dict[str, Any] | None:
    payload: dict[str, Any] = {
        "model": config.model,
        "messages": messages,
        "temperature": config.temperature,
        "response_format": {"type": "json_object"},
    }
    if config.max_output_tokens is not None:
        payload["max_completion_tokens"] = config.max_output_tokens

    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    url = f"{config.api_base.rstrip('/')}/chat/completions"
    backoff = config.retry_backoff_seconds
    max_retries = config.max_retries

    for attempt in range(max_retries + 1):
        _respect_rate_limit(config)
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=config.timeout_seconds)
        except requests.RequestException as exc:
            _LOGGER.warning("LLM request failed: %s", exc)
            if attempt >= max_retries:
                return None
            time.sleep(backoff * (attempt + 1))
            continue

        if response.status_code in (429, 500, 502, 503, 504):
            _LOGGER.warning("LLM response status %s", response.status_code)
            if attempt >= max_retries:
                return None
            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                wait = float(retry_after) if retry_after else backoff * (attempt + 1)
                _LOGGER.info("Rate limited; waiting %.1fs before retry.", wait)
            else:
                wait = backoff * (attempt + 1)
            time.sleep(wait)
            continue

        if response.status_code >= 400:
            _LOGGER.error("LLM error status %s: %s", response.status_code, response.text)
            return None

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            _LOGGER.warning("LLM response parse failed: %s", exc)
            if attempt >= max_retries:
                return None
            time.sleep(backoff * (attempt + 1))
            continue

        validation = validate_llm_response(parsed, response_schema)
        if not validation["ok"]:
            _LOGGER.warning("LLM schema validation failed: %s", validation["errors"])
            if attempt >= max_retries:
                return None
            time.sleep(backoff * (attempt + 1))
            continue

        return validation["data"]
    return None


def _fallback_answer(snapshot: RepositorySnapshot, question: str) -> ChatAnswer:
    words = {word.lower() for word in _WORD.findall(question)}
    scored: list[tuple[int, int, str]] = []
    for index, code_file in enumerate(snapshot.code_files):
        haystack = f"{code_file.path}\n{code_file.content}".lower()
        score = sum(haystack.count(word) for word in words)
        if score:
            scored.append((-score, index, code_file.path))
    scored.sort()
    paths = [path for _, _, path in scored[:3]] or [f.path for f in snapshot.code_files[:3]]
    if paths:
        answer = (
            "The language model is unavailable right now. "
            f"The files most related to your question are: {', '.join(paths)}."
        )
    else:
        answer = "The language model is unavailable right now and no source files were found."
    return ChatAnswer(answer=answer, model="fallback", files_used=paths)


def _get_api_key(config: LlmConfig) -> str | None:
    if config.provider == "gemini":
        return os.environ.get("GEMINI_API_KEY")
    if config.provider == "openai":
        return os.environ.get("OPENAI_API_KEY")
    _LOGGER.warning("Unsupported LLM provider: %s", config.provider)
    return None


def _respect_rate_limit(config: LlmConfig) -> None:
    global _LAST_CALL_TS
    rpm = config.rate_limit_per_minute
    if rpm <= 0:
        return
    min_interval = 60.0 / rpm
    with _RATE_LOCK:
        elapsed = time.monotonic() - _LAST_CALL_TS
        if elapsed < min_interval:
            time.sleep(min_interval - elapsed)
        _LAST_CALL_TS = time.monotonic()
