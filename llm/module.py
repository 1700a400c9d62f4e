from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from config import LlmConfig
from services.ingestion import RepositorySnapshot

_ROLE_LABELS = {"user": "Human", "bot": "You", "assistant": "You"}


@lru_cache
def _load_prompts() -> dict[str, Any]:
    path = Path(__file__).resolve().parents[1] / "config" / "prompts.yaml"
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise ValueError("prompts.yaml must be a mapping.")
    return data


def build_chat_prompt(
    snapshot: RepositorySnapshot,
    question: str,
    history: Sequence[Mapping[str, Any]],
    config: LlmConfig,
):
    prompts = _load_prompts()
    system_prompt, user_template = _extract_prompt_parts(prompts.get("repo_chat", {}))
    context_files = snapshot.code_files[: config.max_context_files]
    user_content = user_template.format(
        repo_header=_format_repo_header(snapshot),
        files=_format_files(snapshot, context_files, config.important_excerpt_chars),
        conversation=format_conversation(history, config.max_history_turns),
        question=question.strip(),
    )
    messages = [
        {"role": "system", "content": system_prompt.strip()},
        {"role": "user", "content": user_content.strip()},
    ]
    return {
        "messages": messages,
        "response_schema": _chat_schema(),
        "files": [code_file.path for code_file in context_files],
    }


def format_conversation(history: Sequence[Mapping[str, Any]], max_turns: int) -> str:
    turns: list[str] = []
    for message in history:
        if not isinstance(message, Mapping):
            continue
        label = _ROLE_LABELS.get(str(message.get("type") or message.get("role") or ""))
        content = str(message.get("content") or "").strip()
        if label and content:
            turns.append(f"{label}: {content}")
    if max_turns > 0:
        turns = turns[-max_turns:]
    if not turns:
        return ""
    return "\nRecent conversation:\n" + "\n".join(turns) + "\n"


def validate_llm_response(response: Any, response_schema: Mapping[str, Any]):
    errors: list[str] = []
    data = _validate_node(response, response_schema, path="$", errors=errors)
    return {"ok": not errors, "data": data, "errors": errors}


def _extract_prompt_parts(prompt_cfg: Any) -> tuple[str, str]:
    if isinstance(prompt_cfg, str):
        return prompt_cfg, "{files}\n\nQuestion: {question}"
    if isinstance(prompt_cfg, dict):
        return str(prompt_cfg.get("system", "")), str(prompt_cfg.get("user_template", ""))
    return "", "{files}\n\nQuestion: {question}"


def _format_repo_header(snapshot: RepositorySnapshot) -> str:
    info = snapshot.repo_info
    lines = [f"Repository: {info.name}"]
    if info.description:
        lines.append(f"Description: {info.description}")
    lines.append(f"Main Language: {info.language or 'unknown'}")
    if info.topics:
        lines.append(f"Topics: {', '.join(info.topics)}")
    return "\n".join(lines)


def _format_files(snapshot: RepositorySnapshot, context_files, excerpt_chars: int) -> str:
    blocks = [
        f"=== {code_file.path} ({code_file.language}) ===\n{code_file.content}"
        for code_file in context_files
    ]
    blocks.extend(
        f"=== {important.name} ===\n{important.content[:excerpt_chars]}"
        for important in snapshot.important_files
    )
    return "\n\n".join(blocks)


def _chat_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "required": ["answer"],
        "properties": {"answer": {"type": "string"}},
    }


def _validate_node(value: Any, schema: Mapping[str, Any], path: str, errors: list[str]) -> Any:
    schema_type = schema.get("type")
    if schema_type == "object":
        if not isinstance(value, dict):
            errors.append(f"{path} expected object")
            return {}
        result: dict[str, Any] = {}
        for key in schema.get("required", []):
            if key not in value:
                errors.append(f"{path}.{key} is required")
        for key, prop_schema in schema.get("properties", {}).items():
            if key in value:
                result[key] = _validate_node(value[key], prop_schema, f"{path}.{key}", errors)
        return result
    if schema_type == "string":
        if isinstance(value, str):
            return value
        errors.append(f"{path} expected string")
        return ""
    return value
