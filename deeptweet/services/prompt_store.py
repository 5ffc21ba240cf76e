"""Prompt catalog: dotted keys into a JSON file of ``string.Template`` strings.

The catalog is re-read whenever the file's mtime changes, so prompts can be
tuned while a long research session is running.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

from deeptweet.config import settings

DEFAULT_PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"

_cache: dict[Path, tuple[int, dict[str, Any]]] = {}


def prompts_path() -> Path:
    override = settings.prompts_path.strip()
    return Path(override) if override else DEFAULT_PROMPTS_PATH


def _catalog() -> dict[str, Any]:
    path = prompts_path()
    mtime_ns = path.stat().st_mtime_ns
    cached = _cache.get(path)
    if cached and cached[0] == mtime_ns:
        return cached[1]

    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Prompt catalog {path} must be a JSON object.")
    _cache[path] = (mtime_ns, payload)
    return payload


def _lookup(key: str) -> Any:
    node: Any = _catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    return node


def render_prompt(key: str, **values: Any) -> str:
    entry = _lookup(key)
    if not isinstance(entry, str):
        raise TypeError(f"Prompt key must map to a string: {key}")
    try:
        return Template(entry).substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc


def load_examples(key: str) -> list[dict[str, str]]:
    """Few-shot ``{"role", "content"}`` messages stored under ``key``."""
    entry = _lookup(key)
    if not isinstance(entry, list):
        raise TypeError(f"Prompt key must map to a list of messages: {key}")
    return [
        {"role": str(item["role"]), "content": str(item["content"])}
        for item in entry
        if isinstance(item, dict) and "role" in item and "content" in item
    ]


def clear_prompt_cache() -> None:
    _cache.clear()
