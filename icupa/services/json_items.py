from __future__ import annotations

import json
import re
from typing import Any

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _strip_code_fence(text: str) -> str:
    match = CODE_FENCE_PATTERN.search(text)
    return match.group(1).strip() if match else text.strip()


def _as_item_list(value: Any) -> list[dict[str, Any]] | None:
    if isinstance(value, dict) and isinstance(value.get("items"), list):
        value = value["items"]
    if not isinstance(value, list):
        return None
    if not all(isinstance(entry, dict) for entry in value):
        return None
    return value


def _try_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def parse_item_array(text: str | None) -> list[dict[str, Any]] | None:
    """
    Parse a model reply expected to hold a JSON array of item objects.

    Accepts a bare array, an object with an "items" array, or either one
    wrapped in a markdown code fence or surrounded by prose.
    Returns None when no such array can be recovered.
    """
    if not text or not text.strip():
        return None

    candidate = _strip_code_fence(text)
    items = _as_item_list(_try_loads(candidate))
    if items is not None:
        return items

    start = candidate.find("[")
    end = candidate.rfind("]")
    if start == -1 or end <= start:
        return None

    return _as_item_list(_try_loads(candidate[start:end + 1]))
