from __future__ import annotations

from typing import Any, Iterable


_MODEL_NAME_MAPPING = {
    "user_report": "user",
    "users_segment": "segment",
}


def get_handler_name(subject: str | None) -> str:
    parts = str(subject or "").split(":")
    model_name = parts[0]
    action = parts[1] if len(parts) > 1 else None
    model = _MODEL_NAME_MAPPING.get(model_name, model_name)
    return ":".join(part for part in (model, action) if part)


def first_query_value(value: str | Iterable[str] | None) -> str | None:
    """Collapse a possibly multi-valued query parameter to its first value, trimmed."""
    if value is None:
        return None
    if not isinstance(value, str):
        values = list(value)
        if not values:
            return None
        value = values[0]
        if not isinstance(value, str):
            return None
    return value.strip()


def group_traits(user: dict[str, Any]) -> dict[str, Any]:
    grouped: dict[str, Any] = {}
    for key, value in user.items():
        dest = str(key)
        if dest.startswith("traits_"):
            rest = dest[len("traits_"):]
            dest = rest if "/" in rest else f"traits/{rest}"
        _set_path(grouped, dest.split("/"), value)
    return grouped


def _set_path(target: dict[str, Any], path: list[str], value: Any) -> None:
    node = target
    for segment in path[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[path[-1]] = value
