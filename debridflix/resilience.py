"""Payload shape guards for loosely typed JSON APIs."""

from __future__ import annotations

UNEXPECTED_SHAPE_HINT = "unexpected API payload"


def _shape_error(context: str, value: object) -> ValueError:
    return ValueError(f"{context} has unexpected type '{type(value).__name__}' ({UNEXPECTED_SHAPE_HINT})")


def expect_dict(value: object, context: str) -> dict:
    if not isinstance(value, dict):
        raise _shape_error(context, value)
    return value


def optional_dict(container: dict, key: str, context: str) -> dict:
    """``container[key]`` as a dict; missing or null reads as empty."""
    value = container.get(key)
    if value is None:
        return {}
    return expect_dict(value, f"{context}.{key}")


def optional_list(container: dict, key: str, context: str) -> list:
    value = container.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise _shape_error(f"{context}.{key}", value)
    return value


def optional_list_of_dicts(container: dict, key: str, context: str) -> list[dict]:
    return [
        expect_dict(value, f"{context}.{key}[{idx}]")
        for idx, value in enumerate(optional_list(container, key, context))
    ]


def data_payload(payload: object, context: str) -> dict:
    """Return the ``data`` object of a ``{"data": {...}}`` envelope."""
    return optional_dict(expect_dict(payload, f"{context} payload"), "data", context)


def as_int(value: object) -> int:
    """Lenient integer read: numbers, digit strings (commas allowed), else 0."""
    if isinstance(value, (bool, int, float)):
        return int(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if cleaned.isdigit():
            return int(cleaned)
    return 0
