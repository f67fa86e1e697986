"""Shared parsing helpers for config and runtime value normalization."""

from __future__ import annotations


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_port(value: object, field_name: str) -> int:
    """Parse a TCP port number in the range 1-65535.

    Raises:
        ValueError: If the value is not an integer port.
    """

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be a port number between 1 and 65535.")
    try:
        port = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(
            f"`{field_name}` must be a port number between 1 and 65535."
        ) from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"`{field_name}` must be a port number between 1 and 65535.")
    return port
