"""
Utility helper functions for safe payload handling.
"""
from typing import Any, Dict, List, Optional


def safe_str(value: Any, default: str = "") -> str:
    """
    Safely convert value to string, handling None.

    Args:
        value: Any value to convert
        default: Default string if value is None

    Returns:
        String representation or default
    """
    if value is None:
        return default
    return str(value)


def safe_lower(value: Any) -> str:
    """Lowercase a value, treating None as an empty string."""
    if value is None:
        return ""
    return str(value).lower()


def safe_int(value: Any, default: int = 0) -> int:
    """
    Safely convert value to int, handling None and invalid values.

    Args:
        value: Any value to convert
        default: Default int if conversion fails

    Returns:
        Integer or default
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def safe_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def safe_list(value: Any) -> List[Any]:
    """Return value if it is a list, otherwise an empty list."""
    return value if isinstance(value, list) else []


def first_present(raw: Dict[str, Any], *names: str) -> Optional[Any]:
    """
    Return the first non-None field among ``names``.

    Payloads arrive both in camelCase and in the upstream API's snake_case,
    e.g. ``first_present(repo, "fullName", "full_name")``.
    """
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def rendered_text(value: Any) -> str:
    """Unwrap WordPress ``{"rendered": "..."}`` fields to plain strings."""
    if isinstance(value, dict):
        return safe_str(value.get("rendered"))
    return safe_str(value)
