"""
Policy-driven merging of a stored value with a freshly fetched one.
"""
import copy
import logging
from typing import Any, List, Optional, Tuple

from .core import ConflictResolution, MergeConfig, MergeType

logger = logging.getLogger("cache.merge")

# Fields that identify an element of a list of records, checked in order
IDENTITY_FIELDS: Tuple[str, ...] = ("id", "uuid", "slug", "key", "full_name", "name")


def merge_values(stored: Any, candidate: Any, config: Optional[MergeConfig] = None) -> Any:
    """
    Combine ``stored`` and ``candidate`` under ``config``.

    - replace: the candidate supersedes the stored value
    - merge: mappings merge key by key, lists append candidate elements that
      are not already present, scalar conflicts follow the conflict resolution
    - append: two lists concatenate without de-duplication

    Incompatible shapes (mapping vs list, container vs scalar) fall back to
    replace. The inputs are never mutated.
    """
    config = config or MergeConfig()
    if config.type is MergeType.REPLACE:
        return copy.deepcopy(candidate)
    if config.type is MergeType.APPEND:
        return _append(stored, candidate)
    return _merge(stored, candidate, config.conflict_resolution)


def identity_of(element: Any) -> Optional[Tuple[str, Any]]:
    """(field, value) of the first identity field present on a mapping element."""
    if not isinstance(element, dict):
        return None
    for name in IDENTITY_FIELDS:
        value = element.get(name)
        if value is not None and not isinstance(value, (dict, list)):
            return name, value
    return None


def _append(stored: Any, candidate: Any) -> Any:
    if isinstance(stored, list) and isinstance(candidate, list):
        return copy.deepcopy(stored) + copy.deepcopy(candidate)
    if stored is not None:
        logger.debug(f"Cannot append {type(candidate).__name__} to {type(stored).__name__}, replacing")
    return copy.deepcopy(candidate)


def _merge(stored: Any, candidate: Any, resolution: ConflictResolution) -> Any:
    if candidate is None:
        return copy.deepcopy(stored)
    if stored is None:
        return copy.deepcopy(candidate)

    if isinstance(stored, dict) and isinstance(candidate, dict):
        return _merge_objects(stored, candidate, resolution)

    if isinstance(stored, list) and isinstance(candidate, list):
        return _merge_arrays(stored, candidate, resolution)

    if isinstance(stored, (dict, list)) or isinstance(candidate, (dict, list)):
        logger.debug(
            f"Incompatible merge ({type(stored).__name__} vs {type(candidate).__name__}), replacing"
        )
        return copy.deepcopy(candidate)

    if resolution is ConflictResolution.OLDEST:
        return stored
    return candidate


def _merge_objects(stored: dict, candidate: dict, resolution: ConflictResolution) -> dict:
    result = copy.deepcopy(stored)
    for key, value in candidate.items():
        if value is None:
            continue
        if result.get(key) is None:
            result[key] = copy.deepcopy(value)
        else:
            result[key] = _merge(result[key], value, resolution)
    return result


def _merge_arrays(stored: list, candidate: list, resolution: ConflictResolution) -> list:
    result: List[Any] = copy.deepcopy(stored)
    for element in candidate:
        index = _find_element(result, element)
        if index is None:
            result.append(copy.deepcopy(element))
        elif isinstance(element, dict) and isinstance(result[index], dict):
            # Same record seen again: fold the newer fields in place
            result[index] = _merge_objects(result[index], element, resolution)
    return result


def _find_element(elements: List[Any], element: Any) -> Optional[int]:
    identity = identity_of(element)
    for index, existing in enumerate(elements):
        if identity is not None:
            if identity_of(existing) == identity:
                return index
        elif existing == element:
            return index
    return None
