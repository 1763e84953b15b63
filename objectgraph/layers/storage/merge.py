"""
Structural patch merge.

Applied by the storage engine to every upsert of a row that may already
exist, and used directly for partial-field updates such as relationship
back-propagation:
- arrays: union of unique elements, existing order first
- maps: recursive merge key by key
- scalars (and mismatched shapes): incoming value wins
"""

from typing import Any, Iterable, List


def merge_structural(existing: Any, incoming: Any, overwrite_fields: Iterable[str] = (),
                     _path: str = "") -> Any:
    """
    Merge ``incoming`` into ``existing`` without mutating either.

    ``overwrite_fields`` lists dotted paths (e.g. ``"embedding"`` or
    ``"metadata.tags"``) whose incoming value replaces the existing one
    wholesale.
    """
    overwrite_fields = tuple(overwrite_fields)
    if _path and _path in overwrite_fields:
        return incoming

    if isinstance(existing, list) and isinstance(incoming, list):
        return _union(existing, incoming)

    if isinstance(existing, dict) and isinstance(incoming, dict):
        merged = dict(existing)
        for key, value in incoming.items():
            path = f"{_path}.{key}" if _path else key
            merged[key] = merge_structural(existing.get(key), value, overwrite_fields, path)
        return merged

    return incoming


def _union(existing: List[Any], incoming: List[Any]) -> List[Any]:
    # JSON values may be unhashable (maps, lists), so membership is by equality
    result: List[Any] = []
    for item in list(existing) + list(incoming):
        if item not in result:
            result.append(item)
    return result
