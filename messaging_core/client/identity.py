from __future__ import annotations

from typing import Mapping


def as_id(value: object) -> str | None:
    """Canonical string id for a user or message reference.

    References arrive as bare ids (str or int), as embedded objects carrying
    ``_id`` or ``id``, or as model instances with an ``id`` attribute.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Mapping):
        for key in ("_id", "id"):
            candidate = as_id(value.get(key))
            if candidate is not None:
                return candidate
        return None
    return as_id(getattr(value, "id", None))


def same_id(left: object, right: object) -> bool:
    left_id = as_id(left)
    return left_id is not None and left_id == as_id(right)
