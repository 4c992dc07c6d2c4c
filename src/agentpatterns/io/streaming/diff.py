"""Structural comparison of successive partial values."""

from __future__ import annotations

from typing import Any

import orjson


def same(a: Any, b: Any) -> bool:
    """Structural equality that distinguishes 1, 1.0 and true."""
    if a is b:
        return True
    try:
        return orjson.dumps(a, option=orjson.OPT_SORT_KEYS) == orjson.dumps(b, option=orjson.OPT_SORT_KEYS)
    except TypeError:
        return a == b


def regressions(prev: Any, new: Any, path: str = "$") -> list[str]:
    """List places where `new` retracts information present in `prev`.

    A field may go from absent to present, a string or list may grow, and a
    number may change (digits still arriving). Anything else is a regression:
    a field disappearing, a string that is not an extension of its previous
    value, a list that shrinks, or a change of type.
    """
    if isinstance(prev, dict):
        if not isinstance(new, dict):
            return [f"{path}: object became {type(new).__name__}"]
        found: list[str] = []
        for key, old in prev.items():
            if key not in new:
                found.append(f"{path}.{key}: removed")
            else:
                found.extend(regressions(old, new[key], f"{path}.{key}"))
        return found
    if isinstance(prev, list):
        if not isinstance(new, list):
            return [f"{path}: array became {type(new).__name__}"]
        found = [f"{path}: shrank from {len(prev)} to {len(new)} items"] if len(new) < len(prev) else []
        for i, (old, cur) in enumerate(zip(prev, new)):
            found.extend(regressions(old, cur, f"{path}[{i}]"))
        return found
    if isinstance(prev, str):
        if not isinstance(new, str):
            return [f"{path}: string became {type(new).__name__}"]
        return [] if new.startswith(prev) else [f"{path}: rewritten"]
    if isinstance(prev, bool) or isinstance(new, bool):
        return [] if type(prev) is type(new) and prev == new else [f"{path}: {prev!r} became {new!r}"]
    if isinstance(prev, (int, float)):
        return [] if isinstance(new, (int, float)) else [f"{path}: number became {type(new).__name__}"]
    return []
