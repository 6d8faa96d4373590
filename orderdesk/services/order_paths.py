# orderdesk/services/order_paths.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from orderdesk.services.order_utils import clean_str, parse_dt, to_int_pos, to_number

_MISSING = object()


def get_path(obj: Any, path: str) -> Any:
    """
    Dotted lookup that never raises: "a.b.0.c" walks dicts and list indexes.
    Returns None for any absent segment.
    """
    cur = obj
    for seg in path.split("."):
        if isinstance(cur, dict):
            cur = cur.get(seg, _MISSING)
        elif isinstance(cur, list) and seg.isdigit():
            idx = int(seg)
            cur = cur[idx] if idx < len(cur) else _MISSING
        else:
            return None
        if cur is _MISSING:
            return None
    return cur


def as_list(v: Any) -> List[Any]:
    """
    Lists stay lists; an object wrapping one list ({"item": [...]}) is unwrapped;
    a lone object becomes a one-element list; anything else is empty.
    """
    if isinstance(v, list):
        return v
    if isinstance(v, tuple):
        return list(v)
    if isinstance(v, dict):
        if not v:
            return []
        if len(v) == 1:
            only = next(iter(v.values()))
            if isinstance(only, list):
                return only
        if all(str(k).isdigit() for k in v) and all(isinstance(x, dict) for x in v.values()):
            # {"0": {...}, "1": {...}} from form-encoded arrays
            return [v[k] for k in sorted(v, key=lambda k: int(k))]
        return [v]
    return []


Coerce = Callable[[Any], Any]

_COERCERS: dict[str, Coerce] = {
    "str": clean_str,
    "number": to_number,
    "int": to_int_pos,
    "datetime": parse_dt,
    "raw": lambda v: v if v not in (None, "", [], {}) else None,
}


def first_value(contexts: Sequence[Any], paths: Sequence[str], kind: str = "str") -> Any:
    """
    First-wins probe: contexts in order, candidate paths in order.
    The first value that survives coercion is returned; None means "not found".
    """
    coerce = _COERCERS[kind]
    for ctx in contexts:
        if ctx is None:
            continue
        for p in paths:
            v = coerce(get_path(ctx, p))
            if v is not None:
                return v
    return None


@dataclass(frozen=True)
class FieldRule:
    """A logical field and its ordered candidate paths."""

    name: str
    paths: tuple[str, ...]
    kind: str = "str"

    def extract(self, contexts: Sequence[Any]) -> Optional[Any]:
        return first_value(contexts, self.paths, self.kind)
