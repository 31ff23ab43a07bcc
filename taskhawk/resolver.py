"""
Map a human-readable target onto an element reference in a Snapshot.

Precedence, first match wins:
1. `target` is itself a reference present in the snapshot.
2. Case-insensitive substring of the element's name, label or value.
3. Case-insensitive substring of the element's text.

Both heuristic passes scan elements in snapshot order, so the result is
deterministic for a given snapshot.
"""

from __future__ import annotations

from .snapshot import ElementDescriptor, Snapshot


def _norm(text: str | None) -> str:
    return (text or "").casefold()


def _matches_identity(query: str, el: ElementDescriptor) -> bool:
    return any(query in _norm(v) for v in (el.name, el.label, el.value) if v)


def resolve_element(target: str, snapshot: Snapshot) -> str | None:
    if not isinstance(target, str) or not target:
        return None
    if target in snapshot.elements:
        return target

    query = _norm(target)

    for ref, el in snapshot.elements.items():
        if _matches_identity(query, el):
            return ref
    for ref, el in snapshot.elements.items():
        if el.text and query in _norm(el.text):
            return ref
    return None


__all__ = ["resolve_element"]
