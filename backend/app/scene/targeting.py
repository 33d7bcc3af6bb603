"""Targeting resolver — turns an abstract selector into concrete element ids.

Matching is a plain, case-sensitive substring test on ``content``. The model is
expected to pass distinctive content strings (an emoji, a word) rather than rely
on any fuzzy matching here.
"""

from __future__ import annotations

from collections.abc import Sequence

from app.models.scene import SceneElement


def resolve_targets(
    elements: Sequence[SceneElement],
    target: str | None,
    match: str | None = None,
    *,
    single: bool = False,
    occurrence: int = 0,
) -> list[str]:
    """Resolve ``target`` against ``elements`` and return the selected ids in list order.

    Set mode (``single=False``) returns every element the selector covers. Single mode
    returns at most one id: the last element, or the ``occurrence``-th match (first by
    default); ``all`` names no single element there and resolves to nothing. A miss is
    an empty list, never an error.
    """
    if not elements:
        return []

    if target == "all":
        return [] if single else [el.id for el in elements]

    if target == "last":
        return [elements[-1].id]

    if target == "matching":
        if not match:
            return []
        hits = [el.id for el in elements if match in el.content]
        if not single:
            return hits
        if 0 <= occurrence < len(hits):
            return [hits[occurrence]]
        return []

    return []


def resolve_target_element(
    elements: Sequence[SceneElement],
    target_element: str | None,
    occurrence: int = 0,
) -> str | None:
    """Resolve the free-form ``targetElement`` used by capability/image tools.

    ``"last"`` (or nothing) means the most recent element; any other string is a
    content match.
    """
    if not target_element or target_element == "last":
        ids = resolve_targets(elements, "last", single=True)
    else:
        ids = resolve_targets(elements, "matching", target_element, single=True, occurrence=occurrence)
    return ids[0] if ids else None


def split_target_element(target_element: str | None) -> tuple[str, str | None]:
    """Map a ``targetElement`` string onto a ``(target, match)`` selector pair."""
    if not target_element or target_element == "last":
        return "last", None
    return "matching", target_element
