"""Generated documentation regions in doc comments.

A region is bracketed by the ``autometrics:doc-start`` and
``autometrics:doc-end`` cookies and surrounded by one blank ``//`` spacer on
each side. The region is replaced wholesale on every run; comments outside
it belong to the user and are kept as they are.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from autometrics_gen.errors import DocumentationRegionError
from autometrics_gen.links import DOC_END_COOKIE, DOC_START_COOKIE

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

__all__ = ["find_region", "insert_documentation", "strip_documentation"]


def find_region(comments: Sequence[str]) -> tuple[int, int] | None:
    """Indices of the start and end cookies, or None without a region.

    Raises
    ------
    DocumentationRegionError
        If only one kind of cookie is present, either appears more than
        once, or the end cookie comes before the start cookie.
    """
    starts = [index for index, line in enumerate(comments) if DOC_START_COOKIE in line]
    ends = [index for index, line in enumerate(comments) if DOC_END_COOKIE in line]
    if not starts and not ends:
        return None
    if not starts or not ends:
        missing = DOC_START_COOKIE if not starts else DOC_END_COOKIE
        message = f"generated documentation region is missing its {missing} cookie"
        raise DocumentationRegionError(message)
    if len(starts) > 1 or len(ends) > 1:
        message = (
            f"expected one generated documentation region, found {len(starts)} "
            f"start and {len(ends)} end cookies"
        )
        raise DocumentationRegionError(message)
    start, end = starts[0], ends[0]
    if end <= start:
        message = (
            f"{DOC_END_COOKIE} cookie (line {end + 1}) precedes "
            f"{DOC_START_COOKIE} (line {start + 1})"
        )
        raise DocumentationRegionError(message)
    return start, end


def strip_documentation(comments: Sequence[str], anchors: Iterable[str]) -> list[str]:
    """Remove the generated region and its link definitions.

    The spacer line on each side of the region goes with it. Link
    definitions (``// [Anchor]: url``) for the generated anchors are dropped
    wherever they ended up, since gofmt moves them below the directive.
    Without a region the comments are returned unchanged.
    """
    region = find_region(comments)
    if region is None:
        return list(comments)
    start, end = region
    kept = list(comments[: max(0, start - 1)]) + list(comments[end + 2 :])
    markers = tuple(f"[{anchor}]" for anchor in anchors)
    return [line for line in kept if not any(marker in line for marker in markers)]


def insert_documentation(comments: Sequence[str], index: int, block: Sequence[str]) -> list[str]:
    """Insert ``block`` before the comment at ``index``."""
    return [*comments[:index], *block, *comments[index:]]
