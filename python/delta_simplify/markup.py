"""
CriticMarkup rendering of diff results.

Plain text between changes is copied through; insertions, deletions and
updates get {++ ++}, {-- --} and {~~ ~> ~~}; attribute changes highlight the
span and describe the change in a {>> <<} comment.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog

from delta_simplify.diff import DeltaDiffPart, DiffType
from delta_simplify.models import OBJECT_REPLACEMENT_CHARACTER

logger = structlog.get_logger(__name__)


def _content(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return OBJECT_REPLACEMENT_CHARACTER


def describe_attributes(attributes: Optional[Dict[str, Any]]) -> str:
    """Summarizes an attribute delta, e.g. `bold, -italic, color=#f00`."""
    if not attributes:
        return ""
    described = []
    for key, value in attributes.items():
        if value is None:
            described.append(f"-{key}")
        elif value is True:
            described.append(key)
        else:
            described.append(f"{key}={value}")
    return ", ".join(described)


def _build_critic_markup(part: DeltaDiffPart) -> str:
    before = _content(part.before)
    after = _content(part.after)

    if part.type == DiffType.EQUAL:
        return after
    if part.type == DiffType.INSERT:
        return f"{{++{after}++}}" if after else ""
    if part.type == DiffType.DELETE:
        return f"{{--{before}--}}" if before else ""

    parts: List[str] = []
    if part.type == DiffType.FORMAT:
        parts.append(f"{{=={after}==}}")
    else:
        parts.append(f"{{~~{before}~>{after}~~}}")
    meta = describe_attributes(part.attributes)
    if meta:
        parts.append(f"{{>>{meta}<<}}")
    return "".join(parts)


def render_critic_markup(parts: Sequence[DeltaDiffPart]) -> str:
    """
    Joins diff parts into one CriticMarkup string.

    Consecutive parts of the same change type are merged before rendering,
    so a deletion split across runs shows up as a single {--...--} block.
    """
    if not parts:
        return ""
    merged: List[DeltaDiffPart] = []
    for part in parts:
        prev = merged[-1] if merged else None
        if (
            prev is not None
            and prev.type == part.type
            and part.type in (DiffType.INSERT, DiffType.DELETE, DiffType.EQUAL)
        ):
            merged[-1] = prev.model_copy(
                update={
                    "before": _content(prev.before) + _content(part.before) if prev.before is not None else None,
                    "after": _content(prev.after) + _content(part.after) if prev.after is not None else None,
                    "end": part.end,
                }
            )
            continue
        merged.append(part)
    logger.debug(f"Rendering {len(merged)} merged diff part(s)")
    return "".join(_build_critic_markup(part) for part in merged)
