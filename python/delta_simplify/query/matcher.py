"""
Search over a document: attribute runs, regex patterns and embed objects.

Every search runs on a denormalized copy, so line terminators are their own
runs and block attributes can be found on them directly.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog

from delta_simplify.errors import IllegalParamsValuesError
from delta_simplify.models import Delta, DeltaRange, DeltaRangeResult, Operation
from delta_simplify.utils.offsets import op_index_to_char_offset

logger = structlog.get_logger(__name__)

PatternLike = Union[str, re.Pattern]

# A `\n` escape not preceded by another backslash.
_ESCAPED_NEWLINE = re.compile(r"(?<!\\)(?:\\\\)*\\n")


def _result(ops: List[Operation], start: int, end: int) -> DeltaRangeResult:
    return DeltaRangeResult(delta=Delta(operations=ops), range=DeltaRange(start_offset=max(start, 0), end_offset=end))


def _expand_block(ops: Sequence[Operation], index: int, global_offset: int) -> DeltaRangeResult:
    """
    Collects the inline runs of the line anchored at ops[index], walking left
    until a run with a newline or an embed is hit.
    """
    anchor = ops[index]
    start = global_offset
    collected: List[Operation] = []
    for before in reversed(ops[:index]):
        if before.is_embed or before.contains_newline():
            break
        collected.insert(0, before)
        start -= before.length
    return _result([*collected, anchor], start, global_offset + anchor.length)


def match_attributes(
    delta: Delta,
    inline_attrs: Optional[Dict[str, Any]] = None,
    block_attrs: Optional[Dict[str, Any]] = None,
    block_attr_keys: Optional[Sequence[str]] = None,
    inline_attr_keys: Optional[Sequence[str]] = None,
    strict_keys_check: bool = True,
    only_once: bool = False,
) -> List[DeltaRangeResult]:
    """
    Finds runs by attributes. Exactly one criterion must be given:

    - inline_attr_keys: any run holding the keys (all of them when strict)
    - block_attr_keys: line anchors holding the keys; the result spans the line
    - inline_attrs: runs whose attribute map equals the given map
    - block_attrs: line anchors whose attribute map equals the given map
    """
    criteria = {
        "inline_attrs": inline_attrs,
        "block_attrs": block_attrs,
        "block_attr_keys": block_attr_keys,
        "inline_attr_keys": inline_attr_keys,
    }
    for name, value in criteria.items():
        if value is not None and len(value) == 0:
            raise IllegalParamsValuesError(illegal=value, expected=f"a non empty value for {name}")
    given = [name for name, value in criteria.items() if value is not None]
    if not given:
        raise IllegalParamsValuesError(illegal=None, expected=list(criteria), message="No attribute criteria passed")
    if len(given) > 1:
        raise IllegalParamsValuesError(
            illegal=given, expected="exactly one criterion", message=f"Only one attribute criterion allowed, got {given}"
        )

    ops = delta.denormalize().operations
    parts: List[DeltaRangeResult] = []
    global_offset = 0
    for index, op in enumerate(ops):
        length = op.length
        hit: Optional[DeltaRangeResult] = None
        if inline_attr_keys is not None:
            if op.contains_attrs(inline_attr_keys, strict_keys_check):
                hit = _result([op], global_offset, global_offset + length)
        elif block_attr_keys is not None:
            if op.is_block_level_insertion and op.contains_attrs(block_attr_keys, strict_keys_check):
                hit = _expand_block(ops, index, global_offset)
        elif inline_attrs is not None:
            if op.attributes == dict(inline_attrs):
                hit = _result([op], global_offset, global_offset + length)
        elif block_attrs is not None:
            if op.is_block_level_insertion and op.attributes == dict(block_attrs):
                hit = _expand_block(ops, index, global_offset)
        if hit is not None:
            parts.append(hit)
            if only_once:
                break
        global_offset += length
    logger.debug(f"Attribute search matched {len(parts)} part(s)", criterion=given[0])
    return parts


def validate_pattern_source(source: str) -> None:
    if not source or not source.strip():
        raise IllegalParamsValuesError(illegal=source, expected="a non empty pattern")
    if "\n" in source or _ESCAPED_NEWLINE.search(source):
        raise IllegalParamsValuesError(
            illegal=source, expected="a single-line pattern", message="A pattern cannot contain line breaks"
        )


def compile_pattern(pattern: PatternLike, case_sensitive: bool = True) -> "re.Pattern[str]":
    if isinstance(pattern, re.Pattern):
        validate_pattern_source(pattern.pattern)
        return pattern
    validate_pattern_source(pattern)
    try:
        return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise IllegalParamsValuesError(illegal=pattern, expected="a valid regular expression", message=str(e)) from e


def find_matches(
    delta: Delta,
    pattern: Optional[PatternLike] = None,
    raw_object: Optional[Any] = None,
    operation_index: Optional[int] = None,
    only_once: bool = False,
    case_sensitive: bool = True,
) -> List[DeltaRangeResult]:
    """
    Finds a regex pattern inside text runs, or an embed equal to `raw_object`.

    A non-dict raw_object is compiled from its string form and searched like
    a pattern. `operation_index` is a run index into `delta` where the scan
    starts.
    """
    if pattern is None and raw_object is None:
        raise IllegalParamsValuesError(illegal=None, expected="a pattern or a raw object")
    start_offset = 0
    if operation_index is not None:
        start_offset = op_index_to_char_offset(operation_index, delta.operations)

    expression: Optional["re.Pattern[str]"] = None
    embed_target: Optional[Dict[str, Any]] = None
    if pattern is not None:
        expression = compile_pattern(pattern, case_sensitive)
    elif isinstance(raw_object, dict):
        if not raw_object:
            raise IllegalParamsValuesError(illegal=raw_object, expected="a non empty object")
        embed_target = raw_object
    else:
        expression = compile_pattern(str(raw_object), case_sensitive)

    ops = delta.denormalize().operations
    parts: List[DeltaRangeResult] = []
    global_offset = 0
    for op in ops:
        length = op.length
        if global_offset < start_offset:
            global_offset += length
            continue
        if embed_target is not None:
            if op.is_embed and op.insert == embed_target:
                parts.append(_result([op], global_offset, global_offset + 1))
        elif op.is_text and not op.is_newline:
            for match in expression.finditer(op.insert):
                if match.end() == match.start():
                    continue
                parts.append(
                    _result(
                        [Operation(insert=match.group(0), attributes=op.attributes)],
                        global_offset + match.start(),
                        global_offset + match.end(),
                    )
                )
                if only_once:
                    break
        if parts and only_once:
            return parts[:1]
        global_offset += length
    return parts
