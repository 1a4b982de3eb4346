import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog
from diff_match_patch import diff_match_patch
from pydantic import BaseModel, Field

from delta_simplify.config import DiffOptions
from delta_simplify.models import Delta, Operation
from delta_simplify.utils.delta import DeltaIterator

logger = structlog.get_logger(__name__)

EMBED_SENTINEL = "\x00"


class DiffType(str, Enum):
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"
    FORMAT = "format"
    UPDATE = "update"


class DeltaDiffPart(BaseModel):
    """
    One classified span of a diff.

    Offsets are in the new document. A deleted span has no extent there, so
    its start and end are the same offset.
    """

    type: DiffType
    before: Optional[Any] = Field(None, description="Content in the old document (text or embed).")
    after: Optional[Any] = Field(None, description="Content in the new document (text or embed).")
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    attributes: Optional[Dict[str, Any]] = Field(
        None, description="Attribute delta for format/update (removed keys map to None); run attributes for insert."
    )
    old_attributes: Optional[Dict[str, Any]] = None
    new_attributes: Optional[Dict[str, Any]] = None

    @property
    def is_change(self) -> bool:
        return self.type != DiffType.EQUAL

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


@dataclass
class DeltaCompareDiffResult:
    diff_parts: List[DeltaDiffPart] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(part.is_change for part in self.diff_parts)

    @property
    def changes(self) -> List[DeltaDiffPart]:
        return [part for part in self.diff_parts if part.is_change]

    def to_json(self) -> List[Dict[str, Any]]:
        return [part.to_json() for part in self.diff_parts]

    def to_critic_markup(self) -> str:
        from delta_simplify.markup import render_critic_markup

        return render_critic_markup(self.diff_parts)


def attribute_delta(old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keys whose value changed from `old` to `new`; keys only in `old` map to None."""
    old = old or {}
    new = new or {}
    changed = {k: v for k, v in new.items() if k not in old or old[k] != v}
    for k in old:
        if k not in new:
            changed[k] = None
    return changed


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits both texts into words, whitespace and punctuation tokens and
    encodes each distinct token as one character, so diff_match_patch
    diffs whole words.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}
    split_pattern = r"(\s+|\w+|[^\w\s])"

    def encode_text(text: str) -> str:
        encoded_chars = []
        for token in (t for t in re.split(split_pattern, text) if t):
            if token not in token_hash:
                token_hash[token] = len(token_array)
                token_array.append(token)
            encoded_chars.append(chr(token_hash[token]))
        return "".join(encoded_chars)

    return encode_text(text1), encode_text(text2), token_array


def _text_diff(old_text: str, new_text: str, options: DiffOptions) -> List[Tuple[int, str]]:
    dmp = diff_match_patch()
    dmp.Diff_Timeout = options.timeout
    if options.word_level:
        chars1, chars2, token_array = _words_to_chars(old_text, new_text)
        diffs = dmp.diff_main(chars1, chars2, False)
        if options.cleanup_semantic:
            dmp.diff_cleanupSemantic(diffs)
        dmp.diff_charsToLines(diffs, token_array)
    else:
        diffs = dmp.diff_main(old_text, new_text, False)
        if options.cleanup_semantic:
            dmp.diff_cleanupSemantic(diffs)
    return diffs


def _plain(delta: Delta) -> str:
    return delta.to_plain(lambda _: EMBED_SENTINEL)


def _compare_equal(old_op: Operation, new_op: Operation, start: int, end: int) -> DeltaDiffPart:
    same_attributes = old_op.has_same_attributes(new_op)
    if old_op.insert == new_op.insert:
        if same_attributes:
            return DeltaDiffPart(type=DiffType.EQUAL, before=old_op.insert, after=new_op.insert, start=start, end=end)
        return DeltaDiffPart(
            type=DiffType.FORMAT,
            before=old_op.insert,
            after=new_op.insert,
            start=start,
            end=end,
            attributes=attribute_delta(old_op.attributes, new_op.attributes),
            old_attributes=old_op.attributes,
            new_attributes=new_op.attributes,
        )
    # Same plain projection but different content: two different embeds.
    return DeltaDiffPart(
        type=DiffType.UPDATE,
        before=old_op.insert,
        after=new_op.insert,
        start=start,
        end=end,
        attributes=None if same_attributes else attribute_delta(old_op.attributes, new_op.attributes),
        old_attributes=None if same_attributes else old_op.attributes,
        new_attributes=None if same_attributes else new_op.attributes,
    )


def compare_deltas(
    old: Delta,
    new: Delta,
    cleanup_semantic: bool = True,
    options: Optional[DiffOptions] = None,
) -> DeltaCompareDiffResult:
    """
    Diffs two documents.

    Both are projected to plain text (embeds as "\\x00") and diffed with
    diff_match_patch; two cursors then walk the runs of each document along
    the diff segments, splitting runs where a segment ends mid-run.
    """
    if options is None:
        options = DiffOptions(cleanup_semantic=cleanup_semantic)
    if old.operations == new.operations:
        return DeltaCompareDiffResult()
    old = old.normalize()
    new = new.normalize()
    if old.operations == new.operations:
        return DeltaCompareDiffResult()

    diffs = _text_diff(_plain(old), _plain(new), options)
    old_iter = DeltaIterator(old.operations)
    new_iter = DeltaIterator(new.operations)

    parts: List[DeltaDiffPart] = []
    offset = 0
    for op_code, text in diffs:
        remaining = len(text)
        while remaining > 0:
            if op_code == diff_match_patch.DIFF_INSERT:
                length = int(min(new_iter.peek_length(), remaining))
                op = new_iter.next(length)
                parts.append(
                    DeltaDiffPart(
                        type=DiffType.INSERT,
                        after=op.insert,
                        start=offset,
                        end=offset + length,
                        attributes=op.attributes,
                    )
                )
                offset += length
            elif op_code == diff_match_patch.DIFF_DELETE:
                length = int(min(old_iter.peek_length(), remaining))
                op = old_iter.next(length)
                parts.append(
                    DeltaDiffPart(
                        type=DiffType.DELETE,
                        before=op.insert,
                        start=offset,
                        end=offset,
                        old_attributes=op.attributes,
                    )
                )
            else:
                length = int(min(old_iter.peek_length(), new_iter.peek_length(), remaining))
                old_op = old_iter.next(length)
                new_op = new_iter.next(length)
                parts.append(_compare_equal(old_op, new_op, offset, offset + length))
                offset += length
            remaining -= length

    logger.debug(f"Diff produced {len(parts)} part(s)", changes=sum(1 for p in parts if p.is_change))
    return DeltaCompareDiffResult(diff_parts=parts)
