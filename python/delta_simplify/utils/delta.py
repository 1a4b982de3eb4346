import math
import re
from typing import Callable, List, Optional, Sequence, Tuple

from delta_simplify.errors import IllegalOperationPassedError
from delta_simplify.models import Delta, Operation

_LINE_SPLIT = re.compile(r"(\n)")


def _require_insert(op: Operation) -> Operation:
    if not op.is_insert:
        raise IllegalOperationPassedError(illegal=op, expected=Operation(insert="", attributes=op.attributes))
    return op


def denormalize(delta: Delta) -> Delta:
    """
    Splits every text run so that each line terminator stands alone.

    After this, any "\\n" run is a line anchor and inline content never shares
    a run with it, which is what block-attribute expansion relies on.
    """
    ops: List[Operation] = []
    for op in delta.operations:
        _require_insert(op)
        if op.is_embed or "\n" not in op.insert or op.insert == "\n":
            if op.insert != "":
                ops.append(op)
            continue
        for piece in _LINE_SPLIT.split(op.insert):
            if piece:
                ops.append(Operation(insert=piece, attributes=op.attributes))
    return Delta(operations=ops)


def normalize(delta: Delta) -> Delta:
    """
    Merges adjacent text runs with identical attributes and drops empty runs,
    producing the canonical form handed back to callers.
    """
    ops: List[Operation] = []
    for op in delta.operations:
        _require_insert(op)
        if op.is_text and op.insert == "":
            continue
        if ops and op.is_text and ops[-1].is_text and ops[-1].has_same_attributes(op):
            prev = ops.pop()
            ops.append(Operation(insert=prev.insert + op.insert, attributes=prev.attributes))
            continue
        ops.append(Operation(insert=op.insert, attributes=op.attributes))
    return Delta(operations=ops)


class DeltaIterator:
    """
    Cursor over the runs of a delta that can hand out partial runs.
    Embeds are atomic: asking for any positive length returns the whole embed.
    """

    def __init__(self, ops: Sequence[Operation]):
        self.ops = list(ops)
        self.index = 0
        self.offset = 0

    def has_next(self) -> bool:
        return self.peek_length() < math.inf

    def peek(self) -> Optional[Operation]:
        if self.index < len(self.ops):
            return self.ops[self.index]
        return None

    def peek_length(self) -> float:
        if self.index < len(self.ops):
            return self.ops[self.index].length - self.offset
        return math.inf

    def next(self, length: Optional[float] = None) -> Operation:
        if length is None:
            length = math.inf
        if self.index >= len(self.ops):
            raise StopIteration("DeltaIterator is exhausted")
        op = self.ops[self.index]
        _require_insert(op)
        offset = self.offset
        op_length = op.length
        if length >= op_length - offset:
            length = op_length - offset
            self.index += 1
            self.offset = 0
        else:
            self.offset += int(length)
        if op.is_embed:
            return op
        return op.slice(offset, offset + int(length))

    def rest(self) -> List[Operation]:
        if not self.has_next():
            return []
        if self.offset == 0:
            return self.ops[self.index :]
        head = self.next()
        return [head, *self.ops[self.index :]]


# ---------------------------------------------------------------------------
# Range editing helpers. All offsets are global character offsets.
# ---------------------------------------------------------------------------


def split_at(ops: Sequence[Operation], offset: int) -> Tuple[List[Operation], List[Operation]]:
    """Splits runs at `offset`, cutting a text run in two when needed."""
    left: List[Operation] = []
    right: List[Operation] = []
    current = 0
    for op in ops:
        length = op.length
        if current + length <= offset:
            left.append(op)
        elif current >= offset:
            right.append(op)
        else:
            cut = offset - current
            left.append(op.slice(0, cut))
            right.append(op.slice(cut))
        current += length
    return left, right


def slice_ops(ops: Sequence[Operation], start: int, end: int) -> List[Operation]:
    _, tail = split_at(ops, start)
    middle, _ = split_at(tail, end - start)
    return middle


def map_range(
    ops: Sequence[Operation], start: int, end: int, fn: Callable[[Operation], Operation]
) -> List[Operation]:
    left, tail = split_at(ops, start)
    middle, right = split_at(tail, end - start)
    return [*left, *(fn(op) for op in middle), *right]


def insert_at(ops: Sequence[Operation], offset: int, new_ops: Sequence[Operation]) -> List[Operation]:
    left, right = split_at(ops, offset)
    return [*left, *new_ops, *right]


def delete_range(ops: Sequence[Operation], start: int, end: int) -> List[Operation]:
    left, tail = split_at(ops, start)
    _, right = split_at(tail, end - start)
    return [*left, *right]


def run_start_offsets(ops: Sequence[Operation]) -> List[int]:
    offsets = []
    current = 0
    for op in ops:
        offsets.append(current)
        current += op.length
    return offsets


def line_end_index(ops: Sequence[Operation], offset: int) -> Optional[int]:
    """
    Index of the line terminator run that governs the character at `offset`,
    or None when no newline follows it. Expects denormalized runs.
    """
    current = 0
    for index, op in enumerate(ops):
        length = op.length
        if current + length > offset and op.is_newline:
            return index
        current += length
    return None


def attributes_before(ops: Sequence[Operation], offset: int) -> Optional[dict]:
    """
    Inline attributes of the character just before `offset`. Line terminators
    carry block attributes, so they never lend theirs.
    """
    if offset <= 0:
        return None
    current = 0
    for op in ops:
        length = op.length
        if current < offset <= current + length:
            if op.is_text and not op.is_newline:
                return op.attributes
            return None
        current += length
    return None
