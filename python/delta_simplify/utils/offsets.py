from typing import Sequence

from delta_simplify.errors import IllegalParamsValuesError
from delta_simplify.models import Operation


def op_index_to_char_offset(index: int, ops: Sequence[Operation]) -> int:
    """
    Converts a run index into the global character offset where that run starts.
    """
    if index < 0 or index >= len(ops):
        raise IllegalParamsValuesError(
            illegal=index,
            expected={"start": 0, "end": len(ops)},
            message=f"Operation index {index} is out of range [0, {len(ops)})",
        )
    return sum(op.length for op in ops[:index])


def char_offset_to_op_index(offset: int, ops: Sequence[Operation]) -> int:
    """
    Converts a global character offset into the index of the run containing it.
    """
    if offset < 0:
        raise IllegalParamsValuesError(illegal=offset, expected=">= 0", message=f"Offset {offset} cannot be negative")
    current = 0
    for index, op in enumerate(ops):
        length = op.length
        if current <= offset < current + length:
            return index
        current += length
    raise IllegalParamsValuesError(
        illegal=offset,
        expected={"start": 0, "end": current},
        message=f"Offset {offset} is out of range [0, {current})",
    )
