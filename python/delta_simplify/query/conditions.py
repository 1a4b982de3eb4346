"""
Edit intents that a QueryDelta folds over a document.

Each condition reads the document produced by the previous one and returns
the runs of the next version. Ignore conditions never transform anything;
the executor turns them into protected ranges that the other conditions
must leave alone.
"""

import json
import uuid
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from delta_simplify.attributes import Attribute
from delta_simplify.errors import DeltaSimplifyError, IllegalOperationPassedError, IllegalParamsValuesError
from delta_simplify.models import Delta, DeltaRange, DeltaRangeResult, Operation
from delta_simplify.query.matcher import compile_pattern, find_matches
from delta_simplify.utils.delta import (
    attributes_before,
    delete_range,
    insert_at,
    line_end_index,
    map_range,
    run_start_offsets,
    slice_ops,
)

logger = structlog.get_logger(__name__)

OnCatch = Callable[[DeltaSimplifyError], None]
Insertable = Union[str, Operation, List[Operation], Dict[str, Any]]


def _new_key() -> str:
    return uuid.uuid4().hex


def to_operations(value: Any, attributes: Optional[Dict[str, Any]] = None) -> List[Operation]:
    """
    Converts insertable content into runs. Plain strings take `attributes`;
    a dict with an "insert" key is a serialized run, any other dict an embed.
    """
    if isinstance(value, Operation):
        return [value]
    if isinstance(value, str):
        if value == "":
            raise IllegalParamsValuesError(illegal=value, expected="a non empty string")
        return [Operation(insert=value, attributes=attributes)]
    if isinstance(value, dict):
        try:
            if "insert" in value:
                return [Operation.from_json(value)]
            return [Operation(insert=value)]
        except ValidationError as e:
            raise IllegalParamsValuesError(illegal=value, expected="a serialized insert run or an embed") from e
    if isinstance(value, (list, tuple)):
        ops: List[Operation] = []
        for item in value:
            ops.extend(to_operations(item, attributes))
        if not ops:
            raise IllegalParamsValuesError(illegal=value, expected="a non empty list of operations")
        return ops
    raise IllegalParamsValuesError(illegal=value, expected=[str, dict, Operation, list])


def _document_end(ops: Sequence[Operation]) -> int:
    """Last offset an edit may reach without touching the final line terminator."""
    total = sum(op.length for op in ops)
    if ops and ops[-1].is_newline:
        return total - 1
    return total


class Condition(BaseModel):
    """
    Base of every condition. `key` identifies the condition across builds so
    the executor can skip conditions it already applied.
    """

    kind: str = "custom"
    key: str = Field(default_factory=_new_key, description="Unique identifier of the condition.")
    target: Optional[Union[str, Dict[str, Any]]] = Field(
        None, description="Regex pattern or embed object locating where the condition applies."
    )
    case_sensitive: bool = False

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("key cannot be empty")
        return v

    @field_validator("target")
    @classmethod
    def _target_not_empty(cls, v):
        if v is None:
            return v
        if isinstance(v, str):
            if not v:
                raise ValueError("target cannot be an empty string")
            if "\n" in v:
                raise ValueError("target cannot contain new lines")
            compile_pattern(v)
        elif not v:
            raise ValueError("target cannot be an empty object")
        return v

    @property
    def has_valid_target(self) -> bool:
        return self.target is not None

    @property
    def target_is_pattern(self) -> bool:
        return isinstance(self.target, str)

    def find_targets(self, delta: Delta, only_once: bool = False) -> List[DeltaRangeResult]:
        if self.target is None:
            return []
        if isinstance(self.target, dict):
            return find_matches(delta, raw_object=self.target, only_once=only_once)
        return find_matches(delta, pattern=self.target, only_once=only_once, case_sensitive=self.case_sensitive)

    def build(
        self,
        delta: Delta,
        parts_to_ignore: Sequence[DeltaRange] = (),
        on_catch: Optional[OnCatch] = None,
    ) -> Any:
        """
        Applies the condition to `delta`.

        Errors raised while building are passed to `on_catch` when given; the
        document is then returned unchanged.
        """
        try:
            return self._build(delta.denormalize(), list(parts_to_ignore))
        except DeltaSimplifyError as err:
            if on_catch is None:
                raise
            on_catch(err)
            return list(delta.operations)

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement _build()")

    def __eq__(self, other: object) -> bool:
        if other is self:
            return True
        if not isinstance(other, Condition):
            return NotImplemented
        return other.key == self.key and other.target == self.target and other.case_sensitive == self.case_sensitive

    def __hash__(self) -> int:
        return hash((self.key, json.dumps(self.target, sort_keys=True, default=str), self.case_sensitive))


def _spans(matches: Sequence[DeltaRangeResult]) -> List[Tuple[int, int]]:
    return [(m.start_offset, m.end_offset) for m in matches]


def _protected(parts: Sequence[DeltaRange], start: int, end: int) -> bool:
    return any(p.overlaps_span(start, end) for p in parts)


class FormatCondition(Condition):
    kind: Literal["format"] = "format"
    attribute: Attribute
    offset: Optional[int] = Field(None, ge=0)
    length: Optional[int] = Field(None, ge=0)
    only_once: bool = False

    @model_validator(mode="after")
    def _check_location(self) -> "FormatCondition":
        if (self.target is None) == (self.offset is None):
            raise ValueError("format needs exactly one of target or offset")
        if self.attribute.is_inline and self.target is None and not self.length:
            raise ValueError(
                f"length must be greater than zero, or a target must be given, for inline attribute '{self.attribute.key}'"
            )
        return self

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> List[Operation]:
        ops = list(delta.operations)
        total = sum(op.length for op in ops)
        if self.target is not None:
            spans = _spans(self.find_targets(delta, self.only_once))
        else:
            if self.offset > total:
                raise IllegalParamsValuesError(illegal=self.offset, expected={"start": 0, "end": total})
            spans = [(self.offset, min(self.offset + (self.length or 0), total))]

        attribute = self.attribute
        for start, end in spans:
            if attribute.is_block:
                index = line_end_index(ops, start)
                if index is None:
                    logger.debug(f"No line terminator after offset {start}; block format skipped")
                    continue
                anchor_offset = run_start_offsets(ops)[index]
                if _protected(parts_to_ignore, anchor_offset, anchor_offset + 1):
                    logger.warning(f"Skipping block format at {anchor_offset}: protected range")
                    continue
                ops[index] = ops[index].clone(attribute=attribute)
                continue
            if _protected(parts_to_ignore, start, end):
                logger.warning(f"Skipping format of [{start}:{end}]: protected range")
                continue
            ops = map_range(ops, start, end, lambda op: op if op.is_newline else op.clone(attribute=attribute))
        return ops


class InsertCondition(Condition):
    kind: Literal["insert"] = "insert"
    insertion: Insertable
    range: Optional[DeltaRange] = None
    left: bool = False
    only_once: bool = False
    as_different_op: bool = False
    insert_at_last_operation: bool = False

    @field_validator("insertion")
    @classmethod
    def _insertion_not_empty(cls, v):
        if isinstance(v, (str, list, dict)) and not v:
            raise ValueError("insertion cannot be empty")
        return v

    @model_validator(mode="after")
    def _target_or_point(self) -> "InsertCondition":
        if self.target is not None and self.range is not None:
            raise ValueError("insert accepts a target or a start point, not both")
        return self

    def _content(self, inherited: Optional[Dict[str, Any]]) -> List[Operation]:
        return to_operations(self.insertion, None if self.as_different_op else inherited)

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> List[Operation]:
        ops = list(delta.operations)
        total = sum(op.length for op in ops)
        points: List[Tuple[int, Optional[Dict[str, Any]]]] = []
        if self.range is not None:
            point = self.range.start_offset
            if point > total:
                raise IllegalParamsValuesError(illegal=point, expected={"start": 0, "end": total})
            points.append((point, attributes_before(ops, point)))
        elif self.insert_at_last_operation:
            point = _document_end(ops)
            points.append((point, attributes_before(ops, point)))
        elif self.target is not None:
            for match in self.find_targets(delta, self.only_once):
                point = match.start_offset if self.left else match.end_offset
                first = match.delta[0]
                points.append((point, first.attributes if first.is_text else None))
        else:
            points.append((0, None))

        for point, inherited in sorted(points, key=lambda p: p[0], reverse=True):
            if any(p.contains_point(point) for p in parts_to_ignore):
                logger.warning(f"Skipping insert at {point}: protected range")
                continue
            ops = insert_at(ops, point, self._content(inherited))
        return ops


class DeleteCondition(Condition):
    kind: Literal["delete"] = "delete"
    offset: Optional[int] = Field(None, ge=0)
    length_of_deletion: Optional[int] = Field(None, gt=0)
    only_once: bool = True

    @model_validator(mode="after")
    def _check_location(self) -> "DeleteCondition":
        if self.target is not None:
            if self.offset is not None:
                raise ValueError("delete accepts a target or an offset, not both")
        elif self.offset is None or self.length_of_deletion is None:
            raise ValueError("delete needs a target, or both an offset and a length_of_deletion")
        return self

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> List[Operation]:
        ops = list(delta.operations)
        total = sum(op.length for op in ops)
        if self.target is not None:
            spans = _spans(self.find_targets(delta, self.only_once))
        else:
            if self.offset > total:
                raise IllegalParamsValuesError(illegal=self.offset, expected={"start": 0, "end": total})
            spans = [(self.offset, self.offset + self.length_of_deletion)]

        limit = _document_end(ops)
        for start, end in sorted(spans, reverse=True):
            removed = slice_ops(ops, start, min(end, total))
            if removed and all(op.is_newline for op in removed):
                raise IllegalOperationPassedError(
                    illegal=removed, message=f"Cannot delete a bare line terminator at [{start}:{end}]"
                )
            end = min(end, limit)
            if end <= start:
                continue
            if _protected(parts_to_ignore, start, end):
                logger.warning(f"Skipping delete of [{start}:{end}]: protected range")
                continue
            ops = delete_range(ops, start, end)
        return ops


class ReplaceCondition(Condition):
    kind: Literal["replace"] = "replace"
    replace: Insertable
    range: Optional[DeltaRange] = None
    only_once: bool = False

    @field_validator("replace")
    @classmethod
    def _replace_not_empty(cls, v):
        if isinstance(v, (list, dict)) and not v:
            raise ValueError("replacement cannot be empty")
        return v

    @model_validator(mode="after")
    def _target_or_range(self) -> "ReplaceCondition":
        if (self.target is None) == (self.range is None):
            raise ValueError("replace needs exactly one of target or range")
        return self

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> List[Operation]:
        ops = list(delta.operations)
        limit = _document_end(ops)
        if self.range is not None:
            start = self.range.start_offset
            if start > limit:
                raise IllegalParamsValuesError(illegal=self.range, expected={"start": 0, "end": limit})
            spans = [(start, min(self.range.resolve_end(limit), limit))]
        else:
            spans = _spans(self.find_targets(delta, self.only_once))

        for start, end in sorted(spans, reverse=True):
            if _protected(parts_to_ignore, start, end):
                logger.warning(f"Skipping replace of [{start}:{end}]: protected range")
                continue
            replaced = slice_ops(ops, start, end)
            inherited = next((op.attributes for op in replaced if op.is_text and not op.is_newline), None)
            ops = delete_range(ops, start, end)
            if self.replace != "":
                ops = insert_at(ops, start, to_operations(self.replace, inherited))
        return ops


class IgnoreCondition(Condition):
    """Marks [offset, offset + length) as protected; length None protects up to the end."""

    kind: Literal["ignore"] = "ignore"
    offset: int = Field(0, ge=0)
    length: Optional[int] = Field(None, gt=0)

    @property
    def range(self) -> DeltaRange:
        end = None if self.length is None else self.offset + self.length
        return DeltaRange(start_offset=self.offset, end_offset=end)

    def _build(self, delta: Delta, parts_to_ignore: List[DeltaRange]) -> List[Operation]:
        return list(delta.operations)


AnyCondition = Annotated[
    Union[FormatCondition, InsertCondition, DeleteCondition, ReplaceCondition, IgnoreCondition],
    Field(discriminator="kind"),
]

_conditions_adapter = TypeAdapter(List[AnyCondition])


def conditions_from_json(data: Union[str, List[Dict[str, Any]]]) -> List[Condition]:
    """Parses serialized conditions, dispatching on their "kind" field."""
    if isinstance(data, str):
        data = json.loads(data)
    return list(_conditions_adapter.validate_python(data))


def conditions_to_json(conditions: Sequence[Condition]) -> List[Dict[str, Any]]:
    return [c.model_dump(mode="json", exclude_none=True) for c in conditions]
