import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

import structlog
from pydantic import ValidationError

from delta_simplify.attributes import Attribute
from delta_simplify.config import BuildOptions, DiffOptions
from delta_simplify.diff import DeltaCompareDiffResult, compare_deltas
from delta_simplify.errors import (
    BuildNotExecutedError,
    DeltaSimplifyError,
    IllegalConditionBuildResultError,
    IllegalParamsValuesError,
    NoConditionsCreatedError,
)
from delta_simplify.models import Delta, DeltaRange, DeltaRangeResult, Operation, ignore_overlap
from delta_simplify.query.conditions import (
    Condition,
    DeleteCondition,
    FormatCondition,
    IgnoreCondition,
    InsertCondition,
    Insertable,
    OnCatch,
    ReplaceCondition,
    conditions_from_json,
)
from delta_simplify.query.matcher import PatternLike, find_matches, match_attributes

logger = structlog.get_logger(__name__)

_EXPECTED_RESULTS = ["List[Operation]", "Operation", "Delta", "non empty str", "{'insert': ...}"]


@dataclass
class BuildResult:
    """Result of QueryDelta.build()."""

    delta: Delta
    applied: int = 0
    skipped: int = 0
    errors: List[DeltaSimplifyError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


@dataclass
class QueryDeltaParams:
    original_delta: Delta
    conditions: List[Condition] = field(default_factory=list)
    used_conditions: Set[str] = field(default_factory=set)
    result: Optional[BuildResult] = None
    on_catch: Optional[OnCatch] = None

    @classmethod
    def from_another(cls, other: "QueryDeltaParams") -> "QueryDeltaParams":
        return cls(
            original_delta=other.original_delta,
            conditions=list(other.conditions),
            used_conditions=set(other.used_conditions),
            result=other.result,
            on_catch=other.on_catch,
        )


class QueryDelta:
    """
    Query builder over a Delta.

    Conditions are pushed in order and folded over the document by build():
    each condition sees the document left by the previous one. The working
    document only changes when a build completes, so a failing build leaves
    the last committed version untouched.
    """

    def __init__(self, delta: Delta, conditions: Optional[Sequence[Condition]] = None):
        if not delta.is_empty and not (delta.last.is_newline_or_block_insertion or delta.last.contains_newline()):
            raise IllegalParamsValuesError(
                illegal=delta.last,
                expected={"insert": "\n"},
                message="The last operation of the delta must contain a new line",
            )
        self._input = Delta(operations=list(delta.operations))
        self.params = QueryDeltaParams(
            original_delta=Delta(operations=list(delta.operations)),
            conditions=list(conditions or []),
        )

    @classmethod
    def from_json(
        cls, data: Union[str, List[Dict[str, Any]]], conditions: Optional[Sequence[Condition]] = None
    ) -> "QueryDelta":
        return cls(Delta.from_json(data), conditions)

    @classmethod
    def from_operations(cls, ops: Sequence[Operation], conditions: Optional[Sequence[Condition]] = None) -> "QueryDelta":
        return cls(Delta.from_operations(ops), conditions)

    @classmethod
    def with_conditions(cls, delta: Delta, conditions: Sequence[Condition]) -> "QueryDelta":
        return cls(delta, conditions)

    @property
    def delta(self) -> Delta:
        """The last committed document."""
        return self._input

    # -- condition accumulation ---------------------------------------------

    def push(self, condition: Condition) -> "QueryDelta":
        if not isinstance(condition, Condition):
            raise IllegalParamsValuesError(illegal=condition, expected=Condition)
        self.params.conditions.append(condition)
        return self

    def push_all(self, conditions: Sequence[Condition]) -> "QueryDelta":
        for condition in conditions:
            self.push(condition)
        return self

    def push_json(self, data: Union[str, List[Dict[str, Any]]]) -> "QueryDelta":
        return self.push_all(conditions_from_json(data))

    def catch_err(self, on_catch: OnCatch) -> "QueryDelta":
        self.params.on_catch = on_catch
        return self

    def format(
        self,
        attribute: Attribute,
        offset: Optional[int] = None,
        length: Optional[int] = None,
        target: Optional[Union[str, Dict[str, Any]]] = None,
        case_sensitive: bool = False,
        only_once: bool = False,
    ) -> "QueryDelta":
        """
        Applies `attribute` to the matched target, or to [offset, offset + length).

        Block attributes ignore `length` and go to the line terminator of the
        line containing the offset (or the match).
        """
        return self.push(
            FormatCondition(
                target=target,
                attribute=attribute,
                offset=offset,
                length=length,
                case_sensitive=case_sensitive,
                only_once=only_once,
            )
        )

    def insert(
        self,
        insert: Insertable,
        target: Optional[Union[str, Dict[str, Any]]] = None,
        start_point: Optional[int] = None,
        left: bool = False,
        only_once: bool = False,
        as_different_op: bool = False,
        insert_at_last_operation: bool = False,
        case_sensitive: bool = False,
    ) -> "QueryDelta":
        """
        Inserts content at `start_point`, beside each match of `target`
        (left or right of it), before the final line terminator, or at 0.

        Unless `as_different_op` is set, inserted text takes the inline
        attributes of the text it lands next to.
        """
        range_ = None
        if start_point is not None:
            range_ = DeltaRange.only_start_point(start_point)
        elif target is None and not insert_at_last_operation:
            range_ = DeltaRange.only_start_point(0)
        return self.push(
            InsertCondition(
                target=target,
                insertion=insert,
                range=range_,
                left=True if start_point is not None else left,
                only_once=True if start_point is not None else only_once,
                as_different_op=as_different_op,
                insert_at_last_operation=insert_at_last_operation and start_point is None and target is None,
                case_sensitive=case_sensitive,
            )
        )

    def delete(
        self,
        target: Optional[Union[str, Dict[str, Any]]] = None,
        start_point: Optional[int] = None,
        length_of_deletion: Optional[int] = None,
        only_once: bool = True,
        case_sensitive: bool = False,
    ) -> "QueryDelta":
        return self.push(
            DeleteCondition(
                target=target,
                offset=start_point,
                length_of_deletion=length_of_deletion,
                only_once=only_once,
                case_sensitive=case_sensitive,
            )
        )

    def replace(
        self,
        replace: Insertable,
        target: Optional[Union[str, Dict[str, Any]]] = None,
        range: Optional[DeltaRange] = None,
        only_once: bool = False,
        case_sensitive: bool = False,
    ) -> "QueryDelta":
        if target is None and range is None:
            raise IllegalParamsValuesError(
                illegal=None, expected=["target", "range"], message="replace needs a target or a range"
            )
        return self.push(
            ReplaceCondition(
                target=target,
                replace=replace,
                range=range,
                only_once=True if range is not None else only_once,
                case_sensitive=case_sensitive,
            )
        )

    def ignore_part(self, offset: int, length: Optional[int] = None) -> "QueryDelta":
        """
        Protects part of the document from later conditions.

        With only `offset`, every character before it is protected (like a
        retain); with `length`, [offset, offset + length) is protected.
        """
        if offset < 0:
            raise IllegalParamsValuesError(illegal=offset, expected=">= 0")
        if length is None:
            return self.push(IgnoreCondition(offset=0, length=offset))
        return self.push(IgnoreCondition(offset=offset, length=length))

    def ignore(self, range: DeltaRange) -> "QueryDelta":
        if range.end_offset is None:
            return self.push(IgnoreCondition(offset=range.start_offset))
        if range.end_offset == range.start_offset:
            raise IllegalParamsValuesError(illegal=range, expected="a non empty range")
        return self.push(IgnoreCondition(offset=range.start_offset, length=range.end_offset - range.start_offset))

    # -- search ---------------------------------------------------------------

    def match_attributes(
        self,
        inline_attrs: Optional[Dict[str, Any]] = None,
        block_attrs: Optional[Dict[str, Any]] = None,
        block_attr_keys: Optional[Sequence[str]] = None,
        inline_attr_keys: Optional[Sequence[str]] = None,
        strict_keys_check: bool = True,
        only_once: bool = False,
    ) -> List[DeltaRangeResult]:
        return match_attributes(
            self._input,
            inline_attrs=inline_attrs,
            block_attrs=block_attrs,
            block_attr_keys=block_attr_keys,
            inline_attr_keys=inline_attr_keys,
            strict_keys_check=strict_keys_check,
            only_once=only_once,
        )

    def first_match(
        self,
        pattern: Optional[PatternLike] = None,
        raw_object: Optional[Any] = None,
        operation_index: Optional[int] = None,
        case_sensitive: bool = True,
    ) -> List[DeltaRangeResult]:
        return find_matches(
            self._input,
            pattern=pattern,
            raw_object=raw_object,
            operation_index=operation_index,
            only_once=True,
            case_sensitive=case_sensitive,
        )

    def all_matches(
        self,
        pattern: Optional[PatternLike] = None,
        raw_object: Optional[Any] = None,
        operation_index: Optional[int] = None,
        case_sensitive: bool = True,
    ) -> List[DeltaRangeResult]:
        return find_matches(
            self._input,
            pattern=pattern,
            raw_object=raw_object,
            operation_index=operation_index,
            only_once=False,
            case_sensitive=case_sensitive,
        )

    # -- execution --------------------------------------------------------------

    def build(
        self,
        unknown_object_type_builder: Optional[Callable[[Any], List[Operation]]] = None,
        prevent_reuse_conditions: bool = True,
        maintain_ignore_conditions: bool = True,
        options: Optional[BuildOptions] = None,
    ) -> BuildResult:
        """
        Folds the pushed conditions over the current document, in push order.

        Build-result errors go to the error sink set with catch_err() when
        there is one (that condition is dropped, the rest still run);
        otherwise they propagate and nothing is committed. Failed conditions
        and replaces skipped over a protected range count as consumed.
        """
        if options is None:
            options = BuildOptions(
                prevent_reuse_conditions=prevent_reuse_conditions,
                maintain_ignore_conditions=maintain_ignore_conditions,
                unknown_object_type_builder=unknown_object_type_builder,
            )
        params = self.params
        if not params.conditions:
            raise NoConditionsCreatedError()

        pending = [
            c
            for c in params.conditions
            if not isinstance(c, IgnoreCondition)
            and not (options.prevent_reuse_conditions and c.key in params.used_conditions)
        ]
        if params.result is not None and not pending:
            logger.debug("No pending conditions; returning cached build result")
            return params.result

        working = self._input.denormalize()
        parts_to_ignore: List[DeltaRange] = []
        newly_used: List[str] = []
        errors: List[DeltaSimplifyError] = []
        applied = 0
        skipped = 0

        for condition in params.conditions:
            was_used = condition.key in params.used_conditions
            if options.prevent_reuse_conditions and was_used:
                continue
            if isinstance(condition, IgnoreCondition):
                if not was_used and not options.maintain_ignore_conditions:
                    newly_used.append(condition.key)
                parts_to_ignore.append(condition.range)
                continue
            if isinstance(condition, ReplaceCondition) and ignore_overlap(parts_to_ignore, condition.range):
                logger.warning(f"Skipping replace {condition.key}: range {condition.range} is protected")
                skipped += 1
                if not was_used:
                    newly_used.append(condition.key)
                continue
            try:
                result = condition.build(working, parts_to_ignore)
                working = self._fold_result(condition, working, result, options.unknown_object_type_builder)
            except DeltaSimplifyError as err:
                if params.on_catch is None:
                    raise
                logger.warning(f"Condition {type(condition).__name__}({condition.key}) failed: {err}")
                params.on_catch(err)
                errors.append(err)
                skipped += 1
                if not was_used:
                    newly_used.append(condition.key)
                continue
            logger.debug(f"Applied {type(condition).__name__}", key=condition.key)
            if not was_used:
                newly_used.append(condition.key)
            applied += 1

        self._input = working.normalize()
        params.used_conditions.update(newly_used)
        result = BuildResult(delta=self._input, applied=applied, skipped=skipped, errors=errors)
        params.result = result
        return result

    def _fold_result(
        self,
        condition: Condition,
        working: Delta,
        result: Any,
        unknown_object_type_builder: Optional[Callable[[Any], List[Operation]]],
    ) -> Delta:
        if isinstance(result, Delta):
            return result
        if isinstance(result, Operation):
            return Delta(operations=[result])
        if isinstance(result, str):
            if not result.strip():
                raise IllegalConditionBuildResultError(
                    condition=condition, illegal=f'"{result}" < result is empty', expected="Non empty string"
                )
            return working.with_insert(result)
        if isinstance(result, dict):
            if "insert" in result:
                try:
                    op = Operation.from_json(result)
                except ValidationError as e:
                    raise IllegalConditionBuildResultError(
                        condition=condition, illegal=result, expected="a valid serialized insert run"
                    ) from e
                return Delta(operations=[*working.operations, op])
            raise IllegalConditionBuildResultError(condition=condition, illegal=result, expected={"insert": str(result)})
        if isinstance(result, (list, tuple)) and all(isinstance(op, Operation) for op in result):
            return Delta(operations=list(result))
        if unknown_object_type_builder is not None and result is not None:
            ops = unknown_object_type_builder(result)
            if not ops:
                raise IllegalConditionBuildResultError(
                    condition=condition, illegal="List of operations is empty", expected="A non empty list of operations"
                )
            return Delta(operations=list(ops))
        raise IllegalConditionBuildResultError(condition=condition, illegal=result, expected=_EXPECTED_RESULTS)

    def to_delta(self) -> Delta:
        if self.params.result is None:
            raise BuildNotExecutedError()
        return self.params.result.delta

    def try_to_delta(self) -> Optional[Delta]:
        return self.params.result.delta if self.params.result is not None else None

    def to_json(self) -> str:
        return json.dumps(self.to_delta().to_json())

    def clone(self, alternative_delta: Optional[Delta] = None) -> "QueryDelta":
        """Copy of this builder, keeping conditions, used keys and the cached result."""
        copy = QueryDelta(alternative_delta if alternative_delta is not None else self._input)
        copy.params = QueryDeltaParams.from_another(self.params)
        return copy

    def compare_diff(
        self, cleanup_semantic: bool = True, options: Optional[DiffOptions] = None
    ) -> DeltaCompareDiffResult:
        """Diff between the original snapshot and the current document."""
        return compare_deltas(
            self.params.original_delta, self._input, cleanup_semantic=cleanup_semantic, options=options
        )
