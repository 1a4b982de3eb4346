"""
Tests for query/engine.py: QueryDelta builder and pipeline executor.

Run: python3 test_query_delta.py
From: python/
"""

import sys
from typing import Any

sys.path.insert(0, '.')

import pytest

from delta_simplify.attributes import Attribute
from delta_simplify.config import BuildOptions
from delta_simplify.diff import DiffType
from delta_simplify.errors import (
    BuildNotExecutedError,
    IllegalConditionBuildResultError,
    IllegalOperationPassedError,
    IllegalParamsValuesError,
    NoConditionsCreatedError,
)
from delta_simplify.models import Delta, DeltaRange, Operation
from delta_simplify.query.conditions import Condition, DeleteCondition, IgnoreCondition
from delta_simplify.query.engine import QueryDelta

SAMPLE_OPS = [
    {"insert": "Hello "},
    {"insert": "world", "attributes": {"bold": True}},
    {"insert": "\n"},
]


def _query():
    return QueryDelta.from_json(SAMPLE_OPS)


class _ResultCondition(Condition):
    """Returns a fixed value from build so result handling can be exercised."""

    value: Any = None

    def _build(self, delta, parts_to_ignore):
        return self.value


# ---------------------------------------------------------------------------
# Construction and state errors
# ---------------------------------------------------------------------------

def test_requires_trailing_newline():
    with pytest.raises(IllegalParamsValuesError):
        QueryDelta.from_json([{"insert": "no newline"}])
    QueryDelta.from_json([{"insert": "ends with\n"}])
    QueryDelta.from_json([{"insert": "a"}, {"insert": "\n", "attributes": {"header": 1}}])
    print("PASS: requires trailing newline")


def test_state_errors():
    query = _query()
    with pytest.raises(NoConditionsCreatedError):
        query.build()
    with pytest.raises(BuildNotExecutedError):
        query.to_delta()
    assert query.try_to_delta() is None
    print("PASS: state errors")


def test_constructors():
    delta = Delta.from_json(SAMPLE_OPS)
    condition = DeleteCondition(offset=0, length_of_deletion=6)
    from_ops = QueryDelta.from_operations(delta.operations, [condition])
    with_conditions = QueryDelta.with_conditions(delta, [condition])
    assert from_ops.build().delta.to_plain() == "world\n"
    assert with_conditions.build().delta.to_plain() == "world\n"
    assert delta.to_query().delta == delta
    print("PASS: constructors")


# ---------------------------------------------------------------------------
# Builder operations
# ---------------------------------------------------------------------------

def test_format_target():
    result = _query().format(Attribute.of("italic", True), target="world").build()
    assert result.delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "world", "attributes": {"bold": True, "italic": True}},
        {"insert": "\n"},
    ]
    assert result.applied == 1
    print("PASS: format target")


def test_format_duplicate_is_noop_and_none_removes():
    same = _query().format(Attribute.of("bold", True), target="world").build()
    assert same.delta == Delta.from_json(SAMPLE_OPS)
    removed = _query().format(Attribute.of("bold", None), target="world").build()
    assert removed.delta.to_json() == [{"insert": "Hello world\n"}]
    print("PASS: duplicate format is a no-op, None removes")


def test_format_block_attribute():
    result = _query().format(Attribute.of("header", 1), offset=2).build()
    assert result.delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "\n", "attributes": {"header": 1}},
    ]
    print("PASS: format block attribute")


def test_insert_at_start_point():
    # Canonical output merges "Hello " and "X", which share (no) attributes.
    result = _query().insert("X", start_point=6).build()
    assert result.delta.to_json() == [
        {"insert": "Hello X"},
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "\n"},
    ]
    assert [op.insert for op in result.delta.denormalize()] == ["Hello X", "world", "\n"]
    print("PASS: insert at start point")


def test_insert_inherits_or_not():
    inherited = _query().insert("!", target="world").build()
    assert inherited.delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "world!", "attributes": {"bold": True}},
        {"insert": "\n"},
    ]
    separate = _query().insert("!", target="world", as_different_op=True).build()
    assert separate.delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "!\n"},
    ]
    print("PASS: insert inherits attributes unless as_different_op")


def test_insert_defaults_and_last_operation():
    assert _query().insert(">> ").build().delta.to_plain() == ">> Hello world\n"
    assert _query().insert("?", insert_at_last_operation=True).build().delta.to_plain() == "Hello world?\n"
    embed = _query().insert({"image": "a.png"}, start_point=0).build().delta
    assert embed[0].insert == {"image": "a.png"}
    with pytest.raises(ValueError):
        _query().insert("x", target="world", start_point=1)
    print("PASS: insert defaults and last operation")


def test_delete_start_point():
    result = _query().delete(start_point=0, length_of_deletion=6).build()
    assert result.delta.to_json() == [
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "\n"},
    ]
    assert _query().delete(target="world").build().delta.to_json() == [{"insert": "Hello \n"}]
    print("PASS: delete start point")


def test_delete_bare_newline_is_rejected():
    with pytest.raises(IllegalOperationPassedError):
        _query().delete(start_point=11, length_of_deletion=1).build()
    print("PASS: delete bare newline is rejected")


def test_replace():
    assert _query().replace("planet", target="world").build().delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "planet", "attributes": {"bold": True}},
        {"insert": "\n"},
    ]
    ranged = _query().replace("J", range=DeltaRange(start_offset=0, end_offset=1)).build()
    assert ranged.delta.to_plain() == "Jello world\n"
    with pytest.raises(IllegalParamsValuesError):
        _query().replace("x")
    with pytest.raises(ValueError):
        _query().replace("x", target="world", range=DeltaRange(start_offset=0, end_offset=1))
    print("PASS: replace")


def test_conditions_fold_in_push_order():
    result = (
        _query()
        .insert("big ", start_point=6)
        .replace("small", target="big")
        .format(Attribute.of("underline", True), target="small")
        .build()
    )
    assert result.delta.to_json() == [
        {"insert": "Hello "},
        {"insert": "small", "attributes": {"underline": True}},
        {"insert": " "},
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "\n"},
    ]
    assert result.applied == 3
    print("PASS: conditions fold in push order")


# ---------------------------------------------------------------------------
# Ignore
# ---------------------------------------------------------------------------

def test_ignore_blocks_overlapping_replace():
    query = _query().ignore_part(5, 5).replace("ZZ", range=DeltaRange(start_offset=6, end_offset=8))
    result = query.build()
    before = Delta.from_json(SAMPLE_OPS).to_plain()
    after = result.delta.to_plain()
    assert after[5:10] == before[5:10]
    assert after == "Hello world\n"
    assert result.skipped == 1
    assert result.applied == 0
    assert query.build() is result
    print("PASS: ignore blocks overlapping replace")


def test_ignore_prefix_and_range():
    prefix = _query().ignore_part(6).delete(start_point=0, length_of_deletion=3).build()
    assert prefix.delta.to_plain() == "Hello world\n"

    protected = _query().ignore(DeltaRange(start_offset=6, end_offset=11)).format(
        Attribute.of("italic", True), target="world"
    ).build()
    assert protected.delta == Delta.from_json(SAMPLE_OPS)

    outside = _query().ignore(DeltaRange(start_offset=6, end_offset=11)).delete(target="Hello").build()
    assert outside.delta.to_plain() == " world\n"

    with pytest.raises(IllegalParamsValuesError):
        _query().ignore(DeltaRange(start_offset=3, end_offset=3))
    print("PASS: ignore prefix and range")


def test_ignore_is_remembered_across_builds():
    query = _query().ignore_part(0, 6)
    query.insert("!", target="world")
    query.build()
    query.delete(start_point=0, length_of_deletion=2)
    assert query.build().delta.to_plain() == "Hello world!\n"

    forgetful = _query().ignore_part(0, 6)
    forgetful.insert("!", target="world")
    forgetful.build(maintain_ignore_conditions=False)
    forgetful.delete(start_point=0, length_of_deletion=2)
    assert forgetful.build().delta.to_plain() == "llo world!\n"
    print("PASS: ignore is remembered across builds")


# ---------------------------------------------------------------------------
# Reuse, caching and error routing
# ---------------------------------------------------------------------------

def test_build_is_idempotent_when_nothing_pending():
    query = _query().insert("X", start_point=0)
    first = query.build()
    second = query.build()
    assert second is first
    assert query.to_delta().to_plain() == "XHello world\n"
    print("PASS: build is idempotent when nothing is pending")


def test_new_conditions_apply_on_top():
    query = _query().format(Attribute.of("italic", True), target="world")
    query.build()
    query.delete(start_point=0, length_of_deletion=6)
    result = query.build()
    assert result.delta.to_json() == [
        {"insert": "world", "attributes": {"bold": True, "italic": True}},
        {"insert": "\n"},
    ]
    assert result.applied == 1
    print("PASS: new conditions apply on top")


def test_reuse_when_allowed():
    query = _query().insert("X", start_point=0)
    query.build()
    again = query.build(prevent_reuse_conditions=False)
    assert again.delta.to_plain() == "XXHello world\n"
    options = BuildOptions(prevent_reuse_conditions=False)
    assert query.build(options=options).delta.to_plain() == "XXXHello world\n"
    print("PASS: reuse when allowed")


def test_error_sink_continues_pipeline():
    errors = []
    query = (
        _query()
        .catch_err(errors.append)
        .delete(start_point=11, length_of_deletion=1)
        .insert("!", target="world")
    )
    result = query.build()
    assert len(errors) == 1
    assert isinstance(errors[0], IllegalOperationPassedError)
    assert result.errors == errors
    assert result.applied == 1
    assert result.skipped == 1
    assert result.has_errors
    assert result.delta.to_plain() == "Hello world!\n"
    assert query.build() is result
    assert len(errors) == 1
    print("PASS: error sink continues pipeline")


def test_bad_targets_raise_when_pushed():
    errors = []
    query = _query().catch_err(errors.append)
    for bad in ["(", "   "]:
        with pytest.raises(ValueError):
            query.format(Attribute.of("italic", True), target=bad)
    with pytest.raises(ValueError):
        query.replace("x", target="[a-")
    assert query.params.conditions == []
    assert errors == []
    print("PASS: bad targets raise when pushed")


def test_failed_build_leaves_document_untouched():
    query = _query().insert("A", start_point=0).delete(start_point=12, length_of_deletion=1)
    with pytest.raises(IllegalOperationPassedError):
        query.build()
    assert query.delta == Delta.from_json(SAMPLE_OPS)
    assert query.try_to_delta() is None
    print("PASS: failed build leaves document untouched")


def test_condition_result_shapes():
    append_text = _query().push(_ResultCondition(value="tail")).build()
    assert append_text.delta.to_plain() == "Hello world\ntail"

    append_dict = _query().push(_ResultCondition(value={"insert": "more\n"})).build()
    assert append_dict.delta.to_plain() == "Hello world\nmore\n"

    single = _query().push(_ResultCondition(value=Operation(insert="only\n"))).build()
    assert single.delta.to_plain() == "only\n"

    converted = _query().push(_ResultCondition(value=42)).build(
        unknown_object_type_builder=lambda n: [Operation(insert=f"{n}\n")]
    )
    assert converted.delta.to_plain() == "42\n"
    print("PASS: condition result shapes")


def test_illegal_condition_results():
    with pytest.raises(IllegalConditionBuildResultError):
        _query().push(_ResultCondition(value=42)).build()
    with pytest.raises(IllegalConditionBuildResultError):
        _query().push(_ResultCondition(value="   ")).build()
    with pytest.raises(IllegalConditionBuildResultError):
        _query().push(_ResultCondition(value={"text": "x"})).build()
    with pytest.raises(IllegalConditionBuildResultError):
        _query().push(_ResultCondition(value=42)).build(unknown_object_type_builder=lambda n: [])

    errors = []
    result = _query().catch_err(errors.append).push(_ResultCondition(value=42)).build()
    assert len(errors) == 1
    assert result.delta == Delta.from_json(SAMPLE_OPS)

    with pytest.raises(IllegalConditionBuildResultError):
        _query().push(_ResultCondition(value={"insert": 5})).build()

    errors = []
    result = (
        _query()
        .catch_err(errors.append)
        .push(_ResultCondition(value={"insert": 5}))
        .insert({"insert": 5}, start_point=0)
        .format(Attribute.of("italic", True), target="Hello")
        .build()
    )
    assert [type(e) for e in errors] == [IllegalConditionBuildResultError, IllegalParamsValuesError]
    assert result.applied == 1
    assert result.skipped == 2
    assert result.delta.to_json()[0] == {"insert": "Hello", "attributes": {"italic": True}}
    print("PASS: illegal condition results")


def test_push_json_and_push_all():
    query = _query().push_json(
        '[{"kind": "delete", "offset": 0, "length_of_deletion": 6},'
        ' {"kind": "format", "attribute": {"key": "header", "value": 2}, "offset": 0}]'
    )
    assert query.build().delta.to_json() == [
        {"insert": "world", "attributes": {"bold": True}},
        {"insert": "\n", "attributes": {"header": 2}},
    ]
    with pytest.raises(IllegalParamsValuesError):
        _query().push_all(["not a condition"])
    print("PASS: push_json and push_all")


def test_clone_copies_state():
    query = _query().insert("X", start_point=0)
    copy = query.clone()
    copy.delete(start_point=0, length_of_deletion=1)
    assert len(query.params.conditions) == 1
    assert len(copy.params.conditions) == 2

    alternative = query.clone(Delta.from_json([{"insert": "Other\n"}]))
    assert alternative.build().delta.to_plain() == "XOther\n"
    print("PASS: clone copies state")


# ---------------------------------------------------------------------------
# Matchers and diff through the builder
# ---------------------------------------------------------------------------

def test_builder_matchers():
    query = _query()
    assert [(m.start_offset, m.end_offset) for m in query.all_matches(pattern="o")] == [(4, 5), (7, 8)]
    assert [(m.start_offset, m.end_offset) for m in query.first_match(pattern="o")] == [(4, 5)]
    assert query.match_attributes(inline_attr_keys=["bold"])[0].to_plain() == "world"
    with pytest.raises(IllegalParamsValuesError):
        query.first_match(pattern="o", operation_index=5)
    print("PASS: builder matchers")


def test_compare_diff_after_build():
    query = QueryDelta.from_json([{"insert": "Hello world\n"}])
    query.insert("brave ", start_point=6).build()
    diff = query.compare_diff()
    changes = diff.changes
    assert len(changes) == 1
    assert changes[0].type == DiffType.INSERT
    assert changes[0].after == "brave "
    assert (changes[0].start, changes[0].end) == (6, 12)
    assert all(p.type == DiffType.EQUAL for p in diff.diff_parts if p is not changes[0])

    untouched = QueryDelta.from_json(SAMPLE_OPS)
    untouched.push(IgnoreCondition(offset=0, length=1))
    untouched.build()
    assert untouched.compare_diff().diff_parts == []
    print("PASS: compare_diff after build")


if __name__ == '__main__':
    tests = [
        test_requires_trailing_newline,
        test_state_errors,
        test_constructors,
        test_format_target,
        test_format_duplicate_is_noop_and_none_removes,
        test_format_block_attribute,
        test_insert_at_start_point,
        test_insert_inherits_or_not,
        test_insert_defaults_and_last_operation,
        test_delete_start_point,
        test_delete_bare_newline_is_rejected,
        test_replace,
        test_conditions_fold_in_push_order,
        test_ignore_blocks_overlapping_replace,
        test_ignore_prefix_and_range,
        test_ignore_is_remembered_across_builds,
        test_build_is_idempotent_when_nothing_pending,
        test_new_conditions_apply_on_top,
        test_reuse_when_allowed,
        test_error_sink_continues_pipeline,
        test_bad_targets_raise_when_pushed,
        test_failed_build_leaves_document_untouched,
        test_condition_result_shapes,
        test_illegal_condition_results,
        test_push_json_and_push_all,
        test_clone_copies_state,
        test_builder_matchers,
        test_compare_diff_after_build,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
    else:
        print("All tests passed!")
