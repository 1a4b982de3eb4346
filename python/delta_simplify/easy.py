"""
One-shot edits on a Delta. Each helper builds a throwaway QueryDelta with a
single condition and returns the resulting document.
"""

from typing import Any, Dict, Optional, Union

from delta_simplify.attributes import Attribute
from delta_simplify.models import Delta, DeltaRange
from delta_simplify.query.conditions import Insertable
from delta_simplify.query.engine import QueryDelta

Target = Optional[Union[str, Dict[str, Any]]]


def simple_format(
    delta: Delta,
    attribute: Attribute,
    offset: Optional[int] = None,
    length: Optional[int] = None,
    target: Target = None,
    case_sensitive: bool = False,
) -> Delta:
    query = QueryDelta(delta).format(
        attribute=attribute, offset=offset, length=length, target=target, case_sensitive=case_sensitive
    )
    return query.build().delta


def simple_insert(
    delta: Delta,
    insert: Insertable,
    target: Target = None,
    start_point: Optional[int] = None,
    left: bool = False,
    only_once: bool = True,
    as_different_op: bool = False,
    insert_at_last_operation: bool = False,
    case_sensitive: bool = False,
) -> Delta:
    query = QueryDelta(delta).insert(
        insert=insert,
        target=target,
        start_point=start_point,
        left=left,
        only_once=only_once,
        as_different_op=as_different_op,
        insert_at_last_operation=insert_at_last_operation,
        case_sensitive=case_sensitive,
    )
    return query.build().delta


def simple_replace(
    delta: Delta,
    replace: Insertable,
    target: Target = None,
    range: Optional[DeltaRange] = None,
    only_once: bool = True,
    case_sensitive: bool = False,
) -> Delta:
    query = QueryDelta(delta).replace(
        replace=replace, target=target, range=range, only_once=only_once, case_sensitive=case_sensitive
    )
    return query.build().delta


def simple_delete(
    delta: Delta,
    target: Target = None,
    start_point: Optional[int] = None,
    length_of_deletion: Optional[int] = None,
    only_once: bool = True,
    case_sensitive: bool = False,
) -> Delta:
    query = QueryDelta(delta).delete(
        target=target,
        start_point=start_point,
        length_of_deletion=length_of_deletion,
        only_once=only_once,
        case_sensitive=case_sensitive,
    )
    return query.build().delta
