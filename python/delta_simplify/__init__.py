from importlib.metadata import PackageNotFoundError, version

from delta_simplify.attributes import Attribute, AttributeScope
from delta_simplify.diff import DeltaCompareDiffResult, DeltaDiffPart, DiffType, compare_deltas
from delta_simplify.models import Delta, DeltaRange, DeltaRangeResult, Operation
from delta_simplify.query.conditions import (
    DeleteCondition,
    FormatCondition,
    IgnoreCondition,
    InsertCondition,
    ReplaceCondition,
)
from delta_simplify.query.engine import BuildResult, QueryDelta

try:
    __version__ = version("delta-simplify")
except PackageNotFoundError:
    # Running from a source checkout without an installed distribution.
    __version__ = "0.0.0-dev"

__all__ = [
    "Attribute",
    "AttributeScope",
    "BuildResult",
    "DeleteCondition",
    "Delta",
    "DeltaCompareDiffResult",
    "DeltaDiffPart",
    "DeltaRange",
    "DeltaRangeResult",
    "DiffType",
    "FormatCondition",
    "IgnoreCondition",
    "InsertCondition",
    "Operation",
    "QueryDelta",
    "ReplaceCondition",
    "compare_deltas",
    "__version__",
]
