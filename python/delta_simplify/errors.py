"""
Exceptions raised by delta_simplify.

Usage errors (bad arguments) subclass ValueError so they can be caught the
same way as pydantic validation errors. Build-result errors are the only
ones routed to a builder's error sink.
"""

from typing import Any


class DeltaSimplifyError(Exception):
    """Base exception for all delta_simplify errors."""

    pass


class IllegalParamsValuesError(DeltaSimplifyError, ValueError):
    """Raised when an argument is invalid or contradicts another one.

    Attributes:
        illegal: The offending value
        expected: What would have been accepted instead
    """

    def __init__(self, illegal: Any, expected: Any, message: str | None = None) -> None:
        self.illegal = illegal
        self.expected = expected
        super().__init__(message or f"Illegal value {illegal!r}, expected {expected!r}")


class IllegalOperationPassedError(DeltaSimplifyError, ValueError):
    """Raised when a run cannot take part in the requested computation.

    Document form only contains insertions, so a retain or delete run here is
    always a caller bug. Also raised when an edit would remove a bare line
    terminator.
    """

    def __init__(self, illegal: Any, expected: Any = None, message: str | None = None) -> None:
        self.illegal = illegal
        self.expected = expected
        msg = message or f"Illegal operation {illegal!r}"
        if expected is not None and message is None:
            msg += f", expected something like {expected!r}"
        super().__init__(msg)


class IllegalConditionBuildResultError(DeltaSimplifyError):
    """Raised when a condition's build step returns an unusable result.

    Attributes:
        condition: The condition that produced the result
        illegal: The result that was returned
        expected: Description of the accepted result shapes
    """

    def __init__(self, condition: Any, illegal: Any, expected: Any) -> None:
        self.condition = condition
        self.illegal = illegal
        self.expected = expected
        name = type(condition).__name__
        key = getattr(condition, "key", None)
        super().__init__(f"{name}(key={key}) returned {illegal!r}; expected {expected!r}")


class NoConditionsCreatedError(DeltaSimplifyError, RuntimeError):
    """Raised when build() runs before any condition was pushed."""

    def __init__(self) -> None:
        super().__init__("No conditions were pushed before build(); nothing to execute")


class BuildNotExecutedError(DeltaSimplifyError, RuntimeError):
    """Raised when the built document is requested before build() ran."""

    def __init__(self) -> None:
        super().__init__("Run build() before calling to_delta()")
