"""
Error taxonomy for BQL.

Each stage of the pipeline raises its own exception type so callers can tell
a malformed query apart from a query that is well-formed but refers to
unknown fields, and both apart from a store failure.
"""

from typing import Optional


class BQLError(Exception):
    """Base class for every error raised by the bql package."""

    prefix = "bql error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.prefix}: {message}")


class ParseError(BQLError, ValueError):
    """Lexical or grammar violation, positioned at the offending token."""

    prefix = "parse error"

    def __init__(self, message: str, position: int, found: Optional[str] = None):
        self.position = position
        self.found = found
        super().__init__(message)


class ValidationError(BQLError, ValueError):
    """The query parsed but uses a field, operator or value that is not allowed."""

    prefix = "validation error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ExecutionError(BQLError, RuntimeError):
    """A store call failed while running a query."""

    prefix = "execution error"

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")


__all__ = ["BQLError", "ParseError", "ValidationError", "ExecutionError"]
