"""Exception hierarchy for arffnet.

Every error raised for bad data, bad models or misuse of the evaluator derives
from ArffNetError so callers (and the CLI) can catch the whole family at once.
Internal invariants that can only break through programming mistakes are
checked with assert, not with these classes.
"""


class ArffNetError(Exception):
    """Base class for all arffnet errors."""


# =============================================================================
# Schema errors
# =============================================================================


class SchemaError(ArffNetError):
    """Raised for inconsistent attribute or schema definitions."""


class DuplicateAttributeError(SchemaError):
    """Raised when two attributes in one schema share a name."""


class DuplicateValueError(SchemaError):
    """Raised when a nominal attribute would contain the same label twice."""


class ClassIndexError(SchemaError):
    """Raised for a class index outside the schema, or a missing class."""


class InvalidMetadataError(SchemaError):
    """Raised when attribute metadata properties contradict each other."""


class RangeParseError(SchemaError):
    """Raised for a malformed or empty numeric range string."""


# =============================================================================
# Format errors
# =============================================================================


class FormatError(ArffNetError):
    """Raised when ARFF text cannot be parsed.

    Attributes:
        message: Description of the failure without location.
        line: Physical line number where the failure was detected, or None.
        token: Textual form of the last token read, if any.
    """

    def __init__(self, message: str, line: int | None = None, token: str | None = None) -> None:
        self.message = message
        self.line = line
        self.token = token
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [self.message]
        if self.token is not None:
            parts.append(f"read {self.token}")
        if self.line is not None:
            parts.append(f"line {self.line}")
        return ", ".join(parts)


class EmptyHeaderError(FormatError):
    """Raised when @data is reached without any @attribute declaration."""


class UnknownNominalValueError(FormatError):
    """Raised when a data token is not among the declared nominal labels."""


class NumberFormatError(FormatError):
    """Raised when a numeric column holds something that is not a number."""


# =============================================================================
# Evaluation and compilation errors
# =============================================================================


class EvaluationError(ArffNetError):
    """Raised when a network cannot produce a prediction."""


class UnassignedSchemaError(EvaluationError):
    """Raised when an instance or evaluator has no schema to work against."""


class StaleCacheError(EvaluationError):
    """Raised when memoized node values belong to a different instance."""


class CompileError(ArffNetError):
    """Raised when a network cannot be lowered to fixed-point code."""


class CyclicGraphError(CompileError):
    """Raised when the network graph contains a cycle."""


class ModelFormatError(ArffNetError):
    """Raised when a saved model document is malformed."""
