"""Configuration constants for arffnet.

Format keywords, numeric limits and fixed-point parameters shared by the
reader, the evaluator and the compiler.
"""

# ARFF keywords (matched case-insensitively)
ARFF_RELATION: str = "@relation"
ARFF_ATTRIBUTE: str = "@attribute"
ARFF_DATA: str = "@data"
NUMERIC_TYPE_NAMES: tuple[str, ...] = ("numeric", "real", "integer")

MISSING_TOKEN: str = "?"
COMMENT_CHAR: str = "%"
QUOTE_CHARS: tuple[str, ...] = ("'", '"')
COMPRESSED_EXTENSION: str = ".gz"

# Reader capacity hints
DEFAULT_CAPACITY: int = 1000
STRUCTURE_CAPACITY: int = 1

# Sigmoid saturation: beyond this the logistic is within double epsilon of 0 or 1
SIGMOID_SATURATION: float = 45.0

# Fixed-point (Q12) code generation
FRACTION_BITS: int = 12
FIXED_ONE: int = 1 << FRACTION_BITS
SLOT_TYPE: str = "int32_t"
