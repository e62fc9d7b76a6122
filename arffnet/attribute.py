"""Column descriptors: numeric and nominal attributes with their metadata.

An Attribute is immutable. Every change (new name, renamed or added label,
new position in a schema) produces a new Attribute, so attributes already
referenced by existing schemas and instances stay valid. Unchanged label
tuples and their lookup tables are shared between the old and new objects.
"""

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import NamedTuple

from arffnet.exceptions import (
    DuplicateValueError,
    InvalidMetadataError,
    RangeParseError,
    SchemaError,
)
from arffnet.quoting import quote

type Label = str


class AttributeType(Enum):
    NUMERIC = "numeric"
    NOMINAL = "nominal"


class Ordering(Enum):
    SYMBOLIC = "symbolic"
    ORDERED = "ordered"
    MODULO = "modulo"


# =============================================================================
# Numeric ranges
# =============================================================================

_RANGE_TOKEN_RE = re.compile(r"[\[\(,\]\)]|[^\s\[\(,\]\)]+")


class NumericRange(NamedTuple):
    """Interval of admissible values for a numeric attribute."""

    lower: float = -math.inf
    lower_open: bool = False
    upper: float = math.inf
    upper_open: bool = False

    @classmethod
    def parse(cls, text: str | None) -> "NumericRange":
        """Parse a range such as ``[-inf,20)``, ``(-13.5,-5.2)`` or ``(5,inf]``.

        Square brackets are closed ends, parentheses open ones. ``inf`` means
        negative infinity as a lower bound and positive infinity as an upper
        bound. None yields the unbounded closed range.

        Raises:
            RangeParseError: If the text is malformed or upper < lower
        """
        if text is None:
            return cls()

        tokens = _RANGE_TOKEN_RE.findall(text)
        if len(tokens) < 5:
            msg = f"Incomplete numeric range: {text!r}"
            raise RangeParseError(msg)
        if len(tokens) > 5:
            msg = f"Expected end of range string, found: {tokens[5]!r}"
            raise RangeParseError(msg)

        opening, lower_text, comma, upper_text, closing = tokens
        if opening not in ("[", "("):
            msg = f"Expected opening brace on range, found: {opening!r}"
            raise RangeParseError(msg)
        if comma != ",":
            msg = f"Expected comma in range, found: {comma!r}"
            raise RangeParseError(msg)
        if closing not in ("]", ")"):
            msg = f"Expected closing brace on range, found: {closing!r}"
            raise RangeParseError(msg)

        lower = _parse_bound(lower_text, "lower", unsigned_inf=-math.inf)
        upper = _parse_bound(upper_text, "upper", unsigned_inf=math.inf)
        if upper < lower:
            msg = f"Upper bound ({upper}) on numeric range is less than lower bound ({lower})!"
            raise RangeParseError(msg)

        return cls(lower=lower, lower_open=opening == "(", upper=upper, upper_open=closing == ")")

    def contains(self, value: float) -> bool:
        if math.isnan(value):
            return False
        above = value > self.lower if self.lower_open else value >= self.lower
        below = value < self.upper if self.upper_open else value <= self.upper
        return above and below

    def __str__(self) -> str:
        opening = "(" if self.lower_open else "["
        closing = ")" if self.upper_open else "]"
        return f"{opening}{_format_bound(self.lower)},{_format_bound(self.upper)}{closing}"


def _parse_bound(text: str, which: str, *, unsigned_inf: float) -> float:
    lowered = text.lower()
    if lowered == "-inf":
        return -math.inf
    if lowered == "+inf":
        return math.inf
    if lowered == "inf":
        return unsigned_inf
    if text in ("[", "(", ",", "]", ")"):
        msg = f"Expected {which} bound in range, found: {text!r}"
        raise RangeParseError(msg)
    try:
        return float(text)
    except ValueError as e:
        msg = f"Expected {which} bound in range, found: {text!r}"
        raise RangeParseError(msg) from e


def _format_bound(value: float) -> str:
    if math.isinf(value):
        return "-inf" if value < 0 else "+inf"
    return repr(value)


# =============================================================================
# Metadata
# =============================================================================


@dataclass(frozen=True)
class AttributeMetadata:
    """Derived view of the key=value properties attached to an attribute.

    Recognised keys are ``ordering``, ``averageable``, ``zeropoint``,
    ``regular``, ``weight`` and ``range``. Other keys are kept verbatim in
    ``properties`` for callers that want them.
    """

    properties: tuple[tuple[str, str], ...] = ()
    ordering: Ordering = Ordering.ORDERED
    is_regular: bool = True
    is_averagable: bool = True
    has_zeropoint: bool = True
    weight: float = 1.0
    numeric_range: NumericRange | None = None

    @classmethod
    def from_properties(
        cls, properties: Mapping[str, str] | None, *, numeric: bool
    ) -> "AttributeMetadata":
        """Apply the defaulting rules and consistency checks to ``properties``.

        Raises:
            InvalidMetadataError: If the properties contradict each other
            RangeParseError: If a numeric ``range`` property is malformed
        """
        props = dict(properties or {})
        order_text = props.get("ordering", "")

        # numeric ordered attributes are averagable and zeropoint by default
        default = "true" if numeric and order_text not in ("modulo", "symbolic") else "false"
        is_averagable = props.get("averageable", default) == "true"
        has_zeropoint = props.get("zeropoint", default) == "true"
        if is_averagable or has_zeropoint:
            default = "true"
        is_regular = props.get("regular", default) == "true"

        if order_text in ("symbolic", "ordered", "modulo"):
            ordering = Ordering(order_text)
        elif numeric or is_averagable or has_zeropoint:
            ordering = Ordering.ORDERED
        else:
            ordering = Ordering.SYMBOLIC

        if is_averagable and not is_regular:
            msg = "An averagable attribute must be regular"
            raise InvalidMetadataError(msg)
        if has_zeropoint and not is_regular:
            msg = "A zeropoint attribute must be regular"
            raise InvalidMetadataError(msg)
        if is_regular and ordering == Ordering.SYMBOLIC:
            msg = "A symbolic attribute cannot be regular"
            raise InvalidMetadataError(msg)
        if is_averagable and ordering != Ordering.ORDERED:
            msg = "An averagable attribute must be ordered"
            raise InvalidMetadataError(msg)
        if has_zeropoint and ordering != Ordering.ORDERED:
            msg = "A zeropoint attribute must be ordered"
            raise InvalidMetadataError(msg)

        weight = 1.0
        if "weight" in props:
            try:
                weight = float(props["weight"])
            except ValueError as e:
                msg = f"Not a valid attribute weight: {props['weight']!r}"
                raise InvalidMetadataError(msg) from e

        numeric_range = NumericRange.parse(props.get("range")) if numeric else None

        return cls(
            properties=tuple(sorted(props.items())),
            ordering=ordering,
            is_regular=is_regular,
            is_averagable=is_averagable,
            has_zeropoint=has_zeropoint,
            weight=weight,
            numeric_range=numeric_range,
        )

    def as_dict(self) -> dict[str, str]:
        return dict(self.properties)


# =============================================================================
# Attribute
# =============================================================================


@dataclass(frozen=True)
class Attribute:
    """A named column, either numeric or nominal.

    Nominal labels are stored in declaration order; their position is the
    numeric code stored in instances. ``index`` is -1 until the attribute is
    placed in a Schema.
    """

    name: str
    type: AttributeType
    values: tuple[Label, ...] = ()
    index: int = -1
    metadata: AttributeMetadata = field(default_factory=AttributeMetadata)
    _lookup: Mapping[Label, int] | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self._lookup is not None:
            return
        lookup: dict[Label, int] = {}
        for position, label in enumerate(self.values):
            if label in lookup:
                msg = f"A nominal attribute ({self.name}) cannot have duplicate labels ({label})."
                raise DuplicateValueError(msg)
            lookup[label] = position
        object.__setattr__(self, "_lookup", lookup)

    @property
    def is_numeric(self) -> bool:
        return self.type == AttributeType.NUMERIC

    @property
    def is_nominal(self) -> bool:
        return self.type == AttributeType.NOMINAL

    @property
    def num_values(self) -> int:
        """Number of labels; 0 for numeric attributes."""
        return len(self.values) if self.is_nominal else 0

    @property
    def weight(self) -> float:
        return self.metadata.weight

    def index_of_value(self, label: Label) -> int:
        """Position of ``label``, or -1 if absent or the attribute is numeric."""
        if not self.is_nominal:
            return -1
        assert self._lookup is not None
        return self._lookup.get(label, -1)

    def value(self, position: int) -> Label:
        """Label at ``position``; the empty string for numeric attributes."""
        if not self.is_nominal:
            return ""
        return self.values[position]

    def rename(self, new_name: str) -> "Attribute":
        """Copy with a new name, sharing the label list."""
        return replace(self, name=new_name)

    def rename_value(self, old: Label, new: Label) -> "Attribute":
        """Copy with label ``old`` replaced by ``new`` in a fresh label list.

        Raises:
            SchemaError: If the attribute is numeric or ``old`` is not a label
            DuplicateValueError: If ``new`` is already another label
        """
        if not self.is_nominal:
            msg = f"Can only rename values of nominal attributes, {self.name!r} is numeric"
            raise SchemaError(msg)
        position = self.index_of_value(old)
        if position == -1:
            msg = f"{old!r} not found in attribute {self.name!r}"
            raise SchemaError(msg)
        values = list(self.values)
        values[position] = new
        return replace(self, values=tuple(values), _lookup=None)

    def add_value(self, label: Label) -> "Attribute":
        """Copy with ``label`` appended to a fresh label list."""
        if not self.is_nominal:
            msg = f"Can only add values to nominal attributes, {self.name!r} is numeric"
            raise SchemaError(msg)
        return replace(self, values=(*self.values, label), _lookup=None)

    def with_index(self, index: int) -> "Attribute":
        return replace(self, index=index)

    def with_weight(self, weight: float) -> "Attribute":
        properties = self.metadata.as_dict()
        properties["weight"] = repr(weight)
        metadata = AttributeMetadata.from_properties(properties, numeric=self.is_numeric)
        return replace(self, metadata=metadata)

    def to_arff(self) -> str:
        """Render the ``@attribute`` declaration line.

        >>> make_nominal("outlook", ["sunny", "rainy day"]).to_arff()
        "@attribute outlook {sunny,'rainy day'}"
        """
        if self.is_numeric:
            return f"@attribute {quote(self.name)} numeric"
        labels = ",".join(quote(label) for label in self.values)
        return f"@attribute {quote(self.name)} {{{labels}}}"

    def __str__(self) -> str:
        return self.to_arff()


def make_numeric(name: str, metadata: Mapping[str, str] | None = None) -> Attribute:
    """Create a numeric attribute.

    Raises:
        InvalidMetadataError: If ``metadata`` is inconsistent
        RangeParseError: If the ``range`` property is malformed
    """
    return Attribute(
        name=name,
        type=AttributeType.NUMERIC,
        metadata=AttributeMetadata.from_properties(metadata, numeric=True),
    )


def make_nominal(
    name: str, values: Iterable[Label], metadata: Mapping[str, str] | None = None
) -> Attribute:
    """Create a nominal attribute with the given ordered labels.

    Raises:
        DuplicateValueError: If a label appears twice
        InvalidMetadataError: If ``metadata`` is inconsistent
    """
    return Attribute(
        name=name,
        type=AttributeType.NOMINAL,
        values=tuple(values),
        metadata=AttributeMetadata.from_properties(metadata, numeric=False),
    )
