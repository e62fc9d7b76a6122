"""Tests for attributes, metadata and numeric ranges."""

import math

import pytest

from arffnet.attribute import (
    AttributeType,
    NumericRange,
    Ordering,
    make_nominal,
    make_numeric,
)
from arffnet.exceptions import (
    DuplicateValueError,
    InvalidMetadataError,
    RangeParseError,
    SchemaError,
)


# =============================================================================
# Construction and lookup
# =============================================================================


def test_make_nominal_keeps_declaration_order() -> None:
    attribute = make_nominal("outlook", ["sunny", "overcast", "rainy"])

    assert attribute.type == AttributeType.NOMINAL
    assert attribute.num_values == 3
    assert attribute.index == -1
    assert [attribute.index_of_value(v) for v in ("sunny", "overcast", "rainy")] == [0, 1, 2]
    assert attribute.value(2) == "rainy"


def test_index_of_value_absent_or_numeric() -> None:
    assert make_nominal("c", ["yes", "no"]).index_of_value("maybe") == -1
    numeric = make_numeric("temperature")
    assert numeric.index_of_value("yes") == -1
    assert numeric.num_values == 0
    assert numeric.value(0) == ""


def test_make_nominal_rejects_duplicate_labels() -> None:
    with pytest.raises(DuplicateValueError, match="duplicate"):
        make_nominal("c", ["yes", "no", "yes"])


# =============================================================================
# Copy-on-write changes
# =============================================================================


def test_rename_shares_label_list() -> None:
    original = make_nominal("c", ["yes", "no"])
    renamed = original.rename("class")

    assert renamed.name == "class"
    assert original.name == "c"
    assert renamed.values is original.values
    assert renamed.index_of_value("no") == 1


def test_rename_value_builds_new_label_list() -> None:
    original = make_nominal("c", ["yes", "no"])
    renamed = original.rename_value("no", "nope")

    assert renamed.values == ("yes", "nope")
    assert original.values == ("yes", "no")
    assert renamed.index_of_value("nope") == 1
    assert renamed.index_of_value("no") == -1


def test_rename_value_errors() -> None:
    attribute = make_nominal("c", ["yes", "no"])

    with pytest.raises(SchemaError, match="not found"):
        attribute.rename_value("maybe", "perhaps")
    with pytest.raises(DuplicateValueError):
        attribute.rename_value("no", "yes")
    with pytest.raises(SchemaError):
        make_numeric("x").rename_value("a", "b")


def test_add_value_leaves_original_untouched() -> None:
    original = make_nominal("c", ["yes"])
    extended = original.add_value("no")

    assert extended.values == ("yes", "no")
    assert original.values == ("yes",)
    assert original.index_of_value("no") == -1


# =============================================================================
# Metadata
# =============================================================================


def test_numeric_metadata_defaults() -> None:
    metadata = make_numeric("x").metadata

    assert metadata.is_averagable
    assert metadata.has_zeropoint
    assert metadata.is_regular
    assert metadata.ordering == Ordering.ORDERED
    assert metadata.weight == 1.0
    assert metadata.numeric_range == NumericRange()


def test_nominal_metadata_defaults() -> None:
    metadata = make_nominal("c", ["a"]).metadata

    assert not metadata.is_averagable
    assert not metadata.has_zeropoint
    assert not metadata.is_regular
    assert metadata.ordering == Ordering.SYMBOLIC
    assert metadata.numeric_range is None


def test_modulo_numeric_is_not_averagable() -> None:
    metadata = make_numeric("angle", {"ordering": "modulo"}).metadata

    assert metadata.ordering == Ordering.MODULO
    assert not metadata.is_averagable
    assert not metadata.has_zeropoint


@pytest.mark.parametrize(
    "properties, numeric",
    [
        ({"regular": "false"}, True),
        ({"averageable": "true", "regular": "false"}, False),
        ({"regular": "true"}, False),
        ({"zeropoint": "true", "ordering": "modulo"}, True),
        ({"weight": "heavy"}, True),
    ],
)
def test_inconsistent_metadata_is_rejected(properties: dict[str, str], numeric: bool) -> None:
    with pytest.raises(InvalidMetadataError):
        if numeric:
            make_numeric("x", properties)
        else:
            make_nominal("x", ["a"], properties)


def test_metadata_weight_and_range() -> None:
    attribute = make_numeric("x", {"weight": "2.5", "range": "[0,1)"})

    assert attribute.weight == 2.5
    assert attribute.metadata.numeric_range == NumericRange(0.0, False, 1.0, True)
    assert attribute.with_weight(0.5).weight == 0.5


# =============================================================================
# Numeric ranges
# =============================================================================


@pytest.mark.parametrize(
    "text, expected",
    [
        ("[-inf,20)", NumericRange(-math.inf, False, 20.0, True)),
        ("(-13.5,-5.2)", NumericRange(-13.5, True, -5.2, True)),
        ("(5,inf]", NumericRange(5.0, True, math.inf, False)),
        ("[inf,INF]", NumericRange(-math.inf, False, math.inf, False)),
        ("[ 1 , +inf ]", NumericRange(1.0, False, math.inf, False)),
        (None, NumericRange()),
    ],
)
def test_parse_range(text: str | None, expected: NumericRange) -> None:
    assert NumericRange.parse(text) == expected


@pytest.mark.parametrize("text", ["[1,2", "[1,2]x", "1,2]", "[a,2]", "[3,1]", "{1,2}", "[1;2]"])
def test_parse_range_rejects_malformed(text: str) -> None:
    with pytest.raises(RangeParseError):
        NumericRange.parse(text)


def test_range_contains() -> None:
    interval = NumericRange.parse("[-inf,20)")

    assert interval.contains(-1e300)
    assert interval.contains(19.99)
    assert not interval.contains(20.0)
    assert not interval.contains(math.nan)
