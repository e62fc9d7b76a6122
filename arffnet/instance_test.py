"""Tests for instances: copy-on-write values and the weak schema link."""

import gc
import math

import numpy as np
import pytest

from arffnet.attribute import make_nominal, make_numeric
from arffnet.dataset import Schema
from arffnet.exceptions import UnassignedSchemaError
from arffnet.instance import Instance, format_number


@pytest.fixture
def schema():
    return Schema([make_numeric("a"), make_nominal("cls", ["yes", "no"])], class_index=1)


def test_missing_instance() -> None:
    instance = Instance.missing(3)

    assert instance.num_values == 3
    assert instance.weight == 1.0
    assert all(instance.is_missing(i) for i in range(3))


def test_copy_shares_buffer_until_write() -> None:
    original = Instance([1.0, 2.0])
    duplicate = original.copy()
    assert duplicate.values is original.values

    duplicate.set_value(0, 5.0)

    assert duplicate.value(0) == 5.0
    assert original.value(0) == 1.0
    assert duplicate.values is not original.values


def test_value_buffer_is_read_only() -> None:
    instance = Instance([1.0, 2.0])
    with pytest.raises(ValueError):
        instance.values[0] = 3.0


def test_to_double_array_returns_fresh_copy() -> None:
    instance = Instance([1.0, 2.0])
    array = instance.to_double_array()
    array[0] = 99.0

    assert instance.value(0) == 1.0
    assert array is not instance.to_double_array()


def test_set_missing() -> None:
    instance = Instance([1.0, 2.0])
    instance.set_missing(1)

    assert instance.is_missing(1)
    assert math.isnan(instance.value(1))
    assert not instance.is_missing(0)


def test_unbound_instance_has_no_class() -> None:
    instance = Instance([1.0, 0.0])

    assert instance.schema is None
    with pytest.raises(UnassignedSchemaError):
        instance.class_value()
    with pytest.raises(UnassignedSchemaError):
        instance.attribute(0)


def test_bound_instance_reads_class(schema) -> None:
    instance = Instance([1.5, 1.0], schema=schema)

    assert instance.class_index == 1
    assert instance.class_value() == 1.0
    assert not instance.class_is_missing()
    assert instance.attribute(1).name == "cls"


def test_schema_link_is_weak() -> None:
    schema = Schema([make_numeric("a")])
    instance = Instance([1.0], schema=schema)
    assert instance.schema is schema

    del schema
    gc.collect()

    assert instance.schema is None


@pytest.mark.parametrize(
    "values, weight, expected",
    [
        ([1.5, 0.0], 1.0, "1.5,yes"),
        ([math.nan, 1.0], 1.0, "?,no"),
        ([3.0, math.nan], 0.5, "3,?,{0.5}"),
    ],
)
def test_to_arff(schema, values: list[float], weight: float, expected: str) -> None:
    assert Instance(values, weight, schema).to_arff() == expected


def test_format_number() -> None:
    assert format_number(2.0) == "2"
    assert format_number(-0.25) == "-0.25"
    assert format_number(1e20) == "1e+20"
    assert np.isclose(float(format_number(0.1 + 0.2)), 0.1 + 0.2)
