"""A single row: dense float64 values, a weight, and a weak link to its schema.

Values are unified into float64. Nominal labels are stored as their position
in the attribute's label list and NaN marks a missing value. The value buffer
is read-only and shared between copies; set_value swaps in a fresh buffer
before writing (copy-on-write).
"""

from __future__ import annotations

import math
import weakref
from collections.abc import Iterable
from typing import TYPE_CHECKING

import numpy as np

from arffnet.config import MISSING_TOKEN
from arffnet.exceptions import UnassignedSchemaError
from arffnet.quoting import quote

if TYPE_CHECKING:
    from arffnet.attribute import Attribute
    from arffnet.dataset import Schema

MISSING_VALUE: float = math.nan


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


def format_number(value: float) -> str:
    """Shortest text that parses back to exactly ``value``."""
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


class Instance:
    """One data point bound (weakly) to a Schema.

    The schema is referenced, not owned: whoever owns the schema (normally a
    Dataset) must keep it alive. An instance whose schema was collected
    behaves as unbound.
    """

    __slots__ = ("_schema_ref", "_values", "weight")

    def __init__(
        self,
        values: Iterable[float] | np.ndarray,
        weight: float = 1.0,
        schema: Schema | None = None,
    ) -> None:
        self._values = _frozen(np.array(values, dtype=np.float64))
        assert self._values.ndim == 1, f"Instance values must be 1-D, got shape {self._values.shape}"
        self.weight = float(weight)
        self._schema_ref: weakref.ref[Schema] | None = None
        if schema is not None:
            self.bind(schema)

    @classmethod
    def missing(cls, num_attributes: int) -> Instance:
        """An instance of weight 1 whose every value is missing."""
        return cls(np.full(num_attributes, MISSING_VALUE), 1.0)

    # -------------------------------------------------------------------------
    # Schema binding
    # -------------------------------------------------------------------------

    @property
    def schema(self) -> Schema | None:
        if self._schema_ref is None:
            return None
        return self._schema_ref()

    def bind(self, schema: Schema | None) -> None:
        """Point this instance at ``schema`` (or detach it with None)."""
        self._schema_ref = weakref.ref(schema) if schema is not None else None

    def _require_schema(self) -> Schema:
        schema = self.schema
        if schema is None:
            msg = "Instance doesn't have access to a schema!"
            raise UnassignedSchemaError(msg)
        assert schema.num_attributes == len(self._values), (
            f"Instance has {len(self._values)} values but schema has {schema.num_attributes} attributes"
        )
        return schema

    def attribute(self, index: int) -> Attribute:
        return self._require_schema().attribute(index)

    @property
    def class_index(self) -> int:
        return self._require_schema().class_index

    def class_value(self) -> float:
        return self.value(self._require_schema().require_class_index())

    def class_is_missing(self) -> bool:
        return self.is_missing(self._require_schema().require_class_index())

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    @property
    def num_values(self) -> int:
        return len(self._values)

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the current value buffer."""
        return self._values

    def value(self, index: int) -> float:
        return float(self._values[index])

    def is_missing(self, index: int) -> bool:
        return math.isnan(self._values[index])

    def set_value(self, index: int, value: float) -> None:
        fresh = self._values.copy()
        fresh[index] = value
        self._values = _frozen(fresh)

    def set_missing(self, index: int) -> None:
        self.set_value(index, MISSING_VALUE)

    def copy(self) -> Instance:
        """Shallow copy sharing the value buffer and the schema link."""
        duplicate = Instance.__new__(Instance)
        duplicate._values = self._values
        duplicate.weight = self.weight
        duplicate._schema_ref = self._schema_ref
        return duplicate

    def to_double_array(self) -> np.ndarray:
        """Fresh, writable copy of the values."""
        return self._values.copy()

    # -------------------------------------------------------------------------
    # Text form
    # -------------------------------------------------------------------------

    def cell_text(self, index: int) -> str:
        if self.is_missing(index):
            return MISSING_TOKEN
        schema = self.schema
        if schema is not None and schema.attribute(index).is_nominal:
            return quote(schema.attribute(index).value(int(self._values[index])))
        return format_number(self.value(index))

    def to_arff(self) -> str:
        """Render this row as an ARFF data line, with ``{weight}`` if not 1.

        >>> Instance([1.5, float("nan")], weight=2.0).to_arff()
        '1.5,?,{2}'
        """
        text = ",".join(self.cell_text(i) for i in range(self.num_values))
        if self.weight != 1.0:
            text += f",{{{format_number(self.weight)}}}"
        return text

    def __str__(self) -> str:
        return self.to_arff()

    def __repr__(self) -> str:
        return f"Instance(values={self._values.tolist()!r}, weight={self.weight!r})"
