"""Schemas and datasets.

A Schema is the ordered, uniquely named set of attributes shared by every
row of a Dataset plus an optional class attribute. Schemas never change once
built: renaming an attribute or choosing a class produces a new Schema.
A Dataset owns its schema and its rows and rebinds the rows whenever it
swaps in a new schema.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from arffnet.attribute import Attribute, Label
from arffnet.config import ARFF_DATA, ARFF_RELATION, DEFAULT_CAPACITY
from arffnet.exceptions import ClassIndexError, DuplicateAttributeError, SchemaError
from arffnet.instance import Instance
from arffnet.quoting import quote

NO_CLASS: int = -1


# =============================================================================
# Schema
# =============================================================================


class Schema:
    """Ordered attributes with unique names and an optional class index."""

    def __init__(self, attributes: Iterable[Attribute], class_index: int = NO_CLASS) -> None:
        attributes = list(attributes)

        counts = Counter(attribute.name for attribute in attributes)
        duplicates = [name for name, count in counts.items() if count > 1]
        if duplicates:
            causes = " ".join(f"'{name}'" for name in duplicates)
            msg = f"Attribute names are not unique! Causes: {causes}"
            raise DuplicateAttributeError(msg)

        self._attributes: tuple[Attribute, ...] = tuple(
            attribute if attribute.index == position else attribute.with_index(position)
            for position, attribute in enumerate(attributes)
        )
        self._positions = {attribute.name: attribute.index for attribute in self._attributes}

        if class_index != NO_CLASS and not 0 <= class_index < len(self._attributes):
            msg = f"Invalid class index: {class_index}"
            raise ClassIndexError(msg)
        self._class_index = class_index

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def attributes(self) -> tuple[Attribute, ...]:
        return self._attributes

    @property
    def num_attributes(self) -> int:
        return len(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self._attributes)

    def attribute(self, index: int) -> Attribute:
        return self._attributes[index]

    def attribute_by_name(self, name: str) -> Attribute | None:
        position = self._positions.get(name)
        return None if position is None else self._attributes[position]

    def index_of(self, name: str) -> int:
        return self._positions.get(name, -1)

    @property
    def class_index(self) -> int:
        return self._class_index

    def require_class_index(self) -> int:
        if self._class_index == NO_CLASS:
            msg = "Class index is negative (not set)!"
            raise ClassIndexError(msg)
        return self._class_index

    @property
    def class_attribute(self) -> Attribute:
        return self._attributes[self.require_class_index()]

    @property
    def num_classes(self) -> int:
        """Number of class labels, or 1 for a numeric class."""
        class_attribute = self.class_attribute
        return class_attribute.num_values if class_attribute.is_nominal else 1

    # -------------------------------------------------------------------------
    # Copy-on-write changes
    # -------------------------------------------------------------------------

    def with_class_index(self, class_index: int) -> Schema:
        return Schema(self._attributes, class_index)

    def _replacing(self, index: int, attribute: Attribute) -> Schema:
        attributes = list(self._attributes)
        attributes[index] = attribute
        return Schema(attributes, self._class_index)

    def rename_attribute(self, index: int, name: str) -> Schema:
        """New schema with attribute ``index`` renamed.

        Raises:
            DuplicateAttributeError: If another attribute already has ``name``
        """
        existing = self._positions.get(name)
        if existing is not None and existing != index:
            msg = f"Attribute name '{name}' already present at position #{existing}"
            raise DuplicateAttributeError(msg)
        return self._replacing(index, self._attributes[index].rename(name))

    def rename_attribute_value(self, index: int, old: Label, new: Label) -> Schema:
        return self._replacing(index, self._attributes[index].rename_value(old, new))

    def add_attribute_value(self, index: int, label: Label) -> Schema:
        return self._replacing(index, self._attributes[index].add_value(label))

    def equal_headers(self, other: Schema) -> bool:
        return self._class_index == other._class_index and self._attributes == other._attributes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self.equal_headers(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        names = [attribute.name for attribute in self._attributes]
        return f"Schema(attributes={names!r}, class_index={self._class_index})"


# =============================================================================
# Dataset
# =============================================================================


class Dataset:
    """A named, ordered collection of instances sharing one schema."""

    def __init__(
        self,
        name: str,
        schema: Schema,
        rows: Iterable[Instance] = (),
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity < 0:
            msg = "Capacity has to be positive!"
            raise ValueError(msg)
        self.name = name
        self._schema = schema
        self.capacity = capacity
        self._rows: list[Instance] = []
        for row in rows:
            self.add(row)

    @classmethod
    def from_attributes(
        cls, name: str, attributes: Sequence[Attribute], class_index: int = NO_CLASS
    ) -> Dataset:
        return cls(name, Schema(attributes, class_index))

    def structure(self, capacity: int = 0) -> Dataset:
        """Empty dataset with the same name and schema."""
        return Dataset(self.name, self._schema, capacity=capacity)

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    @property
    def schema(self) -> Schema:
        return self._schema

    def rebind(self, schema: Schema) -> None:
        """Swap in ``schema`` and point every row at it.

        Raises:
            SchemaError: If the attribute count differs
        """
        if schema.num_attributes != self._schema.num_attributes:
            msg = (
                f"Cannot rebind dataset {self.name!r}: schema has {schema.num_attributes} "
                f"attributes, rows have {self._schema.num_attributes}"
            )
            raise SchemaError(msg)
        self._schema = schema
        for row in self._rows:
            row.bind(schema)

    @property
    def num_attributes(self) -> int:
        return self._schema.num_attributes

    def attribute(self, index: int) -> Attribute:
        return self._schema.attribute(index)

    @property
    def class_index(self) -> int:
        return self._schema.class_index

    def set_class_index(self, class_index: int) -> None:
        self.rebind(self._schema.with_class_index(class_index))

    @property
    def num_classes(self) -> int:
        return self._schema.num_classes

    def rename_attribute(self, index: int, name: str) -> None:
        self.rebind(self._schema.rename_attribute(index, name))

    def rename_attribute_value(self, index: int, old: Label, new: Label) -> None:
        self.rebind(self._schema.rename_attribute_value(index, old, new))

    # -------------------------------------------------------------------------
    # Rows
    # -------------------------------------------------------------------------

    def add(self, instance: Instance) -> None:
        """Append a deep copy of ``instance`` bound to this dataset's schema.

        Nominal codes are taken as they are: labels from a foreign schema are
        not translated.

        Raises:
            SchemaError: If the instance has the wrong number of values
        """
        if instance.num_values != self._schema.num_attributes:
            msg = (
                f"Instance has {instance.num_values} values, dataset {self.name!r} "
                f"has {self._schema.num_attributes} attributes"
            )
            raise SchemaError(msg)
        self._rows.append(Instance(instance.to_double_array(), instance.weight, self._schema))

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def num_instances(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Instance]:
        return iter(self._rows)

    def __getitem__(self, index: int) -> Instance:
        return self._rows[index]

    def instance(self, index: int) -> Instance:
        return self._rows[index]

    def delete(self, index: int | None = None) -> None:
        """Remove the row at ``index``, or every row when index is None."""
        if index is None:
            self._rows = []
        else:
            del self._rows[index]

    def delete_with_missing(self, attribute_index: int) -> None:
        before = len(self._rows)
        self._rows = [row for row in self._rows if not row.is_missing(attribute_index)]
        logger.debug(
            "Deleted rows with missing values",
            attribute=self._schema.attribute(attribute_index).name,
            removed=before - len(self._rows),
        )

    def delete_with_missing_class(self) -> None:
        self.delete_with_missing(self._schema.require_class_index())

    def compactify(self) -> None:
        self.capacity = len(self._rows)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def sum_of_weights(self) -> float:
        return float(sum(row.weight for row in self._rows))

    def attribute_to_array(self, index: int) -> np.ndarray:
        return np.array([row.value(index) for row in self._rows], dtype=np.float64)

    def weights(self) -> np.ndarray:
        return np.array([row.weight for row in self._rows], dtype=np.float64)

    def mean_or_mode(self, index: int) -> float:
        """Weighted mean (numeric) or most frequent label code (nominal).

        Missing values are ignored; returns 0 when every value is missing.
        """
        column = self.attribute_to_array(index)
        weights = self.weights()
        present = ~np.isnan(column)
        attribute = self._schema.attribute(index)

        if attribute.is_numeric:
            found = weights[present].sum()
            if found <= 0:
                return 0.0
            return float((weights[present] * column[present]).sum() / found)

        counts = np.zeros(attribute.num_values)
        np.add.at(counts, column[present].astype(int), weights[present])
        return float(np.argmax(counts)) if counts.size else 0.0

    def variance(self, index: int) -> float:
        """Weighted sample variance of a numeric attribute (never negative).

        Raises:
            SchemaError: If the attribute is not numeric
        """
        if not self._schema.attribute(index).is_numeric:
            msg = "Can't compute variance because attribute is not numeric!"
            raise SchemaError(msg)
        column = self.attribute_to_array(index)
        weights = self.weights()
        present = ~np.isnan(column)
        column, weights = column[present], weights[present]

        sum_of_weights = weights.sum()
        if sum_of_weights <= 1:
            return 0.0
        total = (weights * column).sum()
        squared = (weights * column * column).sum()
        result = (squared - total * total / sum_of_weights) / (sum_of_weights - 1)
        return max(float(result), 0.0)

    def class_counts(self, *, laplace: bool = True) -> np.ndarray:
        """Weighted count of each class label, starting from 1 per label when
        ``laplace`` is set, normalised to sum to 1.

        This is the prior distribution used when a network's outputs carry no
        information.
        """
        num_classes = self._schema.num_classes
        counts = np.ones(num_classes) if laplace else np.zeros(num_classes)
        class_index = self._schema.require_class_index()
        for row in self._rows:
            if not row.is_missing(class_index):
                counts[int(row.value(class_index))] += row.weight
        total = counts.sum()
        return counts / total if total > 0 else counts

    def missing_counts(self) -> list[int]:
        return [
            sum(1 for row in self._rows if row.is_missing(index))
            for index in range(self.num_attributes)
        ]

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def to_numpy(self) -> np.ndarray:
        """Rows as an (instances x attributes) float64 matrix."""
        if not self._rows:
            return np.empty((0, self.num_attributes), dtype=np.float64)
        return np.vstack([row.values for row in self._rows])

    def to_dataframe(self) -> pd.DataFrame:
        """Rows as a DataFrame; nominal columns become categoricals."""
        matrix = self.to_numpy()
        columns: dict[str, pd.Series] = {}
        for attribute in self._schema:
            column = matrix[:, attribute.index]
            if attribute.is_nominal:
                codes = np.where(np.isnan(column), -1, column).astype(int)
                columns[attribute.name] = pd.Series(
                    pd.Categorical.from_codes(codes, categories=list(attribute.values))
                )
            else:
                columns[attribute.name] = pd.Series(column, dtype="float64")
        frame = pd.DataFrame(columns)
        frame["weight"] = self.weights()
        return frame

    def to_arff(self) -> str:
        """Render the full dataset in ARFF text form."""
        lines = [f"{ARFF_RELATION} {quote(self.name)}", ""]
        lines.extend(attribute.to_arff() for attribute in self._schema)
        lines.extend(["", ARFF_DATA])
        lines.extend(row.to_arff() for row in self._rows)
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.to_arff()

    def __repr__(self) -> str:
        return (
            f"Dataset(name={self.name!r}, attributes={self.num_attributes}, "
            f"instances={len(self._rows)}, class_index={self.class_index})"
        )


def summarize(dataset: Dataset) -> dict[str, object]:
    """Headline numbers for a dataset, used by the CLI."""
    return {
        "relation": dataset.name,
        "attributes": dataset.num_attributes,
        "instances": dataset.num_instances,
        "sum_of_weights": dataset.sum_of_weights(),
        "class_attribute": (
            dataset.schema.class_attribute.name if dataset.class_index != NO_CLASS else None
        ),
        "rows_with_missing": int(np.isnan(dataset.to_numpy()).any(axis=1).sum()),
    }
