"""Memoized forward evaluation and the classifier built on top of it."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
from loguru import logger

from arffnet.dataset import Dataset, Schema
from arffnet.exceptions import EvaluationError, StaleCacheError, UnassignedSchemaError
from arffnet.instance import MISSING_VALUE, Instance
from arffnet.network import HiddenNode, InputNode, NetworkGraph, Node, OutputNode, sigmoid


class Evaluator:
    """Evaluates nodes of a network for one instance at a time.

    Values are memoized in the nodes and the bound instance is recorded on
    the graph, so evaluators sharing a graph share its dirty state. Binding
    another instance is refused until ``reset()`` has cleared the memos of
    the previous pass.
    """

    def __init__(self, graph: NetworkGraph) -> None:
        self.graph = graph

    @property
    def is_dirty(self) -> bool:
        return self.graph.is_dirty

    def bind(self, instance: Instance) -> None:
        """Make ``instance`` the source of input node values.

        Raises:
            UnassignedSchemaError: If the instance is not bound to a schema
            StaleCacheError: If memos computed for another instance remain
        """
        if instance.schema is None:
            msg = "Instance doesn't have access to a schema!"
            raise UnassignedSchemaError(msg)
        if self.graph.is_dirty and instance is not self.graph.bound_instance:
            msg = "Node values from the previous instance are still cached, call reset() first"
            raise StaleCacheError(msg)
        self.graph.bound_instance = instance

    def reset(self) -> None:
        """Clear every memo in the graph."""
        self.graph.reset_all()

    def evaluate(self, node: Node) -> float:
        """Value of ``node`` for the bound instance.

        A pass that fails part way clears the graph before the error
        propagates.

        Raises:
            UnassignedSchemaError: If no instance is bound
        """
        instance = self.graph.bound_instance
        if instance is None:
            msg = "No instance bound to the evaluator"
            raise UnassignedSchemaError(msg)
        try:
            return self._value(node, instance)
        except Exception:
            self.reset()
            raise

    def _value(self, node: Node, instance: Instance) -> float:
        if node.cached is not None:
            return node.cached

        match node:
            case InputNode(attribute_index=index):
                value = 0.0 if instance.is_missing(index) else instance.value(index)
            case HiddenNode(bias=bias, inputs=inputs, weights=weights):
                total = bias
                for source, weight in zip(inputs, weights, strict=True):
                    total += weight * self._value(source, instance)
                value = sigmoid(total)
            case OutputNode(inputs=inputs):
                value = sum((self._value(source, instance) for source in inputs), 0.0)

        node.cached = value
        return value

    def evaluate_outputs(self, instance: Instance) -> np.ndarray:
        """Reset, bind ``instance`` and return one score per output node."""
        self.reset()
        self.bind(instance)
        return np.array([self.evaluate(output) for output in self.graph.outputs], dtype=np.float64)


def normalization_from_dataset(dataset: Dataset) -> tuple[np.ndarray, np.ndarray]:
    """Per-attribute ``(bases, ranges)`` mapping observed values onto [-1, 1].

    base is the midpoint and range the half width of the observed values.
    Attributes with no observed value get base 0 and range 1.
    """
    matrix = dataset.to_numpy()
    bases = np.zeros(dataset.num_attributes)
    ranges = np.ones(dataset.num_attributes)
    for index in range(dataset.num_attributes):
        column = matrix[:, index]
        column = column[~np.isnan(column)]
        if column.size == 0:
            continue
        low, high = column.min(), column.max()
        bases[index] = (high + low) / 2
        ranges[index] = (high - low) / 2
    return bases, ranges


class MultilayerPerceptron:
    """Classifier wrapping a trained network.

    Args:
        graph: Trained network, one output node per class
        schema: Header the network was trained on; must have a class index
        prior: Per-class distribution returned when the outputs sum to <= 0
        normalize_attributes: Rescale non-class inputs before evaluation
        attribute_bases: Subtracted from each attribute when normalizing
        attribute_ranges: Divisor for each attribute when normalizing
    """

    def __init__(
        self,
        graph: NetworkGraph,
        schema: Schema,
        prior: Sequence[float] | np.ndarray | None,
        *,
        normalize_attributes: bool = False,
        attribute_bases: Sequence[float] | np.ndarray | None = None,
        attribute_ranges: Sequence[float] | np.ndarray | None = None,
    ) -> None:
        self.graph = graph
        self.schema = schema
        self.num_classes = schema.num_classes
        self.prior = None if prior is None else np.asarray(prior, dtype=np.float64)
        self.normalize_attributes = normalize_attributes
        self.attribute_bases = _vector(attribute_bases, schema.num_attributes, 0.0)
        self.attribute_ranges = _vector(attribute_ranges, schema.num_attributes, 1.0)
        self.evaluator = Evaluator(graph)

        assert len(graph.outputs) == self.num_classes, (
            f"Network has {len(graph.outputs)} outputs but the class has {self.num_classes} values"
        )
        if self.prior is not None:
            assert len(self.prior) == self.num_classes, (
                f"Prior has {len(self.prior)} entries, expected {self.num_classes}"
            )

    @classmethod
    def from_dataset(
        cls, graph: NetworkGraph, dataset: Dataset, *, normalize_attributes: bool = False
    ) -> MultilayerPerceptron:
        """Wrap ``graph`` with the prior and normalization of its training data."""
        bases, ranges = normalization_from_dataset(dataset)
        model = cls(
            graph,
            dataset.schema,
            dataset.class_counts(),
            normalize_attributes=normalize_attributes,
            attribute_bases=bases,
            attribute_ranges=ranges,
        )
        logger.debug(
            "Created classifier from dataset",
            relation=dataset.name,
            instances=dataset.num_instances,
            normalize_attributes=normalize_attributes,
        )
        return model

    def _prepare(self, instance: Instance) -> Instance:
        current = instance.copy()
        if not self.normalize_attributes:
            return current
        class_index = self.schema.class_index
        for index in range(current.num_values):
            if index == class_index:
                continue
            value = current.value(index) - self.attribute_bases[index]
            if self.attribute_ranges[index] != 0:
                value /= self.attribute_ranges[index]
            current.set_value(index, value)
        return current

    def distribution_for_instance(self, instance: Instance) -> np.ndarray:
        """Per-class scores for ``instance``, or the prior when they sum to <= 0.

        Raises:
            EvaluationError: If the prior is needed but the model has none
            UnassignedSchemaError: If ``instance`` is not bound to a schema
        """
        if instance.schema is None:
            msg = "Instance doesn't have access to a schema!"
            raise UnassignedSchemaError(msg)
        current = self._prepare(instance)
        scores = self.evaluator.evaluate_outputs(current)
        self.evaluator.reset()

        if scores.sum() <= 0:
            if self.prior is None:
                msg = "Null distribution predicted"
                raise EvaluationError(msg)
            return self.prior.copy()
        return scores

    def classify_instance(self, instance: Instance) -> float:
        """Index of the highest score (first on ties), or NaN if none is positive."""
        distribution = self.distribution_for_instance(instance)
        best = int(np.argmax(distribution))
        if distribution[best] <= 0:
            return MISSING_VALUE
        return float(best)

    def classify_dataset(self, dataset: Dataset) -> np.ndarray:
        """Predicted class index for every row of ``dataset``."""
        predictions = np.array([self.classify_instance(row) for row in dataset], dtype=np.float64)
        logger.debug(
            "Classified dataset",
            relation=dataset.name,
            instances=dataset.num_instances,
            unpredicted=int(np.isnan(predictions).sum()),
        )
        return predictions


def _vector(values: Sequence[float] | np.ndarray | None, size: int, fill: float) -> np.ndarray:
    if values is None:
        return np.full(size, fill)
    vector = np.asarray(values, dtype=np.float64)
    assert vector.shape == (size,), f"Expected {size} values, got shape {vector.shape}"
    return vector


def accuracy(predictions: np.ndarray, dataset: Dataset) -> float:
    """Weighted share of rows whose class was predicted correctly."""
    class_index = dataset.schema.require_class_index()
    actual = dataset.attribute_to_array(class_index)
    weights = dataset.weights()
    total = weights.sum()
    if total <= 0:
        return math.nan
    return float(weights[predictions == actual].sum() / total)
