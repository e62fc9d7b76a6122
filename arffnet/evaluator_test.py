"""Tests for the memoized evaluator and the classifier."""

import math

import numpy as np
import pytest

from arffnet.attribute import make_nominal, make_numeric
from arffnet.dataset import Dataset, Schema
from arffnet.evaluator import Evaluator, MultilayerPerceptron, accuracy, normalization_from_dataset
from arffnet.exceptions import EvaluationError, StaleCacheError, UnassignedSchemaError
from arffnet.instance import Instance
from arffnet.network import NetworkGraph


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def schema():
    return Schema([make_numeric("a"), make_nominal("cls", ["yes", "no"])], class_index=1)


@pytest.fixture
def single_unit():
    """One input feeding one hidden node (bias 0, weight 1) feeding one output."""
    graph = NetworkGraph()
    source = graph.add_input(0)
    hidden = graph.add_hidden(0.0)
    graph.connect(source, hidden, 1.0)
    graph.connect(hidden, graph.add_output(0))
    return graph, hidden


@pytest.fixture
def two_class_graph():
    """Output 0 grows with attribute 0, output 1 shrinks with it."""
    layers = [(np.array([[4.0], [-4.0]]), np.array([0.0, 0.0]))]
    return NetworkGraph.feed_forward([0], layers, num_classes=2)


# =============================================================================
# Evaluator
# =============================================================================


def test_single_hidden_node_at_zero_is_one_half(single_unit, schema) -> None:
    graph, hidden = single_unit
    evaluator = Evaluator(graph)
    evaluator.bind(Instance([0.0, 0.0], schema=schema))

    assert evaluator.evaluate(hidden) == 0.5
    assert evaluator.evaluate(graph.outputs[0]) == 0.5


def test_missing_input_reads_zero(single_unit, schema) -> None:
    graph, hidden = single_unit
    evaluator = Evaluator(graph)
    evaluator.bind(Instance([math.nan, 0.0], schema=schema))

    assert evaluator.evaluate(hidden) == 0.5


def test_evaluation_is_memoized(single_unit, schema) -> None:
    graph, hidden = single_unit
    evaluator = Evaluator(graph)
    evaluator.bind(Instance([1.0, 0.0], schema=schema))
    evaluator.evaluate(graph.outputs[0])

    assert hidden.cached == pytest.approx(1 / (1 + math.exp(-1)))
    assert graph.inputs[0].cached == 1.0

    evaluator.reset()
    assert hidden.cached is None
    assert graph.inputs[0].cached is None
    assert not evaluator.is_dirty


def test_binding_new_instance_with_stale_memo_fails(single_unit, schema) -> None:
    graph, hidden = single_unit
    evaluator = Evaluator(graph)
    first = Instance([0.0, 0.0], schema=schema)
    second = Instance([3.0, 0.0], schema=schema)

    evaluator.bind(first)
    evaluator.evaluate(hidden)
    with pytest.raises(StaleCacheError):
        evaluator.bind(second)

    # rebinding the same instance is fine
    evaluator.bind(first)
    evaluator.reset()
    evaluator.bind(second)
    assert evaluator.evaluate(hidden) == pytest.approx(1 / (1 + math.exp(-3)))


def test_evaluators_sharing_a_graph_share_its_memos(two_class_graph, schema) -> None:
    first = Evaluator(two_class_graph)
    first.bind(Instance([1.0, 0.0], schema=schema))
    first.evaluate(two_class_graph.outputs[0])

    second = Evaluator(two_class_graph)
    assert second.is_dirty
    with pytest.raises(StaleCacheError):
        second.bind(Instance([-2.0, 0.0], schema=schema))

    scores = second.evaluate_outputs(Instance([-2.0, 0.0], schema=schema))
    np.testing.assert_allclose(scores, [1 / (1 + math.exp(8.0)), 1 / (1 + math.exp(-8.0))])


def test_classifier_ignores_memos_left_by_another_evaluator(two_class_graph, schema) -> None:
    leftover = Evaluator(two_class_graph)
    leftover.bind(Instance([1.0, 0.0], schema=schema))
    leftover.evaluate(two_class_graph.outputs[0])

    model = MultilayerPerceptron(two_class_graph, schema, prior=[0.5, 0.5])

    assert model.classify_instance(Instance([-1.0, 0.0], schema=schema)) == 1.0


def test_failed_pass_leaves_no_memos(schema) -> None:
    graph = NetworkGraph()
    present = graph.add_input(0)
    absent = graph.add_input(5)
    hidden = graph.add_hidden(0.0)
    graph.connect(present, hidden, 1.0)
    graph.connect(absent, hidden, 1.0)
    evaluator = Evaluator(graph)

    evaluator.bind(Instance([3.0, 0.0], schema=schema))
    with pytest.raises(IndexError):
        evaluator.evaluate(hidden)

    assert present.cached is None
    assert not evaluator.is_dirty
    evaluator.bind(Instance([-1.0, 0.0], schema=schema))
    assert evaluator.evaluate(present) == -1.0


def test_unbound_evaluation_fails(single_unit) -> None:
    graph, hidden = single_unit
    evaluator = Evaluator(graph)

    with pytest.raises(UnassignedSchemaError):
        evaluator.evaluate(hidden)
    with pytest.raises(UnassignedSchemaError):
        evaluator.bind(Instance([0.0, 0.0]))


def test_evaluate_outputs_is_deterministic(two_class_graph, schema) -> None:
    evaluator = Evaluator(two_class_graph)
    instance = Instance([0.3, 0.0], schema=schema)

    first = evaluator.evaluate_outputs(instance)
    second = evaluator.evaluate_outputs(Instance([-2.0, 0.0], schema=schema))
    third = evaluator.evaluate_outputs(instance)

    np.testing.assert_array_equal(first, third)
    assert not np.array_equal(first, second)
    np.testing.assert_allclose(first, [1 / (1 + math.exp(-1.2)), 1 / (1 + math.exp(1.2))])


# =============================================================================
# Classifier
# =============================================================================


def test_classify_picks_highest_output(two_class_graph, schema) -> None:
    model = MultilayerPerceptron(two_class_graph, schema, prior=[0.5, 0.5])

    assert model.classify_instance(Instance([1.0, 1.0], schema=schema)) == 0.0
    assert model.classify_instance(Instance([-1.0, 0.0], schema=schema)) == 1.0


def test_ties_go_to_first_class(two_class_graph, schema) -> None:
    model = MultilayerPerceptron(two_class_graph, schema, prior=[0.1, 0.9])

    distribution = model.distribution_for_instance(Instance([0.0, 0.0], schema=schema))
    np.testing.assert_array_equal(distribution, [0.5, 0.5])
    assert model.classify_instance(Instance([0.0, 0.0], schema=schema)) == 0.0


def test_prior_used_when_outputs_sum_to_zero(schema) -> None:
    graph = NetworkGraph()
    graph.add_input(0)
    graph.add_output(0)
    graph.add_output(1)
    model = MultilayerPerceptron(graph, schema, prior=[0.25, 0.75])

    distribution = model.distribution_for_instance(Instance([5.0, 0.0], schema=schema))

    np.testing.assert_array_equal(distribution, [0.25, 0.75])
    assert model.classify_instance(Instance([5.0, 0.0], schema=schema)) == 1.0

    without_prior = MultilayerPerceptron(graph, schema, prior=None)
    with pytest.raises(EvaluationError, match="Null distribution"):
        without_prior.distribution_for_instance(Instance([5.0, 0.0], schema=schema))


def test_classifier_resets_between_instances(two_class_graph, schema) -> None:
    model = MultilayerPerceptron(two_class_graph, schema, prior=[0.5, 0.5])
    rows = [Instance([x, 0.0], schema=schema) for x in (-1.0, 0.5, 2.0, -0.25)]

    predictions = [model.classify_instance(row) for row in rows]

    assert predictions == [1.0, 0.0, 0.0, 1.0]
    assert all(node.cached is None for node in two_class_graph)


def test_normalization_maps_inputs_before_evaluation(two_class_graph, schema) -> None:
    model = MultilayerPerceptron(
        two_class_graph,
        schema,
        prior=[0.5, 0.5],
        normalize_attributes=True,
        attribute_bases=[10.0, 100.0],
        attribute_ranges=[5.0, 0.0],
    )
    instance = Instance([12.5, 1.0], schema=schema)

    distribution = model.distribution_for_instance(instance)

    # (12.5 - 10) / 5 = 0.5, then weight 4
    np.testing.assert_allclose(distribution, [1 / (1 + math.exp(-2.0)), 1 / (1 + math.exp(2.0))])
    assert instance.value(0) == 12.5


def test_from_dataset_uses_class_prior_and_ranges(two_class_graph) -> None:
    dataset = Dataset.from_attributes(
        "train", [make_numeric("a"), make_nominal("cls", ["yes", "no"])], class_index=1
    )
    for values in ([0.0, 0.0], [10.0, 0.0], [4.0, 1.0], [math.nan, 0.0]):
        dataset.add(Instance(values))

    bases, ranges = normalization_from_dataset(dataset)
    np.testing.assert_allclose(bases, [5.0, 0.5])
    np.testing.assert_allclose(ranges, [5.0, 0.5])

    model = MultilayerPerceptron.from_dataset(two_class_graph, dataset, normalize_attributes=True)
    np.testing.assert_allclose(model.prior, [4 / 6, 2 / 6])

    predictions = model.classify_dataset(dataset)
    np.testing.assert_array_equal(predictions, [1.0, 0.0, 1.0, 0.0])
    assert accuracy(predictions, dataset) == pytest.approx(0.75)
