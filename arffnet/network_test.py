"""Tests for network graph construction."""

import numpy as np
import pytest

from arffnet.exceptions import CyclicGraphError
from arffnet.network import HiddenNode, InputNode, NetworkGraph, OutputNode, reset_all, sigmoid


@pytest.mark.parametrize(
    "x, expected",
    [
        (0.0, 0.5),
        (-46.0, 0.0),
        (46.0, 1.0),
        (2.0, 1.0 / (1.0 + np.exp(-2.0))),
        (-45.0, 1.0 / (1.0 + np.exp(45.0))),
    ],
)
def test_sigmoid(x: float, expected: float) -> None:
    assert sigmoid(x) == pytest.approx(expected, rel=1e-12, abs=0.0)


def test_feed_forward_structure() -> None:
    layers = [
        (np.array([[1.0, -1.0], [0.5, 0.5], [0.0, 2.0]]), np.array([0.0, 0.1, -0.1])),
        (np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 1.0]]), np.zeros(2)),
    ]
    graph = NetworkGraph.feed_forward([0, 2], layers, num_classes=2)

    assert graph.describe() == {"inputs": 2, "hidden": 5, "outputs": 2, "connections": 6 + 6 + 2}
    assert [node.attribute_index for node in graph.inputs] == [0, 2]
    assert [node.class_index for node in graph.outputs] == [0, 1]

    first = graph.hidden[0]
    assert first.weights == [1.0, -1.0]
    assert first.inputs == graph.inputs
    assert graph.hidden[4].weights == [0.0, 1.0, 1.0]
    assert graph.hidden[4].bias == 0.0
    assert graph.outputs[1].inputs == [graph.hidden[4]]
    assert graph.inputs[0].outputs == graph.hidden[:3]


def test_feed_forward_checks_shapes() -> None:
    with pytest.raises(AssertionError):
        NetworkGraph.feed_forward([0], [(np.ones((2, 3)), np.zeros(2))])
    with pytest.raises(AssertionError):
        NetworkGraph.feed_forward([0], [(np.ones((2, 1)), np.zeros(2))], num_classes=3)


def test_connect_rules() -> None:
    graph = NetworkGraph()
    source = graph.add_input(0)
    hidden = graph.add_hidden(0.5)
    output = graph.add_output(0)

    with pytest.raises(AssertionError):
        graph.connect(source, hidden)
    with pytest.raises(AssertionError):
        graph.connect(hidden, output, 1.0)
    with pytest.raises(TypeError):
        graph.connect(hidden, source, 1.0)

    graph.connect(source, hidden, 2.0)
    graph.connect(hidden, output)
    assert hidden.inputs == [source]
    assert hidden.weights == [2.0]
    assert source.outputs == [hidden]
    assert output.inputs == [hidden]


def test_index_of_uses_identity() -> None:
    graph = NetworkGraph()
    first = graph.add_hidden(0.0, name="same")
    second = graph.add_hidden(0.0, name="same")

    assert graph.index_of(first) == 0
    assert graph.index_of(second) == 1
    with pytest.raises(ValueError):
        graph.index_of(HiddenNode(0.0))


def test_reset_all_stops_at_clear_nodes() -> None:
    source = InputNode(0, cached=1.0)
    hidden = HiddenNode(0.0, inputs=[source], weights=[1.0], cached=None)
    output = OutputNode(0, inputs=[hidden], cached=0.7)

    reset_all([output])

    assert output.cached is None
    assert hidden.cached is None
    # not reachable through a filled node
    assert source.cached == 1.0

    hidden.cached = 0.5
    output.cached = 0.5
    reset_all([output])
    assert (output.cached, hidden.cached, source.cached) == (None, None, None)


def test_graph_reset_clears_every_node() -> None:
    graph = NetworkGraph()
    source = graph.add_input(0)
    hidden = graph.add_hidden(0.0)
    graph.connect(source, hidden, 1.0)
    graph.connect(hidden, graph.add_output(0))
    assert not graph.is_dirty

    # filled input behind a clear hidden node, as after an interrupted pass
    source.cached = 2.0
    assert graph.is_dirty

    graph.reset_all()
    assert not graph.is_dirty
    assert all(node.cached is None for node in graph)


def test_check_acyclic() -> None:
    graph = NetworkGraph.feed_forward([0, 1], [(np.ones((2, 2)), np.zeros(2))], num_classes=2)
    graph.check_acyclic()

    first, second = graph.hidden
    graph.connect(second, first, 0.5)
    graph.check_acyclic()

    graph.connect(first, second, 0.5)
    with pytest.raises(CyclicGraphError, match="cycle"):
        graph.check_acyclic()
