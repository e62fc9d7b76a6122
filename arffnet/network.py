"""Feed-forward network graph.

A network is a DAG of three node kinds. Input nodes read one attribute of
the current instance, hidden nodes are sigmoid units with a bias and one
weight per input edge, and output nodes sum their inputs for one class.
Each node carries a memo cell (``cached``) that the evaluator fills during
a pass and clears between instances.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from arffnet.config import SIGMOID_SATURATION
from arffnet.exceptions import CyclicGraphError

if TYPE_CHECKING:
    from arffnet.instance import Instance


def sigmoid(x: float) -> float:
    """Logistic function, saturated outside [-45, 45].

    >>> sigmoid(0.0)
    0.5
    >>> sigmoid(-100.0), sigmoid(100.0)
    (0.0, 1.0)
    """
    if x < -SIGMOID_SATURATION:
        return 0.0
    if x > SIGMOID_SATURATION:
        return 1.0
    return 1.0 / (1.0 + math.exp(-x))


@dataclass(eq=False)
class InputNode:
    attribute_index: int
    name: str = ""
    outputs: list[Node] = field(default_factory=list, repr=False)
    cached: float | None = field(default=None, repr=False)


@dataclass(eq=False)
class HiddenNode:
    """Sigmoid unit: ``sigmoid(bias + sum(weights[k] * inputs[k]))``."""

    bias: float = 0.0
    name: str = ""
    inputs: list[Node] = field(default_factory=list, repr=False)
    weights: list[float] = field(default_factory=list, repr=False)
    outputs: list[Node] = field(default_factory=list, repr=False)
    cached: float | None = field(default=None, repr=False)


@dataclass(eq=False)
class OutputNode:
    """Unweighted sum of its inputs, the score of one class."""

    class_index: int
    name: str = ""
    inputs: list[Node] = field(default_factory=list, repr=False)
    cached: float | None = field(default=None, repr=False)


type Node = InputNode | HiddenNode | OutputNode


def reset_all(nodes: Iterable[Node]) -> None:
    """Clear the memo of every node reachable upstream from ``nodes``.

    Evaluation fills a node only after all of its inputs, so a clear node
    has no filled ancestors reachable through it and the walk stops there.
    """
    stack = list(nodes)
    while stack:
        node = stack.pop()
        if node.cached is None:
            continue
        node.cached = None
        if not isinstance(node, InputNode):
            stack.extend(node.inputs)


class NetworkGraph:
    """Owns the nodes of one network in insertion order.

    The graph also records which instance its memos were computed for, so
    every evaluator sharing the nodes sees the same dirty state.
    """

    def __init__(self) -> None:
        self._nodes: list[Node] = []
        self.bound_instance: Instance | None = None

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def add_input(self, attribute_index: int, name: str | None = None) -> InputNode:
        node = InputNode(attribute_index, name if name is not None else f"attribute {attribute_index}")
        self._nodes.append(node)
        return node

    def add_hidden(self, bias: float = 0.0, name: str | None = None) -> HiddenNode:
        node = HiddenNode(float(bias), name if name is not None else f"node {len(self._nodes)}")
        self._nodes.append(node)
        return node

    def add_output(self, class_index: int, name: str | None = None) -> OutputNode:
        node = OutputNode(class_index, name if name is not None else f"class {class_index}")
        self._nodes.append(node)
        return node

    def connect(self, source: Node, target: Node, weight: float | None = None) -> None:
        """Add the edge ``source -> target``.

        Edges into a hidden node need a weight; edges into an output node
        must not have one.
        """
        assert not isinstance(source, OutputNode), f"Output node {source.name!r} has no outgoing edges"
        match target:
            case HiddenNode():
                assert weight is not None, f"Edge into hidden node {target.name!r} needs a weight"
                target.weights.append(float(weight))
            case OutputNode():
                assert weight is None, f"Edges into output node {target.name!r} are unweighted"
            case InputNode():
                msg = f"Input node {target.name!r} cannot have incoming edges"
                raise TypeError(msg)
        target.inputs.append(source)
        source.outputs.append(target)

    @classmethod
    def feed_forward(
        cls,
        input_indices: Sequence[int],
        layers: Sequence[tuple[np.ndarray, np.ndarray]],
        num_classes: int | None = None,
    ) -> NetworkGraph:
        """Fully connected sigmoid network from per-layer weight matrices.

        Args:
            input_indices: Attribute index read by each input node
            layers: ``(weights, biases)`` per layer, weights shaped
                ``(units, previous_units)``
            num_classes: Expected size of the last layer (one output node
                per last-layer unit)
        """
        assert layers, "A feed-forward network needs at least one layer"
        graph = cls()
        previous: list[Node] = [graph.add_input(index) for index in input_indices]

        for depth, (weights, biases) in enumerate(layers):
            weights = np.asarray(weights, dtype=np.float64)
            biases = np.asarray(biases, dtype=np.float64)
            assert weights.shape == (len(biases), len(previous)), (
                f"Layer {depth} weights have shape {weights.shape}, "
                f"expected ({len(biases)}, {len(previous)})"
            )
            layer: list[Node] = []
            for unit, bias in enumerate(biases):
                node = graph.add_hidden(float(bias))
                for source, weight in zip(previous, weights[unit], strict=True):
                    graph.connect(source, node, float(weight))
                layer.append(node)
            previous = layer

        if num_classes is not None:
            assert len(previous) == num_classes, (
                f"Last layer has {len(previous)} units but there are {num_classes} classes"
            )
        for class_index, producer in enumerate(previous):
            graph.connect(producer, graph.add_output(class_index))

        logger.debug("Built feed-forward network", **graph.describe())
        return graph

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def index_of(self, node: Node) -> int:
        for position, candidate in enumerate(self._nodes):
            if candidate is node:
                return position
        msg = f"Node {node.name!r} is not part of this network"
        raise ValueError(msg)

    @property
    def inputs(self) -> list[InputNode]:
        return [node for node in self._nodes if isinstance(node, InputNode)]

    @property
    def hidden(self) -> list[HiddenNode]:
        return [node for node in self._nodes if isinstance(node, HiddenNode)]

    @property
    def outputs(self) -> list[OutputNode]:
        """Output nodes ordered by class index."""
        outputs = [node for node in self._nodes if isinstance(node, OutputNode)]
        return sorted(outputs, key=lambda node: node.class_index)

    @property
    def is_dirty(self) -> bool:
        """True while any node holds a memo."""
        return any(node.cached is not None for node in self._nodes)

    def reset_all(self) -> None:
        """Clear the memo of every node, including ones left by a failed pass."""
        for node in self._nodes:
            node.cached = None

    def check_acyclic(self) -> None:
        """Raise CyclicGraphError if any node depends on itself.

        Depth-first over the input edges of every node, without recursion.
        """
        finished: set[Node] = set()
        for root in self._nodes:
            if root in finished:
                continue
            on_path: set[Node] = {root}
            stack: list[tuple[Node, Iterator[Node]]] = [(root, _sources(root))]
            while stack:
                node, sources = stack[-1]
                source = next(sources, None)
                if source is None:
                    stack.pop()
                    on_path.discard(node)
                    finished.add(node)
                elif source in on_path:
                    msg = f"Network contains a cycle through node {source.name!r}"
                    raise CyclicGraphError(msg)
                elif source not in finished:
                    on_path.add(source)
                    stack.append((source, _sources(source)))

    def describe(self) -> dict[str, int]:
        """Node counts per kind plus the number of edges."""
        return {
            "inputs": len(self.inputs),
            "hidden": len(self.hidden),
            "outputs": len(self.outputs),
            "connections": sum(
                len(node.inputs) for node in self._nodes if not isinstance(node, InputNode)
            ),
        }


def _sources(node: Node) -> Iterator[Node]:
    return iter(()) if isinstance(node, InputNode) else iter(node.inputs)
