"""Compile a network into straight-line Q12 fixed-point C code.

Compilation runs in four steps:

1. Layering: output nodes sit in layer 0 and every other node one layer
   deeper than its deepest consumer. Input nodes are not part of the code.
2. Slots: inputs occupy the slots of their attribute indices; each computed
   layer, deepest first, takes the next free slots.
3. Quantization: biases and weights become ``int(w * 4096)``.
4. Emission: one constant table per layer and one assignment block per node.

The compiled program can also be run in Python (:meth:`CompiledNetwork.execute`)
with exactly the integer arithmetic of the generated C.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from loguru import logger

from arffnet.config import FIXED_ONE, FRACTION_BITS, SLOT_TYPE
from arffnet.exceptions import CompileError, CyclicGraphError
from arffnet.network import HiddenNode, InputNode, NetworkGraph, Node, OutputNode

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1

# PLAN approximation breakpoints and offsets in Q12
_PLAN_SATURATE = 5 * FIXED_ONE
_PLAN_UPPER = int(2.375 * FIXED_ONE)
_PLAN_UPPER_OFFSET = int(0.84375 * FIXED_ONE)
_PLAN_MIDDLE_OFFSET = int(0.625 * FIXED_ONE)
_PLAN_LOWER_OFFSET = int(0.5 * FIXED_ONE)


def to_fixed(value: float) -> int:
    """Scale by 2^12 and truncate toward zero.

    >>> to_fixed(1.0), to_fixed(-0.5), to_fixed(0.00001)
    (4096, -2048, 0)
    """
    return int(value * FIXED_ONE)


def fixed_product(weight: int, value: int) -> int:
    """``(weight * value) >> 12`` with an arithmetic shift.

    Negative products round toward minus infinity:

    >>> fixed_product(1, 4096), fixed_product(-1, 1)
    (1, -1)
    """
    return (weight * value) >> FRACTION_BITS


def sigmoid_q12(x: int) -> int:
    """Piecewise-linear (PLAN) logistic in Q12, shifts and adds only.

    >>> sigmoid_q12(0)
    2048
    >>> sigmoid_q12(5 * 4096), sigmoid_q12(-5 * 4096)
    (4096, 0)
    """
    magnitude = -x if x < 0 else x
    if magnitude >= _PLAN_SATURATE:
        y = FIXED_ONE
    elif magnitude >= _PLAN_UPPER:
        y = (magnitude >> 5) + _PLAN_UPPER_OFFSET
    elif magnitude >= FIXED_ONE:
        y = (magnitude >> 3) + _PLAN_MIDDLE_OFFSET
    else:
        y = (magnitude >> 2) + _PLAN_LOWER_OFFSET
    return FIXED_ONE - y if x < 0 else y


_SIGMOID_SOURCE = f"""\
static void sigmoid_q12({SLOT_TYPE} *x)
{{
    {SLOT_TYPE} a = *x < 0 ? -*x : *x;
    {SLOT_TYPE} y;

    if (a >= {_PLAN_SATURATE})
        y = {FIXED_ONE};
    else if (a >= {_PLAN_UPPER})
        y = (a >> 5) + {_PLAN_UPPER_OFFSET};
    else if (a >= {FIXED_ONE})
        y = (a >> 3) + {_PLAN_MIDDLE_OFFSET};
    else
        y = (a >> 2) + {_PLAN_LOWER_OFFSET};

    *x = *x < 0 ? {FIXED_ONE} - y : y;
}}
"""


# =============================================================================
# Compiled program
# =============================================================================


@dataclass(frozen=True)
class CompiledUnit:
    """One assignment ``v[slot] = ...`` of the generated code."""

    slot: int
    sources: tuple[int, ...]
    activated: bool


@dataclass(frozen=True)
class CompiledLayer:
    """Units of one layer plus their constant table.

    For activated units the table holds, unit after unit, the bias followed
    by one weight per source. Output sums use no constants.
    """

    depth: int
    units: tuple[CompiledUnit, ...]
    constants: tuple[int, ...] = ()

    @property
    def table_name(self) -> str:
        return f"W{self.depth}"


@dataclass
class CompiledNetwork:
    layers: list[CompiledLayer]
    num_input_slots: int
    num_slots: int
    output_slots: list[int]
    name: str = "network"
    _source: str | None = field(default=None, repr=False)

    @property
    def source(self) -> str:
        """Complete C translation unit for this program."""
        if self._source is None:
            self._source = emit_c(self)
        return self._source

    def execute(self, input_values: Sequence[float] | np.ndarray) -> np.ndarray:
        """Run the program on one row of attribute values.

        Missing (NaN) inputs read as 0. Returns the output scores converted
        back to floats.
        """
        assert len(input_values) >= self.num_input_slots, (
            f"Program reads {self.num_input_slots} input slots, got {len(input_values)} values"
        )
        v = [0] * self.num_slots
        for slot in range(self.num_input_slots):
            value = float(input_values[slot])
            v[slot] = 0 if math.isnan(value) else to_fixed(value)

        for layer in self.layers:
            k = 0
            for unit in layer.units:
                if not unit.activated:
                    v[unit.slot] = sum(v[source] for source in unit.sources)
                    continue
                accumulator = layer.constants[k]
                k += 1
                for source in unit.sources:
                    accumulator += fixed_product(layer.constants[k], v[source])
                    k += 1
                v[unit.slot] = sigmoid_q12(accumulator)

        return np.array([v[slot] / FIXED_ONE for slot in self.output_slots], dtype=np.float64)


# =============================================================================
# Compiler
# =============================================================================


class ModelCompiler:
    """Turns a NetworkGraph into a CompiledNetwork.

    Args:
        graph: Network to compile
        num_input_slots: Size of the input block; defaults to the highest
            attribute index read by an input node plus one
    """

    def __init__(self, graph: NetworkGraph, num_input_slots: int | None = None) -> None:
        self.graph = graph
        highest = max((node.attribute_index for node in graph.inputs), default=-1)
        if num_input_slots is None:
            num_input_slots = highest + 1
        assert num_input_slots > highest, (
            f"Input block of {num_input_slots} slots cannot hold attribute {highest}"
        )
        self.num_input_slots = num_input_slots

    def assign_layers(self) -> list[list[Node]]:
        """Group the non-input nodes reachable from the outputs by layer.

        Layer 0 holds the outputs. Within a layer nodes keep their graph order.

        Raises:
            CyclicGraphError: If a node is reached again through its own inputs
        """
        depths: dict[Node, int] = {}
        for output in self.graph.outputs:
            self._place(output, 0, depths, set())

        computed = [node for node in self.graph.nodes if node in depths and not isinstance(node, InputNode)]
        layers: list[list[Node]] = [[] for _ in range(max((depths[node] for node in computed), default=-1) + 1)]
        for node in computed:
            layers[depths[node]].append(node)
        if layers:
            # class order, not insertion order
            layers[0] = list(self.graph.outputs)
        logger.debug("Assigned layers", sizes=[len(layer) for layer in layers])
        return layers

    def _place(self, node: Node, depth: int, depths: dict[Node, int], path: set[Node]) -> None:
        if node in path:
            msg = f"Network contains a cycle through node {node.name!r}"
            raise CyclicGraphError(msg)
        if depths.get(node, -1) >= depth:
            return
        depths[node] = depth
        if isinstance(node, InputNode):
            return
        path.add(node)
        for source in node.inputs:
            self._place(source, depth + 1, depths, path)
        path.remove(node)

    def compile(self, name: str = "network") -> CompiledNetwork:
        """Assign layers and slots, quantize and build the program.

        Raises:
            CyclicGraphError: If the network is not acyclic
            CompileError: If a constant does not fit a 32-bit slot
        """
        layers = self.assign_layers()
        outputs = layers[0] if layers else []
        emit_outputs = any(len(output.inputs) != 1 for output in outputs)

        slots: dict[Node, int] = {node: node.attribute_index for node in self.graph.inputs}
        next_slot = self.num_input_slots
        compiled: list[CompiledLayer] = []

        for depth in range(len(layers) - 1, 0, -1):
            units: list[CompiledUnit] = []
            constants: list[int] = []
            for node in layers[depth]:
                assert isinstance(node, HiddenNode), f"Unexpected node {node!r} in layer {depth}"
                slots[node] = next_slot
                next_slot += 1
                constants.append(self._quantize(node.bias, node))
                constants.extend(self._quantize(weight, node) for weight in node.weights)
                units.append(
                    CompiledUnit(next_slot - 1, tuple(slots[source] for source in node.inputs), activated=True)
                )
            compiled.append(CompiledLayer(depth, tuple(units), tuple(constants)))

        if emit_outputs:
            units = []
            for output in outputs:
                slots[output] = next_slot
                next_slot += 1
                units.append(
                    CompiledUnit(next_slot - 1, tuple(slots[source] for source in output.inputs), activated=False)
                )
            compiled.append(CompiledLayer(0, tuple(units)))
        else:
            for output in outputs:
                slots[output] = slots[output.inputs[0]]

        program = CompiledNetwork(
            layers=compiled,
            num_input_slots=self.num_input_slots,
            num_slots=next_slot,
            output_slots=[slots[output] for output in outputs],
            name=name,
        )
        logger.info(
            "Compiled network",
            name=name,
            layers=len(compiled),
            slots=program.num_slots,
            outputs=len(program.output_slots),
            emitted_outputs=emit_outputs,
        )
        return program

    @staticmethod
    def _quantize(value: float, node: OutputNode | HiddenNode) -> int:
        fixed = to_fixed(value)
        if not INT32_MIN <= fixed <= INT32_MAX:
            msg = f"Constant {value} of node {node.name!r} does not fit a 32-bit fixed-point slot"
            raise CompileError(msg)
        return fixed


def compile_network(
    graph: NetworkGraph, num_input_slots: int | None = None, name: str = "network"
) -> CompiledNetwork:
    return ModelCompiler(graph, num_input_slots).compile(name)


# =============================================================================
# Emission
# =============================================================================


def _format_table(layer: CompiledLayer) -> str:
    rows = [
        "    " + ", ".join(str(value) for value in layer.constants[start : start + 8]) + ","
        for start in range(0, len(layer.constants), 8)
    ]
    body = "\n".join(rows)
    return f"static const {SLOT_TYPE} {layer.table_name}[{len(layer.constants)}] = {{\n{body}\n}};\n"


def _format_layer(layer: CompiledLayer) -> list[str]:
    if not layer.units:
        return []
    if not layer.constants:
        lines = ["    /* outputs */"]
        for unit in layer.units:
            total = " + ".join(f"v[{source}]" for source in unit.sources) or "0"
            lines.append(f"    v[{unit.slot}] = {total};")
        return lines

    table = layer.table_name
    lines = [f"    /* layer {layer.depth} */", "    k = 0;"]
    for unit in layer.units:
        lines.append(f"    v[{unit.slot}] = {table}[k++];")
        lines.extend(
            f"    v[{unit.slot}] += ({SLOT_TYPE})(((int64_t){table}[k++] * v[{source}]) >> {FRACTION_BITS});"
            for source in unit.sources
        )
        lines.append(f"    sigmoid_q12(&v[{unit.slot}]);")
    return lines


def emit_c(program: CompiledNetwork) -> str:
    """Render ``program`` as a self-contained C translation unit.

    The caller fills ``v[0 .. NUM_INPUT_SLOTS-1]`` with Q12 attribute values,
    calls ``evaluate(v)`` and reads the scores from ``OUTPUT_SLOTS``.
    """
    parts = [
        f"/* {program.name}: Q{FRACTION_BITS} fixed-point network evaluation */",
        "#include <stdint.h>",
        "",
        f"#define NUM_INPUT_SLOTS {program.num_input_slots}",
        f"#define NUM_SLOTS {program.num_slots}",
        f"#define NUM_OUTPUTS {len(program.output_slots)}",
        "",
        "const int OUTPUT_SLOTS[NUM_OUTPUTS] = {" + ", ".join(map(str, program.output_slots)) + "};",
        "",
    ]
    parts.extend(_format_table(layer) for layer in program.layers if layer.constants)
    parts.append(_SIGMOID_SOURCE)

    body: list[str] = []
    for layer in program.layers:
        if body:
            body.append("")
        body.extend(_format_layer(layer))
    declarations = ["    int k;", ""] if any(layer.constants for layer in program.layers) else []
    parts.append(f"void evaluate({SLOT_TYPE} *v)\n{{")
    parts.append("\n".join(declarations + body))
    parts.append("}")
    return "\n".join(parts) + "\n"
