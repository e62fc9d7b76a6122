"""Save and load trained classifiers.

A model is stored as a ModelDocument: the training header, the prior, the
normalization vectors and the network nodes with their input edges (by node
position). ``.json`` files hold the document as JSON, ``.pkl`` files a
pickled dict of the same fields. Both are validated with pydantic on load.
"""

import pickle
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator

from arffnet.attribute import make_nominal, make_numeric
from arffnet.dataset import NO_CLASS, Schema
from arffnet.evaluator import MultilayerPerceptron
from arffnet.exceptions import CyclicGraphError, ModelFormatError, SchemaError
from arffnet.network import HiddenNode, InputNode, NetworkGraph, Node, OutputNode

JSON_SUFFIX = ".json"
PICKLE_SUFFIX = ".pkl"


class AttributeDocument(BaseModel):
    name: str
    type: Literal["numeric", "nominal"]
    values: list[str] = Field(default_factory=list)


class InputNodeDocument(BaseModel):
    kind: Literal["input"] = "input"
    name: str = ""
    attribute_index: int = Field(ge=0)


class HiddenNodeDocument(BaseModel):
    kind: Literal["hidden"] = "hidden"
    name: str = ""
    bias: float = 0.0
    inputs: list[int] = Field(default_factory=list)
    weights: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_weight_per_input(self) -> "HiddenNodeDocument":
        if len(self.inputs) != len(self.weights):
            msg = f"hidden node {self.name!r} has {len(self.inputs)} inputs but {len(self.weights)} weights"
            raise ValueError(msg)
        return self


class OutputNodeDocument(BaseModel):
    kind: Literal["output"] = "output"
    name: str = ""
    class_index: int = Field(ge=0)
    inputs: list[int] = Field(default_factory=list)


NodeDocument = Annotated[
    InputNodeDocument | HiddenNodeDocument | OutputNodeDocument, Field(discriminator="kind")
]


class ModelDocument(BaseModel):
    """Serializable form of a MultilayerPerceptron."""

    relation: str
    attributes: list[AttributeDocument]
    class_index: int
    prior: list[float] | None = None
    normalize_attributes: bool = False
    attribute_bases: list[float] | None = None
    attribute_ranges: list[float] | None = None
    nodes: list[NodeDocument]
    timestamp: str = ""

    @classmethod
    def from_model(cls, model: MultilayerPerceptron, relation: str = "") -> "ModelDocument":
        graph = model.graph
        nodes: list[InputNodeDocument | HiddenNodeDocument | OutputNodeDocument] = []
        for node in graph.nodes:
            match node:
                case InputNode():
                    nodes.append(InputNodeDocument(name=node.name, attribute_index=node.attribute_index))
                case HiddenNode():
                    nodes.append(
                        HiddenNodeDocument(
                            name=node.name,
                            bias=node.bias,
                            inputs=[graph.index_of(source) for source in node.inputs],
                            weights=list(node.weights),
                        )
                    )
                case OutputNode():
                    nodes.append(
                        OutputNodeDocument(
                            name=node.name,
                            class_index=node.class_index,
                            inputs=[graph.index_of(source) for source in node.inputs],
                        )
                    )

        return cls(
            relation=relation,
            attributes=[
                AttributeDocument(name=a.name, type=a.type.value, values=list(a.values))
                for a in model.schema
            ],
            class_index=model.schema.class_index,
            prior=None if model.prior is None else model.prior.tolist(),
            normalize_attributes=model.normalize_attributes,
            attribute_bases=model.attribute_bases.tolist(),
            attribute_ranges=model.attribute_ranges.tolist(),
            nodes=nodes,
            timestamp=datetime.now(UTC).isoformat(),
        )

    def build_schema(self) -> Schema:
        attributes = [
            make_numeric(a.name) if a.type == "numeric" else make_nominal(a.name, a.values)
            for a in self.attributes
        ]
        return Schema(attributes, self.class_index)

    def build_graph(self) -> NetworkGraph:
        """Recreate the network; edges may refer to later nodes.

        Raises:
            ModelFormatError: If an edge points outside the node list or
                out of an output node
        """
        graph = NetworkGraph()
        built: list[Node] = []
        for document in self.nodes:
            match document:
                case InputNodeDocument():
                    built.append(graph.add_input(document.attribute_index, document.name))
                case HiddenNodeDocument():
                    built.append(graph.add_hidden(document.bias, document.name))
                case OutputNodeDocument():
                    built.append(graph.add_output(document.class_index, document.name))

        for position, document in enumerate(self.nodes):
            if isinstance(document, InputNodeDocument):
                continue
            weights: list[float | None] = (
                list(document.weights)
                if isinstance(document, HiddenNodeDocument)
                else [None] * len(document.inputs)
            )
            for source_position, weight in zip(document.inputs, weights, strict=True):
                if not 0 <= source_position < len(built):
                    msg = f"Node {position} refers to missing node {source_position}"
                    raise ModelFormatError(msg)
                source = built[source_position]
                if isinstance(source, OutputNode):
                    msg = f"Node {position} takes input from output node {source_position}"
                    raise ModelFormatError(msg)
                graph.connect(source, built[position], weight)
        return graph

    def to_model(self) -> MultilayerPerceptron:
        """Rebuild the classifier.

        Raises:
            ModelFormatError: If the document is internally inconsistent
        """
        try:
            schema = self.build_schema()
        except SchemaError as e:
            msg = f"Invalid model header: {e}"
            raise ModelFormatError(msg) from e
        if schema.class_index == NO_CLASS:
            msg = "Model header has no class attribute"
            raise ModelFormatError(msg)

        graph = self.build_graph()
        for node in graph.inputs:
            if node.attribute_index >= schema.num_attributes:
                msg = (
                    f"Input node {node.name!r} reads attribute {node.attribute_index}, "
                    f"header has {schema.num_attributes}"
                )
                raise ModelFormatError(msg)
        try:
            graph.check_acyclic()
        except CyclicGraphError as e:
            raise ModelFormatError(str(e)) from e
        num_classes = schema.num_classes
        if len(graph.outputs) != num_classes:
            msg = f"Model has {len(graph.outputs)} output nodes for {num_classes} classes"
            raise ModelFormatError(msg)
        for name, vector in (
            ("prior", self.prior),
            ("attribute_bases", self.attribute_bases),
            ("attribute_ranges", self.attribute_ranges),
        ):
            expected = num_classes if name == "prior" else schema.num_attributes
            if vector is not None and len(vector) != expected:
                msg = f"Model {name} has {len(vector)} entries, expected {expected}"
                raise ModelFormatError(msg)

        return MultilayerPerceptron(
            graph,
            schema,
            self.prior,
            normalize_attributes=self.normalize_attributes,
            attribute_bases=self.attribute_bases,
            attribute_ranges=self.attribute_ranges,
        )


def save_model(model: MultilayerPerceptron, filepath: Path, relation: str = "") -> None:
    """Write ``model`` as JSON or pickle, chosen by the file suffix.

    Raises:
        ModelFormatError: If the suffix is neither .json nor .pkl
    """
    if filepath.suffix not in (JSON_SUFFIX, PICKLE_SUFFIX):
        msg = f"Unsupported model file type: {filepath.suffix!r} (use .json or .pkl)"
        raise ModelFormatError(msg)

    logger.info(f"Saving model to {filepath}")
    document = ModelDocument.from_model(model, relation)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    try:
        if filepath.suffix == JSON_SUFFIX:
            filepath.write_text(document.model_dump_json(indent=2), encoding="utf-8")
        else:
            with filepath.open("wb") as f:
                pickle.dump(document.model_dump(), f)
    except Exception as e:
        logger.error(f"Failed to save model: {e}")
        if filepath.exists():
            filepath.unlink()
        raise

    logger.debug(
        "Model saved",
        filepath=str(filepath),
        nodes=len(document.nodes),
        file_size_kb=f"{filepath.stat().st_size / 1024:.2f}",
    )


def load_model(filepath: Path) -> MultilayerPerceptron:
    """Read a model written by :func:`save_model`.

    Raises:
        ModelFormatError: If the file type is unknown or its content does
            not describe a valid model
    """
    logger.info(f"Loading model from {filepath}")
    assert filepath.exists(), f"Model file not found: {filepath}"

    try:
        if filepath.suffix == JSON_SUFFIX:
            document = ModelDocument.model_validate_json(filepath.read_text(encoding="utf-8"))
        elif filepath.suffix == PICKLE_SUFFIX:
            with filepath.open("rb") as f:
                data = pickle.load(f)
            document = ModelDocument.model_validate(data)
        else:
            msg = f"Unsupported model file type: {filepath.suffix!r} (use .json or .pkl)"
            raise ModelFormatError(msg)
    except ValidationError as e:
        msg = f"Invalid model document {filepath}: {e}"
        raise ModelFormatError(msg) from e
    except (pickle.UnpicklingError, EOFError) as e:
        msg = f"Corrupt model file {filepath}: {e}"
        raise ModelFormatError(msg) from e

    model = document.to_model()
    logger.debug(
        "Model loaded",
        relation=document.relation,
        attributes=len(document.attributes),
        **model.graph.describe(),
    )
    return model
