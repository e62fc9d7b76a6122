"""arffnet - ARFF datasets, feed-forward networks and fixed-point network compilation."""

from .attribute import Attribute, make_nominal, make_numeric
from .compiler import CompiledNetwork, ModelCompiler, compile_network
from .dataset import Dataset, Schema
from .evaluator import Evaluator, MultilayerPerceptron
from .instance import Instance
from .network import NetworkGraph
from .persistence import load_model, save_model
from .reader import ArffReader, load_arff, load_structure, parse_arff, save_arff

__all__ = [
    "ArffReader",
    "Attribute",
    "CompiledNetwork",
    "Dataset",
    "Evaluator",
    "Instance",
    "ModelCompiler",
    "MultilayerPerceptron",
    "NetworkGraph",
    "Schema",
    "compile_network",
    "load_arff",
    "load_model",
    "load_structure",
    "make_nominal",
    "make_numeric",
    "parse_arff",
    "save_arff",
    "save_model",
]
