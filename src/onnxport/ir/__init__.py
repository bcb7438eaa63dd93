"""Graph IR data structures, dimension inference and analysis utilities."""

from .graph import (
    CONSTANT_VALUE_KEYS,
    ArgType,
    Argument,
    ElementType,
    GraphValidator,
    Node,
    NodeType,
    OnnxGraph,
    ScalarType,
    ShapeType,
    TensorType,
    UnsupportedOperatorError,
    UnsupportedTypeError,
    ValidationError,
    convert_constant_value,
    is_top_sorted,
)
from .infer import InferenceError, dim_inference, register_dim_inference
from .utils import build_consumer_map, build_producer_map, describe_edges

__all__ = [
    "ArgType",
    "Argument",
    "ElementType",
    "TensorType",
    "ScalarType",
    "ShapeType",
    "Node",
    "NodeType",
    "OnnxGraph",
    "GraphValidator",
    "ValidationError",
    "is_top_sorted",
    "UnsupportedOperatorError",
    "UnsupportedTypeError",
    "CONSTANT_VALUE_KEYS",
    "convert_constant_value",
    "build_producer_map",
    "build_consumer_map",
    "describe_edges",
    "InferenceError",
    "dim_inference",
    "register_dim_inference",
]
