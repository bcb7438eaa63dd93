"""Import ONNX models into a clean, statically typed graph IR."""

from onnxport.ir import Argument, Node, NodeType, OnnxGraph
from onnxport.parsers import OnnxParser, check_validity, parse_onnx

__version__ = "0.1.0"

__all__ = [
    "Argument",
    "Node",
    "NodeType",
    "OnnxGraph",
    "OnnxParser",
    "check_validity",
    "parse_onnx",
]
