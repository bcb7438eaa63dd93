"""Model importers producing the OnnxGraph IR."""

from .base import Parser
from .graph_io import GraphIOError, IOEntry, IOKind, OnnxGraphIO
from .onnx import (
    ModelLoadError,
    OnnxGraphBuilder,
    OnnxParser,
    check_validity,
    load_model,
    parse_onnx,
)

__all__ = [
    "Parser",
    "GraphIOError",
    "IOEntry",
    "IOKind",
    "OnnxGraphIO",
    "ModelLoadError",
    "OnnxGraphBuilder",
    "OnnxParser",
    "check_validity",
    "load_model",
    "parse_onnx",
]
