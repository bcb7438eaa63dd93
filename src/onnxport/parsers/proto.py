"""Conversion of ONNX protobuf messages into IR arguments and nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import onnx
from onnx import numpy_helper

from onnxport.ir import (
    Argument,
    ElementType,
    Node,
    NodeType,
    ScalarType,
    TensorType,
    UnsupportedOperatorError,
)
from onnxport.utils import get_logger

if TYPE_CHECKING:
    from onnxport.parsers.graph_io import OnnxGraphIO

logger = get_logger(__name__)


def argument_from_value_info(vi: onnx.ValueInfoProto) -> Argument:
    """Build a graph input/output Argument from its declaration."""
    t = vi.type.tensor_type
    elem = ElementType.from_onnx(t.elem_type)
    dims = t.shape.dim
    if not dims:
        return Argument(name=vi.name, ty=ScalarType(elem))
    shape: list[int] = []
    for d in dims:
        if d.HasField("dim_value"):
            shape.append(int(d.dim_value))
        else:
            # symbolic/unknown -> use 1 as placeholder
            shape.append(1)
    return Argument(name=vi.name, ty=TensorType(elem, len(shape), shape))


def argument_from_initializer(init: onnx.TensorProto) -> Argument:
    return Argument.from_array(init.name, numpy_helper.to_array(init))


def _sparse_to_dense(sparse: onnx.SparseTensorProto) -> np.ndarray:
    values = numpy_helper.to_array(sparse.values)
    dims = [int(d) for d in sparse.dims]
    dense = np.zeros(int(np.prod(dims)), dtype=values.dtype)
    if sparse.HasField("indices"):
        indices = numpy_helper.to_array(sparse.indices)
        if indices.ndim == 2:
            # [NNZ, rank] coordinates
            flat = np.ravel_multi_index(tuple(indices.T), dims)
        else:
            flat = indices
        dense[flat] = values
    return dense.reshape(dims)


def parse_attributes(node: onnx.NodeProto) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for a in node.attribute:
        if a.type == onnx.AttributeProto.INT:
            attrs[a.name] = int(a.i)
        elif a.type == onnx.AttributeProto.FLOAT:
            attrs[a.name] = float(a.f)
        elif a.type == onnx.AttributeProto.STRING:
            attrs[a.name] = a.s.decode("utf-8", errors="ignore")
        elif a.type == onnx.AttributeProto.INTS:
            attrs[a.name] = [int(x) for x in a.ints]
        elif a.type == onnx.AttributeProto.FLOATS:
            attrs[a.name] = [float(x) for x in a.floats]
        elif a.type == onnx.AttributeProto.STRINGS:
            attrs[a.name] = [s.decode("utf-8", errors="ignore") for s in a.strings]
        elif a.type == onnx.AttributeProto.TENSOR:
            attrs[a.name] = numpy_helper.to_array(a.t)
        elif a.type == onnx.AttributeProto.SPARSE_TENSOR:
            attrs[a.name] = _sparse_to_dense(a.sparse_tensor)
        else:
            # graphs and type protos are not carried into the IR
            logger.debug("skipping attribute %s of node %s", a.name, node.name)
    return attrs


def convert_node_proto(node: onnx.NodeProto, graph_io: OnnxGraphIO) -> Node:
    """
    Convert a raw node. Inputs are resolved through the registry so they carry
    whatever is known about them so far; outputs start as fresh arguments under
    their file names.
    """
    logger.debug("converting onnx node %s (%s)", node.name, node.op_type)
    return Node(
        node_type=NodeType.from_onnx(node.op_type),
        name=node.name,
        inputs=[graph_io.resolve_input(name) for name in node.input],
        outputs=[Argument(name) for name in node.output],
        attrs=parse_attributes(node),
    )


def fallback_convert_node_proto(node: onnx.NodeProto) -> Node:
    """
    Convert a raw node keeping only identity and I/O names. Used for ordering checks,
    so operators outside NodeType are accepted as UNSUPPORTED.
    """
    try:
        node_type = NodeType.from_onnx(node.op_type)
    except UnsupportedOperatorError:
        logger.debug("ordering check sees unsupported operator %s", node.op_type)
        node_type = NodeType.UNSUPPORTED
    return Node(
        node_type=node_type,
        name=node.name,
        inputs=[Argument(name) for name in node.input],
        outputs=[Argument(name) for name in node.output],
        attrs=parse_attributes(node),
    )
