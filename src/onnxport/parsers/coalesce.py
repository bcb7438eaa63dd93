"""Fuse short runs of raw ONNX nodes into single IR nodes."""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import numpy as np
import onnx

from onnxport.ir import Node, NodeType, TensorType
from onnxport.parsers.graph_io import OnnxGraphIO
from onnxport.parsers.proto import convert_node_proto
from onnxport.utils import get_logger

logger = get_logger(__name__)


class NodeCursor:
    """Forward-only iterator over the raw node list with one node of lookahead."""

    def __init__(self, nodes: Sequence[onnx.NodeProto]) -> None:
        self._nodes = nodes
        self._pos = 0

    def __iter__(self) -> Iterator[onnx.NodeProto]:
        return self

    def __next__(self) -> onnx.NodeProto:
        if self._pos >= len(self._nodes):
            raise StopIteration
        node = self._nodes[self._pos]
        self._pos += 1
        return node

    def peek(self) -> onnx.NodeProto | None:
        if self._pos >= len(self._nodes):
            return None
        return self._nodes[self._pos]


def coalesce(node: Node, cursor: NodeCursor, graph_io: OnnxGraphIO) -> None:
    if node.node_type is NodeType.GEMM:
        convert_gemm_to_linear(node)
    elif node.node_type is NodeType.MAT_MUL:
        convert_matmul_to_linear(node, cursor, graph_io)


def _is_literal_matrix(node: Node, index: int) -> bool:
    if len(node.inputs) <= index or node.inputs[index].value is None:
        return False
    ty = node.inputs[index].ty
    return isinstance(ty, TensorType) and ty.dim == 2


def convert_gemm_to_linear(node: Node) -> None:
    """
    A Gemm that is just ``x @ W.T + b`` becomes Linear with the weight stored
    as ``[in, out]``. Scaled or A-transposed Gemms stay as they are.
    """
    if len(node.outputs) != 1:
        return
    straight = (
        node.attrs.get("alpha", 1.0) == 1.0
        and node.attrs.get("beta", 1.0) == 1.0
        and node.attrs.get("transA", 0) == 0
    )
    if not straight or not _is_literal_matrix(node, 1):
        logger.debug("keeping %s as Gemm", node.name)
        return
    trans_b = node.attrs.pop("transB", 0)
    node.attrs.pop("alpha", None)
    node.attrs.pop("beta", None)
    node.attrs.pop("transA", None)
    node.node_type = NodeType.LINEAR
    if trans_b == 1:
        transpose_linear_node_weights(node, 1)


def transpose_linear_node_weights(node: Node, weight_input_index: int) -> None:
    weight = node.inputs[weight_input_index]
    weight.value = np.ascontiguousarray(np.asarray(weight.value).T)
    weight.ty = TensorType(weight.ty.elem_type, 2, list(weight.value.shape))


def convert_matmul_to_linear(node: Node, cursor: NodeCursor, graph_io: OnnxGraphIO) -> None:
    if len(node.inputs) != 2:
        return
    # a non-literal right-hand side is an activation, not a weight
    if not _is_literal_matrix(node, 1):
        return
    node.node_type = NodeType.LINEAR

    peeked = cursor.peek()
    if peeked is None or peeked.op_type != "Add":
        return
    add_node = convert_node_proto(peeked, graph_io)
    if is_add_node_with_bias(add_node, node):
        convert_and_remove_add_node(add_node, node)
        next(cursor)


def is_add_node_with_bias(peek_node: Node, current_node: Node) -> bool:
    if peek_node.node_type is not NodeType.ADD or len(peek_node.inputs) != 2:
        return False
    lhs, rhs = peek_node.inputs
    out_name = current_node.outputs[0].name
    return (lhs.name == out_name and rhs.value is not None) or (
        lhs.value is not None and rhs.name == out_name
    )


def convert_and_remove_add_node(bias_node: Node, current_node: Node) -> None:
    lhs, rhs = bias_node.inputs
    bias = lhs if lhs.value is not None else rhs
    current_node.inputs.append(bias)
    current_node.outputs[0].name = bias_node.outputs[0].name
    logger.debug("fused bias add %s into %s", bias_node.name, current_node.name)
