from __future__ import annotations

from onnxport.ir import Node, NodeType, TensorType

_BY_SPATIAL_RANK: dict[NodeType, dict[int, NodeType]] = {
    NodeType.CONV: {1: NodeType.CONV1D, 2: NodeType.CONV2D, 3: NodeType.CONV3D},
    NodeType.CONV_TRANSPOSE: {
        1: NodeType.CONV_TRANSPOSE1D,
        2: NodeType.CONV_TRANSPOSE2D,
        3: NodeType.CONV_TRANSPOSE3D,
    },
    NodeType.MAX_POOL: {1: NodeType.MAX_POOL1D, 2: NodeType.MAX_POOL2D},
    NodeType.AVERAGE_POOL: {1: NodeType.AVERAGE_POOL1D, 2: NodeType.AVERAGE_POOL2D},
}


def _spatial_rank(node: Node) -> int | None:
    kernel = node.attrs.get("kernel_shape")
    if kernel:
        return len(kernel)
    # Conv kernel_shape is optional; fall back to the weight rank
    if len(node.inputs) > 1 and isinstance(node.inputs[1].ty, TensorType):
        dim = node.inputs[1].ty.dim
        if dim > 2:
            return dim - 2
    return None


def remap_node_type(node: Node) -> None:
    """Replace generic ONNX kinds with their rank-specific IR kinds, in place."""
    table = _BY_SPATIAL_RANK.get(node.node_type)
    if table is None:
        return
    rank = _spatial_rank(node)
    if rank in table:
        node.node_type = table[rank]
