from __future__ import annotations

import copy
from collections.abc import Callable

import numpy as np

from onnxport.ir.graph import (
    Argument,
    ElementType,
    Node,
    NodeType,
    ScalarType,
    ShapeType,
    TensorType,
    convert_constant_value,
)


class InferenceError(Exception):
    def __init__(self, message: str, code: str = "EINFER") -> None:
        super().__init__(message)
        self.code = code


DimInferFn = Callable[[Node], None]

_REGISTRY: dict[NodeType, DimInferFn] = {}


def register_dim_inference(*node_types: NodeType) -> Callable[[DimInferFn], DimInferFn]:
    def wrapper(fn: DimInferFn) -> DimInferFn:
        for node_type in node_types:
            _REGISTRY[node_type] = fn
        return fn

    return wrapper


def _elem(arg: Argument) -> ElementType:
    if isinstance(arg.ty, (TensorType, ScalarType)):
        return arg.ty.elem_type
    return ElementType.INT64


def _rank(arg: Argument) -> int:
    if isinstance(arg.ty, TensorType):
        return arg.ty.dim
    if isinstance(arg.ty, ShapeType):
        return 1
    return 0


def _shape(arg: Argument) -> list[int] | None:
    if isinstance(arg.ty, TensorType):
        return arg.ty.shape
    if isinstance(arg.ty, ShapeType):
        return [arg.ty.rank]
    return []


def _set_tensor(
    out: Argument, elem: ElementType, dim: int, shape: list[int] | None = None
) -> None:
    if dim == 0:
        out.ty = ScalarType(elem)
    else:
        out.ty = TensorType(elem, dim, list(shape) if shape is not None else None)


def _literal_ints(node: Node, input_index: int, attr: str) -> list[int] | None:
    """Read an int list given either as a literal input (opset >= 13) or an attribute."""
    if len(node.inputs) > input_index and node.inputs[input_index].value is not None:
        return [int(v) for v in np.asarray(node.inputs[input_index].value).reshape(-1)]
    val = node.attrs.get(attr)
    if val is None:
        return None
    return [int(v) for v in val]


def _broadcast_shape(a: list[int], b: list[int]) -> list[int]:
    ra = list(reversed(a))
    rb = list(reversed(b))
    result: list[int] = []
    for i in range(max(len(ra), len(rb))):
        da = ra[i] if i < len(ra) else 1
        db = rb[i] if i < len(rb) else 1
        if da == db or da == 1 or db == 1:
            result.append(max(da, db))
        else:
            raise InferenceError(f"Broadcast mismatch: {a} vs {b}", code="EBROADCAST")
    return list(reversed(result))


def _promote_dtype(a: ElementType, b: ElementType) -> ElementType:
    if ElementType.STRING in (a, b):
        return ElementType.STRING
    # Use numpy's type promotion to resolve a result type name
    return ElementType.from_numpy(np.result_type(a.to_numpy(), b.to_numpy()))


def same_as_input(node: Node) -> None:
    if not node.inputs:
        return
    for out in node.outputs:
        out.ty = copy.deepcopy(node.inputs[0].ty)


register_dim_inference(
    NodeType.ABS,
    NodeType.BATCH_NORMALIZATION,
    NodeType.CEIL,
    NodeType.CLIP,
    NodeType.COS,
    NodeType.DROPOUT,
    NodeType.ERF,
    NodeType.EXP,
    NodeType.FLOOR,
    NodeType.GELU,
    NodeType.HARD_SIGMOID,
    NodeType.IDENTITY,
    NodeType.INSTANCE_NORMALIZATION,
    NodeType.LAYER_NORMALIZATION,
    NodeType.LEAKY_RELU,
    NodeType.LOG,
    NodeType.LOG_SOFTMAX,
    NodeType.NEG,
    NodeType.NOT,
    NodeType.RECIPROCAL,
    NodeType.RELU,
    NodeType.SIGMOID,
    NodeType.SIN,
    NodeType.SOFTMAX,
    NodeType.SQRT,
    NodeType.TANH,
)(same_as_input)


_COMPARISONS = {
    NodeType.EQUAL,
    NodeType.GREATER,
    NodeType.GREATER_OR_EQUAL,
    NodeType.LESS,
    NodeType.LESS_OR_EQUAL,
}


@register_dim_inference(
    NodeType.ADD,
    NodeType.AND,
    NodeType.DIV,
    NodeType.EQUAL,
    NodeType.GREATER,
    NodeType.GREATER_OR_EQUAL,
    NodeType.LESS,
    NodeType.LESS_OR_EQUAL,
    NodeType.MAX,
    NodeType.MEAN,
    NodeType.MIN,
    NodeType.MUL,
    NodeType.OR,
    NodeType.POW,
    NodeType.PRELU,
    NodeType.SUB,
    NodeType.SUM,
)
def infer_broadcast(node: Node) -> None:
    if not node.inputs or len(node.outputs) != 1:
        raise InferenceError(
            f"{node.node_type.value} expects inputs and 1 output", code="EBROADCAST_ARITY"
        )
    operands = [a for a in node.inputs if a.name or a.value is not None] or node.inputs
    elem = _elem(operands[0])
    # Pow keeps the base type whatever the exponent type is
    if node.node_type is not NodeType.POW:
        for arg in operands[1:]:
            elem = _promote_dtype(elem, _elem(arg))
    if node.node_type in _COMPARISONS:
        elem = ElementType.BOOL

    shapes = [_shape(a) for a in operands]
    dim = max(_rank(a) for a in operands)
    shape: list[int] | None = None
    if all(s is not None for s in shapes):
        shape = []
        for s in shapes:
            shape = _broadcast_shape(shape, s)
    _set_tensor(node.outputs[0], elem, dim, shape)


@register_dim_inference(NodeType.WHERE)
def infer_where(node: Node) -> None:
    if len(node.inputs) != 3 or len(node.outputs) != 1:
        raise InferenceError("Where expects 3 inputs and 1 output", code="EWHERE_ARITY")
    shapes = [_shape(a) for a in node.inputs]
    dim = max(_rank(a) for a in node.inputs)
    shape: list[int] | None = None
    if all(s is not None for s in shapes):
        shape = []
        for s in shapes:
            shape = _broadcast_shape(shape, s)
    _set_tensor(node.outputs[0], _elem(node.inputs[1]), dim, shape)


@register_dim_inference(NodeType.CAST)
def infer_cast(node: Node) -> None:
    if len(node.inputs) != 1 or len(node.outputs) != 1:
        raise InferenceError("Cast expects 1 input and 1 output", code="ECAST_ARITY")
    to = node.attrs.get("to")
    if not isinstance(to, int):
        raise InferenceError("Cast requires integer 'to' attribute", code="ECAST_ATTR")
    elem = ElementType.from_onnx(to)
    src = node.inputs[0]
    if isinstance(src.ty, TensorType):
        node.outputs[0].ty = TensorType(elem, src.ty.dim, src.ty.shape)
    elif isinstance(src.ty, ShapeType) and elem is ElementType.INT64:
        node.outputs[0].ty = ShapeType(src.ty.rank)
    elif isinstance(src.ty, ShapeType):
        node.outputs[0].ty = TensorType(elem, 1, [src.ty.rank])
    else:
        node.outputs[0].ty = ScalarType(elem)


@register_dim_inference(NodeType.CONSTANT)
def infer_constant(node: Node) -> None:
    node.outputs[0].ty = convert_constant_value(node).ty


@register_dim_inference(NodeType.CONSTANT_OF_SHAPE)
def infer_constant_of_shape(node: Node) -> None:
    fill = node.attrs.get("value")
    elem = (
        ElementType.from_numpy(fill.dtype)
        if isinstance(fill, np.ndarray)
        else ElementType.FLOAT32
    )
    src = node.inputs[0]
    if src.value is not None:
        shape = [int(v) for v in np.asarray(src.value).reshape(-1)]
        _set_tensor(node.outputs[0], elem, len(shape), shape)
    elif isinstance(src.ty, ShapeType):
        _set_tensor(node.outputs[0], elem, src.ty.rank)
    else:
        shape_of_shape = _shape(src)
        if not shape_of_shape:
            raise InferenceError(
                "ConstantOfShape needs a shape input of known length", code="ECOS_SHAPE"
            )
        _set_tensor(node.outputs[0], elem, shape_of_shape[0])


@register_dim_inference(NodeType.SHAPE)
def infer_shape(node: Node) -> None:
    if len(node.inputs) != 1 or len(node.outputs) != 1:
        raise InferenceError("Shape expects 1 input and 1 output", code="ESHAPE_ARITY")
    rank = _rank(node.inputs[0])
    start = node.attrs.get("start", 0)
    end = node.attrs.get("end", rank)
    start = start + rank if start < 0 else start
    end = end + rank if end < 0 else end
    node.outputs[0].ty = ShapeType(max(0, min(end, rank) - max(start, 0)))


@register_dim_inference(NodeType.RESHAPE)
def infer_reshape(node: Node) -> None:
    if len(node.outputs) != 1 or len(node.inputs) not in (1, 2):
        raise InferenceError(
            "Reshape expects 1 or 2 inputs and 1 output", code="ERESHAPE_ARITY"
        )
    x = node.inputs[0]
    out = node.outputs[0]
    target = _literal_ints(node, 1, "shape")
    if target is None:
        # Shape only known at runtime: keep the rank if the shape operand tells us
        shape_arg = node.inputs[1] if len(node.inputs) == 2 else None
        if shape_arg is not None and isinstance(shape_arg.ty, ShapeType):
            _set_tensor(out, _elem(x), shape_arg.ty.rank)
            return
        shape_of_shape = _shape(shape_arg) if shape_arg is not None else None
        if not shape_of_shape:
            raise InferenceError(
                "Reshape requires a literal or rank-known 'shape'", code="ERESHAPE_ATTR"
            )
        _set_tensor(out, _elem(x), shape_of_shape[0])
        return
    if sum(1 for d in target if d == -1) > 1:
        raise InferenceError(
            "Reshape 'shape' may contain at most one -1", code="ERESHAPE_NEG1"
        )
    in_shape = _shape(x)
    resolved: list[int] | None = list(target)
    if in_shape is not None:
        allow_zero = node.attrs.get("allowzero", 0)
        for i, d in enumerate(target):
            if d == 0 and not allow_zero and i < len(in_shape):
                resolved[i] = in_shape[i]
        if -1 in resolved:
            known = int(np.prod([d for d in resolved if d != -1]))
            total = int(np.prod(in_shape))
            resolved[resolved.index(-1)] = total // known if known else 0
    elif -1 in target or 0 in target:
        resolved = None
    _set_tensor(out, _elem(x), len(target), resolved)


@register_dim_inference(NodeType.UNSQUEEZE)
def infer_unsqueeze(node: Node) -> None:
    x = node.inputs[0]
    out = node.outputs[0]
    axes = _literal_ints(node, 1, "axes")
    if axes is None:
        axes_shape = _shape(node.inputs[1]) if len(node.inputs) > 1 else None
        if not axes_shape:
            raise InferenceError("Unsqueeze axes are unknown", code="EUNSQUEEZE_AXES")
        _set_tensor(out, _elem(x), _rank(x) + axes_shape[0])
        return
    rank = _rank(x) + len(axes)
    in_shape = _shape(x)
    shape: list[int] | None = None
    if in_shape is not None:
        norm = sorted(a + rank if a < 0 else a for a in axes)
        shape = list(in_shape)
        for a in norm:
            shape.insert(a, 1)
    _set_tensor(out, _elem(x), rank, shape)


@register_dim_inference(NodeType.SQUEEZE)
def infer_squeeze(node: Node) -> None:
    x = node.inputs[0]
    out = node.outputs[0]
    axes = _literal_ints(node, 1, "axes")
    in_shape = _shape(x)
    rank = _rank(x)
    if axes is None:
        if in_shape is None:
            raise InferenceError(
                "Squeeze without axes needs a known input shape", code="ESQUEEZE_AXES"
            )
        shape = [d for d in in_shape if d != 1]
        _set_tensor(out, _elem(x), len(shape), shape)
        return
    norm = {a + rank if a < 0 else a for a in axes}
    shape = None if in_shape is None else [d for i, d in enumerate(in_shape) if i not in norm]
    _set_tensor(out, _elem(x), rank - len(norm), shape)


@register_dim_inference(NodeType.FLATTEN)
def infer_flatten(node: Node) -> None:
    x = node.inputs[0]
    rank = _rank(x)
    axis = node.attrs.get("axis", 1)
    axis = axis + rank if axis < 0 else axis
    in_shape = _shape(x)
    shape = None
    if in_shape is not None:
        shape = [int(np.prod(in_shape[:axis])), int(np.prod(in_shape[axis:]))]
    _set_tensor(node.outputs[0], _elem(x), 2, shape)


@register_dim_inference(NodeType.TRANSPOSE)
def infer_transpose(node: Node) -> None:
    if len(node.inputs) != 1 or len(node.outputs) != 1:
        raise InferenceError(
            "Transpose expects 1 input and 1 output", code="ETRANSPOSE_ARITY"
        )
    x = node.inputs[0]
    rank = _rank(x)
    perm = node.attrs.get("perm")
    if perm is None:
        perm = list(reversed(range(rank)))
    if len(perm) != rank or any(p < 0 or p >= rank for p in perm):
        raise InferenceError("Invalid Transpose perm", code="ETRANSPOSE_PERM")
    in_shape = _shape(x)
    shape = None if in_shape is None else [in_shape[i] for i in perm]
    _set_tensor(node.outputs[0], _elem(x), rank, shape)


@register_dim_inference(NodeType.CONCAT)
def infer_concat(node: Node) -> None:
    if len(node.outputs) != 1 or len(node.inputs) < 1:
        raise InferenceError(
            "Concat expects N inputs and 1 output", code="ECONCAT_ARITY"
        )
    if all(isinstance(a.ty, ShapeType) for a in node.inputs):
        node.outputs[0].ty = ShapeType(sum(a.ty.rank for a in node.inputs))
        return
    rank = _rank(node.inputs[0])
    if any(_rank(a) != rank for a in node.inputs):
        raise InferenceError("Concat inputs must have same rank", code="ECONCAT_RANK")
    axis = node.attrs.get("axis", 0)
    if axis < 0:
        axis += rank
    if axis < 0 or axis >= rank:
        raise InferenceError("Concat axis out of range", code="ECONCAT_AXIS")
    shapes = [_shape(a) for a in node.inputs]
    out_shape: list[int] | None = None
    if all(s is not None for s in shapes):
        out_shape = list(shapes[0])
        out_shape[axis] = sum(s[axis] for s in shapes)
    _set_tensor(node.outputs[0], _elem(node.inputs[0]), rank, out_shape)


@register_dim_inference(NodeType.GATHER)
def infer_gather(node: Node) -> None:
    data, indices = node.inputs[0], node.inputs[1]
    if isinstance(data.ty, ShapeType):
        if _rank(indices) == 0:
            node.outputs[0].ty = ScalarType(ElementType.INT64)
        else:
            node.outputs[0].ty = ShapeType(int(np.prod(_shape(indices) or [1])))
        return
    rank = _rank(data)
    axis = node.attrs.get("axis", 0)
    axis = axis + rank if axis < 0 else axis
    d_shape, i_shape = _shape(data), _shape(indices)
    shape = None
    if d_shape is not None and i_shape is not None:
        shape = d_shape[:axis] + i_shape + d_shape[axis + 1 :]
    _set_tensor(node.outputs[0], _elem(data), rank + _rank(indices) - 1, shape)


@register_dim_inference(NodeType.MAT_MUL)
def infer_matmul(node: Node) -> None:
    if len(node.inputs) != 2 or len(node.outputs) != 1:
        raise InferenceError(
            "MatMul expects 2 inputs and 1 output", code="EMATMUL_ARITY"
        )
    a, b = node.inputs
    elem = _promote_dtype(_elem(a), _elem(b))
    ra, rb = _rank(a), _rank(b)
    dim = max(ra, rb) if min(ra, rb) >= 2 else max(ra, rb) - 1
    sa, sb = _shape(a), _shape(b)
    if sa is None or sb is None or ra < 2 or rb < 2:
        _set_tensor(node.outputs[0], elem, dim)
        return
    batch = _broadcast_shape(sa[:-2], sb[:-2])
    if sa[-1] != sb[-2]:
        raise InferenceError(
            f"Incompatible MatMul inner dims: {sa[-1]} vs {sb[-2]}", code="EMATMUL_DIMS"
        )
    _set_tensor(node.outputs[0], elem, dim, batch + [sa[-2], sb[-1]])


@register_dim_inference(NodeType.LINEAR)
def infer_linear(node: Node) -> None:
    x, weight = node.inputs[0], node.inputs[1]
    w_shape = _shape(weight)
    if _rank(weight) != 2:
        raise InferenceError("Linear weight must be rank 2", code="ELINEAR_WEIGHT")
    x_shape = _shape(x)
    shape = None
    if x_shape is not None and w_shape is not None:
        shape = x_shape[:-1] + [w_shape[1]]
    _set_tensor(node.outputs[0], _elem(x), _rank(x), shape)


@register_dim_inference(NodeType.GEMM)
def infer_gemm(node: Node) -> None:
    a, b = node.inputs[0], node.inputs[1]
    sa, sb = _shape(a), _shape(b)
    shape = None
    if sa is not None and sb is not None:
        m = sa[1] if node.attrs.get("transA", 0) else sa[0]
        n = sb[0] if node.attrs.get("transB", 0) else sb[1]
        shape = [m, n]
    _set_tensor(node.outputs[0], _elem(a), 2, shape)


def _get_list_attr(node: Node, name: str, default: list[int]) -> list[int]:
    val = node.attrs.get(name)
    if val is None:
        return default
    if not isinstance(val, list) or not all(isinstance(x, int) for x in val):
        raise InferenceError(f"Attribute '{name}' must be list[int]", code="EATTR")
    return val


def _split_pads(pads: list[int], spatial: int) -> tuple[list[int], list[int]]:
    # ONNX pads: [x1_begin, x2_begin, ..., x1_end, x2_end, ...]
    if len(pads) == 2 * spatial:
        return pads[:spatial], pads[spatial:]
    if len(pads) == spatial:
        return list(pads), list(pads)
    return [0] * spatial, [0] * spatial


def _conv_out_dim(input_dim: int, k: int, s: int, d: int, p0: int, p1: int) -> int:
    # floor((in + pad0 + pad1 - dilation*(k - 1) - 1)/stride + 1)
    return (input_dim + p0 + p1 - d * (k - 1) - 1) // s + 1


def _spatial_dims(
    node: Node, x_shape: list[int], kernel: list[int], dilation_default: int = 1
) -> list[int]:
    spatial = len(kernel)
    strides = _get_list_attr(node, "strides", [1] * spatial)
    dilations = _get_list_attr(node, "dilations", [dilation_default] * spatial)
    begin, end = _split_pads(_get_list_attr(node, "pads", []), spatial)
    in_spatial = x_shape[-spatial:]
    if node.attrs.get("auto_pad", "NOTSET") in ("SAME_UPPER", "SAME_LOWER"):
        return [-(-d // s) for d, s in zip(in_spatial, strides)]
    return [
        _conv_out_dim(in_spatial[i], kernel[i], strides[i], dilations[i], begin[i], end[i])
        for i in range(spatial)
    ]


_CONV_SPATIAL = {
    NodeType.CONV: None,
    NodeType.CONV1D: 1,
    NodeType.CONV2D: 2,
    NodeType.CONV3D: 3,
}


@register_dim_inference(*_CONV_SPATIAL)
def infer_conv(node: Node) -> None:
    if len(node.inputs) < 2 or len(node.outputs) != 1:
        raise InferenceError("Conv expects at least 2 inputs and 1 output", code="ECONV_ARITY")
    x, w = node.inputs[0], node.inputs[1]
    rank = _rank(x)
    spatial = _CONV_SPATIAL[node.node_type] or rank - 2
    if rank != spatial + 2:
        raise InferenceError(
            f"{node.node_type.value} expects a rank-{spatial + 2} input", code="ECONV_RANK"
        )
    x_shape, w_shape = _shape(x), _shape(w)
    if x_shape is None or w_shape is None:
        _set_tensor(node.outputs[0], _elem(x), rank)
        return
    groups = node.attrs.get("group", 1)
    if x_shape[1] % groups != 0:
        raise InferenceError("Conv input channels not divisible by group", code="ECONV_GROUPS_DIV")
    kernel = _get_list_attr(node, "kernel_shape", w_shape[2:])
    out_spatial = _spatial_dims(node, x_shape, kernel)
    _set_tensor(node.outputs[0], _elem(x), rank, [x_shape[0], w_shape[0]] + out_spatial)


_CONV_TRANSPOSE_SPATIAL = {
    NodeType.CONV_TRANSPOSE: None,
    NodeType.CONV_TRANSPOSE1D: 1,
    NodeType.CONV_TRANSPOSE2D: 2,
    NodeType.CONV_TRANSPOSE3D: 3,
}


@register_dim_inference(*_CONV_TRANSPOSE_SPATIAL)
def infer_conv_transpose(node: Node) -> None:
    x, w = node.inputs[0], node.inputs[1]
    rank = _rank(x)
    x_shape, w_shape = _shape(x), _shape(w)
    if x_shape is None or w_shape is None:
        _set_tensor(node.outputs[0], _elem(x), rank)
        return
    spatial = _CONV_TRANSPOSE_SPATIAL[node.node_type] or rank - 2
    kernel = _get_list_attr(node, "kernel_shape", w_shape[2:])
    strides = _get_list_attr(node, "strides", [1] * spatial)
    dilations = _get_list_attr(node, "dilations", [1] * spatial)
    output_padding = _get_list_attr(node, "output_padding", [0] * spatial)
    begin, end = _split_pads(_get_list_attr(node, "pads", []), spatial)
    out_spatial = [
        strides[i] * (x_shape[2 + i] - 1)
        + output_padding[i]
        + (kernel[i] - 1) * dilations[i]
        + 1
        - begin[i]
        - end[i]
        for i in range(spatial)
    ]
    c_out = w_shape[1] * node.attrs.get("group", 1)
    _set_tensor(node.outputs[0], _elem(x), rank, [x_shape[0], c_out] + out_spatial)


@register_dim_inference(
    NodeType.MAX_POOL,
    NodeType.MAX_POOL1D,
    NodeType.MAX_POOL2D,
    NodeType.AVERAGE_POOL,
    NodeType.AVERAGE_POOL1D,
    NodeType.AVERAGE_POOL2D,
)
def infer_pool(node: Node) -> None:
    if len(node.outputs) < 1:
        raise InferenceError(
            f"{node.node_type.value} expects at least 1 output", code="EPOOL_ARITY"
        )
    x = node.inputs[0]
    kernel = _get_list_attr(node, "kernel_shape", [])
    if not kernel:
        raise InferenceError(
            f"{node.node_type.value} requires kernel_shape", code="EPOOL_KERNEL"
        )
    x_shape = _shape(x)
    if x_shape is None:
        _set_tensor(node.outputs[0], _elem(x), _rank(x))
        return
    if len(x_shape) != len(kernel) + 2:
        raise InferenceError(
            f"{node.node_type.value} expects rank {len(kernel) + 2}", code="EPOOL_RANK"
        )
    out_spatial = _spatial_dims(node, x_shape, kernel)
    _set_tensor(node.outputs[0], _elem(x), len(x_shape), x_shape[:2] + out_spatial)


@register_dim_inference(NodeType.GLOBAL_AVERAGE_POOL, NodeType.GLOBAL_MAX_POOL)
def infer_global_pool(node: Node) -> None:
    x = node.inputs[0]
    x_shape = _shape(x)
    shape = None if x_shape is None else x_shape[:2] + [1] * (len(x_shape) - 2)
    _set_tensor(node.outputs[0], _elem(x), _rank(x), shape)


@register_dim_inference(
    NodeType.REDUCE_MAX,
    NodeType.REDUCE_MEAN,
    NodeType.REDUCE_MIN,
    NodeType.REDUCE_PROD,
    NodeType.REDUCE_SUM,
    NodeType.ARG_MAX,
)
def infer_reduce(node: Node) -> None:
    x = node.inputs[0]
    rank = _rank(x)
    if node.node_type is NodeType.ARG_MAX:
        axes: list[int] | None = [node.attrs.get("axis", 0)]
    else:
        axes = _literal_ints(node, 1, "axes")
    if not axes:
        axes = list(range(rank))
    norm = {a + rank if a < 0 else a for a in axes}
    keepdims = node.attrs.get("keepdims", 1)
    elem = ElementType.INT64 if node.node_type is NodeType.ARG_MAX else _elem(x)
    in_shape = _shape(x)
    if keepdims:
        shape = None if in_shape is None else [1 if i in norm else d for i, d in enumerate(in_shape)]
        _set_tensor(node.outputs[0], elem, rank, shape)
    else:
        shape = None if in_shape is None else [d for i, d in enumerate(in_shape) if i not in norm]
        _set_tensor(node.outputs[0], elem, rank - len(norm), shape)


def dim_inference(node: Node) -> None:
    """
    Set the output types of ``node`` from its (already resolved) inputs and attributes.
    Kinds without a dedicated rule keep the first input's type.
    """
    fn = _REGISTRY.get(node.node_type, same_as_input)
    fn(node)

