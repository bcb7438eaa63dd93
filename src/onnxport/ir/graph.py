from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

import numpy as np
import onnx


class ElementType(str, Enum):
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    FLOAT16 = "float16"
    INT8 = "int8"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    BOOL = "bool"
    STRING = "string"

    @classmethod
    def from_numpy(cls, dtype: np.dtype) -> ElementType:
        dtype = np.dtype(dtype)
        if dtype.kind in ("U", "S", "O"):
            return cls.STRING
        try:
            return cls(dtype.name)
        except ValueError:
            raise UnsupportedTypeError(f"Unsupported numpy dtype '{dtype}'") from None

    @classmethod
    def from_onnx(cls, elem_type: int) -> ElementType:
        try:
            return _ONNX_ELEMENT_TYPES[elem_type]
        except KeyError:
            name = onnx.TensorProto.DataType.Name(elem_type) if elem_type else "UNDEFINED"
            raise UnsupportedTypeError(f"Unsupported ONNX element type {name}") from None

    def to_numpy(self) -> np.dtype:
        if self is ElementType.STRING:
            return np.dtype(object)
        return np.dtype(self.value)


_ONNX_ELEMENT_TYPES = {
    onnx.TensorProto.FLOAT: ElementType.FLOAT32,
    onnx.TensorProto.DOUBLE: ElementType.FLOAT64,
    onnx.TensorProto.FLOAT16: ElementType.FLOAT16,
    onnx.TensorProto.INT8: ElementType.INT8,
    onnx.TensorProto.INT32: ElementType.INT32,
    onnx.TensorProto.INT64: ElementType.INT64,
    onnx.TensorProto.UINT8: ElementType.UINT8,
    onnx.TensorProto.BOOL: ElementType.BOOL,
    onnx.TensorProto.STRING: ElementType.STRING,
}


@dataclass
class TensorType:
    elem_type: ElementType = ElementType.FLOAT32
    dim: int = 0
    shape: list[int] | None = None


@dataclass
class ScalarType:
    elem_type: ElementType = ElementType.FLOAT32


@dataclass
class ShapeType:
    rank: int


ArgType = Union[TensorType, ScalarType, ShapeType]


class UnsupportedTypeError(Exception):
    def __init__(self, message: str, code: str = "EUNSUPPORTED_TYPE") -> None:
        super().__init__(message)
        self.code = code


class UnsupportedOperatorError(Exception):
    def __init__(self, message: str, code: str = "EUNSUPPORTED_OP") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class Argument:
    """A named value on a graph edge.

    ``value`` is set when the argument is a compile-time literal. ``passed``
    flips to True once something in the final graph consumes or produces it;
    graph inputs/outputs that never get passed are pruned.
    """

    name: str
    ty: ArgType = field(default_factory=TensorType)
    value: np.ndarray | None = None
    passed: bool = False

    @classmethod
    def from_array(cls, name: str, arr: np.ndarray) -> Argument:
        arr = np.asarray(arr)
        elem = ElementType.from_numpy(arr.dtype)
        ty: ArgType
        if arr.ndim == 0:
            ty = ScalarType(elem)
        else:
            ty = TensorType(elem, arr.ndim, list(arr.shape))
        return cls(name=name, ty=ty, value=arr)

    def copy_value(self, other: Argument) -> None:
        self.ty = copy.deepcopy(other.ty)
        self.value = other.value

    def clone(self) -> Argument:
        # literal values are never mutated in place, so they can be shared
        return Argument(
            name=self.name,
            ty=copy.deepcopy(self.ty),
            value=self.value,
            passed=self.passed,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "passed": self.passed}
        if isinstance(self.ty, TensorType):
            out["type"] = {
                "kind": "tensor",
                "elem_type": self.ty.elem_type.value,
                "dim": self.ty.dim,
                "shape": self.ty.shape,
            }
        elif isinstance(self.ty, ScalarType):
            out["type"] = {"kind": "scalar", "elem_type": self.ty.elem_type.value}
        else:
            out["type"] = {"kind": "shape", "rank": self.ty.rank}
        if self.value is not None:
            out["value"] = self.value.tolist()
        return out


class NodeType(str, Enum):
    ABS = "Abs"
    ADD = "Add"
    AND = "And"
    ARG_MAX = "ArgMax"
    AVERAGE_POOL = "AveragePool"
    AVERAGE_POOL1D = "AveragePool1d"
    AVERAGE_POOL2D = "AveragePool2d"
    BATCH_NORMALIZATION = "BatchNormalization"
    CAST = "Cast"
    CEIL = "Ceil"
    CLIP = "Clip"
    CONCAT = "Concat"
    CONSTANT = "Constant"
    CONSTANT_OF_SHAPE = "ConstantOfShape"
    CONV = "Conv"
    CONV1D = "Conv1d"
    CONV2D = "Conv2d"
    CONV3D = "Conv3d"
    CONV_TRANSPOSE = "ConvTranspose"
    CONV_TRANSPOSE1D = "ConvTranspose1d"
    CONV_TRANSPOSE2D = "ConvTranspose2d"
    CONV_TRANSPOSE3D = "ConvTranspose3d"
    COS = "Cos"
    DIV = "Div"
    DROPOUT = "Dropout"
    EQUAL = "Equal"
    ERF = "Erf"
    EXP = "Exp"
    EXPAND = "Expand"
    FLATTEN = "Flatten"
    FLOOR = "Floor"
    GATHER = "Gather"
    GELU = "Gelu"
    GEMM = "Gemm"
    GLOBAL_AVERAGE_POOL = "GlobalAveragePool"
    GLOBAL_MAX_POOL = "GlobalMaxPool"
    GREATER = "Greater"
    GREATER_OR_EQUAL = "GreaterOrEqual"
    HARD_SIGMOID = "HardSigmoid"
    IDENTITY = "Identity"
    INSTANCE_NORMALIZATION = "InstanceNormalization"
    LAYER_NORMALIZATION = "LayerNormalization"
    LEAKY_RELU = "LeakyRelu"
    LESS = "Less"
    LESS_OR_EQUAL = "LessOrEqual"
    LINEAR = "Linear"
    LOG = "Log"
    LOG_SOFTMAX = "LogSoftmax"
    MAT_MUL = "MatMul"
    MAX = "Max"
    MAX_POOL = "MaxPool"
    MAX_POOL1D = "MaxPool1d"
    MAX_POOL2D = "MaxPool2d"
    MEAN = "Mean"
    MIN = "Min"
    MUL = "Mul"
    NEG = "Neg"
    NOT = "Not"
    OR = "Or"
    PAD = "Pad"
    POW = "Pow"
    PRELU = "PRelu"
    RECIPROCAL = "Reciprocal"
    REDUCE_MAX = "ReduceMax"
    REDUCE_MEAN = "ReduceMean"
    REDUCE_MIN = "ReduceMin"
    REDUCE_PROD = "ReduceProd"
    REDUCE_SUM = "ReduceSum"
    RELU = "Relu"
    RESHAPE = "Reshape"
    SHAPE = "Shape"
    SIGMOID = "Sigmoid"
    SIN = "Sin"
    SLICE = "Slice"
    SOFTMAX = "Softmax"
    SPLIT = "Split"
    SQRT = "Sqrt"
    SQUEEZE = "Squeeze"
    SUB = "Sub"
    SUM = "Sum"
    TANH = "Tanh"
    TRANSPOSE = "Transpose"
    UNSQUEEZE = "Unsqueeze"
    WHERE = "Where"
    # stand-in kind for ops read only for their names by the order check
    UNSUPPORTED = "<unsupported>"

    @classmethod
    def from_onnx(cls, op_type: str) -> NodeType:
        try:
            node_type = cls(op_type)
        except ValueError:
            node_type = cls.UNSUPPORTED
        if node_type is cls.UNSUPPORTED:
            raise UnsupportedOperatorError(f"Operator '{op_type}' is not supported")
        return node_type


@dataclass
class Node:
    node_type: NodeType
    name: str
    inputs: list[Argument] = field(default_factory=list)
    outputs: list[Argument] = field(default_factory=list)
    attrs: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_type": self.node_type.value,
            "name": self.name,
            "inputs": [a.to_dict() for a in self.inputs],
            "outputs": [a.to_dict() for a in self.outputs],
            "attrs": {k: _jsonable(v) for k, v in self.attrs.items()},
        }


@dataclass
class OnnxGraph:
    """Final IR handed to code generation: ordered nodes plus pruned boundary args."""

    nodes: list[Node] = field(default_factory=list)
    inputs: list[Argument] = field(default_factory=list)
    outputs: list[Argument] = field(default_factory=list)
    name: str = ""

    def get_node(self, name: str) -> Node | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "nodes": [n.to_dict() for n in self.nodes],
            "inputs": [a.to_dict() for a in self.inputs],
            "outputs": [a.to_dict() for a in self.outputs],
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    return value


class ValidationError(Exception):
    """Graph validation error with optional code and context."""

    def __init__(
        self, message: str, code: str = "EVALID", node_index: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.node_index = node_index


class GraphValidator:
    """Checks that a node list respects the ONNX topological-order requirement."""

    def __init__(self, nodes: list[Node]) -> None:
        self.nodes = nodes

    def validate(self) -> None:
        consumers = self._build_consumer_map()
        for idx, node in enumerate(self.nodes):
            for out in node.outputs:
                if not out.name:
                    continue
                early = [c for c in consumers.get(out.name, []) if c < idx]
                if early:
                    raise ValidationError(
                        f"Nodes are not topologically sorted: '{out.name}' is produced "
                        f"by node {idx} but consumed by node {early[0]}",
                        code="ETOPO_ORDER",
                        node_index=early[0],
                    )

    def is_top_sorted(self) -> bool:
        try:
            self.validate()
        except ValidationError:
            return False
        return True

    def _build_consumer_map(self) -> dict[str, list[int]]:
        """Map value name -> consuming node positions. Omitted optional inputs are skipped."""
        consumers: dict[str, list[int]] = {}
        for idx, node in enumerate(self.nodes):
            for inp in node.inputs:
                if inp.name:
                    consumers.setdefault(inp.name, []).append(idx)
        return consumers


def is_top_sorted(nodes: list[Node]) -> bool:
    return GraphValidator(nodes).is_top_sorted()


# A Constant node may carry its literal under any of these keys; the first one present wins.
CONSTANT_VALUE_KEYS = (
    "value",
    "value_float",
    "value_floats",
    "value_int",
    "value_ints",
    "value_string",
    "value_strings",
    "sparse_value",
)


def convert_constant_value(node: Node) -> Argument:
    """Get the literal carried by a Constant node's attributes as an unnamed Argument."""
    for key in CONSTANT_VALUE_KEYS:
        if key not in node.attrs:
            continue
        value = node.attrs[key]
        if isinstance(value, np.ndarray):
            arr = value
        elif key in ("value_float", "value_floats"):
            arr = np.asarray(value, dtype=np.float32)
        elif key in ("value_int", "value_ints"):
            arr = np.asarray(value, dtype=np.int64)
        else:
            arr = np.asarray(value, dtype=object)
        return Argument.from_array("", arr)
    raise ValidationError(
        f"Constant node '{node.name}' has none of the value attributes {list(CONSTANT_VALUE_KEYS)}",
        code="ECONST_VALUE",
    )
