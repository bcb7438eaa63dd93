from __future__ import annotations

import copy
from os import PathLike
from pathlib import Path
from typing import Any, Union

import numpy as np
import onnx
from google.protobuf.message import DecodeError

from onnxport.ir import (
    Argument,
    ElementType,
    GraphValidator,
    Node,
    NodeType,
    OnnxGraph,
    TensorType,
    ValidationError,
    convert_constant_value,
    dim_inference,
)
from onnxport.parsers.base import Parser
from onnxport.parsers.coalesce import NodeCursor, coalesce
from onnxport.parsers.graph_io import GraphIOError, OnnxGraphIO
from onnxport.parsers.proto import convert_node_proto, fallback_convert_node_proto
from onnxport.parsers.remap import remap_node_type
from onnxport.utils import get_logger

logger = get_logger(__name__)

ModelSource = Union[str, PathLike, bytes, bytearray, onnx.ModelProto]

# Kinds whose operands past the first must be literal for code generation
LIFT_CONSTANTS_FOR_NODE_TYPES = frozenset(
    {
        NodeType.BATCH_NORMALIZATION,
        NodeType.CLIP,
        NodeType.CONV1D,
        NodeType.CONV2D,
        NodeType.DROPOUT,
        NodeType.RESHAPE,
        NodeType.UNSQUEEZE,
    }
)


class ModelLoadError(Exception):
    def __init__(self, message: str, code: str = "ELOAD") -> None:
        super().__init__(message)
        self.code = code


def _describe(source: ModelSource) -> str:
    if isinstance(source, onnx.ModelProto):
        return f"<ModelProto {source.graph.name}>"
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(source)


def load_model(source: ModelSource) -> onnx.ModelProto:
    """Deserialize a model from a path or raw bytes. A ModelProto is returned as is."""
    if isinstance(source, onnx.ModelProto):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            model = onnx.load_model_from_string(bytes(source))
        elif isinstance(source, (str, PathLike)):
            model = onnx.load(str(Path(source)))
        else:
            raise ModelLoadError(f"Unsupported model source type {type(source).__name__}")
    except OSError as e:
        raise ModelLoadError(f"Unable to open {_describe(source)}: {e}") from e
    except DecodeError as e:
        raise ModelLoadError(f"Unable to parse ONNX model {_describe(source)}: {e}") from e
    logger.debug("number of nodes: %d", len(model.graph.node))
    logger.debug("number of inputs: %d", len(model.graph.input))
    logger.debug("number of initializers: %d", len(model.graph.initializer))
    logger.debug("number of outputs: %d", len(model.graph.output))
    return model


def check_validity(source: ModelSource) -> None:
    """
    Re-read the model and confirm its nodes are topologically sorted, as the ONNX IR
    requires. Raises ValidationError(code="ETOPO_ORDER") if they are not.
    """
    model = load_model(source)
    # fallback conversion: only node identity and I/O names matter for ordering
    nodes = [fallback_convert_node_proto(n) for n in model.graph.node]
    GraphValidator(nodes).validate()


class OnnxGraphBuilder:
    """
    Builds an OnnxGraph from one model in a single pass over its nodes in file order.

    Per node: convert, remap, coalesce, rename, elide identities, lift constants,
    rewrite unsqueeze, infer dimensions, rename I/O. Each stage reads registry state
    written by the stages (and nodes) before it, so the order is fixed.
    """

    def __init__(self, source: ModelSource, *, check_order: bool = False) -> None:
        self.source = source
        self.check_order = check_order
        self.nodes: list[Node] = []
        self.node_name_counter: dict[NodeType, int] = {}
        self.nodes_to_remove: set[int] = set()
        # constant-producing node output name -> node index
        self.constants_map: dict[str, int] = {}
        # elided identity output name -> node index
        self.identity_idx: dict[str, int] = {}
        # elided identity node index -> the name its consumers are redirected to
        self._identity_sources: dict[int, str] = {}

    def build(self) -> OnnxGraph:
        logger.info("Parsing ONNX model: %s", _describe(self.source))
        model = load_model(self.source)
        if self.check_order:
            check_validity(model)

        graph_io = OnnxGraphIO(
            model.graph.input, model.graph.output, model.graph.initializer
        )
        cursor = NodeCursor(model.graph.node)
        for node_proto in cursor:
            node = convert_node_proto(node_proto, graph_io)
            remap_node_type(node)
            coalesce(node, cursor, graph_io)
            self._handle_node_renaming(node)
            index = len(self.nodes)
            self._handle_identity(node, index, graph_io)
            self._check_constants(node, index)
            node = self._handle_unsqueeze(node, graph_io)
            self._infer_dimensions(node, graph_io)
            self._rename_io(node, graph_io)
            self.nodes.append(node)

        nodes = [n for i, n in enumerate(self.nodes) if i not in self.nodes_to_remove]
        inputs, outputs = remove_unused_graph_inputs(graph_io.inputs, graph_io.outputs)
        logger.info("Finished parsing ONNX model: %s", _describe(self.source))
        return OnnxGraph(nodes=nodes, inputs=inputs, outputs=outputs, name=model.graph.name)

    def check_validity(self) -> None:
        check_validity(self.source)

    def _handle_node_renaming(self, node: Node) -> None:
        logger.debug("renaming node %r", node.name)
        count = self.node_name_counter.get(node.node_type, 0) + 1
        self.node_name_counter[node.node_type] = count
        node.name = f"{node.node_type.value}{count}".lower()

    def _handle_identity(self, node: Node, i: int, graph_io: OnnxGraphIO) -> None:
        if (
            node.node_type is NodeType.IDENTITY
            and node.inputs[0].value is None
            # an identity that writes a graph output is what produces it
            and not graph_io.is_graph_output(node.outputs[0].name)
        ):
            logger.debug("found identity node %s", node.name)
            source = node.inputs[0].name
            # chains of identities collapse onto the first real producer
            upstream = self.identity_idx.get(source)
            if upstream is not None:
                source = self._identity_sources[upstream]
            self.identity_idx[node.outputs[0].name] = i
            self._identity_sources[i] = source
            self.nodes_to_remove.add(i)
        else:
            for inp in node.inputs:
                identity = self.identity_idx.get(inp.name)
                if identity is not None:
                    inp.name = self._identity_sources[identity]

    def _check_constants(self, node: Node, i: int) -> None:
        if node.node_type is NodeType.CONSTANT or (
            node.node_type is NodeType.IDENTITY and node.inputs[0].value is not None
        ):
            self.constants_map[node.outputs[0].name] = i
        elif node.node_type in LIFT_CONSTANTS_FOR_NODE_TYPES:
            logger.debug("checking node %s for constants", node.name)
            # the first operand is the data tensor, never a lifted parameter
            for inp in node.inputs[1:]:
                const_idx = self.constants_map.get(inp.name)
                if const_idx is None:
                    continue
                constant = self.nodes[const_idx]
                logger.debug("input %s matched constant node %s", inp.name, constant.name)
                if constant.inputs and constant.inputs[0].value is not None:
                    # the value comes from an Identity's literal input
                    inp.value = constant.inputs[0].value
                    inp.ty = copy.deepcopy(constant.inputs[0].ty)
                else:
                    literal = convert_constant_value(constant)
                    inp.value = literal.value
                    inp.ty = literal.ty
                self.nodes_to_remove.add(const_idx)

    def _handle_unsqueeze(self, node: Node, graph_io: OnnxGraphIO) -> Node:
        """
        An Unsqueeze with a runtime axes operand that writes straight into a graph
        boundary of known shape becomes a Reshape to that shape. Runs after renaming
        (the generated constant is named after the node) and after constant lifting
        (so literal axes are already in place).
        """
        if node.node_type is not NodeType.UNSQUEEZE:
            return node
        if len(node.inputs) < 2 or node.inputs[1].value is not None:
            return node
        try:
            boundary = graph_io.peek_boundary_argument(node.outputs[0].name)
        except GraphIOError:
            self.check_validity()
            raise
        if boundary is None:
            return node
        return remap_unsqueeze_to_reshape(node, boundary)

    def _infer_dimensions(self, node: Node, graph_io: OnnxGraphIO) -> None:
        dim_inference(node)
        try:
            graph_io.propagate_node_outputs(node)
        except GraphIOError:
            self.check_validity()
            raise

    def _rename_io(self, node: Node, graph_io: OnnxGraphIO) -> None:
        logger.debug("checking inputs for node %s", node.name)
        for inp in node.inputs:
            try:
                new_name = graph_io.get_new_name(inp.name)
            except GraphIOError:
                self.check_validity()
                raise
            if new_name is not None:
                inp.passed = True
                inp.name = new_name
            else:
                inp.name = ""
                inp.passed = False

        if node.node_type in (NodeType.CONSTANT, NodeType.IDENTITY):
            new_name = f"{node.name}_out1"
            graph_io.insert_or_rename(node.outputs[0], new_name)
            node.outputs[0].name = new_name
            return
        for k, out in enumerate(node.outputs, start=1):
            if not out.name:
                continue
            new_name = f"{node.name}_out{k}"
            try:
                graph_io.rename(out, new_name)
            except GraphIOError:
                self.check_validity()
                raise
            out.name = new_name


def remap_unsqueeze_to_reshape(node: Node, out_arg: Argument) -> Node:
    """
    Build the Reshape that replaces ``node``. The generated shape operand is left
    unpassed so it is pruned if nothing else needs it.
    """
    if not isinstance(node.outputs[0].ty, TensorType) or not isinstance(
        out_arg.ty, TensorType
    ):
        return node
    if out_arg.ty.shape is None:
        return node
    target = np.asarray(out_arg.ty.shape, dtype=np.int64)
    rhs = Argument(
        name=f"{node.name}_generated_const",
        ty=TensorType(ElementType.INT64, 1, [len(target)]),
        value=target,
        passed=False,
    )
    return Node(
        node_type=NodeType.RESHAPE,
        name=node.name,
        inputs=[node.inputs[0], rhs, *node.inputs[2:]],
        outputs=[out_arg.clone(), *node.outputs[1:]],
        attrs=node.attrs,
    )


def remove_unused_graph_inputs(
    inputs: list[Argument], outputs: list[Argument]
) -> tuple[list[Argument], list[Argument]]:
    """
    Drop graph inputs/outputs that no node uses. Older models list initializers
    as inputs, so unused entries are common; pruning keeps generated code clean.
    """
    return [a for a in inputs if a.passed], [a for a in outputs if a.passed]


def parse_onnx(source: ModelSource, *, check_order: bool = False) -> OnnxGraph:
    """
    Convert an ONNX model (path, bytes or ModelProto) into an OnnxGraph.

    Raises ModelLoadError if the model can't be read, ValidationError if the file is
    malformed (nodes out of topological order, valueless Constant), GraphIOError if
    it breaks the naming contract.
    """
    return OnnxGraphBuilder(source, check_order=check_order).build()


class OnnxParser(Parser):
    """Parser interface adapter around OnnxGraphBuilder."""

    def __init__(self, *, check_order: bool = False) -> None:
        self.check_order = check_order

    def parse(self, model: Any) -> OnnxGraph:
        return parse_onnx(model, check_order=self.check_order)


__all__ = [
    "LIFT_CONSTANTS_FOR_NODE_TYPES",
    "ModelLoadError",
    "ModelSource",
    "OnnxGraphBuilder",
    "OnnxParser",
    "ValidationError",
    "check_validity",
    "load_model",
    "parse_onnx",
    "remap_unsqueeze_to_reshape",
    "remove_unused_graph_inputs",
]
