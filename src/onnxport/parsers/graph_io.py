"""Name-resolution registry shared by every stage of the graph builder."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import onnx

from onnxport.ir import Argument, Node
from onnxport.parsers.proto import argument_from_initializer, argument_from_value_info
from onnxport.utils import get_logger

logger = get_logger(__name__)


class GraphIOError(Exception):
    """The file breaks its own naming contract, e.g. a graph output used as a node input."""

    def __init__(self, message: str, code: str = "EINVALID_GRAPH") -> None:
        super().__init__(message)
        self.code = code


class IOKind(Enum):
    INPUT = "input"
    OUTPUT = "output"
    NODE = "node"


@dataclass(frozen=True)
class IOEntry:
    kind: IOKind
    index: int


class OnnxGraphIO:
    """
    Maps every name seen in the file to its live Argument.

    Three disjoint backing sequences hold the arguments: graph inputs (renamed to
    ``input1``, ``input2``, ... on construction), graph outputs, and the outputs of
    nodes processed so far. ``old_io_names`` keys are always the original file names.
    """

    def __init__(
        self,
        inputs: Sequence[onnx.ValueInfoProto],
        outputs: Sequence[onnx.ValueInfoProto],
        initializers: Sequence[onnx.TensorProto],
    ) -> None:
        self.old_io_names: dict[str, IOEntry] = {}
        self.initializers: dict[str, Argument] = {
            init.name: argument_from_initializer(init) for init in initializers
        }
        self.inputs: list[Argument] = []
        for i, vi in enumerate(inputs):
            self.old_io_names[vi.name] = IOEntry(IOKind.INPUT, i)
            arg = argument_from_value_info(vi)
            initial = self.initializers.get(vi.name)
            if initial is not None and arg.value is None:
                arg.copy_value(initial)
            arg.name = f"input{i + 1}"
            self.inputs.append(arg)
        self.outputs: list[Argument] = []
        for i, vi in enumerate(outputs):
            self.old_io_names[vi.name] = IOEntry(IOKind.OUTPUT, i)
            self.outputs.append(argument_from_value_info(vi))
        self.node_out: list[Argument] = []
        # input names that matched nothing when their consumer was renamed
        self._unresolved: set[str] = set()

    def resolve_input(self, name: str) -> Argument:
        """
        Build the Argument a node sees for input ``name``. The returned argument keeps
        the original name; renaming happens later in the pipeline.
        """
        if not name:
            # omitted optional input
            return Argument("")
        entry = self.old_io_names.get(name)
        if entry is None:
            init_arg = self.initializers.get(name)
            if init_arg is not None:
                return init_arg.clone()
            return Argument(name)
        if entry.kind is IOKind.INPUT:
            arg = self.inputs[entry.index].clone()
            arg.name = name
            arg.passed = True
            return arg
        if entry.kind is IOKind.NODE:
            arg = self.node_out[entry.index].clone()
            arg.name = name
            return arg
        logger.error("graph output %s can't be a node input", name)
        raise GraphIOError(f"Graph output '{name}' can't be a node input")

    def get_new_name(self, old_name: str) -> str | None:
        """
        Updated name for a node input, or None if the input is not a graph input or
        node output (an initializer, an omitted optional input).
        """
        if not old_name:
            return None
        entry = self.old_io_names.get(old_name)
        if entry is None:
            if old_name not in self.initializers:
                self._unresolved.add(old_name)
            return None
        if entry.kind is IOKind.INPUT:
            # FIXME: initializers are defaults for optional inputs per the ONNX IR
            # (onnx/onnx#2660); the edge stays unnamed and carries the literal instead.
            self.inputs[entry.index].passed = True
            if old_name in self.initializers:
                return None
            return self.inputs[entry.index].name
        if entry.kind is IOKind.NODE:
            return self.node_out[entry.index].name
        logger.error("tried to get an updated name on a graph output: %s", old_name)
        raise GraphIOError(f"Graph output '{old_name}' has no updated input name")

    def rename(self, arg: Argument, new_name: str) -> None:
        entry = self.old_io_names.get(arg.name)
        if entry is None:
            logger.error(
                "tried to update the name of %s to %s but the entry doesn't exist",
                arg.name,
                new_name,
            )
            raise GraphIOError(f"No registry entry for '{arg.name}'")
        if entry.kind is IOKind.INPUT:
            logger.error("input names are set from the beginning")
            raise GraphIOError(f"Graph input '{arg.name}' can't be renamed")
        if entry.kind is IOKind.OUTPUT:
            self.outputs[entry.index].name = new_name
        else:
            self.node_out[entry.index].name = new_name

    def insert_or_rename(self, arg: Argument, new_name: str) -> None:
        """Register a Constant/Identity output, renaming in place if it is already known."""
        entry = self.old_io_names.get(arg.name)
        if entry is not None:
            if entry.kind is IOKind.NODE:
                if self.node_out[entry.index].name == arg.name:
                    self.node_out[entry.index].name = new_name
                    return
            elif entry.kind is IOKind.OUTPUT:
                # the graph output keeps its slot and follows its producer's name
                self.outputs[entry.index].name = new_name
                return
            else:
                logger.error("arg entry with old name %s is a graph input", arg.name)
                raise GraphIOError(f"Graph input '{arg.name}' can't be renamed")
        self.old_io_names[arg.name] = IOEntry(IOKind.NODE, len(self.node_out))
        registered = arg.clone()
        registered.name = new_name
        self.node_out.append(registered)

    def propagate_node_outputs(self, node: Node) -> None:
        """Copy a node's finished outputs into the registry."""
        for out in node.outputs:
            if not out.name:
                # omitted optional output
                continue
            entry = self.old_io_names.get(out.name)
            if entry is None:
                if out.name in self._unresolved:
                    logger.error("%s was consumed before node %s produced it", out.name, node.name)
                    raise GraphIOError(
                        f"'{out.name}' is produced by {node.name} after being consumed"
                    )
                logger.debug("inserting with name %s", out.name)
                self.old_io_names[out.name] = IOEntry(IOKind.NODE, len(self.node_out))
                self.node_out.append(out.clone())
            elif entry.kind is IOKind.INPUT:
                self.inputs[entry.index].copy_value(out)
            elif entry.kind is IOKind.OUTPUT:
                self.outputs[entry.index].copy_value(out)
                # produced by a node, so it survives pruning
                self.outputs[entry.index].passed = True
            else:
                logger.error("output %s is already produced by another node", out.name)
                raise GraphIOError(f"'{out.name}' is produced by more than one node")

    def is_graph_output(self, name: str) -> bool:
        entry = self.old_io_names.get(name)
        return entry is not None and entry.kind is IOKind.OUTPUT

    def peek_boundary_argument(self, name: str) -> Argument | None:
        """Look up a graph input/output without marking it used. None for unknown names."""
        entry = self.old_io_names.get(name)
        if entry is None:
            return None
        if entry.kind is IOKind.INPUT:
            return self.inputs[entry.index]
        if entry.kind is IOKind.OUTPUT:
            return self.outputs[entry.index]
        logger.error("%s is a previous node's output", name)
        raise GraphIOError(f"'{name}' is a node output, not a graph boundary")
