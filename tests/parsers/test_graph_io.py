from __future__ import annotations

import pytest
from onnx import TensorProto, helper

from onnxport.ir import Argument, ElementType, Node, NodeType, TensorType
from onnxport.parsers import GraphIOError, IOKind, OnnxGraphIO


def make_io() -> OnnxGraphIO:
    x = helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3, 4])
    w = helper.make_tensor_value_info("w", TensorProto.FLOAT, [4])
    y = helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3, 4])
    w_init = helper.make_tensor("w", TensorProto.FLOAT, [4], [1.0, 2.0, 3.0, 4.0])
    k_init = helper.make_tensor("k", TensorProto.INT64, [2], [2, 6])
    return OnnxGraphIO([x, w], [y], [w_init, k_init])


def test_inputs_renamed_positionally_and_seeded_from_initializers() -> None:
    io = make_io()
    assert [a.name for a in io.inputs] == ["input1", "input2"]
    assert io.old_io_names["x"].kind is IOKind.INPUT
    assert io.old_io_names["y"].kind is IOKind.OUTPUT
    assert io.inputs[0].value is None
    assert io.inputs[1].value.tolist() == [1.0, 2.0, 3.0, 4.0]
    assert io.outputs[0].name == "y"
    assert "k" not in io.old_io_names


def test_resolve_input_graph_input_is_marked_passed() -> None:
    io = make_io()
    arg = io.resolve_input("x")
    assert arg.name == "x"
    assert arg.passed
    assert arg.ty == TensorType(ElementType.FLOAT32, 3, [1, 3, 4])
    # the registry copy is untouched by resolution
    assert not io.inputs[0].passed


def test_resolve_input_falls_back_to_constants_then_placeholder() -> None:
    io = make_io()
    k = io.resolve_input("k")
    assert k.value.tolist() == [2, 6]
    unknown = io.resolve_input("nowhere")
    assert unknown.name == "nowhere"
    assert unknown.value is None


def test_resolve_input_rejects_graph_output() -> None:
    io = make_io()
    with pytest.raises(GraphIOError):
        io.resolve_input("y")


def test_get_new_name_policy() -> None:
    io = make_io()
    assert io.get_new_name("x") == "input1"
    assert io.inputs[0].passed
    # initializer-backed input: the edge stays unnamed, the input survives pruning
    assert io.get_new_name("w") is None
    assert io.inputs[1].passed
    assert io.get_new_name("k") is None
    with pytest.raises(GraphIOError):
        io.get_new_name("y")


def test_node_outputs_are_registered_and_renamed() -> None:
    io = make_io()
    relu = Node(NodeType.RELU, "relu1", [io.resolve_input("x")], [Argument("h")])
    relu.outputs[0].ty = TensorType(ElementType.FLOAT32, 3, [1, 3, 4])
    io.propagate_node_outputs(relu)
    assert io.old_io_names["h"].kind is IOKind.NODE

    io.rename(relu.outputs[0], "relu1_out1")
    assert io.get_new_name("h") == "relu1_out1"
    consumer_view = io.resolve_input("h")
    assert consumer_view.name == "h"
    assert consumer_view.ty.shape == [1, 3, 4]


def test_propagate_into_graph_output_marks_it_passed() -> None:
    io = make_io()
    out = Argument("y", TensorType(ElementType.FLOAT32, 2, [3, 4]))
    node = Node(NodeType.RELU, "relu1", [], [out])
    io.propagate_node_outputs(node)
    assert io.outputs[0].passed
    assert io.outputs[0].ty.shape == [3, 4]
    io.rename(node.outputs[0], "relu1_out1")
    assert io.outputs[0].name == "relu1_out1"


def test_rename_rejects_inputs_and_unknown_names() -> None:
    io = make_io()
    with pytest.raises(GraphIOError):
        io.rename(Argument("x"), "anything")
    with pytest.raises(GraphIOError):
        io.rename(Argument("never_seen"), "anything")


def test_insert_or_rename_is_idempotent_for_known_node_outputs() -> None:
    io = make_io()
    const = Node(NodeType.CONSTANT, "constant1", [], [Argument("c")])
    io.propagate_node_outputs(const)
    before = len(io.node_out)
    io.insert_or_rename(const.outputs[0], "constant1_out1")
    assert len(io.node_out) == before
    assert io.get_new_name("c") == "constant1_out1"

    io.insert_or_rename(Argument("fresh"), "identity1_out1")
    assert len(io.node_out) == before + 1
    assert io.get_new_name("fresh") == "identity1_out1"


def test_output_consumed_before_production_is_rejected() -> None:
    io = make_io()
    assert io.get_new_name("late") is None
    with pytest.raises(GraphIOError):
        io.propagate_node_outputs(Node(NodeType.RELU, "relu1", [], [Argument("late")]))


def test_peek_boundary_argument() -> None:
    io = make_io()
    assert io.peek_boundary_argument("y") is io.outputs[0]
    assert io.peek_boundary_argument("x") is io.inputs[0]
    assert io.peek_boundary_argument("unknown") is None
    assert not io.outputs[0].passed

    io.propagate_node_outputs(Node(NodeType.RELU, "relu1", [], [Argument("h")]))
    with pytest.raises(GraphIOError):
        io.peek_boundary_argument("h")


def test_empty_names_are_never_registered() -> None:
    io = make_io()
    assert io.resolve_input("").name == ""
    assert io.get_new_name("") is None
    dropout = Node(NodeType.DROPOUT, "dropout1", [], [Argument("d"), Argument("")])
    io.propagate_node_outputs(dropout)
    assert "" not in io.old_io_names
    assert io.resolve_input("").name == ""
    assert io.get_new_name("") is None


def test_second_producer_of_a_name_is_rejected() -> None:
    io = make_io()
    io.propagate_node_outputs(Node(NodeType.RELU, "relu1", [], [Argument("h")]))
    with pytest.raises(GraphIOError):
        io.propagate_node_outputs(Node(NodeType.SIGMOID, "sigmoid1", [], [Argument("h")]))


def test_insert_or_rename_on_boundary_entries() -> None:
    io = make_io()
    io.insert_or_rename(Argument("y"), "identity1_out1")
    assert io.outputs[0].name == "identity1_out1"
    assert io.old_io_names["y"].kind is IOKind.OUTPUT
    assert io.is_graph_output("y")
    assert not io.is_graph_output("x")
    with pytest.raises(GraphIOError):
        io.insert_or_rename(Argument("x"), "constant1_out1")
