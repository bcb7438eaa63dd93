from __future__ import annotations

from pathlib import Path

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper

from onnxport.ir import (
    Argument,
    ElementType,
    NodeType,
    TensorType,
    ValidationError,
    build_producer_map,
)
from onnxport.parsers import (
    GraphIOError,
    ModelLoadError,
    OnnxParser,
    check_validity,
    parse_onnx,
)
from onnxport.parsers.onnx import remove_unused_graph_inputs


def make_model(
    nodes: list[onnx.NodeProto],
    inputs: list[onnx.ValueInfoProto],
    outputs: list[onnx.ValueInfoProto],
    initializer: list[onnx.TensorProto] | None = None,
) -> onnx.ModelProto:
    graph = helper.make_graph(nodes, "test_graph", inputs, outputs, initializer=initializer)
    return helper.make_model(graph, producer_name="test")


def vi(name: str, shape: list[int], dtype: int = TensorProto.FLOAT) -> onnx.ValueInfoProto:
    return helper.make_tensor_value_info(name, dtype, shape)


def test_identity_is_elided_and_consumer_redirected() -> None:
    model = make_model(
        [
            helper.make_node("Identity", ["x"], ["mid"]),
            helper.make_node("Relu", ["mid"], ["y"]),
        ],
        [vi("x", [2, 3])],
        [vi("y", [2, 3])],
    )
    graph = parse_onnx(model)
    assert [n.node_type for n in graph.nodes] == [NodeType.RELU]
    relu = graph.nodes[0]
    assert relu.name == "relu1"
    assert relu.inputs[0].name == "input1"
    assert relu.inputs[0].passed
    assert relu.outputs[0].name == "relu1_out1"
    assert relu.outputs[0].ty.shape == [2, 3]
    assert [a.name for a in graph.inputs] == ["input1"]
    assert [a.name for a in graph.outputs] == ["relu1_out1"]


def test_identity_chain_collapses_to_first_source() -> None:
    model = make_model(
        [
            helper.make_node("Identity", ["x"], ["a"]),
            helper.make_node("Identity", ["a"], ["b"]),
            helper.make_node("Relu", ["b"], ["y"]),
        ],
        [vi("x", [4])],
        [vi("y", [4])],
    )
    graph = parse_onnx(model)
    assert [n.name for n in graph.nodes] == ["relu1"]
    assert graph.nodes[0].inputs[0].name == "input1"


def test_constant_is_lifted_into_reshape() -> None:
    model = make_model(
        [
            helper.make_node("Constant", [], ["shape"], value_ints=[2, 3]),
            helper.make_node("Reshape", ["x", "shape"], ["y"]),
        ],
        [vi("x", [6])],
        [vi("y", [2, 3])],
    )
    graph = parse_onnx(model)
    assert [n.node_type for n in graph.nodes] == [NodeType.RESHAPE]
    reshape = graph.nodes[0]
    assert reshape.inputs[1].value.tolist() == [2, 3]
    assert reshape.inputs[1].ty == TensorType(ElementType.INT64, 1, [2])
    assert reshape.outputs[0].ty.shape == [2, 3]


def test_identity_with_literal_input_is_lifted() -> None:
    s0 = helper.make_tensor("s0", TensorProto.INT64, [2], [3, 2])
    model = make_model(
        [
            helper.make_node("Identity", ["s0"], ["s"]),
            helper.make_node("Reshape", ["x", "s"], ["y"]),
        ],
        [vi("x", [6])],
        [vi("y", [3, 2])],
        initializer=[s0],
    )
    graph = parse_onnx(model)
    assert [n.node_type for n in graph.nodes] == [NodeType.RESHAPE]
    assert graph.nodes[0].inputs[1].value.tolist() == [3, 2]
    assert graph.nodes[0].outputs[0].ty.shape == [3, 2]


def test_first_operand_is_never_lifted() -> None:
    model = make_model(
        [
            helper.make_node("Constant", [], ["c"], value_floats=[1.0, 2.0]),
            helper.make_node("Dropout", ["c"], ["y"]),
        ],
        [],
        [vi("y", [2])],
    )
    graph = parse_onnx(model)
    # the constant feeds operand 0, so it stays a node of its own
    assert [n.node_type for n in graph.nodes] == [NodeType.CONSTANT, NodeType.DROPOUT]
    assert graph.nodes[1].inputs[0].name == "constant1_out1"
    assert graph.nodes[1].inputs[0].value is None


def test_conv_weights_lifted_after_remap() -> None:
    weight = np.ones((4, 3, 3, 3), dtype=np.float32)
    model = make_model(
        [
            helper.make_node(
                "Constant",
                [],
                ["w"],
                value=helper.make_tensor("w_t", TensorProto.FLOAT, weight.shape, weight.flatten().tolist()),
            ),
            helper.make_node("Conv", ["x", "w"], ["y"], kernel_shape=[3, 3], pads=[1, 1, 1, 1]),
        ],
        [vi("x", [1, 3, 8, 8])],
        [vi("y", [1, 4, 8, 8])],
    )
    graph = parse_onnx(model)
    assert [n.name for n in graph.nodes] == ["conv2d1"]
    conv = graph.nodes[0]
    assert conv.node_type is NodeType.CONV2D
    np.testing.assert_array_equal(conv.inputs[1].value, weight)
    assert conv.outputs[0].ty.shape == [1, 4, 8, 8]


def test_unsqueeze_into_graph_output_becomes_reshape() -> None:
    model = make_model(
        [helper.make_node("Unsqueeze", ["x", "axes"], ["y"])],
        [vi("x", [3, 224, 224]), vi("axes", [1], TensorProto.INT64)],
        [vi("y", [1, 3, 224, 224])],
    )
    graph = parse_onnx(model)
    assert len(graph.nodes) == 1
    node = graph.nodes[0]
    assert node.node_type is NodeType.RESHAPE
    assert node.name == "unsqueeze1"
    assert node.outputs[0].ty.shape == [1, 3, 224, 224]
    shape_arg = node.inputs[1]
    assert shape_arg.value.dtype == np.int64
    assert shape_arg.value.tolist() == [1, 3, 224, 224]
    assert shape_arg.ty == TensorType(ElementType.INT64, 1, [4])
    assert not shape_arg.passed
    # the runtime axes input is no longer consumed
    assert [a.name for a in graph.inputs] == ["input1"]
    assert [a.name for a in graph.outputs] == ["unsqueeze1_out1"]


def test_unsqueeze_on_internal_edge_is_kept() -> None:
    model = make_model(
        [
            helper.make_node("Unsqueeze", ["x", "axes"], ["u"]),
            helper.make_node("Relu", ["u"], ["y"]),
        ],
        [vi("x", [3, 4]), vi("axes", [1], TensorProto.INT64)],
        [vi("y", [1, 3, 4])],
    )
    graph = parse_onnx(model)
    assert [n.node_type for n in graph.nodes] == [NodeType.UNSQUEEZE, NodeType.RELU]
    assert graph.nodes[0].outputs[0].ty.dim == 3
    assert graph.nodes[1].inputs[0].name == "unsqueeze1_out1"


def test_unsqueeze_with_constant_axes_is_not_rewritten() -> None:
    model = make_model(
        [
            helper.make_node("Constant", [], ["axes"], value_ints=[0]),
            helper.make_node("Unsqueeze", ["x", "axes"], ["y"]),
        ],
        [vi("x", [3, 4])],
        [vi("y", [1, 3, 4])],
    )
    graph = parse_onnx(model)
    assert [n.node_type for n in graph.nodes] == [NodeType.UNSQUEEZE]
    assert graph.nodes[0].inputs[1].value.tolist() == [0]
    assert graph.nodes[0].outputs[0].ty.shape == [1, 3, 4]


def _unordered_model() -> onnx.ModelProto:
    return make_model(
        [
            helper.make_node("Relu", ["b"], ["y"]),
            helper.make_node("Relu", ["x"], ["b"]),
        ],
        [vi("x", [2])],
        [vi("y", [2])],
    )


def test_unsorted_nodes_abort_the_parse() -> None:
    with pytest.raises(ValidationError) as exc:
        parse_onnx(_unordered_model())
    assert exc.value.code == "ETOPO_ORDER"


def test_check_order_option_fails_before_conversion() -> None:
    with pytest.raises(ValidationError) as exc:
        OnnxParser(check_order=True).parse(_unordered_model())
    assert exc.value.code == "ETOPO_ORDER"


def test_check_validity_from_file(tmp_path: Path) -> None:
    bad = tmp_path / "bad.onnx"
    onnx.save(_unordered_model(), str(bad))
    with pytest.raises(ValidationError):
        check_validity(bad)

    good = tmp_path / "good.onnx"
    onnx.save(
        make_model([helper.make_node("Relu", ["x"], ["y"])], [vi("x", [2])], [vi("y", [2])]),
        str(good),
    )
    check_validity(good)
    graph = parse_onnx(good)
    assert [n.name for n in graph.nodes] == ["relu1"]


def test_graph_output_used_as_node_input_is_invalid() -> None:
    model = make_model(
        [
            helper.make_node("Relu", ["x"], ["y"]),
            helper.make_node("Relu", ["y"], ["z"]),
        ],
        [vi("x", [2])],
        [vi("y", [2]), vi("z", [2])],
    )
    with pytest.raises(GraphIOError):
        parse_onnx(model)


def test_initializer_backed_input_consumed_appears_once_with_value() -> None:
    w = helper.make_tensor("w", TensorProto.FLOAT, [3], [1.0, 2.0, 3.0])
    model = make_model(
        [helper.make_node("Add", ["x", "w"], ["y"])],
        [vi("x", [3]), vi("w", [3])],
        [vi("y", [3])],
        initializer=[w],
    )
    graph = parse_onnx(model)
    with_value = [a for a in graph.inputs if a.value is not None]
    assert len(with_value) == 1
    assert with_value[0].passed
    assert with_value[0].value.tolist() == [1.0, 2.0, 3.0]
    add = graph.nodes[0]
    # the edge itself is unnamed and carries the literal
    assert add.inputs[1].name == ""
    assert add.inputs[1].value.tolist() == [1.0, 2.0, 3.0]


def test_initializer_backed_input_unused_is_pruned() -> None:
    w = helper.make_tensor("w", TensorProto.FLOAT, [3], [1.0, 2.0, 3.0])
    model = make_model(
        [helper.make_node("Relu", ["x"], ["y"])],
        [vi("x", [3]), vi("w", [3])],
        [vi("y", [3])],
        initializer=[w],
    )
    graph = parse_onnx(model)
    assert [a.name for a in graph.inputs] == ["input1"]


def test_prune_is_idempotent() -> None:
    inputs = [Argument("a", passed=True), Argument("b"), Argument("c", passed=True)]
    outputs = [Argument("o1"), Argument("o2", passed=True)]
    once = remove_unused_graph_inputs(inputs, outputs)
    twice = remove_unused_graph_inputs(*once)
    assert [a.name for a in once[0]] == ["a", "c"]
    assert once == twice


def _chain(names: list[str]) -> onnx.ModelProto:
    a, b, c = names
    return make_model(
        [
            helper.make_node("Relu", ["x"], [a]),
            helper.make_node("Add", [a, "x"], [b]),
            helper.make_node("Relu", [b], [c]),
            helper.make_node("Sigmoid", [c], ["y"]),
        ],
        [vi("x", [2, 2])],
        [vi("y", [2, 2])],
    )


def test_naming_is_independent_of_file_names() -> None:
    first = parse_onnx(_chain(["a", "b", "c"]))
    second = parse_onnx(_chain(["very", "different", "names"]))
    assert [n.name for n in first.nodes] == ["relu1", "add1", "relu2", "sigmoid1"]
    assert [n.name for n in first.nodes] == [n.name for n in second.nodes]
    assert [[o.name for o in n.outputs] for n in first.nodes] == [
        [o.name for o in n.outputs] for n in second.nodes
    ]
    assert [[i.name for i in n.inputs] for n in first.nodes] == [
        [i.name for i in n.inputs] for n in second.nodes
    ]
    assert first.nodes[1].inputs[0].name == "relu1_out1"


def test_names_are_unique() -> None:
    graph = parse_onnx(_chain(["a", "b", "c"]))
    names = [n.name for n in graph.nodes]
    assert len(names) == len(set(names))
    # raises on a duplicated output name
    build_producer_map(graph.nodes)


def test_constant_without_value_is_fatal() -> None:
    model = make_model(
        [
            helper.make_node("Constant", [], ["c"]),
            helper.make_node("Reshape", ["x", "c"], ["y"]),
        ],
        [vi("x", [6])],
        [vi("y", [6])],
    )
    with pytest.raises(ValidationError) as exc:
        parse_onnx(model)
    assert exc.value.code == "ECONST_VALUE"


def test_load_errors(tmp_path: Path) -> None:
    with pytest.raises(ModelLoadError):
        parse_onnx(tmp_path / "missing.onnx")
    with pytest.raises(ModelLoadError):
        parse_onnx(b"not an onnx model")
    with pytest.raises(ModelLoadError):
        parse_onnx(42)


def test_parse_from_bytes() -> None:
    model = make_model([helper.make_node("Relu", ["x"], ["y"])], [vi("x", [2])], [vi("y", [2])])
    graph = parse_onnx(model.SerializeToString())
    assert graph.name == "test_graph"
    assert [n.name for n in graph.nodes] == ["relu1"]


def test_identity_into_graph_output_is_kept_as_its_producer() -> None:
    model = make_model(
        [
            helper.make_node("Relu", ["x"], ["h"]),
            helper.make_node("Identity", ["h"], ["y"]),
        ],
        [vi("x", [2, 3])],
        [vi("y", [2, 3])],
    )
    graph = parse_onnx(model)
    assert [n.name for n in graph.nodes] == ["relu1", "identity1"]
    identity = graph.nodes[1]
    assert identity.inputs[0].name == "relu1_out1"
    assert identity.outputs[0].name == "identity1_out1"
    assert [a.name for a in graph.outputs] == ["identity1_out1"]
    assert graph.outputs[0].ty.shape == [2, 3]
    # every graph output has a producer in the final node list
    producers = build_producer_map(graph.nodes)
    assert all(a.name in producers for a in graph.outputs)


def test_constant_into_graph_output_names_the_output() -> None:
    model = make_model(
        [helper.make_node("Constant", [], ["y"], value_ints=[1, 2])],
        [],
        [vi("y", [2], TensorProto.INT64)],
    )
    graph = parse_onnx(model)
    assert [n.name for n in graph.nodes] == ["constant1"]
    assert [a.name for a in graph.outputs] == ["constant1_out1"]
    assert graph.outputs[0].passed


def test_omitted_optional_outputs_and_inputs_stay_unnamed() -> None:
    mx = helper.make_tensor("mx", TensorProto.FLOAT, [], [6.0])
    model = make_model(
        [
            helper.make_node("Dropout", ["x"], ["d", ""]),
            helper.make_node("Dropout", ["d"], ["e", ""]),
            helper.make_node("Clip", ["e", "", "mx"], ["y"]),
        ],
        [vi("x", [4])],
        [vi("y", [4])],
        initializer=[mx],
    )
    graph = parse_onnx(model)
    first, second, clip = graph.nodes
    assert [o.name for o in first.outputs] == ["dropout1_out1", ""]
    assert [o.name for o in second.outputs] == ["dropout2_out1", ""]
    assert clip.inputs[0].name == "dropout2_out1"
    assert clip.inputs[1].name == ""
    assert clip.inputs[1].value is None
    assert float(clip.inputs[2].value) == 6.0
    build_producer_map(graph.nodes)


def test_unsqueeze_onto_a_node_output_is_invalid() -> None:
    model = make_model(
        [
            helper.make_node("Relu", ["x"], ["h"]),
            helper.make_node("Unsqueeze", ["x", "axes"], ["h"]),
            helper.make_node("Sigmoid", ["h"], ["y"]),
        ],
        [vi("x", [3, 4]), vi("axes", [1], TensorProto.INT64)],
        [vi("y", [3, 4])],
    )
    # the file is sorted, so the order check passes and the registry error surfaces
    with pytest.raises(GraphIOError):
        parse_onnx(model)


def test_unsqueeze_lookup_failure_reports_order_violation_first() -> None:
    model = make_model(
        [
            helper.make_node("Relu", ["q"], ["y"]),
            helper.make_node("Relu", ["x"], ["h"]),
            helper.make_node("Unsqueeze", ["x", "axes"], ["h"]),
            helper.make_node("Relu", ["x"], ["q"]),
        ],
        [vi("x", [3, 4]), vi("axes", [1], TensorProto.INT64)],
        [vi("y", [3, 4])],
    )
    with pytest.raises(ValidationError) as exc:
        parse_onnx(model)
    assert exc.value.code == "ETOPO_ORDER"


def test_duplicate_producer_is_invalid() -> None:
    model = make_model(
        [
            helper.make_node("Relu", ["x"], ["h"]),
            helper.make_node("Sigmoid", ["x"], ["h"]),
            helper.make_node("Relu", ["h"], ["y"]),
        ],
        [vi("x", [2])],
        [vi("y", [2])],
    )
    with pytest.raises(GraphIOError):
        parse_onnx(model)


def test_order_check_accepts_operators_it_cannot_import() -> None:
    sorted_model = make_model(
        [
            helper.make_node("Resize", ["x"], ["h"]),
            helper.make_node("Relu", ["h"], ["y"]),
        ],
        [vi("x", [2])],
        [vi("y", [2])],
    )
    check_validity(sorted_model)

    unsorted_model = make_model(
        [
            helper.make_node("Relu", ["h"], ["y"]),
            helper.make_node("Resize", ["x"], ["h"]),
        ],
        [vi("x", [2])],
        [vi("y", [2])],
    )
    with pytest.raises(ValidationError):
        check_validity(unsorted_model)
