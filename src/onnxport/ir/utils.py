from __future__ import annotations

from onnxport.ir.graph import Node, OnnxGraph, ValidationError


def build_producer_map(nodes: list[Node]) -> dict[str, int]:
    """
    Map value name -> producing node index. Graph inputs have no producer and
    omitted optional outputs are skipped. Raises ValidationError on duplicate producers.
    """
    producer: dict[str, int] = {}
    for idx, node in enumerate(nodes):
        for out in node.outputs:
            if not out.name:
                continue
            if out.name in producer:
                raise ValidationError(
                    f"Multiple producers for '{out.name}' at node {idx} and {producer[out.name]}",
                    code="EDUP_PRODUCER",
                    node_index=idx,
                )
            producer[out.name] = idx
    return producer


def build_consumer_map(nodes: list[Node]) -> dict[str, list[int]]:
    """
    Map value name -> list of consuming node indices. Unnamed inputs
    (literals and omitted optionals) are not edges and are skipped.
    """
    consumers: dict[str, list[int]] = {}
    for idx, node in enumerate(nodes):
        for inp in node.inputs:
            if inp.name:
                consumers.setdefault(inp.name, []).append(idx)
    return consumers


def describe_edges(graph: OnnxGraph) -> list[tuple[str, str, list[str]]]:
    """
    List (value, producer, consumers) for every named edge, in node order.
    Graph inputs show up with the producer ``"<input>"``.
    """
    producers = build_producer_map(graph.nodes)
    consumers = build_consumer_map(graph.nodes)
    edges: list[tuple[str, str, list[str]]] = []
    for arg in graph.inputs:
        users = [graph.nodes[i].name for i in consumers.get(arg.name, [])]
        edges.append((arg.name, "<input>", users))
    for name, idx in producers.items():
        users = [graph.nodes[i].name for i in consumers.get(name, [])]
        edges.append((name, graph.nodes[idx].name, users))
    return edges
