from __future__ import annotations

import json
from pathlib import Path

import typer

from onnxport.flows.pipeline import onnx_import_flow
from onnxport.ir import (
    InferenceError,
    UnsupportedOperatorError,
    UnsupportedTypeError,
    ValidationError,
    describe_edges,
)
from onnxport.parsers import GraphIOError, ModelLoadError, check_validity, parse_onnx
from onnxport.utils import set_log_level

app = typer.Typer(help="onnxport CLI")

# every failure the importer reports carries a `code`
IMPORT_ERRORS = (
    ModelLoadError,
    ValidationError,
    GraphIOError,
    InferenceError,
    UnsupportedOperatorError,
    UnsupportedTypeError,
)


@app.callback()
def main_options(
    log_level: str = typer.Option(
        "", help="Log level (DEBUG, INFO, ...). Defaults to ONNXPORT_LOG_LEVEL."
    ),
) -> None:
    if log_level:
        set_log_level(log_level)


@app.command()
def inspect(
    model_path: Path = typer.Argument(..., help="Path to an .onnx file"),
    as_json: bool = typer.Option(False, "--json", help="Print the IR as JSON"),
    check_order: bool = typer.Option(
        False, "--check-order", help="Validate topological order before importing"
    ),
) -> None:
    """
    Import a model and print the resulting IR graph.
    """
    try:
        graph = parse_onnx(model_path, check_order=check_order)
    except IMPORT_ERRORS as e:
        typer.echo(f"error [{e.code}]: {e}", err=True)
        raise typer.Exit(code=1)
    if as_json:
        typer.echo(json.dumps(graph.to_dict(), indent=2))
        return
    typer.echo(f"graph: {graph.name}")
    typer.echo("inputs: " + ", ".join(a.name for a in graph.inputs))
    typer.echo("outputs: " + ", ".join(a.name for a in graph.outputs))
    for node in graph.nodes:
        ins = ", ".join(a.name or "<literal>" for a in node.inputs)
        outs = ", ".join(a.name for a in node.outputs)
        typer.echo(f"{node.name} [{node.node_type.value}]: ({ins}) -> ({outs})")
    for value, producer, consumers in describe_edges(graph):
        typer.echo(f"  {value}: {producer} -> {', '.join(consumers) or '-'}")


@app.command()
def check(model_path: Path = typer.Argument(..., help="Path to an .onnx file")) -> None:
    """
    Check that the model's nodes are in topological order.
    """
    try:
        check_validity(model_path)
    except IMPORT_ERRORS as e:
        typer.echo(f"error [{e.code}]: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{model_path}: nodes are topologically sorted")


@app.command()
def run(
    model_path: str = typer.Argument(..., help="Path to an .onnx file"),
    output_dir: str = typer.Option("./outputs", help="Directory to write graph.json"),
    check_order: bool = typer.Option(False, "--check-order"),
) -> None:
    """
    Run the Prefect import flow on a model.
    """
    result_path = onnx_import_flow(
        model_path=model_path, output_dir=output_dir, check_order=check_order
    )
    typer.echo(f"IR written to: {result_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
