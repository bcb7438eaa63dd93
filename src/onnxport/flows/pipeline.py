from __future__ import annotations

import json
from pathlib import Path
from typing import cast

from prefect import flow, get_run_logger, task

from onnxport.ir import OnnxGraph
from onnxport.parsers.onnx import parse_onnx


@task
def import_model(model_path: Path, check_order: bool = False) -> OnnxGraph:
    logger = get_run_logger()
    logger.info(f"Importing ONNX model at {model_path}")
    graph = parse_onnx(model_path, check_order=check_order)
    logger.info(
        f"Imported {len(graph.nodes)} nodes, {len(graph.inputs)} inputs, "
        f"{len(graph.outputs)} outputs"
    )
    return graph


@task
def export_graph(output_dir: str, graph: OnnxGraph) -> str:
    logger = get_run_logger()
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    result_file = out_path / "graph.json"
    result_file.write_text(json.dumps(graph.to_dict(), indent=2))
    logger.info(f"Wrote IR to {result_file}")
    return str(result_file)


@flow(name="onnx-import")
def onnx_import_flow(model_path: str, output_dir: str, check_order: bool = False) -> str:
    """
    Orchestrates the import run:
    load → build IR → export JSON
    """
    graph = import_model(Path(model_path), check_order=check_order)
    out = export_graph(output_dir, graph)
    return cast(str, out)
