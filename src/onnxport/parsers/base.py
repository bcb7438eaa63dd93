from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from onnxport.ir import OnnxGraph


class Parser(ABC):
    """Parser interface for importing models into the OnnxGraph IR."""

    @abstractmethod
    def parse(self, model: Any) -> OnnxGraph:
        """Convert the given model into an OnnxGraph."""
        raise NotImplementedError
