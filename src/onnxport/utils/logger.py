from __future__ import annotations

import logging
import os

_ROOT = "onnxport"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(os.environ.get("ONNXPORT_LOG_LEVEL", "WARNING").upper())
        root.propagate = False
    return root


def set_log_level(level: str | int) -> None:
    """Override the package log level (the ONNXPORT_LOG_LEVEL default)."""
    root = _configure_root()
    root.setLevel(level.upper() if isinstance(level, str) else level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package namespace, configuring the package root once."""
    _configure_root()
    if name != _ROOT and not name.startswith(_ROOT + "."):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)
