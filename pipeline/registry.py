"""
Engine registry (engine_name -> engine instance).

A simple in-process dict. Built-in engines are constructed lazily on first
lookup so callers don't need to import torch just to use the numpy engine.
"""

from __future__ import annotations

import importlib
import os
from typing import Dict, List

from pipeline.interfaces import EltwiseEngine

ENV_ENGINE = "ELTWISE_ORACLE_ENGINE"

_REGISTRY: Dict[str, EltwiseEngine] = {}

_BUILTIN = {
    "numpy": ("engines.numpy_engine", "NumpyEngine"),
    "torch": ("engines.torch_engine", "TorchEngine"),
}


def register(engine: EltwiseEngine) -> None:
    _REGISTRY[engine.name] = engine


def unregister(name: str) -> None:
    _REGISTRY.pop(name, None)


def available() -> List[str]:
    return sorted(set(_REGISTRY) | set(_BUILTIN))


def default_engine_name() -> str:
    return os.getenv(ENV_ENGINE, "").strip() or "numpy"


def get(name: str | None = None) -> EltwiseEngine:
    name = name or default_engine_name()
    if name not in _REGISTRY and name in _BUILTIN:
        mod_name, cls_name = _BUILTIN[name]
        # Import errors (e.g. torch missing) propagate to the caller as-is.
        mod = importlib.import_module(mod_name)
        register(getattr(mod, cls_name)())
    if name not in _REGISTRY:
        raise KeyError(f"engine not registered: {name} (available: {', '.join(available())})")
    return _REGISTRY[name]


__all__ = ["register", "unregister", "available", "default_engine_name", "get", "ENV_ENGINE"]
