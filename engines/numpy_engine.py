"""
NumPy CPU engine.

Computes eltwise forward/backward directly on physical buffers when the
operands share a layout (padding slots hold 0 and every supported kind maps
0 -> 0), and reorders through the layout mapper otherwise.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from eltwise_ir.types import ActivationKind, ActivationParams, EltwiseConfigError, Tensor, TensorDesc
from engines.layouts import BlockedLayoutMapper, default_mapper, pack, unpack


def _fwd(kind: ActivationKind, p: ActivationParams, x: np.ndarray) -> np.ndarray:
    alpha = np.float32(p.alpha)
    if kind == ActivationKind.RELU:
        return np.where(x > 0, x, x * alpha)
    if kind == ActivationKind.TANH:
        return np.tanh(x)
    if kind == ActivationKind.ELU:
        return np.where(x > 0, x, alpha * np.expm1(np.minimum(x, 0)))
    raise EltwiseConfigError(f"numpy engine: unsupported kind {kind!r}")


def _bwd(kind: ActivationKind, p: ActivationParams, dy: np.ndarray, x: np.ndarray) -> np.ndarray:
    alpha = np.float32(p.alpha)
    if kind == ActivationKind.RELU:
        return np.where(x > 0, dy, dy * alpha)
    if kind == ActivationKind.TANH:
        y = np.tanh(x)
        return dy * (np.float32(1) - y * y)
    if kind == ActivationKind.ELU:
        return np.where(x > 0, dy, dy * alpha * np.exp(np.minimum(x, 0)))
    raise EltwiseConfigError(f"numpy engine: unsupported kind {kind!r}")


class NumpyEngine:
    name = "numpy"

    def __init__(self, mapper: BlockedLayoutMapper | None = None) -> None:
        self.mapper = mapper or default_mapper()

    def make_tensor(self, desc: TensorDesc, logical_values: Sequence[float]) -> Tensor:
        return pack(desc, logical_values, self.mapper)

    def _relayout(self, t: Tensor, layout: str) -> Tensor:
        if t.desc.layout == layout:
            return t
        desc = TensorDesc(dims=t.desc.dims, dtype=t.desc.dtype, layout=layout)
        return pack(desc, unpack(t, self.mapper), self.mapper)

    def forward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, dst_layout: str) -> Tensor:
        kind = ActivationKind.parse(kind)
        x = self._relayout(src, dst_layout)
        y = _fwd(kind, params, x.data).astype(np.float32, copy=False)
        return Tensor(desc=x.desc, data=np.ascontiguousarray(y))

    def backward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, diff_dst: Tensor) -> Tensor:
        kind = ActivationKind.parse(kind)
        if tuple(src.desc.dims) != tuple(diff_dst.desc.dims):
            raise EltwiseConfigError(f"numpy engine: src {src.desc.dims} vs diff_dst {diff_dst.desc.dims}")
        x = self._relayout(src, diff_dst.desc.layout)
        dx = _bwd(kind, params, diff_dst.data, x.data).astype(np.float32, copy=False)
        return Tensor(desc=diff_dst.desc, data=np.ascontiguousarray(dx))


__all__ = ["NumpyEngine"]
