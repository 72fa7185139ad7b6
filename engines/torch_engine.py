"""
PyTorch eager engine (CPU).

Forward uses torch.nn.functional ops; backward goes through autograd, so the
gradient formulas under test are torch's own. Storage layouts are handled by
the shared layout mapper: tensors are unpacked to logical NCHW, computed on,
then packed into the requested layout.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import torch
import torch.nn.functional as F

from eltwise_ir.types import ActivationKind, ActivationParams, EltwiseConfigError, Tensor, TensorDesc
from engines.layouts import BlockedLayoutMapper, default_mapper, pack, unpack


def _apply(kind: ActivationKind, p: ActivationParams, x: torch.Tensor) -> torch.Tensor:
    if kind == ActivationKind.RELU:
        return F.leaky_relu(x, negative_slope=float(p.alpha))
    if kind == ActivationKind.TANH:
        return torch.tanh(x)
    if kind == ActivationKind.ELU:
        return F.elu(x, alpha=float(p.alpha))
    raise EltwiseConfigError(f"torch engine: unsupported kind {kind!r}")


class TorchEngine:
    name = "torch"

    def __init__(self, mapper: BlockedLayoutMapper | None = None, *, device: str = "cpu") -> None:
        self.mapper = mapper or default_mapper()
        self.device = device

    def make_tensor(self, desc: TensorDesc, logical_values: Sequence[float]) -> Tensor:
        return pack(desc, logical_values, self.mapper)

    def _to_torch(self, t: Tensor) -> torch.Tensor:
        logical = unpack(t, self.mapper).reshape(tuple(int(d) for d in t.desc.dims))
        return torch.tensor(logical, dtype=torch.float32, device=self.device)

    def _from_torch(self, x: torch.Tensor, desc: TensorDesc) -> Tensor:
        values = x.detach().to("cpu").contiguous().numpy().reshape(-1).astype(np.float32, copy=False)
        return pack(desc, values, self.mapper)

    def forward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, dst_layout: str) -> Tensor:
        kind = ActivationKind.parse(kind)
        with torch.no_grad():
            y = _apply(kind, params, self._to_torch(src))
        desc = TensorDesc(dims=src.desc.dims, dtype=src.desc.dtype, layout=dst_layout)
        return self._from_torch(y, desc)

    def backward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, diff_dst: Tensor) -> Tensor:
        kind = ActivationKind.parse(kind)
        if tuple(src.desc.dims) != tuple(diff_dst.desc.dims):
            raise EltwiseConfigError(f"torch engine: src {src.desc.dims} vs diff_dst {diff_dst.desc.dims}")
        x = self._to_torch(src).requires_grad_(True)
        dy = self._to_torch(diff_dst)
        y = _apply(kind, params, x)
        (dx,) = torch.autograd.grad(y, x, grad_outputs=dy)
        return self._from_torch(dx, diff_dst.desc)


__all__ = ["TorchEngine"]
