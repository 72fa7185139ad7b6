"""
Cross-module interfaces shared by pipeline/verify/engines.

Keep this module dependency-light (no torch) so it can be imported from the
oracle core without pulling heavy runtime requirements.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from eltwise_ir.types import ActivationKind, ActivationParams, Tensor, TensorDesc


class LayoutIndexMapper(Protocol):
    """
    Engine-owned address translation.

    `physical_offset` must be pure and total over [0, numel) of `desc`, where
    logical indices are row-major over (N, C, H, W). The oracle never inlines
    layout arithmetic; it only calls this.

    A mapper may also provide `offsets(desc) -> np.ndarray`, the offsets of
    every logical index in order. The driver uses it when present; it must
    agree with `physical_offset` element for element.
    """

    def physical_offset(self, desc: TensorDesc, logical_index: int) -> int: ...


class EltwiseEngine(Protocol):
    """
    The system under test.

    - `make_tensor` allocates a tensor for `desc` and stores `logical_values`
      (row-major N, C, H, W order) in the layout named by `desc.layout`.
    - `forward` returns dst in `dst_layout`.
    - `backward` returns diff_src in the layout of `diff_dst`.
    """

    name: str
    mapper: LayoutIndexMapper

    def make_tensor(self, desc: TensorDesc, logical_values: Sequence[float]) -> Tensor: ...

    def forward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, dst_layout: str) -> Tensor: ...

    def backward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, diff_dst: Tensor) -> Tensor: ...


__all__ = ["LayoutIndexMapper", "EltwiseEngine"]
