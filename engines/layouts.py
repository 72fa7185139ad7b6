"""
Layout index mapping for the bundled engines.

A layout maps a logical (row-major N, C, H, W) index to a storage offset.
Layouts are table-driven: plain permutations of the four axes, optionally
with the channel axis split into an outer and an innermost block
(`nChw8c` = N, C/8, H, W, 8). Blocked layouts pad C up to a multiple of the
block; padding slots are zero-filled and never addressed by a logical index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

import numpy as np

from eltwise_ir.diagnostics import closest_match
from eltwise_ir.types import EltwiseConfigError, SUPPORTED_DTYPES, Tensor, TensorDesc


@dataclass(frozen=True)
class LayoutSpec:
    name: str
    order: str  # outer-to-inner axis order, a permutation of "nchw"
    c_block: int = 1

    def __post_init__(self) -> None:
        if sorted(self.order) != sorted("nchw"):
            raise EltwiseConfigError(f"layout {self.name}: order must permute 'nchw', got {self.order!r}")
        if self.c_block < 1:
            raise EltwiseConfigError(f"layout {self.name}: c_block must be >= 1")

    @property
    def blocked(self) -> bool:
        return self.c_block > 1


LAYOUTS: Dict[str, LayoutSpec] = {}


def register_layout(spec: LayoutSpec) -> None:
    LAYOUTS[spec.name] = spec


for _spec in (
    LayoutSpec("nchw", "nchw"),
    LayoutSpec("nhwc", "nhwc"),
    LayoutSpec("chwn", "chwn"),
    LayoutSpec("nChw8c", "nchw", c_block=8),
    LayoutSpec("nChw16c", "nchw", c_block=16),
):
    register_layout(_spec)


def get_layout(tag: str) -> LayoutSpec:
    spec = LAYOUTS.get(tag)
    if spec is None:
        hint = closest_match(tag, LAYOUTS.keys())
        extra = f" (did you mean {hint[0]!r}?)" if hint else ""
        raise EltwiseConfigError(f"unknown layout tag: {tag!r}{extra}")
    return spec


def _dims4(desc: TensorDesc) -> Tuple[int, int, int, int]:
    if desc.ndims != 4:
        raise EltwiseConfigError(f"layout mapping needs a 4-d descriptor, got {desc.dims}")
    n, c, h, w = (int(d) for d in desc.dims)
    return n, c, h, w


def _strides(spec: LayoutSpec, dims: Tuple[int, int, int, int]) -> Tuple[Dict[str, int], int]:
    """
    Per-axis strides (channel stride is for the outer block index) plus the
    inner block size. Physical shape is `order` extents followed by c_block.
    """
    n, c, h, w = dims
    b = spec.c_block
    extent = {"n": n, "c": -(-c // b), "h": h, "w": w}
    strides: Dict[str, int] = {}
    acc = b
    for axis in reversed(spec.order):
        strides[axis] = acc
        acc *= extent[axis]
    return strides, b


class BlockedLayoutMapper:
    """Default LayoutIndexMapper over the LAYOUTS table."""

    def physical_size(self, desc: TensorDesc) -> int:
        spec = get_layout(desc.layout)
        n, c, h, w = _dims4(desc)
        b = spec.c_block
        return n * (-(-c // b) * b) * h * w

    def physical_offset(self, desc: TensorDesc, logical_index: int) -> int:
        spec = get_layout(desc.layout)
        dims = _dims4(desc)
        n, c, h, w = dims
        i = int(logical_index)
        if i < 0 or i >= n * c * h * w:
            raise IndexError(f"logical index {i} out of range for {desc.dims}")
        i, wi = divmod(i, w)
        i, hi = divmod(i, h)
        ni, ci = divmod(i, c)
        strides, b = _strides(spec, dims)
        cb, cr = divmod(ci, b)
        return ni * strides["n"] + cb * strides["c"] + hi * strides["h"] + wi * strides["w"] + cr

    def offsets(self, desc: TensorDesc) -> np.ndarray:
        """Vectorized physical offsets of every logical index, in logical order."""
        spec = get_layout(desc.layout)
        dims = _dims4(desc)
        ni, ci, hi, wi = np.unravel_index(np.arange(int(np.prod(dims)), dtype=np.int64), dims)
        strides, b = _strides(spec, dims)
        return ni * strides["n"] + (ci // b) * strides["c"] + hi * strides["h"] + wi * strides["w"] + ci % b


_DEFAULT_MAPPER = BlockedLayoutMapper()


def default_mapper() -> BlockedLayoutMapper:
    return _DEFAULT_MAPPER


def pack(desc: TensorDesc, logical: Iterable[float], mapper: BlockedLayoutMapper | None = None) -> Tensor:
    """Materialize logical-order values as a tensor in `desc.layout`."""
    mapper = mapper or _DEFAULT_MAPPER
    np_dt = SUPPORTED_DTYPES.get(desc.dtype)
    if np_dt is None:
        raise EltwiseConfigError(f"unsupported dtype: {desc.dtype}")
    values = np.asarray(logical, dtype=np_dt).reshape(-1)
    offs = mapper.offsets(desc)
    if values.size != offs.size:
        raise EltwiseConfigError(f"expected {offs.size} logical values for {desc.dims}, got {values.size}")
    data = np.zeros((mapper.physical_size(desc),), dtype=np_dt)
    data[offs] = values
    return Tensor(desc=desc, data=data)


def unpack(t: Tensor, mapper: BlockedLayoutMapper | None = None) -> np.ndarray:
    """Logical-order (flat) copy of a tensor's values."""
    mapper = mapper or _DEFAULT_MAPPER
    return np.array(t.data[mapper.offsets(t.desc)], copy=True)


__all__ = [
    "LayoutSpec",
    "LAYOUTS",
    "register_layout",
    "get_layout",
    "BlockedLayoutMapper",
    "default_mapper",
    "pack",
    "unpack",
]
