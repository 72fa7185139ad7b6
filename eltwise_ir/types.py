"""
Eltwise oracle core data structures and construction-time validation.

This file defines the immutable values a verification episode is built from:
activation kind + parameters, the logical 4-d shape, the engine-facing tensor
descriptor (shape + dtype + layout tag) and the test case tying them together.
Layout tags are opaque here: nothing in this module knows how a layout maps a
logical index to storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Sequence, Tuple

import numpy as np


__all__ = [
    "EltwiseConfigError",
    "ActivationKind",
    "ActivationParams",
    "TensorShape",
    "TensorDesc",
    "Tensor",
    "TestCase",
    "SUPPORTED_DTYPES",
]


class EltwiseConfigError(Exception):
    """Raised when a case, descriptor or tensor is malformed (fatal for that case)."""


SUPPORTED_DTYPES: Dict[str, Any] = {
    "f32": np.float32,
}


class ActivationKind(str, Enum):
    RELU = "relu"
    TANH = "tanh"
    ELU = "elu"

    @classmethod
    def parse(cls, x: Any) -> "ActivationKind":
        if isinstance(x, cls):
            return x
        if isinstance(x, str):
            key = x.strip().lower()
            # Accept the original primitive names too (eltwise_relu, ...).
            if key.startswith("eltwise_"):
                key = key[len("eltwise_"):]
            for k in cls:
                if k.value == key:
                    return k
        raise EltwiseConfigError(f"unsupported activation kind: {x!r}")


@dataclass(frozen=True)
class ActivationParams:
    """
    Scalar pair interpreted per kind:
      - relu: alpha = negative slope, beta unused
      - elu:  alpha = saturation scale, beta unused
      - tanh: both unused
    """

    alpha: float = 0.0
    beta: float = 0.0

    def to_json_dict(self) -> Dict[str, float]:
        return {"alpha": float(self.alpha), "beta": float(self.beta)}


@dataclass(frozen=True)
class TensorShape:
    n: int
    c: int
    h: int
    w: int

    def __post_init__(self) -> None:
        for axis, v in zip("nchw", (self.n, self.c, self.h, self.w)):
            if isinstance(v, bool) or not isinstance(v, (int, np.integer)):
                raise EltwiseConfigError(f"shape.{axis} must be int, got {type(v).__name__}")
            if int(v) <= 0:
                raise EltwiseConfigError(f"shape.{axis} must be > 0, got {v}")

    @classmethod
    def from_dims(cls, dims: Sequence[int]) -> "TensorShape":
        dims = tuple(dims)
        if len(dims) != 4:
            raise EltwiseConfigError(f"expected 4 dims (N, C, H, W), got {len(dims)}: {dims}")
        return cls(*dims)

    @property
    def dims(self) -> Tuple[int, int, int, int]:
        return (int(self.n), int(self.c), int(self.h), int(self.w))

    @property
    def numel(self) -> int:
        return int(self.n) * int(self.c) * int(self.h) * int(self.w)

    def unravel(self, index: int) -> Tuple[int, int, int, int]:
        """Logical (row-major N, C, H, W) coordinates of a flat logical index."""
        if index < 0 or index >= self.numel:
            raise IndexError(f"logical index {index} out of range for {self.dims}")
        i = int(index)
        i, w = divmod(i, int(self.w))
        i, h = divmod(i, int(self.h))
        n, c = divmod(i, int(self.c))
        return (n, c, h, w)

    def __str__(self) -> str:
        return "x".join(str(d) for d in self.dims)


@dataclass(frozen=True)
class TensorDesc:
    """
    Engine-facing descriptor. `dims` stays a plain tuple so that a malformed
    (non 4-d) descriptor can still be represented and rejected by the driver.
    """

    dims: Tuple[int, ...]
    dtype: str = "f32"
    layout: str = "nchw"

    @classmethod
    def of(cls, shape: TensorShape, layout: str, dtype: str = "f32") -> "TensorDesc":
        return cls(dims=shape.dims, dtype=dtype, layout=str(layout))

    @property
    def ndims(self) -> int:
        return len(self.dims)

    @property
    def shape(self) -> TensorShape:
        return TensorShape.from_dims(self.dims)

    def to_json_dict(self) -> Dict[str, Any]:
        return {"dims": [int(d) for d in self.dims], "dtype": self.dtype, "layout": self.layout}


@dataclass
class Tensor:
    """
    A descriptor plus its flat storage buffer. The buffer length is the
    layout's physical size (>= numel when a blocked layout pads channels).
    """

    desc: TensorDesc
    data: np.ndarray

    def freeze(self) -> "Tensor":
        self.data.flags.writeable = False
        return self


@dataclass(frozen=True)
class TestCase:
    kind: ActivationKind
    params: ActivationParams
    shape: TensorShape
    data_layout: str = "nchw"
    diff_layout: str = "nchw"
    seed: int = 0
    name: str = ""
    __test__ = False  # prevent pytest from treating this as a test container

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ActivationKind.parse(self.kind))
        if not isinstance(self.params, ActivationParams):
            raise EltwiseConfigError(f"params must be ActivationParams, got {type(self.params).__name__}")
        if not isinstance(self.shape, TensorShape):
            object.__setattr__(self, "shape", TensorShape.from_dims(self.shape))
        for field_name in ("data_layout", "diff_layout"):
            tag = getattr(self, field_name)
            if not isinstance(tag, str) or not tag:
                raise EltwiseConfigError(f"{field_name} must be a non-empty layout tag")

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        return (
            f"{self.kind.value}/a={self.params.alpha:g}/{self.data_layout}->{self.diff_layout}/{self.shape}"
        )

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "name": self.label,
            "kind": self.kind.value,
            "params": self.params.to_json_dict(),
            "shape": list(self.shape.dims),
            "data_layout": self.data_layout,
            "diff_layout": self.diff_layout,
            "seed": int(self.seed),
        }
