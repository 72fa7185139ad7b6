"""
Closed-form reference formulas for the supported activation kinds.

All functions are pure and operate in single precision. They accept either a
scalar or a float32 ndarray of already-gathered logical values; branches are
expressed with `np.where` so both forms share one definition.

NaN/Inf are not special-cased: a case producing them fails comparison.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

from eltwise_ir.types import ActivationKind, ActivationParams, EltwiseConfigError


_F32 = np.float32
_ONE = _F32(1.0)
_TWO = _F32(2.0)


def _f32(x):
    return np.asarray(x, dtype=_F32)


def relu_fwd(s, alpha):
    s = _f32(s)
    return np.where(s > 0, s, s * _F32(alpha))


def relu_bwd(dd, s, alpha):
    dd, s = _f32(dd), _f32(s)
    return np.where(s > 0, dd, dd * _F32(alpha))


def tanh_fwd(s):
    s = _f32(s)
    with np.errstate(over="ignore", invalid="ignore"):
        e = np.exp(_TWO * s)
        return (e - _ONE) / (e + _ONE)


def tanh_bwd(dd, s):
    dd = _f32(dd)
    th = tanh_fwd(s)
    return dd * (_ONE - th * th)


def elu_fwd(s, alpha):
    s = _f32(s)
    with np.errstate(over="ignore", invalid="ignore"):
        return np.where(s > 0, s, _F32(alpha) * (np.exp(s) - _ONE))


def elu_bwd(dd, s, alpha):
    dd, s = _f32(dd), _f32(s)
    with np.errstate(over="ignore", invalid="ignore"):
        return dd * np.where(s > 0, _ONE, _F32(alpha) * np.exp(s))


_FWD: Dict[ActivationKind, Callable] = {
    ActivationKind.RELU: lambda s, p: relu_fwd(s, p.alpha),
    ActivationKind.TANH: lambda s, p: tanh_fwd(s),
    ActivationKind.ELU: lambda s, p: elu_fwd(s, p.alpha),
}

_BWD: Dict[ActivationKind, Callable] = {
    ActivationKind.RELU: lambda dd, s, p: relu_bwd(dd, s, p.alpha),
    ActivationKind.TANH: lambda dd, s, p: tanh_bwd(dd, s),
    ActivationKind.ELU: lambda dd, s, p: elu_bwd(dd, s, p.alpha),
}


def forward(kind: ActivationKind, params: ActivationParams, s):
    """Expected forward value(s) for input `s`."""
    fn = _FWD.get(ActivationKind.parse(kind))
    if fn is None:
        raise EltwiseConfigError(f"unknown activation kind: {kind!r}")
    return fn(s, params)


def backward(kind: ActivationKind, params: ActivationParams, dd, s):
    """Expected input-gradient for output-gradient `dd` at original forward input `s`."""
    fn = _BWD.get(ActivationKind.parse(kind))
    if fn is None:
        raise EltwiseConfigError(f"unknown activation kind: {kind!r}")
    return fn(dd, s, params)


__all__ = [
    "relu_fwd",
    "relu_bwd",
    "tanh_fwd",
    "tanh_bwd",
    "elu_fwd",
    "elu_bwd",
    "forward",
    "backward",
]
