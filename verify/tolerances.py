"""
Comparison tolerances for eltwise verification.

The oracle compares element-wise with an absolute bound only. The historical
bound is 1e-6 for every kind; it can be overridden process-wide with
ELTWISE_ORACLE_ATOL (e.g. when validating an engine built with fast-math) or
per call.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from eltwise_ir.types import ActivationKind, EltwiseConfigError


ENV_ATOL = "ELTWISE_ORACLE_ATOL"


@dataclass(frozen=True)
class Tolerances:
    atol: float

    def to_dict(self) -> Dict[str, float]:
        return {"atol": float(self.atol)}


_DEFAULT = Tolerances(atol=1e-6)

# Per-kind overrides. Empty today: every kind is held to the default bound.
_KIND_TOL: Dict[ActivationKind, Tolerances] = {}


def _env_atol() -> Optional[float]:
    raw = os.getenv(ENV_ATOL, "").strip()
    if not raw:
        return None
    try:
        v = float(raw)
    except ValueError:
        raise EltwiseConfigError(f"{ENV_ATOL} must be a float, got {raw!r}") from None
    if not v >= 0.0:
        raise EltwiseConfigError(f"{ENV_ATOL} must be >= 0, got {raw!r}")
    return v


def default_tolerances(kind: ActivationKind | None = None, *, atol: Optional[float] = None) -> Tolerances:
    """
    Resolve the tolerance for `kind`: explicit `atol` > environment > per-kind > default.
    """
    if atol is not None:
        if not float(atol) >= 0.0:
            raise EltwiseConfigError(f"atol must be >= 0, got {atol}")
        return Tolerances(atol=float(atol))
    env = _env_atol()
    if env is not None:
        return Tolerances(atol=env)
    if kind is not None:
        tol = _KIND_TOL.get(ActivationKind.parse(kind))
        if tol is not None:
            return tol
    return _DEFAULT


__all__ = ["Tolerances", "default_tolerances", "ENV_ATOL"]
