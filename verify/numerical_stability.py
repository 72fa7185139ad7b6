"""
Edge-value probes.

The sweep draws inputs from [0, 1), which never reaches the negative branch of
relu/elu nor the exact s == 0 boundary. This module re-runs a case with a
handful of deterministic finite input patterns to cover those branches.

Design constraints:
- Reuses the real engine and the same driver as the sweep (run_case).
- Deterministic and cheap (one extra episode per probe).
- NaN/Inf are never injected: they are outside the supported input domain.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from eltwise_ir.types import EltwiseConfigError, TestCase
from pipeline.interfaces import EltwiseEngine, LayoutIndexMapper
from verify.diff_runner import run_case
from verify.tolerances import Tolerances


@dataclass(frozen=True)
class NumericalTestResult:
    name: str
    ok: bool
    summary: str


@dataclass(frozen=True)
class NumericalStabilityReport:
    ok: bool
    case: str
    results: List[NumericalTestResult]

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "ok": bool(self.ok),
            "case": self.case,
            "results": [{"name": r.name, "ok": bool(r.ok), "summary": str(r.summary)} for r in self.results],
        }


def _zeros(rng: np.random.Generator, n: int) -> np.ndarray:
    return np.zeros((n,), dtype=np.float32)


def _negative(rng: np.random.Generator, n: int) -> np.ndarray:
    return (rng.random(n, dtype=np.float32) - np.float32(1.0)).astype(np.float32)


def _mixed(rng: np.random.Generator, n: int) -> np.ndarray:
    return (rng.random(n, dtype=np.float32) * np.float32(2.0) - np.float32(1.0)).astype(np.float32)


def _tiny(rng: np.random.Generator, n: int) -> np.ndarray:
    return ((rng.random(n, dtype=np.float32) * np.float32(2.0) - np.float32(1.0)) * np.float32(1e-3)).astype(
        np.float32
    )


PROBES: Dict[str, Callable[[np.random.Generator, int], np.ndarray]] = {
    "zeros": _zeros,
    "negative": _negative,
    "mixed": _mixed,
    "tiny": _tiny,
}


def run_numerical_stability_suite(
    case: TestCase,
    engine: EltwiseEngine,
    *,
    mapper: Optional[LayoutIndexMapper] = None,
    tolerances: Optional[Tolerances] = None,
    probes: Optional[List[str]] = None,
) -> NumericalStabilityReport:
    names = list(probes) if probes else list(PROBES)
    results: List[NumericalTestResult] = []
    for name in names:
        make = PROBES.get(name)
        if make is None:
            raise EltwiseConfigError(f"unknown probe: {name!r}")
        rng = np.random.default_rng(int(case.seed))
        n = case.shape.numel
        src = make(rng, n)
        # Seed gradient stays in [0, 1): probes target the forward input domain.
        diff_dst = rng.random(n, dtype=np.float32)
        rep = run_case(case, engine, mapper=mapper, tolerances=tolerances, src_values=src, diff_dst_values=diff_dst)
        fwd = rep.forward.summary if rep.forward is not None else "not run"
        bwd = rep.backward.summary if rep.backward is not None else "not run"
        results.append(NumericalTestResult(name=name, ok=rep.ok, summary=f"forward: {fwd}; backward: {bwd}"))
    ok_all = bool(results and all(r.ok for r in results))
    return NumericalStabilityReport(ok=ok_all, case=case.label, results=results)


__all__ = ["PROBES", "NumericalTestResult", "NumericalStabilityReport", "run_numerical_stability_suite"]
