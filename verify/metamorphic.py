"""
Metamorphic relation: layout invariance.

Re-running a case with the same logical data but different layout tags for the
data and gradient tensors must not change the verdict. A verdict flip points
either at an engine bug that only shows up for one layout or at a driver that
compares tensors by raw buffer position.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from itertools import product
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from eltwise_ir.types import TestCase
from pipeline.interfaces import EltwiseEngine, LayoutIndexMapper
from verify.diff_runner import run_case
from verify.tolerances import Tolerances


@dataclass
class MetamorphicResult:
    data_layout: str
    diff_layout: str
    status: str
    detail: str


@dataclass
class LayoutInvarianceReport:
    ok: bool
    case: str
    verdicts: List[MetamorphicResult]

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "ok": bool(self.ok),
            "case": self.case,
            "verdicts": [dataclasses.asdict(v) for v in self.verdicts],
        }


def run_layout_invariance(
    case: TestCase,
    engine: EltwiseEngine,
    layouts: Sequence[str],
    *,
    pairs: Optional[Sequence[Tuple[str, str]]] = None,
    mapper: Optional[LayoutIndexMapper] = None,
    tolerances: Optional[Tolerances] = None,
) -> LayoutInvarianceReport:
    """
    Run `case` under every (data_layout, diff_layout) pair (default: the full
    product of `layouts`) with identical logical inputs; `ok` means all
    verdicts agree.
    """
    rng = np.random.default_rng(int(case.seed))
    n = case.shape.numel
    src = rng.random(n, dtype=np.float32)
    diff_dst = rng.random(n, dtype=np.float32)

    verdicts: List[MetamorphicResult] = []
    for data_layout, diff_layout in pairs or list(product(layouts, repeat=2)):
        variant = dataclasses.replace(case, data_layout=data_layout, diff_layout=diff_layout, name="")
        rep = run_case(
            variant, engine, mapper=mapper, tolerances=tolerances, src_values=src, diff_dst_values=diff_dst
        )
        detail = "; ".join(p.summary for p in (rep.forward, rep.backward) if p is not None)
        verdicts.append(MetamorphicResult(data_layout, diff_layout, rep.status, detail))
    ok = len({v.status for v in verdicts}) <= 1
    return LayoutInvarianceReport(ok=ok, case=case.label, verdicts=verdicts)


__all__ = ["MetamorphicResult", "LayoutInvarianceReport", "run_layout_invariance"]
