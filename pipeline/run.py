"""
Sweep runner: case tables -> engine -> verification driver -> suite report.

Each case owns its tensors, so cases are independent. A configuration fault or
any exception raised by the engine aborts only the case that raised it and is
recorded as status "fault" with the exception type and message.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from eltwise_ir.types import TestCase
from pipeline import registry
from pipeline.interfaces import EltwiseEngine, LayoutIndexMapper
from verify.diff_runner import CaseReport, run_case
from verify.tolerances import Tolerances


@dataclass
class SuiteReport:
    engine: str
    cases: List[CaseReport] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        c = Counter(r.status for r in self.cases)
        return {k: int(c.get(k, 0)) for k in ("pass", "fail", "fault")}

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.cases)

    def to_json_dict(self, *, max_report: int = 16) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "ok": bool(self.ok),
            "counts": self.counts,
            "cases": [r.to_json_dict(max_report=max_report) for r in self.cases],
        }


def run_suite(
    cases: Iterable[TestCase],
    engine: EltwiseEngine | str | None = None,
    *,
    mapper: Optional[LayoutIndexMapper] = None,
    tolerances: Optional[Tolerances] = None,
    on_case: Optional[Callable[[CaseReport], None]] = None,
) -> SuiteReport:
    eng = engine if (engine is not None and not isinstance(engine, str)) else registry.get(engine)
    report = SuiteReport(engine=str(eng.name))
    for case in cases:
        try:
            rep = run_case(case, eng, mapper=mapper, tolerances=tolerances)
        except Exception as e:  # config fault or engine crash; keep sweeping
            rep = CaseReport(case=case, status="fault", error=f"{type(e).__name__}: {e}")
        report.cases.append(rep)
        if on_case is not None:
            on_case(rep)
    return report


__all__ = ["SuiteReport", "run_suite"]
