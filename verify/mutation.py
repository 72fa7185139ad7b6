"""
Fault-injection kill harness.

Goal: quantify the falsification power of the driver by wrapping a correct
engine in deliberately broken variants ("mutants") and checking which of
them the forward/backward checks reject.

Mutants:
- corrupt_dst:        one forward output element is off by +1
- corrupt_diff_src:   one input-gradient element is off by +1
- wrong_alpha:        the engine uses alpha + 0.5 (relu/elu only observable)
- layout_lie:         forward output declares a layout it was not written in
- grad_from_output:   backward evaluates the derivative at f(s) instead of s

Inputs are drawn from [-1, 1) so that the negative branches are exercised.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from eltwise_ir.types import ActivationKind, ActivationParams, EltwiseConfigError, Tensor, TensorDesc, TestCase
from pipeline.interfaces import EltwiseEngine, LayoutIndexMapper
from verify.diff_runner import run_case
from verify.tolerances import Tolerances


MUTANTS = ("corrupt_dst", "corrupt_diff_src", "wrong_alpha", "layout_lie", "grad_from_output")

_PLAIN_LAYOUTS = ("nchw", "nhwc", "chwn")


@dataclass
class MutationOutcome:
    mutant: str
    killed_by: str  # "forward" | "backward" | "fault" | "survived"
    detail: str
    corrupted_index: Optional[int] = None


@dataclass
class MutationReport:
    case: str
    total: int
    killed: int
    survived: int
    outcomes: List[MutationOutcome] = field(default_factory=list)

    @property
    def kill_rate(self) -> float:
        return 0.0 if self.total == 0 else float(self.killed) / float(self.total)

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "case": self.case,
            "total": int(self.total),
            "killed": int(self.killed),
            "survived": int(self.survived),
            "kill_rate": float(self.kill_rate),
            "outcomes": [dataclasses.asdict(o) for o in self.outcomes],
        }


class MutantEngine:
    """Wraps a correct engine and injects exactly one fault."""

    def __init__(self, base: EltwiseEngine, mutant: str, *, corrupt_index: int = 0) -> None:
        if mutant not in MUTANTS:
            raise EltwiseConfigError(f"unknown mutant: {mutant!r}")
        self.base = base
        self.mutant = mutant
        self.corrupt_index = int(corrupt_index)
        self.name = f"{base.name}+{mutant}"
        self.mapper = base.mapper

    def make_tensor(self, desc: TensorDesc, logical_values) -> Tensor:
        return self.base.make_tensor(desc, logical_values)

    def _params(self, params: ActivationParams) -> ActivationParams:
        if self.mutant == "wrong_alpha":
            return dataclasses.replace(params, alpha=float(params.alpha) + 0.5)
        return params

    def _corrupt(self, t: Tensor) -> Tensor:
        data = np.array(t.data, copy=True)
        data[self.mapper.physical_offset(t.desc, self.corrupt_index)] += np.float32(1.0)
        return Tensor(desc=t.desc, data=data)

    def forward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, dst_layout: str) -> Tensor:
        out = self.base.forward(kind, self._params(params), src, dst_layout)
        if self.mutant == "corrupt_dst":
            return self._corrupt(out)
        if self.mutant == "layout_lie":
            other = next(tag for tag in _PLAIN_LAYOUTS if tag != out.desc.layout)
            return Tensor(desc=dataclasses.replace(out.desc, layout=other), data=out.data)
        return out

    def backward(self, kind: ActivationKind, params: ActivationParams, src: Tensor, diff_dst: Tensor) -> Tensor:
        if self.mutant == "grad_from_output":
            src = self.base.forward(kind, params, src, src.desc.layout)
        out = self.base.backward(kind, self._params(params), src, diff_dst)
        if self.mutant == "corrupt_diff_src":
            return self._corrupt(out)
        return out


def run_mutation_kill(
    case: TestCase,
    engine: EltwiseEngine,
    *,
    mutants: Optional[Sequence[str]] = None,
    mapper: Optional[LayoutIndexMapper] = None,
    tolerances: Optional[Tolerances] = None,
) -> MutationReport:
    rng = np.random.default_rng(int(case.seed))
    n = case.shape.numel
    src = (rng.random(n, dtype=np.float32) * np.float32(2.0) - np.float32(1.0)).astype(np.float32)
    diff_dst = rng.random(n, dtype=np.float32)
    corrupt_index = int(rng.integers(0, n))

    outcomes: List[MutationOutcome] = []
    for name in mutants or MUTANTS:
        m = MutantEngine(engine, name, corrupt_index=corrupt_index)
        idx = corrupt_index if name in ("corrupt_dst", "corrupt_diff_src") else None
        try:
            rep = run_case(case, m, mapper=mapper, tolerances=tolerances, src_values=src, diff_dst_values=diff_dst)
        except EltwiseConfigError as e:
            outcomes.append(MutationOutcome(name, "fault", f"{type(e).__name__}: {e}", idx))
            continue
        if rep.forward is not None and not rep.forward.ok:
            outcomes.append(MutationOutcome(name, "forward", rep.forward.summary, idx))
        elif rep.backward is not None and not rep.backward.ok:
            outcomes.append(MutationOutcome(name, "backward", rep.backward.summary, idx))
        else:
            outcomes.append(MutationOutcome(name, "survived", "all checks passed", idx))

    killed = sum(1 for o in outcomes if o.killed_by != "survived")
    return MutationReport(
        case=case.label,
        total=len(outcomes),
        killed=killed,
        survived=len(outcomes) - killed,
        outcomes=outcomes,
    )


__all__ = ["MUTANTS", "MutantEngine", "MutationOutcome", "MutationReport", "run_mutation_kill"]
