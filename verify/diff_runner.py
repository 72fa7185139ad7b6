"""
Differential runner: checks engine eltwise forward/backward against the
closed-form reference, element by element, through each tensor's own layout.

Every tensor is read by logical index translated with the injected
LayoutIndexMapper, separately per tensor; two tensors are never compared by
raw buffer position. Mismatches are collected exhaustively (the scan never
stops early); configuration faults raise EltwiseConfigError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from eltwise_ir.diagnostics import Mismatch, format_mismatch
from eltwise_ir.types import (
    ActivationKind,
    ActivationParams,
    EltwiseConfigError,
    SUPPORTED_DTYPES,
    Tensor,
    TensorDesc,
    TensorShape,
    TestCase,
)
from pipeline.interfaces import EltwiseEngine, LayoutIndexMapper
from verify import reference_math
from verify.tolerances import Tolerances, default_tolerances


@dataclass
class PhaseResult:
    phase: str
    ok: bool
    checked: int
    max_abs_err: float
    mismatches: List[Mismatch] = field(default_factory=list)
    summary: str = "ok"

    @property
    def first_bad_index(self) -> Optional[int]:
        return self.mismatches[0].index if self.mismatches else None

    def to_json_dict(self, *, max_report: int = 16) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "ok": bool(self.ok),
            "checked": int(self.checked),
            "max_abs_err": float(self.max_abs_err),
            "num_mismatches": len(self.mismatches),
            "mismatches": [m.to_json_dict() for m in self.mismatches[:max_report]],
            "summary": self.summary,
        }


@dataclass
class CaseReport:
    case: TestCase
    forward: Optional[PhaseResult] = None
    backward: Optional[PhaseResult] = None
    status: str = "pass"  # "pass" | "fail" | "fault"
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "pass"

    def to_json_dict(self, *, max_report: int = 16) -> Dict[str, Any]:
        return {
            "case": self.case.to_json_dict(),
            "status": self.status,
            "error": self.error,
            "forward": None if self.forward is None else self.forward.to_json_dict(max_report=max_report),
            "backward": None if self.backward is None else self.backward.to_json_dict(max_report=max_report),
        }


def _check_tensor(role: str, t: Tensor, dims: Tuple[int, ...] | None = None) -> TensorShape:
    desc = t.desc
    if desc.ndims != 4:
        raise EltwiseConfigError(f"{role}: expected a 4-d tensor, got dims={desc.dims}")
    np_dt = SUPPORTED_DTYPES.get(desc.dtype)
    if np_dt is not np.float32:
        raise EltwiseConfigError(f"{role}: expected dtype f32, got {desc.dtype}")
    if t.data.dtype != np.float32:
        raise EltwiseConfigError(f"{role}: buffer dtype is {t.data.dtype}, expected float32")
    if t.data.ndim != 1:
        raise EltwiseConfigError(f"{role}: buffer must be flat, got ndim={t.data.ndim}")
    if dims is not None and tuple(desc.dims) != tuple(dims):
        raise EltwiseConfigError(f"{role}: dims {desc.dims} do not match {tuple(dims)}")
    return desc.shape


def _gather(role: str, t: Tensor, mapper: LayoutIndexMapper) -> Tuple[np.ndarray, np.ndarray]:
    """Values of `t` in logical order, plus the physical offset each came from."""
    numel = t.desc.shape.numel
    bulk = getattr(mapper, "offsets", None)
    if callable(bulk):
        offs = np.asarray(bulk(t.desc), dtype=np.int64).reshape(-1)
        if offs.size != numel:
            raise EltwiseConfigError(f"{role}: mapper returned {offs.size} offsets for {numel} elements")
    else:
        offs = np.fromiter(
            (mapper.physical_offset(t.desc, i) for i in range(numel)),
            dtype=np.int64,
            count=numel,
        )
    if numel:
        lo, hi = int(offs.min()), int(offs.max())
        if lo < 0:
            raise EltwiseConfigError(f"{role}: layout {t.desc.layout!r} addresses negative offset {lo}")
        if hi >= t.data.size:
            raise EltwiseConfigError(
                f"{role}: layout {t.desc.layout!r} addresses offset {hi} "
                f"beyond buffer of {t.data.size} elements"
            )
    return t.data[offs], offs


def _compare(
    phase: str,
    shape: TensorShape,
    expected: np.ndarray,
    actual: np.ndarray,
    offsets: Dict[str, np.ndarray],
    atol: float,
) -> PhaseResult:
    abs_err = np.abs(actual.astype(np.float64) - expected.astype(np.float64))
    # NaN on either side must fail, so test for "not within" rather than "beyond".
    bad = ~(abs_err <= atol)
    finite_err = abs_err[np.isfinite(abs_err)]
    max_abs = float(finite_err.max()) if finite_err.size else 0.0
    if finite_err.size != abs_err.size:
        max_abs = float("inf")
    mismatches: List[Mismatch] = []
    for i in np.flatnonzero(bad):
        i = int(i)
        mismatches.append(
            Mismatch(
                index=i,
                coords=shape.unravel(i),
                expected=float(expected[i]),
                actual=float(actual[i]),
                abs_err=float(abs_err[i]),
                offsets={role: int(o[i]) for role, o in offsets.items()},
            )
        )
    ok = not mismatches
    summary = "ok"
    if not ok:
        summary = f"{len(mismatches)} mismatch(es) in {phase}, first {format_mismatch(mismatches[0])}"
    return PhaseResult(
        phase=phase,
        ok=ok,
        checked=int(expected.size),
        max_abs_err=max_abs,
        mismatches=mismatches,
        summary=summary,
    )


def _resolve_atol(kind: ActivationKind, atol: Optional[float]) -> float:
    return float(default_tolerances(kind, atol=atol).atol)


def check_forward(
    kind: ActivationKind,
    params: ActivationParams,
    src: Tensor,
    dst: Tensor,
    mapper: LayoutIndexMapper,
    *,
    atol: Optional[float] = None,
) -> PhaseResult:
    """
    Recompute dst from src with the reference formula; src and dst may carry
    different layouts.
    """
    kind = ActivationKind.parse(kind)
    shape = _check_tensor("src", src)
    _check_tensor("dst", dst, shape.dims)
    s, s_off = _gather("src", src, mapper)
    d, d_off = _gather("dst", dst, mapper)
    expected = reference_math.forward(kind, params, s)
    return _compare("forward", shape, expected, d, {"src": s_off, "dst": d_off}, _resolve_atol(kind, atol))


def check_backward(
    kind: ActivationKind,
    params: ActivationParams,
    src: Tensor,
    diff_dst: Tensor,
    diff_src: Tensor,
    mapper: LayoutIndexMapper,
    *,
    atol: Optional[float] = None,
) -> PhaseResult:
    """
    Recompute diff_src from the original forward input and the seed gradient.
    Each of the three tensors is translated through its own layout.
    """
    kind = ActivationKind.parse(kind)
    shape = _check_tensor("src", src)
    _check_tensor("diff_dst", diff_dst, shape.dims)
    _check_tensor("diff_src", diff_src, shape.dims)
    s, s_off = _gather("src", src, mapper)
    dd, dd_off = _gather("diff_dst", diff_dst, mapper)
    ds, ds_off = _gather("diff_src", diff_src, mapper)
    expected = reference_math.backward(kind, params, dd, s)
    offsets = {"src": s_off, "diff_dst": dd_off, "diff_src": ds_off}
    return _compare("backward", shape, expected, ds, offsets, _resolve_atol(kind, atol))


def _uniform01(rng: np.random.Generator, n: int) -> np.ndarray:
    return rng.random(n, dtype=np.float32)


@dataclass
class Episode:
    """
    Mutable state of one case's verification: the tensors that must survive
    from the forward phase into the backward phase. Scoped to a single case.
    """

    case: TestCase
    engine: EltwiseEngine
    mapper: LayoutIndexMapper
    atol: Optional[float] = None
    src_values: Optional[np.ndarray] = None
    diff_dst_values: Optional[np.ndarray] = None
    src: Optional[Tensor] = None
    dst: Optional[Tensor] = None
    diff_dst: Optional[Tensor] = None
    diff_src: Optional[Tensor] = None
    forward: Optional[PhaseResult] = None
    backward: Optional[PhaseResult] = None

    def __post_init__(self) -> None:
        self._rng = np.random.default_rng(int(self.case.seed))

    def run_forward(self) -> PhaseResult:
        case = self.case
        numel = case.shape.numel
        values = self.src_values if self.src_values is not None else _uniform01(self._rng, numel)
        desc = TensorDesc.of(case.shape, case.data_layout)
        # Read-only from here on: backward needs the original input unmodified.
        self.src = self.engine.make_tensor(desc, values).freeze()
        self.dst = self.engine.forward(case.kind, case.params, self.src, case.data_layout)
        self.forward = check_forward(case.kind, case.params, self.src, self.dst, self.mapper, atol=self.atol)
        return self.forward

    def run_backward(self) -> PhaseResult:
        if self.forward is None or self.src is None:
            raise RuntimeError("backward phase requires the forward phase to run first")
        case = self.case
        numel = case.shape.numel
        values = self.diff_dst_values if self.diff_dst_values is not None else _uniform01(self._rng, numel)
        desc = TensorDesc.of(case.shape, case.diff_layout)
        self.diff_dst = self.engine.make_tensor(desc, values).freeze()
        self.diff_src = self.engine.backward(case.kind, case.params, self.src, self.diff_dst)
        self.backward = check_backward(
            case.kind, case.params, self.src, self.diff_dst, self.diff_src, self.mapper, atol=self.atol
        )
        return self.backward

    def report(self) -> CaseReport:
        phases = [p for p in (self.forward, self.backward) if p is not None]
        status = "pass" if phases and all(p.ok for p in phases) else "fail"
        return CaseReport(case=self.case, forward=self.forward, backward=self.backward, status=status)


def run_case(
    case: TestCase,
    engine: EltwiseEngine,
    *,
    mapper: Optional[LayoutIndexMapper] = None,
    tolerances: Optional[Tolerances] = None,
    src_values: Optional[np.ndarray] = None,
    diff_dst_values: Optional[np.ndarray] = None,
) -> CaseReport:
    """
    One verification episode: forward check, then backward check.
    Configuration faults propagate (EltwiseConfigError).
    """
    ep = Episode(
        case=case,
        engine=engine,
        mapper=mapper if mapper is not None else engine.mapper,
        atol=None if tolerances is None else tolerances.atol,
        src_values=src_values,
        diff_dst_values=diff_dst_values,
    )
    ep.run_forward()
    ep.run_backward()
    return ep.report()


__all__ = ["PhaseResult", "CaseReport", "Episode", "check_forward", "check_backward", "run_case"]
