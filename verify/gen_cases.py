"""
Case enumeration for eltwise verification.

The matrix of (shape, kind, alpha, layout pair) is plain data: each suite is a
list of rows, and every row is expanded over the activation kinds. Filtering
(by suite, kind, element budget) happens after expansion so the tables stay
declarative.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from eltwise_ir.types import ActivationKind, ActivationParams, EltwiseConfigError, TensorShape, TestCase


@dataclass(frozen=True)
class CaseRow:
    data_layout: str
    diff_layout: str
    alpha: float
    beta: float
    dims: Tuple[int, int, int, int]
    kinds: Tuple[ActivationKind, ...] = tuple(ActivationKind)


_SIMPLE_SHAPES: List[Tuple[int, int, int, int]] = [
    (2, 8, 4, 4),
    (2, 16, 4, 4),
    (2, 16, 8, 8),
    (2, 16, 16, 8),
    (2, 16, 10, 8),
    (10, 10, 10, 10),
    (256, 64, 8, 16),
    (1, 1, 1, 1),
    (3, 5, 7, 11),
]

SUITES: Dict[str, List[CaseRow]] = {
    "SimpleZeroNegativeSlope_NCHW": [CaseRow("nchw", "nchw", 0.0, 0.0, d) for d in _SIMPLE_SHAPES],
    "Simple_NCHW": [CaseRow("nchw", "nchw", 0.1, 0.0, d) for d in _SIMPLE_SHAPES],
    "Simple": [
        CaseRow("nchw", "nChw8c", 0.1, 0.0, (2, 8, 4, 4)),
        CaseRow("nChw8c", "nchw", 0.1, 0.0, (2, 16, 4, 4)),
        CaseRow("nchw", "nchw", 0.1, 0.0, (2, 16, 8, 8)),
        CaseRow("nChw8c", "nChw8c", 0.1, 0.0, (2, 16, 16, 8)),
        CaseRow("nhwc", "nchw", 0.1, 0.0, (2, 16, 10, 8)),
        CaseRow("nchw", "nhwc", 0.1, 0.0, (10, 10, 10, 10)),
    ],
    "AlexNet_NCHW": [
        CaseRow("nchw", "nchw", 0.0, 0.0, (2, 96, 55, 55)),
        CaseRow("nchw", "nchw", 0.0, 0.0, (2, 256, 27, 27)),
        CaseRow("nchw", "nchw", 0.0, 0.0, (2, 384, 13, 13)),
    ],
    "EdgeCases": [
        CaseRow("nchw", "nchw", 1.0, 0.0, (1, 1, 1, 1), kinds=(ActivationKind.ELU,)),
        CaseRow("nChw8c", "nChw16c", 0.0, 0.0, (2, 10, 3, 3), kinds=(ActivationKind.RELU,)),
        CaseRow("chwn", "nChw8c", 0.1, 0.0, (3, 12, 2, 5)),
    ],
}


def _case_seed(base: int, position: int) -> int:
    return (int(base) * 1_000_003 + position) & 0x7FFFFFFF


def expand_suite(name: str, *, seed: int = 0) -> List[TestCase]:
    rows = SUITES.get(name)
    if rows is None:
        raise EltwiseConfigError(f"unknown suite: {name!r} (known: {', '.join(sorted(SUITES))})")
    cases: List[TestCase] = []
    for row in rows:
        for kind in row.kinds:
            shape = TensorShape.from_dims(row.dims)
            cases.append(
                TestCase(
                    kind=kind,
                    params=ActivationParams(alpha=row.alpha, beta=row.beta),
                    shape=shape,
                    data_layout=row.data_layout,
                    diff_layout=row.diff_layout,
                    seed=_case_seed(seed, len(cases)),
                    name=f"{name}/{kind.value}/{row.data_layout}-{row.diff_layout}/a{row.alpha:g}/{shape}",
                )
            )
    return cases


def generate_cases(
    suites: Optional[Sequence[str]] = None,
    *,
    kinds: Optional[Iterable[ActivationKind | str]] = None,
    max_elems: Optional[int] = None,
    seed: int = 0,
) -> List[TestCase]:
    """
    Deterministic case list.

    - `suites`: suite names (default: all, in table order)
    - `kinds`: keep only these activation kinds
    - `max_elems`: drop cases whose tensors exceed this many logical elements
    """
    names = list(suites) if suites else list(SUITES)
    keep = None if kinds is None else {ActivationKind.parse(k) for k in kinds}
    out: List[TestCase] = []
    for name in names:
        for c in expand_suite(name, seed=seed):
            if keep is not None and c.kind not in keep:
                continue
            if max_elems is not None and c.shape.numel > int(max_elems):
                continue
            out.append(c)
    return out


__all__ = ["CaseRow", "SUITES", "expand_suite", "generate_cases"]
