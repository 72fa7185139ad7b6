from __future__ import annotations

import pytest

try:
    import torch
except Exception:
    torch = None

from eltwise_ir.types import ActivationKind, ActivationParams, TensorShape, TestCase
from verify.diff_runner import run_case
from verify.gen_cases import generate_cases
from verify.numerical_stability import run_numerical_stability_suite


pytestmark = pytest.mark.skipif(torch is None, reason="torch not installed")


def _engine():
    from engines.torch_engine import TorchEngine

    return TorchEngine()


@pytest.mark.parametrize("case", generate_cases(["Simple", "EdgeCases"], max_elems=5000), ids=lambda c: c.label)
def test_torch_engine_passes(case):
    rep = run_case(case, _engine())
    assert rep.ok, (rep.forward.summary, rep.backward.summary)


@pytest.mark.parametrize("kind", list(ActivationKind))
def test_torch_engine_edge_values(kind):
    case = TestCase(kind, ActivationParams(alpha=0.1), TensorShape(2, 8, 3, 3), "nhwc", "nChw8c", seed=4)
    rep = run_numerical_stability_suite(case, _engine())
    assert rep.ok, rep.to_json_dict()
