from eltwise_ir.types import ActivationKind, ActivationParams, TensorShape, TestCase
from engines.layouts import LAYOUTS
from engines.numpy_engine import NumpyEngine
from verify.metamorphic import run_layout_invariance
from verify.mutation import MutantEngine


def test_verdict_is_layout_invariant_for_correct_engine():
    case = TestCase(ActivationKind.ELU, ActivationParams(alpha=0.1), TensorShape(2, 10, 3, 4), seed=5)
    rep = run_layout_invariance(case, NumpyEngine(), sorted(LAYOUTS))
    assert rep.ok
    assert len(rep.verdicts) == len(LAYOUTS) ** 2
    assert {v.status for v in rep.verdicts} == {"pass"}


def test_layout_dependent_bug_flips_verdict():
    class NhwcOnlyBug(MutantEngine):
        def forward(self, kind, params, src, dst_layout):
            if dst_layout == "nhwc":
                return MutantEngine.forward(self, kind, params, src, dst_layout)
            return self.base.forward(kind, params, src, dst_layout)

    case = TestCase(ActivationKind.TANH, ActivationParams(), TensorShape(1, 3, 2, 2), seed=1)
    engine = NhwcOnlyBug(NumpyEngine(), "corrupt_dst", corrupt_index=4)
    rep = run_layout_invariance(case, engine, ["nchw", "nhwc"])
    assert not rep.ok
    by_pair = {(v.data_layout, v.diff_layout): v.status for v in rep.verdicts}
    assert by_pair[("nchw", "nchw")] == "pass"
    assert by_pair[("nhwc", "nchw")] == "fail"
