import numpy as np
import pytest

from eltwise_ir.types import (
    ActivationKind,
    ActivationParams,
    EltwiseConfigError,
    Tensor,
    TensorDesc,
    TensorShape,
    TestCase,
)
from engines.layouts import BlockedLayoutMapper, pack
from engines.numpy_engine import NumpyEngine
from verify import reference_math
from verify.diff_runner import Episode, check_backward, check_forward, run_case
from verify.gen_cases import generate_cases
from verify.tolerances import Tolerances


MAPPER = BlockedLayoutMapper()


def _logical(shape, seed=0, low=0.0, high=1.0):
    rng = np.random.default_rng(seed)
    return (rng.random(shape.numel, dtype=np.float32) * np.float32(high - low) + np.float32(low)).astype(np.float32)


def _expected_fwd(kind, params, s):
    return np.asarray(reference_math.forward(kind, params, s), dtype=np.float32)


def test_relu_2x8x4x4_same_layout_passes():
    case = TestCase(
        kind=ActivationKind.RELU,
        params=ActivationParams(alpha=0.1, beta=0.0),
        shape=TensorShape(2, 8, 4, 4),
        data_layout="nchw",
        diff_layout="nchw",
        seed=7,
    )
    rep = run_case(case, NumpyEngine())
    assert rep.ok
    assert rep.forward.ok and rep.forward.checked == 256 and rep.forward.mismatches == []
    assert rep.backward.ok and rep.backward.checked == 256 and rep.backward.mismatches == []


def test_elu_single_element_zero_boundary():
    case = TestCase(ActivationKind.ELU, ActivationParams(alpha=1.0), TensorShape(1, 1, 1, 1))
    ep = Episode(
        case=case,
        engine=NumpyEngine(),
        mapper=MAPPER,
        src_values=np.zeros(1, dtype=np.float32),
        diff_dst_values=np.full(1, 0.5, dtype=np.float32),
    )
    fwd = ep.run_forward()
    bwd = ep.run_backward()
    assert fwd.ok and bwd.ok
    assert float(ep.dst.data[0]) == 0.0
    assert float(ep.diff_src.data[0]) == pytest.approx(0.5)


def test_forward_with_different_layouts_translates_each_tensor():
    shape = TensorShape(2, 16, 4, 4)
    kind, p = ActivationKind.TANH, ActivationParams()
    s = _logical(shape, low=-1.0)
    src = pack(TensorDesc.of(shape, "nChw8c"), s)
    dst = pack(TensorDesc.of(shape, "nhwc"), _expected_fwd(kind, p, s))
    res = check_forward(kind, p, src, dst, MAPPER)
    assert res.ok, res.summary


def test_single_corrupted_element_reports_exactly_that_index():
    shape = TensorShape(2, 8, 4, 4)
    kind, p = ActivationKind.RELU, ActivationParams(alpha=0.1)
    s = _logical(shape)
    src = pack(TensorDesc.of(shape, "nchw"), s)
    dst = pack(TensorDesc.of(shape, "nhwc"), _expected_fwd(kind, p, s))
    bad = 137
    dst.data[MAPPER.physical_offset(dst.desc, bad)] += np.float32(0.25)
    res = check_forward(kind, p, src, dst, MAPPER)
    assert not res.ok
    assert [m.index for m in res.mismatches] == [bad]
    m = res.mismatches[0]
    assert m.coords == shape.unravel(bad)
    assert m.abs_err == pytest.approx(0.25, abs=1e-6)
    assert m.offsets["dst"] == MAPPER.physical_offset(dst.desc, bad)
    assert res.first_bad_index == bad
    assert "1 mismatch(es) in forward" in res.summary


def test_mismatches_accumulate_over_whole_tensor():
    shape = TensorShape(3, 5, 7, 11)
    kind, p = ActivationKind.ELU, ActivationParams(alpha=0.1)
    s = _logical(shape, low=-1.0)
    src = pack(TensorDesc.of(shape, "nchw"), s)
    dst = pack(TensorDesc.of(shape, "nchw"), _expected_fwd(kind, p, s))
    bad = [0, 500, shape.numel - 1]
    for i in bad:
        dst.data[i] = np.float32(42.0)
    res = check_forward(kind, p, src, dst, MAPPER)
    assert [m.index for m in res.mismatches] == bad
    assert res.checked == shape.numel


def test_backward_with_three_layouts():
    shape = TensorShape(2, 10, 3, 3)
    kind, p = ActivationKind.ELU, ActivationParams(alpha=0.5)
    s = _logical(shape, seed=1, low=-1.0)
    dd = _logical(shape, seed=2)
    ds = np.asarray(reference_math.backward(kind, p, dd, s), dtype=np.float32)
    src = pack(TensorDesc.of(shape, "nChw8c"), s)
    diff_dst = pack(TensorDesc.of(shape, "nhwc"), dd)
    diff_src = pack(TensorDesc.of(shape, "chwn"), ds)
    res = check_backward(kind, p, src, diff_dst, diff_src, MAPPER)
    assert res.ok, res.summary


def test_backward_detects_mislabelled_gradient_layout():
    shape = TensorShape(2, 4, 3, 3)
    kind, p = ActivationKind.TANH, ActivationParams()
    s = _logical(shape, seed=3)
    dd = _logical(shape, seed=4)
    ds = np.asarray(reference_math.backward(kind, p, dd, s), dtype=np.float32)
    src = pack(TensorDesc.of(shape, "nchw"), s)
    diff_dst = pack(TensorDesc.of(shape, "nchw"), dd)
    written = pack(TensorDesc.of(shape, "nhwc"), ds)
    # Same bytes, wrong declared layout.
    diff_src = Tensor(desc=TensorDesc.of(shape, "nchw"), data=written.data)
    res = check_backward(kind, p, src, diff_dst, diff_src, MAPPER)
    assert not res.ok


def test_nan_output_is_a_mismatch():
    shape = TensorShape(1, 2, 2, 2)
    kind, p = ActivationKind.RELU, ActivationParams()
    s = _logical(shape)
    src = pack(TensorDesc.of(shape, "nchw"), s)
    dst = pack(TensorDesc.of(shape, "nchw"), _expected_fwd(kind, p, s))
    dst.data[3] = np.nan
    res = check_forward(kind, p, src, dst, MAPPER)
    assert [m.index for m in res.mismatches] == [3]
    assert res.max_abs_err == float("inf")


def test_custom_mapper_is_injected():
    class ReversedMapper:
        def physical_offset(self, desc, logical_index):
            n, c, h, w = desc.dims
            if desc.layout == "reversed":
                return n * c * h * w - 1 - int(logical_index)
            return int(logical_index)

    shape = TensorShape(1, 3, 2, 2)
    kind, p = ActivationKind.RELU, ActivationParams(alpha=0.2)
    s = _logical(shape, low=-1.0)
    y = _expected_fwd(kind, p, s)
    src = Tensor(TensorDesc.of(shape, "reversed"), np.ascontiguousarray(s[::-1]))
    dst = Tensor(TensorDesc.of(shape, "reversed"), np.ascontiguousarray(y[::-1]))
    assert check_forward(kind, p, src, dst, ReversedMapper()).ok
    # Reading the reversed buffer as plain nchw must fail.
    plain = Tensor(TensorDesc.of(shape, "nchw"), dst.data)
    assert not check_forward(kind, p, src, plain, ReversedMapper()).ok


def test_tolerance_override():
    shape = TensorShape(1, 1, 2, 2)
    kind, p = ActivationKind.RELU, ActivationParams()
    s = _logical(shape)
    src = pack(TensorDesc.of(shape, "nchw"), s)
    dst = pack(TensorDesc.of(shape, "nchw"), _expected_fwd(kind, p, s) + np.float32(1e-4))
    assert not check_forward(kind, p, src, dst, MAPPER).ok
    assert check_forward(kind, p, src, dst, MAPPER, atol=1e-3).ok


def test_config_faults_raise():
    shape = TensorShape(1, 2, 2, 2)
    kind, p = ActivationKind.RELU, ActivationParams()
    src = pack(TensorDesc.of(shape, "nchw"), _logical(shape))
    good = pack(TensorDesc.of(shape, "nchw"), _logical(shape))

    f64 = Tensor(desc=TensorDesc(dims=shape.dims, dtype="f64"), data=good.data.astype(np.float64))
    with pytest.raises(EltwiseConfigError):
        check_forward(kind, p, src, f64, MAPPER)

    wrong_buf = Tensor(desc=good.desc, data=good.data.astype(np.float64))
    with pytest.raises(EltwiseConfigError):
        check_forward(kind, p, src, wrong_buf, MAPPER)

    flat = Tensor(desc=TensorDesc(dims=(8,)), data=good.data)
    with pytest.raises(EltwiseConfigError):
        check_forward(kind, p, flat, good, MAPPER)

    other = pack(TensorDesc.of(TensorShape(1, 2, 2, 1), "nchw"), np.zeros(4, dtype=np.float32))
    with pytest.raises(EltwiseConfigError):
        check_backward(kind, p, src, good, other, MAPPER)

    with pytest.raises(EltwiseConfigError):
        check_forward("gelu", p, src, good, MAPPER)


def test_short_buffer_is_a_config_fault():
    shape = TensorShape(1, 2, 2, 2)
    src = pack(TensorDesc.of(shape, "nchw"), _logical(shape))
    short = Tensor(desc=TensorDesc.of(shape, "nchw"), data=np.zeros(4, dtype=np.float32))
    with pytest.raises(EltwiseConfigError):
        check_forward(ActivationKind.RELU, ActivationParams(), src, short, MAPPER)


def test_negative_offset_is_reported_as_such():
    class ShiftedMapper:
        def physical_offset(self, desc, logical_index):
            return int(logical_index) - 3

    shape = TensorShape(1, 2, 2, 2)
    src = pack(TensorDesc.of(shape, "nchw"), _logical(shape))
    with pytest.raises(EltwiseConfigError, match="negative offset -3"):
        check_forward(ActivationKind.RELU, ActivationParams(), src, src, ShiftedMapper())


def test_bulk_offsets_are_used_when_the_mapper_has_them():
    calls = []

    class CountingMapper(BlockedLayoutMapper):
        def physical_offset(self, desc, logical_index):
            calls.append(logical_index)
            return BlockedLayoutMapper.physical_offset(self, desc, logical_index)

    shape = TensorShape(2, 10, 3, 3)
    kind, p = ActivationKind.ELU, ActivationParams(alpha=0.5)
    s = _logical(shape, low=-1.0)
    src = pack(TensorDesc.of(shape, "nChw8c"), s, MAPPER)
    dst = pack(TensorDesc.of(shape, "nhwc"), _expected_fwd(kind, p, s), MAPPER)
    assert check_forward(kind, p, src, dst, CountingMapper()).ok
    assert calls == []


def test_bulk_offsets_of_wrong_length_are_a_config_fault():
    class TruncatingMapper(BlockedLayoutMapper):
        def offsets(self, desc):
            return BlockedLayoutMapper.offsets(self, desc)[:-1]

    shape = TensorShape(1, 2, 2, 2)
    src = pack(TensorDesc.of(shape, "nchw"), _logical(shape))
    with pytest.raises(EltwiseConfigError, match="7 offsets for 8 elements"):
        check_forward(ActivationKind.RELU, ActivationParams(), src, src, TruncatingMapper())


def test_backward_requires_forward_first():
    case = TestCase(ActivationKind.TANH, ActivationParams(), TensorShape(1, 1, 2, 2))
    ep = Episode(case=case, engine=NumpyEngine(), mapper=MAPPER)
    with pytest.raises(RuntimeError):
        ep.run_backward()


def test_forward_input_is_read_only_across_phases():
    case = TestCase(ActivationKind.RELU, ActivationParams(alpha=0.1), TensorShape(1, 2, 2, 2))
    ep = Episode(case=case, engine=NumpyEngine(), mapper=MAPPER)
    ep.run_forward()
    before = np.array(ep.src.data, copy=True)
    with pytest.raises(ValueError):
        ep.src.data[0] = 1.0
    ep.run_backward()
    assert np.array_equal(ep.src.data, before)
    assert ep.report().ok


def test_explicit_tolerances_object():
    case = TestCase(ActivationKind.TANH, ActivationParams(), TensorShape(1, 2, 3, 3), "nhwc", "nChw8c", seed=3)
    rep = run_case(case, NumpyEngine(), tolerances=Tolerances(atol=1e-5))
    assert rep.ok


@pytest.mark.parametrize("case", generate_cases(["Simple", "EdgeCases"], max_elems=20000), ids=lambda c: c.label)
def test_numpy_engine_passes_mixed_layout_suites(case):
    rep = run_case(case, NumpyEngine())
    assert rep.ok, (rep.forward.summary, rep.backward.summary)
