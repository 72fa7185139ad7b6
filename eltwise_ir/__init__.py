from .types import (
    EltwiseConfigError,
    ActivationKind,
    ActivationParams,
    TensorShape,
    TensorDesc,
    Tensor,
    TestCase,
    SUPPORTED_DTYPES,
)

__all__ = [
    "EltwiseConfigError",
    "ActivationKind",
    "ActivationParams",
    "TensorShape",
    "TensorDesc",
    "Tensor",
    "TestCase",
    "SUPPORTED_DTYPES",
]
