"""
Engines bundled with the oracle (systems under test) and their layout mapper.
"""

from engines.layouts import BlockedLayoutMapper, default_mapper, pack, unpack
from engines.numpy_engine import NumpyEngine

__all__ = ["BlockedLayoutMapper", "default_mapper", "pack", "unpack", "NumpyEngine"]
