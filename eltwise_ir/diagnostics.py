"""
Diagnostic utilities for eltwise verification reports.

Lightweight (no color dependencies) but supports:
  - structured per-element mismatch records with logical coordinates
  - the physical offset each tensor was read from (layout debugging)
  - multi-line formatting for terminal output
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class Mismatch:
    index: int
    coords: Tuple[int, int, int, int]
    expected: float
    actual: float
    abs_err: float
    offsets: Dict[str, int] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "index": int(self.index),
            "coords": [int(x) for x in self.coords],
            "expected": float(self.expected),
            "actual": float(self.actual),
            "abs_err": float(self.abs_err),
            "offsets": {k: int(v) for k, v in self.offsets.items()},
        }


def format_mismatch(m: Mismatch) -> str:
    n, c, h, w = m.coords
    where = ", ".join(f"{k}@{v}" for k, v in m.offsets.items())
    line = f"[{m.index}] (n={n}, c={c}, h={h}, w={w}): expected {m.expected:.9g}, got {m.actual:.9g} (|err|={m.abs_err:.3g})"
    if where:
        line += f" [{where}]"
    return line


def format_mismatches(phase: str, mismatches: Sequence[Mismatch], *, limit: int = 8) -> str:
    if not mismatches:
        return f"{phase}: ok"
    lines: List[str] = [f"{phase}: {len(mismatches)} mismatch(es)"]
    for m in mismatches[:limit]:
        lines.append(f"  {format_mismatch(m)}")
    if len(mismatches) > limit:
        lines.append(f"  ... {len(mismatches) - limit} more")
    return "\n".join(lines)


def closest_match(name: str, candidates: Iterable[str], *, n: int = 1) -> List[str]:
    return list(difflib.get_close_matches(str(name), list(candidates), n=n, cutoff=0.6))


__all__ = ["Mismatch", "format_mismatch", "format_mismatches", "closest_match"]
