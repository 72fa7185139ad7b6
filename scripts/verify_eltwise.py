"""
Eltwise oracle sweep (thin wrapper over pipeline.cli).

Examples:
  python scripts/verify_eltwise.py --suite Simple
  python scripts/verify_eltwise.py --engine torch --max-elems 100000 --probes --json out.json
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pipeline.cli import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
