"""
Command-line sweep: enumerate cases, run them against an engine, report.

Text output goes to stdout; `--json PATH` writes the full report instead.
Exit status is 0 only when every case (and every requested extra check)
passed.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from eltwise_ir.diagnostics import format_mismatches
from eltwise_ir.types import ActivationKind
from pipeline import registry
from pipeline.run import run_suite
from verify.diff_runner import CaseReport
from verify.gen_cases import SUITES, generate_cases
from verify.metamorphic import run_layout_invariance
from verify.mutation import run_mutation_kill
from verify.numerical_stability import run_numerical_stability_suite
from verify.tolerances import default_tolerances


def _print_table(title: str, rows: List[List[str]]) -> None:
    if not rows:
        print(f"{title}: (no data)")
        return
    widths = [max(len(r[i]) for r in rows) for i in range(len(rows[0]))]
    print(title)
    for r in rows:
        print("  " + "  ".join(r[i].ljust(widths[i]) for i in range(len(r))))


def _print_case(rep: CaseReport, *, verbose: bool) -> None:
    status = rep.status.upper()
    print(f"[{status:5}] {rep.case.label}")
    if rep.status == "fault":
        print(f"        {rep.error}")
        return
    if rep.ok and not verbose:
        return
    for phase in (rep.forward, rep.backward):
        if phase is None:
            continue
        text = format_mismatches(phase.phase, phase.mismatches, limit=4)
        print("\n".join("        " + line for line in text.splitlines()))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Verify eltwise forward/backward of an engine against reference math.")
    ap.add_argument("--engine", default=None, help=f"engine name (default: ${registry.ENV_ENGINE} or numpy)")
    ap.add_argument("--suite", action="append", choices=sorted(SUITES), help="suite(s) to run (default: all)")
    ap.add_argument("--kind", action="append", choices=[k.value for k in ActivationKind], help="activation kind(s)")
    ap.add_argument("--max-elems", type=int, default=None, help="skip cases with more logical elements")
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--atol", type=float, default=None, help="absolute tolerance (default 1e-6)")
    ap.add_argument("--probes", action="store_true", help="also run edge-value probes per case")
    ap.add_argument(
        "--layout-invariance",
        nargs="*",
        default=None,
        metavar="LAYOUT",
        help="also re-run each case under every pair of these layouts",
    )
    ap.add_argument("--mutation", action="store_true", help="also run the fault-injection kill harness per case")
    ap.add_argument("--max-report", type=int, default=16, help="mismatches kept per phase in the JSON report")
    ap.add_argument("--json", default=None, help="write report JSON to this path (otherwise print text)")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    try:
        engine = registry.get(args.engine)
    except KeyError as e:
        ap.error(str(e.args[0]))
    except ImportError as e:
        ap.error(f"engine {args.engine or registry.default_engine_name()!r} is unavailable: {e}")
    tol = default_tolerances(atol=args.atol) if args.atol is not None else None
    cases = generate_cases(args.suite, kinds=args.kind, max_elems=args.max_elems, seed=args.seed)

    on_case = None if args.json else (lambda r: _print_case(r, verbose=args.verbose))
    suite = run_suite(cases, engine, tolerances=tol, on_case=on_case)
    ok = suite.ok
    out: Dict[str, Any] = {"suite": suite.to_json_dict(max_report=args.max_report)}

    # Extra checks only make sense for cases that ran cleanly.
    clean = [r.case for r in suite.cases if r.ok]
    if args.probes:
        reps = [run_numerical_stability_suite(c, engine, tolerances=tol) for c in clean]
        out["probes"] = [r.to_json_dict() for r in reps]
        ok = ok and all(r.ok for r in reps)
    if args.layout_invariance is not None:
        layouts = args.layout_invariance or ["nchw", "nhwc", "nChw8c"]
        reps = [run_layout_invariance(c, engine, layouts, tolerances=tol) for c in clean]
        out["layout_invariance"] = [r.to_json_dict() for r in reps]
        ok = ok and all(r.ok for r in reps)
    if args.mutation:
        reps = [run_mutation_kill(c, engine, tolerances=tol) for c in clean]
        out["mutation"] = [r.to_json_dict() for r in reps]

    out["ok"] = bool(ok)
    if args.json:
        Path(args.json).write_text(json.dumps(out, indent=2), encoding="utf-8")
        print(args.json)
        return 0 if ok else 1

    counts = suite.counts
    _print_table(
        f"Engine {suite.engine}",
        [["pass", "fail", "fault", "total"], [str(counts["pass"]), str(counts["fail"]), str(counts["fault"]), str(len(suite.cases))]],
    )
    for key, title in (("probes", "Edge-value probes"), ("layout_invariance", "Layout invariance")):
        if key in out:
            rows = [["case", "ok"]] + [[r["case"], str(r["ok"])] for r in out[key] if not r["ok"]]
            _print_table(f"{title}: {sum(1 for r in out[key] if r['ok'])}/{len(out[key])} ok", rows)
    if "mutation" in out:
        rows = [["case", "killed/total"]] + [[r["case"], f"{r['killed']}/{r['total']}"] for r in out["mutation"]]
        _print_table("Mutation kill", rows)
    return 0 if ok else 1


__all__ = ["build_parser", "main"]
