from __future__ import annotations

import argparse
import csv
import glob
import math
import os
from dataclasses import dataclass
from typing import Dict, List, Tuple

REQUIRED = {"suite", "op", "n", "t", "warmup", "rep", "elapsed_ns", "payload_len_bytes"}


@dataclass(frozen=True)
class Row:
    suite: str
    op: str
    n: int
    t: int
    warmup: int
    rep: int
    elapsed_ns: int
    payload_len_bytes: int


def _read_rows(paths: List[str]) -> List[Row]:
    rows: List[Row] = []
    for p in paths:
        with open(p, "r", newline="") as f:
            r = csv.DictReader(f)
            missing = REQUIRED - set(r.fieldnames or [])
            if missing:
                raise ValueError(f"{p}: missing columns {sorted(missing)}")
            for d in r:
                rows.append(
                    Row(
                        suite=d["suite"],
                        op=d["op"],
                        n=int(d["n"]),
                        t=int(d["t"]),
                        warmup=int(d["warmup"]),
                        rep=int(d["rep"]),
                        elapsed_ns=int(d["elapsed_ns"]),
                        payload_len_bytes=int(d["payload_len_bytes"]),
                    )
                )
    return rows


def _percentile(sorted_vals: List[int], q: float) -> int:
    """Nearest-rank percentile, q in [0, 1]."""
    if not sorted_vals:
        raise ValueError("empty values")
    k = math.ceil(q * len(sorted_vals)) - 1
    return sorted_vals[max(0, min(k, len(sorted_vals) - 1))]


def _summarize(vals: List[int]) -> Dict[str, int]:
    s = sorted(vals)
    count = len(s)
    if count % 2:
        median = s[count // 2]
    else:
        median = int(round((s[count // 2 - 1] + s[count // 2]) / 2))
    return {
        "count": count,
        "mean_ns": int(round(sum(s) / count)),
        "median_ns": median,
        "p95_ns": _percentile(s, 0.95),
        "p99_ns": _percentile(s, 0.99),
        "min_ns": s[0],
        "max_ns": s[-1],
    }


def main() -> None:
    ap = argparse.ArgumentParser(description="Summarize raw issuer benchmark CSVs.")
    ap.add_argument("--in", dest="inputs", nargs="*", default=None, help="Input CSV files (else --glob).")
    ap.add_argument("--glob", dest="globpat", default="bench/outputs/*.csv")
    ap.add_argument("--out", dest="out", default="bench/outputs/summary.csv")
    ap.add_argument("--include-warmup", action="store_true")
    args = ap.parse_args()

    paths = args.inputs if args.inputs else sorted(
        p for p in glob.glob(args.globpat) if os.path.abspath(p) != os.path.abspath(args.out)
    )
    if not paths:
        raise SystemExit(f"No input CSVs found (inputs={args.inputs}, glob={args.globpat}).")

    rows = _read_rows(paths)
    if not args.include_warmup:
        rows = [x for x in rows if x.warmup == 0]

    # One group per (suite, op, n, t)
    groups: Dict[Tuple[str, str, int, int], List[Row]] = {}
    for x in rows:
        groups.setdefault((x.suite, x.op, x.n, x.t), []).append(x)

    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "w", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "suite",
                "op",
                "n",
                "t",
                "count",
                "mean_ns",
                "median_ns",
                "p95_ns",
                "p99_ns",
                "min_ns",
                "max_ns",
                "payload_len_bytes",
            ],
        )
        w.writeheader()
        for (suite, op, n, t), rs in sorted(groups.items()):
            stats = _summarize([r.elapsed_ns for r in rs])
            w.writerow(
                {
                    "suite": suite,
                    "op": op,
                    "n": n,
                    "t": t,
                    **stats,
                    "payload_len_bytes": max(r.payload_len_bytes for r in rs),
                }
            )

    print(f"Wrote: {args.out}")
    print(f"Inputs: {len(paths)} file(s); rows used: {len(rows)}; groups: {len(groups)}")


if __name__ == "__main__":
    main()
