from __future__ import annotations

import argparse
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.patches import Patch

plt.rcParams.update({
    "font.size": 11,
    "axes.titlesize": 12,
    "axes.labelsize": 11,
    "legend.fontsize": 10,
    "xtick.labelsize": 10,
    "ytick.labelsize": 10,
})

OUT_DIR = "bench/figures"

OP_ORDER = ["IKGen", "UKGen", "UKVerify", "Groth16Verify"]
STAT_HATCHES = {"median": "///", "p95": "\\\\\\", "p99": "xx"}


def ns_to_ms(ns: float) -> float:
    return ns / 1e6


def _load_summary(path: str) -> pd.DataFrame:
    df = pd.read_csv(path)
    for col in ("mean_ns", "median_ns", "p95_ns", "p99_ns"):
        df[col.replace("_ns", "_ms")] = df[col].apply(ns_to_ms)
    return df


def _save(fig, stem: str) -> None:
    os.makedirs(OUT_DIR, exist_ok=True)
    pdf_path = os.path.join(OUT_DIR, f"{stem}.pdf")
    png_path = os.path.join(OUT_DIR, f"{stem}.png")
    fig.savefig(pdf_path)
    fig.savefig(png_path, dpi=300)
    plt.close(fig)
    print(f"[{stem}] Saved to {pdf_path} and {png_path}")


def _hatch_containers(ax: plt.Axes, labels: list[str]) -> None:
    # One bar container per plotted column
    for cont, label in zip(ax.containers, labels):
        for p in cont.patches:
            p.set_hatch(STAT_HATCHES.get(label, ""))
            p.set_edgecolor("black")
            p.set_linewidth(0.8)
    handles = [
        Patch(facecolor="white", edgecolor="black", hatch=STAT_HATCHES.get(l, ""), label=l)
        for l in labels
    ]
    ax.legend(handles=handles, frameon=False)


def _single_party_ops(df: pd.DataFrame) -> pd.DataFrame:
    sub = df[df["op"].isin(OP_ORDER)].copy()
    sub["op"] = pd.Categorical(sub["op"], categories=OP_ORDER, ordered=True)
    return sub.sort_values("op").set_index("op")


def plot_fig1_issuance_cost(df: pd.DataFrame) -> None:
    sub = _single_party_ops(df)
    if sub.empty:
        return
    fig, ax = plt.subplots(figsize=(6.5, 3.8))
    sub["mean_ms"].plot(kind="bar", ax=ax, width=0.6, color="white", edgecolor="black", hatch="///")

    ax.set_ylabel("Latency (ms)")
    ax.set_xlabel("")
    ax.set_title("Cost of Issuance Operations (Mean)")
    ax.grid(axis="y", linestyle="--", linewidth=0.5, alpha=0.7)
    fig.tight_layout()
    _save(fig, "fig1_issuance_cost")


def plot_fig2_tail_latency(df: pd.DataFrame) -> None:
    sub = _single_party_ops(df)
    if sub.empty:
        return
    cols = {"median_ms": "median", "p95_ms": "p95", "p99_ms": "p99"}
    fig, ax = plt.subplots(figsize=(6.5, 3.8))
    sub[list(cols)].rename(columns=cols).plot(kind="bar", ax=ax, width=0.75)

    ax.set_ylabel("Latency (ms)")
    ax.set_xlabel("")
    ax.set_title("Tail Latency of Issuance Operations")
    ax.grid(axis="y", linestyle="--", linewidth=0.5, alpha=0.7)
    _hatch_containers(ax, list(cols.values()))
    fig.tight_layout()
    _save(fig, "fig2_tail_latency")


def plot_fig3_dkg_round(df: pd.DataFrame) -> None:
    """DKG round latency against the number of issuers, one line per threshold."""
    sub = df[df["op"] == "DKGRound"].sort_values("n")
    if sub.empty:
        return
    fig, ax = plt.subplots(figsize=(6.5, 3.8))
    markers = ["o", "s", "^", "D"]
    for i, (t, rows) in enumerate(sub.groupby("t")):
        ax.plot(
            rows["n"],
            rows["median_ms"],
            linestyle="-",
            marker=markers[i % len(markers)],
            markerfacecolor="none",
            markeredgecolor="black",
            color="black",
            label=f"t = {t}",
        )
    ax.set_xlabel("Issuers (n)")
    ax.set_ylabel("Round latency, median (ms)")
    ax.set_title("Threshold DKG Round (in-process transport)")
    ax.legend(frameon=False)
    ax.grid(True, linestyle="--", linewidth=0.5, alpha=0.7)
    fig.tight_layout()
    _save(fig, "fig3_dkg_round")


def plot_fig4_issuance_throughput_model(df: pd.DataFrame) -> None:
    """
    Model-based throughput of the issuance endpoint.

    Per request the issuer runs one Groth16 check and one UKGen; with w
    worker threads and no GIL contention the ceiling is w / (t_verify + t_ukgen).
    """
    sub = _single_party_ops(df)
    if "Groth16Verify" not in sub.index or "UKGen" not in sub.index:
        return
    per_request_s = (sub.loc["Groth16Verify", "mean_ms"] + sub.loc["UKGen", "mean_ms"]) / 1e3
    workers = np.array([1, 2, 4, 8, 16, 32], dtype=float)

    fig, ax = plt.subplots(figsize=(6.5, 3.8))
    ax.plot(workers, workers / per_request_s, linestyle="--", marker="o",
            markerfacecolor="none", markeredgecolor="black", color="black")
    ax.set_xscale("log", base=2)
    ax.set_xlabel("Worker threads")
    ax.set_ylabel("Issued keys per second (upper bound)")
    ax.set_title("Issuance Throughput Model")
    ax.grid(True, which="both", linestyle="--", linewidth=0.5, alpha=0.7)
    fig.tight_layout()
    _save(fig, "fig4_issuance_throughput_model")


def main() -> None:
    ap = argparse.ArgumentParser(description="Figures from an aggregated benchmark summary.")
    ap.add_argument("--summary", default="bench/outputs/summary.csv")
    args = ap.parse_args()

    df = _load_summary(args.summary)
    plot_fig1_issuance_cost(df)
    plot_fig2_tail_latency(df)
    plot_fig3_dkg_round(df)
    plot_fig4_issuance_throughput_model(df)


if __name__ == "__main__":
    main()
