"""
Result writers for CLs scans.

Produces:
- CLS_RESULT.json: full scan result (NaN written as null)
- CLS_SCAN.csv: one row per grid point
- CLS_REPORT.md: human-readable summary
"""

import csv
import json
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..harness.scan import ScanResult, config_to_dict


SCAN_TABLE_COLUMNS = [
    "mu",
    "cls_exp",
    "cls_obs",
    "cls_exp_lo",
    "cls_exp_hi",
    "nllr_obs",
    "mean_nllr_b",
    "clsb_obs",
    "clb_obs",
    "degenerate",
]


def _clean(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def result_to_dict(result: ScanResult) -> Dict[str, Any]:
    return {
        "analysis": result.analysis.to_dict(),
        "config": config_to_dict(result.config),
        "limit_exp": _clean(result.limit_exp),
        "limit_obs": _clean(result.limit_obs),
        "n_degenerate": result.n_degenerate,
        "elapsed_sec": result.elapsed_sec,
        "meta": dict(result.meta),
        "points": [
            {
                "mu": p.mu,
                "cls_exp": _clean(p.cls_exp),
                "cls_obs": _clean(p.cls_obs),
                "cls_exp_band": [_clean(v) for v in p.cls_exp_band],
                "nllr_obs": _clean(p.nllr_obs),
                "mean_nllr_b": _clean(p.mean_nllr_b),
                "clsb_obs": p.clsb_obs,
                "clb_obs": p.clb_obs,
                "degenerate_exp": p.degenerate_exp,
                "degenerate_obs": p.degenerate_obs,
            }
            for p in result.points
        ],
    }


def scan_rows(result: ScanResult) -> List[Dict[str, Any]]:
    rows = []
    for p in result.points:
        rows.append({
            "mu": f"{p.mu:.6g}",
            "cls_exp": f"{p.cls_exp:.6g}",
            "cls_obs": f"{p.cls_obs:.6g}",
            "cls_exp_lo": f"{p.cls_exp_band[0]:.6g}",
            "cls_exp_hi": f"{p.cls_exp_band[1]:.6g}",
            "nllr_obs": f"{p.nllr_obs:.6g}",
            "mean_nllr_b": f"{p.mean_nllr_b:.6g}",
            "clsb_obs": f"{p.clsb_obs:.6g}",
            "clb_obs": f"{p.clb_obs:.6g}",
            "degenerate": int(p.degenerate),
        })
    return rows


def write_json(result: ScanResult, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result_to_dict(result), indent=2), encoding="utf-8")
    return path


def write_csv(result: ScanResult, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=SCAN_TABLE_COLUMNS)
        writer.writeheader()
        writer.writerows(scan_rows(result))
    return path


def render_report(result: ScanResult) -> str:
    def fmt(value: Optional[float], digits: int = 4) -> str:
        if value is None or not math.isfinite(value):
            return "n/a"
        return f"{value:.{digits}f}"

    cfg = result.config
    ana = result.analysis
    cl_pct = f"{100 * cfg.cl:.0f}%"

    lines = [
        f"# CLs scan: {ana.name}",
        "",
        f"Generated: {datetime.now(timezone.utc).isoformat()}",
        "",
        "## Inputs",
        f"- background = {ana.background}",
        f"- signal = {ana.signal}",
        f"- observed = {ana.observed}",
        "",
        "## Scan settings",
        f"- mu grid: {cfg.n_poi} points in [{cfg.mu_min}, {cfg.mu_max})",
        f"- toys per point: {cfg.n_toys}",
        f"- seed: {cfg.seed}",
        f"- degenerate-tail policy: {cfg.on_degenerate}",
        "",
        f"## Upper limits ({cl_pct} CL)",
        f"- expected: mu < {fmt(result.limit_exp, 3)}",
        f"- observed: mu < {fmt(result.limit_obs, 3)}",
        "",
        "## CLs vs mu",
        "",
        "| mu | CLs_exp | band lo | band hi | CLs_obs | NLLR_obs |",
        "|---:|---:|---:|---:|---:|---:|",
    ]
    for p in result.points:
        lines.append(
            f"| {p.mu:.3f} | {fmt(p.cls_exp)} | {fmt(p.cls_exp_band[0])} | "
            f"{fmt(p.cls_exp_band[1])} | {fmt(p.cls_obs)} | {fmt(p.nllr_obs, 3)} |"
        )

    if result.n_degenerate:
        lines.extend([
            "",
            f"**DEGENERATE_TAIL:** {result.n_degenerate} point(s) had no B-only toy "
            f"beyond the reference NLLR; CLs is reported as n/a there.",
        ])

    lines.extend([
        "",
        "CLs values are Monte Carlo estimates and are not clamped to [0, 1].",
    ])
    return "\n".join(lines) + "\n"


def write_outputs(result: ScanResult, outdir: Path) -> Dict[str, Path]:
    """Write JSON, CSV and Markdown outputs into outdir."""
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    report_path = outdir / "CLS_REPORT.md"
    report_path.write_text(render_report(result), encoding="utf-8")

    return {
        "json": write_json(result, outdir / "CLS_RESULT.json"),
        "csv": write_csv(result, outdir / "CLS_SCAN.csv"),
        "report": report_path,
    }
