"""
cls_toys - Monte Carlo CLs limits for binned counting experiments.

This package provides tools for:
- Building background + mu * signal predictions
- Drawing Poisson pseudo-experiments with explicit, seedable generators
- Evaluating the NLLR test statistic and CLs = CLs+b / CLb
- Scanning CLs over the signal strength in parallel and extracting limits
- Writing JSON / CSV / Markdown results and CLs plots

Usage:
    python -m cls_toys scan --analysis five_bin_example
    python -m cls_toys scan --config configs/example_scan.yaml --plot
    python -m cls_toys analyses
    python -m cls_toys validate --config configs/example_scan.yaml
"""

__version__ = "0.1.0"

from .harness import (
    CLsError,
    DimensionMismatch,
    InvalidParameter,
    DegenerateTail,
    model_prediction,
    create_pseudodata,
    poisson_likelihood,
    nllr,
    build_ensemble,
    compute_cls,
    scan_cls,
    run_scan,
    upper_limit,
    ScanConfig,
    ScanResult,
    AnalysisConfig,
)
from .config import load_config, validate_config, ConfigError

__all__ = [
    "CLsError",
    "DimensionMismatch",
    "InvalidParameter",
    "DegenerateTail",
    "model_prediction",
    "create_pseudodata",
    "poisson_likelihood",
    "nllr",
    "build_ensemble",
    "compute_cls",
    "scan_cls",
    "run_scan",
    "upper_limit",
    "ScanConfig",
    "ScanResult",
    "AnalysisConfig",
    "load_config",
    "validate_config",
    "ConfigError",
]
