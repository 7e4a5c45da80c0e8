"""
CLs toy harness.

Provides the Poisson counting model, toy ensembles, the CLs evaluator and
the POI scan driver.
"""

from .cls_core import (
    CLsError,
    DimensionMismatch,
    InvalidParameter,
    DegenerateTail,
    ClsValues,
    model_prediction,
    create_pseudodata,
    generate_toys,
    log_likelihood,
    poisson_likelihood,
    nllr,
    nllr_ensemble,
    build_ensemble,
    tail_fraction,
    compute_cls,
    compute_cls_components,
)
from .scan import ScanConfig, ScanPoint, ScanResult, run_scan, scan_cls, upper_limit
from .analysis_configs import AnalysisConfig, ANALYSIS_CONFIGS, get_analysis_config, list_analyses

__all__ = [
    'CLsError',
    'DimensionMismatch',
    'InvalidParameter',
    'DegenerateTail',
    'ClsValues',
    'model_prediction',
    'create_pseudodata',
    'generate_toys',
    'log_likelihood',
    'poisson_likelihood',
    'nllr',
    'nllr_ensemble',
    'build_ensemble',
    'tail_fraction',
    'compute_cls',
    'compute_cls_components',
    'ScanConfig',
    'ScanPoint',
    'ScanResult',
    'run_scan',
    'scan_cls',
    'upper_limit',
    'AnalysisConfig',
    'ANALYSIS_CONFIGS',
    'get_analysis_config',
    'list_analyses',
]
