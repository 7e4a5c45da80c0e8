"""
Scan configuration loading and validation.

Handles:
- Loading analysis + scan settings from YAML
- Schema validation (all problems are collected before failing)
- Resolving built-in analysis names
"""

import numbers
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .harness.analysis_configs import AnalysisConfig, get_analysis_config, list_analyses
from .harness.scan import DEGENERATE_POLICIES, ScanConfig


class ConfigError(ValueError):
    """Raised when a scan configuration fails validation."""

    def __init__(self, errors: List[str], source: str = "config"):
        self.errors = list(errors)
        self.source = source
        super().__init__(f"Invalid {source}: " + "; ".join(self.errors))


REQUIRED_ANALYSIS_KEYS = {"background", "signal", "observed"}
OPTIONAL_ANALYSIS_KEYS = {"name", "notes"}

SCAN_KEYS = {
    "n_poi",
    "mu_min",
    "mu_max",
    "n_toys",
    "seed",
    "n_workers",
    "on_degenerate",
    "cl",
    "band_quantiles",
}


def get_default_config_path() -> Path:
    """Path to the example scan configuration shipped with the repository."""
    return Path(__file__).parent.parent / "configs" / "example_scan.yaml"


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _validate_vector(name: str, value: Any, non_negative: bool) -> List[str]:
    if not isinstance(value, list) or not value:
        return [f"analysis.{name} must be a non-empty list of numbers"]
    if not all(_is_number(v) for v in value):
        return [f"analysis.{name} must contain only numbers"]
    if non_negative and any(v < 0 for v in value):
        return [f"analysis.{name} must be non-negative"]
    return []


def _validate_analysis(analysis: Any) -> List[str]:
    if isinstance(analysis, str):
        if analysis.strip().lower() not in list_analyses():
            return [f"Unknown analysis '{analysis}'. Available: {', '.join(list_analyses())}"]
        return []
    if not isinstance(analysis, dict):
        return ["analysis must be a built-in name or a mapping"]

    errors = []
    missing = REQUIRED_ANALYSIS_KEYS - set(analysis)
    if missing:
        errors.append(f"analysis is missing required keys: {sorted(missing)}")
    unknown = set(analysis) - REQUIRED_ANALYSIS_KEYS - OPTIONAL_ANALYSIS_KEYS
    if unknown:
        errors.append(f"analysis has unknown keys: {sorted(unknown)}")

    vector_errors = []
    for key, non_negative in (("background", True), ("signal", False), ("observed", True)):
        if key in analysis:
            vector_errors.extend(_validate_vector(key, analysis[key], non_negative))
    errors.extend(vector_errors)

    if not missing and not vector_errors:
        lengths = {k: len(analysis[k]) for k in ("background", "signal", "observed")}
        if len(set(lengths.values())) > 1:
            errors.append(f"analysis vectors must have equal length, got {lengths}")
    return errors


def _validate_scan(scan: Any) -> List[str]:
    if scan is None:
        return []
    if not isinstance(scan, dict):
        return ["scan must be a mapping"]

    errors = []
    unknown = set(scan) - SCAN_KEYS
    if unknown:
        errors.append(f"scan has unknown keys: {sorted(unknown)}")

    for key in ("n_poi", "n_toys"):
        if key in scan and (not _is_int(scan[key]) or scan[key] <= 0):
            errors.append(f"scan.{key} must be a positive integer")
    if "seed" in scan and (not _is_int(scan["seed"]) or scan["seed"] < 0):
        errors.append("scan.seed must be a non-negative integer")
    if scan.get("n_workers") is not None and (not _is_int(scan["n_workers"]) or scan["n_workers"] <= 0):
        errors.append("scan.n_workers must be null or a positive integer")

    for key in ("mu_min", "mu_max", "cl"):
        if key in scan and not _is_number(scan[key]):
            errors.append(f"scan.{key} must be a number")
    defaults = ScanConfig()
    mu_min = scan.get("mu_min", defaults.mu_min)
    mu_max = scan.get("mu_max", defaults.mu_max)
    if _is_number(mu_min) and _is_number(mu_max) and not mu_max > mu_min:
        errors.append(f"scan.mu_max ({mu_max}) must be greater than scan.mu_min ({mu_min})")
    if _is_number(scan.get("cl", defaults.cl)) and not 0.0 < scan.get("cl", defaults.cl) < 1.0:
        errors.append("scan.cl must be in (0, 1)")

    if "on_degenerate" in scan and scan["on_degenerate"] not in DEGENERATE_POLICIES:
        errors.append(f"scan.on_degenerate must be one of {list(DEGENERATE_POLICIES)}")

    if "band_quantiles" in scan:
        bq = scan["band_quantiles"]
        if (not isinstance(bq, list) or len(bq) != 2 or not all(_is_number(q) for q in bq)
                or not 0.0 <= bq[0] < bq[1] <= 1.0):
            errors.append("scan.band_quantiles must be [lo, hi] with 0 <= lo < hi <= 1")
    return errors


def validate_config(raw: Any) -> List[str]:
    """
    Validate a parsed configuration.

    Returns:
        List of error messages (empty if valid)
    """
    if not isinstance(raw, dict):
        return ["Top-level configuration must be a mapping"]

    errors = []
    unknown = set(raw) - {"analysis", "scan"}
    if unknown:
        errors.append(f"Unknown top-level keys: {sorted(unknown)}")
    if "analysis" not in raw:
        errors.append("Missing required section 'analysis'")
    else:
        errors.extend(_validate_analysis(raw["analysis"]))
    errors.extend(_validate_scan(raw.get("scan")))
    return errors


def build_analysis(analysis: Any) -> AnalysisConfig:
    if isinstance(analysis, str):
        return get_analysis_config(analysis)
    return AnalysisConfig(
        name=str(analysis.get("name", "custom")),
        background=[float(v) for v in analysis["background"]],
        signal=[float(v) for v in analysis["signal"]],
        observed=[float(v) for v in analysis["observed"]],
        notes=str(analysis.get("notes", "")),
    )


def build_scan_config(scan: Optional[Dict[str, Any]],
                      overrides: Optional[Dict[str, Any]] = None) -> ScanConfig:
    """Scan settings from the YAML section, with non-None overrides applied on top."""
    values = dict(scan or {})
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value
    if "band_quantiles" in values:
        values["band_quantiles"] = tuple(float(q) for q in values["band_quantiles"])
    for key in ("mu_min", "mu_max", "cl"):
        if key in values:
            values[key] = float(values[key])
    return ScanConfig(**values)


def parse_config(raw: Any, source: str = "config",
                 overrides: Optional[Dict[str, Any]] = None) -> Tuple[AnalysisConfig, ScanConfig]:
    errors = validate_config(raw)
    if errors:
        raise ConfigError(errors, source)
    return build_analysis(raw["analysis"]), build_scan_config(raw.get("scan"), overrides)


def load_raw_config(path: Path) -> Any:
    """
    Read a YAML file.

    Raises:
        ConfigError: if the file cannot be read or is not valid YAML
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise ConfigError([f"Cannot read file: {e.strerror or e}"], str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigError([f"Malformed YAML: {e}"], str(path)) from e


def load_config(path: Path,
                overrides: Optional[Dict[str, Any]] = None) -> Tuple[AnalysisConfig, ScanConfig]:
    """
    Load analysis and scan settings from a YAML file.

    Non-None entries of `overrides` replace the file's scan settings.

    Raises:
        ConfigError: if the file cannot be read or does not pass validation
    """
    path = Path(path)
    return parse_config(load_raw_config(path), source=str(path), overrides=overrides)
