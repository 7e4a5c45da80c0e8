"""
Built-in counting analyses for CLs scans.

Five-bin background / signal / observation sets used to exercise the CLs
toy machinery. All entries are expected or observed event counts per bin.
"""

from typing import Dict, List, Any
from dataclasses import dataclass


@dataclass
class AnalysisConfig:
    """Inputs of a binned counting experiment."""
    name: str
    background: List[float]
    signal: List[float]
    observed: List[float]
    notes: str = ""

    @property
    def n_bins(self) -> int:
        return len(self.background)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "background": list(self.background),
            "signal": list(self.signal),
            "observed": list(self.observed),
            "notes": self.notes,
        }


_BACKGROUND = [100.0, 140.0, 130.0, 120.0, 110.0]
_OBSERVED = [102.0, 135.0, 132.0, 125.0, 108.0]

ANALYSIS_CONFIGS: Dict[str, AnalysisConfig] = {
    # Weak signal peaking in the central bins; limit expected around mu ~ 1.5
    "five_bin_example": AnalysisConfig(
        name="five_bin_example",
        background=list(_BACKGROUND),
        signal=[0.0, 5.0, 20.0, 15.0, 2.0],
        observed=list(_OBSERVED),
        notes="Reference five-bin counting experiment",
    ),

    # Same background and data, signal large enough to be excluded well below mu = 1
    "strong_signal_example": AnalysisConfig(
        name="strong_signal_example",
        background=list(_BACKGROUND),
        signal=[10.0, 35.0, 50.0, 35.0, 5.0],
        observed=list(_OBSERVED),
        notes="Five-bin experiment with a strong signal hypothesis",
    ),
}


def get_analysis_config(name: str) -> AnalysisConfig:
    """Get a copy of a built-in analysis by name."""
    key = name.strip().lower()
    if key not in ANALYSIS_CONFIGS:
        raise KeyError(
            f"Unknown analysis '{name}'. Available: {', '.join(sorted(ANALYSIS_CONFIGS))}"
        )
    cfg = ANALYSIS_CONFIGS[key]
    return AnalysisConfig(
        name=cfg.name,
        background=list(cfg.background),
        signal=list(cfg.signal),
        observed=list(cfg.observed),
        notes=cfg.notes,
    )


def list_analyses() -> List[str]:
    return sorted(ANALYSIS_CONFIGS)
