"""CLs-vs-mu figure."""

from pathlib import Path

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..harness.scan import ScanResult


def plot_cls_curve(result: ScanResult, savepath: Path) -> Path:
    """Plot expected (with band) and observed CLs against mu."""
    savepath = Path(savepath)
    savepath.parent.mkdir(parents=True, exist_ok=True)

    poi = result.poi
    band = np.array([p.cls_exp_band for p in result.points])
    alpha = result.config.alpha

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.fill_between(poi, band[:, 0], band[:, 1], color='gold', alpha=0.5,
                    label=f'Expected band ({result.config.band_quantiles[0]:.2f}-'
                          f'{result.config.band_quantiles[1]:.2f} quantiles)')
    ax.plot(poi, result.cls_exp, 'k--', linewidth=2, label='Expected CLs')
    ax.plot(poi, result.cls_obs, 'ko-', markersize=4, linewidth=2, label='Observed CLs')
    ax.axhline(alpha, color='red', linestyle=':', linewidth=1.5,
               label=f'CLs = {alpha:.2f}')

    if result.limit_obs is not None:
        ax.axvline(result.limit_obs, color='steelblue', linestyle='--', linewidth=1,
                   label=f'Observed limit $\\mu$ < {result.limit_obs:.2f}')

    ax.set_xlabel('$\\mu$', fontsize=12)
    ax.set_ylabel('CLs', fontsize=12)
    ax.set_title(f'CLs scan: {result.analysis.name}', fontsize=11)
    ax.set_ylim(bottom=0)
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(savepath, dpi=150)
    plt.close(fig)
    return savepath
