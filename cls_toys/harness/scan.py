"""
CLs scan over the signal-strength parameter of interest (POI).

The B-only toy ensemble is generated once and shared read-only by every
grid point; each point draws its own S+B toys. Grid points are evaluated in
parallel with a multiprocessing pool.

Random streams: SeedSequence(seed).spawn(n_poi + 1). Child 0 generates the
shared B-only toys, child i + 1 generates the S+B toys of grid point i, so a
scan is reproducible for a given seed independently of the worker count.
"""

import numpy as np
from multiprocessing import Pool, cpu_count
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple, Any, Iterator
import logging
import numbers
import time

from .cls_core import (
    ArrayLike,
    ClsValues,
    DegenerateTail,
    DimensionMismatch,
    InvalidParameter,
    compute_cls_components,
    generate_toys,
    model_prediction,
    nllr,
    nllr_ensemble,
    tail_fraction,
)
from .analysis_configs import AnalysisConfig

logger = logging.getLogger(__name__)

DEGENERATE_POLICIES = ("nan", "raise")
DEFAULT_BAND_QUANTILES = (0.16, 0.84)


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass
class ScanConfig:
    """Grid and toy settings of a CLs scan."""
    n_poi: int = 20
    mu_min: float = 0.0
    mu_max: float = 2.0
    n_toys: int = 100000
    seed: int = 42
    n_workers: Optional[int] = None  # None -> cpu_count() - 1
    on_degenerate: str = "nan"
    cl: float = 0.95
    band_quantiles: Tuple[float, float] = DEFAULT_BAND_QUANTILES

    @property
    def alpha(self) -> float:
        return 1.0 - self.cl

    def validate(self) -> None:
        for name in ("n_poi", "n_toys"):
            value = getattr(self, name)
            if not _is_int(value) or value <= 0:
                raise InvalidParameter(f"{name} must be a positive integer, got {value!r}")
        if not self.mu_max > self.mu_min:
            raise InvalidParameter(
                f"mu_max ({self.mu_max}) must be greater than mu_min ({self.mu_min})"
            )
        if self.on_degenerate not in DEGENERATE_POLICIES:
            raise InvalidParameter(
                f"on_degenerate must be one of {DEGENERATE_POLICIES}, got '{self.on_degenerate}'"
            )
        if not 0.0 < self.cl < 1.0:
            raise InvalidParameter(f"cl must be in (0, 1), got {self.cl}")
        if len(self.band_quantiles) != 2:
            raise InvalidParameter(f"band_quantiles must be a (lo, hi) pair, got {self.band_quantiles}")
        lo, hi = self.band_quantiles
        if not 0.0 <= lo < hi <= 1.0:
            raise InvalidParameter(f"band_quantiles must satisfy 0 <= lo < hi <= 1, got {self.band_quantiles}")
        if self.n_workers is not None and (not _is_int(self.n_workers) or self.n_workers <= 0):
            raise InvalidParameter(f"n_workers must be a positive integer, got {self.n_workers!r}")

    def poi_grid(self) -> np.ndarray:
        """n_poi evenly spaced values over [mu_min, mu_max)."""
        step = (self.mu_max - self.mu_min) / self.n_poi
        return self.mu_min + step * np.arange(int(self.n_poi), dtype=np.float64)

    def resolve_workers(self) -> int:
        if self.n_workers is not None:
            n_workers = int(self.n_workers)
        else:
            n_workers = max(1, cpu_count() - 1)
        return max(1, min(n_workers, int(self.n_poi)))


@dataclass
class ScanPoint:
    """CLs values at one POI grid point."""
    mu: float
    nllr_obs: float
    mean_nllr_b: float
    cls_exp: float
    cls_obs: float
    clsb_obs: float
    clb_obs: float
    cls_exp_band: Tuple[float, float]
    degenerate_exp: bool = False
    degenerate_obs: bool = False

    @property
    def degenerate(self) -> bool:
        return self.degenerate_exp or self.degenerate_obs


@dataclass
class ScanResult:
    """Expected and observed CLs curves of a POI scan."""
    analysis: AnalysisConfig
    config: ScanConfig
    points: List[ScanPoint]
    limit_exp: Optional[float] = None
    limit_obs: Optional[float] = None
    elapsed_sec: float = 0.0
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def poi(self) -> np.ndarray:
        return np.array([p.mu for p in self.points])

    @property
    def cls_exp(self) -> np.ndarray:
        return np.array([p.cls_exp for p in self.points])

    @property
    def cls_obs(self) -> np.ndarray:
        return np.array([p.cls_obs for p in self.points])

    @property
    def n_degenerate(self) -> int:
        return sum(1 for p in self.points if p.degenerate)

    def __iter__(self) -> Iterator[np.ndarray]:
        # allows `poi, cls_exp, cls_obs = scan_cls(...)`
        return iter((self.poi, self.cls_exp, self.cls_obs))


# ============================================================================
# PER-POINT EVALUATION
# ============================================================================

def _cls_or_nan(sample_sb: np.ndarray, sample_b: np.ndarray, reference: float,
                on_degenerate: str) -> Tuple[ClsValues, bool]:
    """CLs at a reference value; (nan, clsb, 0) when CLb == 0 and policy allows."""
    try:
        return compute_cls_components(sample_sb, sample_b, reference), False
    except DegenerateTail:
        if on_degenerate == "raise":
            raise
    clsb = tail_fraction(sample_sb, reference)
    return ClsValues(cls=float("nan"), clsb=clsb, clb=0.0), True


def evaluate_point(mu: float, background: np.ndarray, signal: np.ndarray,
                   observed: np.ndarray, toys_b: np.ndarray, n_toys: int,
                   seed_seq: np.random.SeedSequence,
                   on_degenerate: str = "nan",
                   band_quantiles: Tuple[float, float] = DEFAULT_BAND_QUANTILES) -> ScanPoint:
    """
    Expected and observed CLs for one signal strength.

    toys_b is the shared B-only toy matrix; its NLLR values are recomputed
    here because the statistic depends on the S+B model at this mu.
    """
    rng = np.random.default_rng(seed_seq)

    model_b = model_prediction(background, signal, 0.0)
    model_sb = model_prediction(background, signal, mu)

    nllr_obs = float(nllr(observed, model_sb, model_b))

    toys_sb = generate_toys(model_sb, n_toys, rng)
    sample_sb = nllr_ensemble(toys_sb, model_sb, model_b)
    sample_b = nllr_ensemble(toys_b, model_sb, model_b)

    mean_b = float(np.mean(sample_b))
    exp_vals, degenerate_exp = _cls_or_nan(sample_sb, sample_b, mean_b, on_degenerate)
    obs_vals, degenerate_obs = _cls_or_nan(sample_sb, sample_b, nllr_obs, on_degenerate)

    band_refs = np.quantile(sample_b, band_quantiles)
    band = []
    for ref in band_refs:
        vals, _ = _cls_or_nan(sample_sb, sample_b, float(ref), "nan")
        band.append(float(vals.cls))

    return ScanPoint(
        mu=float(mu),
        nllr_obs=nllr_obs,
        mean_nllr_b=mean_b,
        cls_exp=float(exp_vals.cls),
        cls_obs=float(obs_vals.cls),
        clsb_obs=obs_vals.clsb,
        clb_obs=obs_vals.clb,
        cls_exp_band=(band[0], band[1]),
        degenerate_exp=degenerate_exp,
        degenerate_obs=degenerate_obs,
    )


# Worker-process state, filled once per worker by the pool initializer
_WORKER_STATE: Dict[str, Any] = {}


def _init_worker(background, signal, observed, toys_b, n_toys, on_degenerate, band_quantiles):
    _WORKER_STATE.update(
        background=background,
        signal=signal,
        observed=observed,
        toys_b=toys_b,
        n_toys=n_toys,
        on_degenerate=on_degenerate,
        band_quantiles=band_quantiles,
    )


def _point_worker(args: Tuple) -> ScanPoint:
    """Single grid point (for parallel execution)."""
    mu, seed_seq = args
    st = _WORKER_STATE
    return evaluate_point(
        mu, st["background"], st["signal"], st["observed"], st["toys_b"],
        st["n_toys"], seed_seq, st["on_degenerate"], st["band_quantiles"],
    )


# ============================================================================
# UPPER LIMIT
# ============================================================================

def upper_limit(poi: ArrayLike, cls: ArrayLike, cl: float = 0.95) -> Optional[float]:
    """
    POI value where the CLs curve first drops below alpha = 1 - cl.

    Linear interpolation between the neighbouring valid grid points; NaN
    entries are skipped. Returns None if the curve never crosses alpha.
    """
    alpha = 1.0 - cl
    x = np.asarray(poi, dtype=np.float64)
    y = np.asarray(cls, dtype=np.float64)
    if x.shape != y.shape:
        raise DimensionMismatch(f"poi and cls lengths differ: {x.shape} vs {y.shape}")

    valid = np.isfinite(y)
    x, y = x[valid], y[valid]
    if x.size == 0:
        return None

    below = np.flatnonzero(y < alpha)
    if below.size == 0:
        return None
    i = int(below[0])
    if i == 0:
        return float(x[0])

    x0, x1 = x[i - 1], x[i]
    y0, y1 = y[i - 1], y[i]
    return float(x0 + (alpha - y0) * (x1 - x0) / (y1 - y0))


# ============================================================================
# SCAN DRIVER
# ============================================================================

def _validate_inputs(background: np.ndarray, signal: np.ndarray,
                     observed: np.ndarray, config: ScanConfig) -> None:
    for name, vec in (("background", background), ("signal", signal), ("observed", observed)):
        if vec.ndim != 1:
            raise DimensionMismatch(f"{name} must be a 1-D vector, got shape {vec.shape}")
        if not np.all(np.isfinite(vec)):
            raise InvalidParameter(f"{name} contains non-finite values")
    if not (len(background) == len(signal) == len(observed)):
        raise DimensionMismatch(
            f"Bin count mismatch: background={len(background)}, "
            f"signal={len(signal)}, observed={len(observed)}"
        )
    if len(background) == 0:
        raise DimensionMismatch("At least one bin is required")
    if np.any(observed < 0):
        raise InvalidParameter("observed counts must be non-negative")
    if np.any(background < 0):
        raise InvalidParameter("background expectations must be non-negative")

    config.validate()

    # prediction is linear in mu, so checking the grid ends covers every point
    grid = config.poi_grid()
    for mu in (grid[0], grid[-1]):
        if np.any(background + mu * signal < 0):
            raise InvalidParameter(f"Negative expected counts at mu = {mu:.4g}")


def run_scan(analysis: AnalysisConfig, config: ScanConfig) -> ScanResult:
    """
    Run the CLs scan for a counting analysis.

    Returns ScanResult with one ScanPoint per grid value plus the expected
    and observed upper limits at config.cl.
    """
    background = np.asarray(analysis.background, dtype=np.float64)
    signal = np.asarray(analysis.signal, dtype=np.float64)
    observed = np.asarray(analysis.observed, dtype=np.float64)
    _validate_inputs(background, signal, observed, config)

    t0 = time.time()
    grid = config.poi_grid()
    n_toys = int(config.n_toys)
    streams = np.random.SeedSequence(config.seed).spawn(len(grid) + 1)

    # Shared B-only toys, generated once for the whole scan
    model_b = model_prediction(background, signal, 0.0)
    toys_b = generate_toys(model_b, n_toys, np.random.default_rng(streams[0]))
    toys_b.setflags(write=False)

    n_workers = config.resolve_workers()
    logger.info(
        f"CLs scan '{analysis.name}': {len(grid)} points in [{config.mu_min}, {config.mu_max}), "
        f"{n_toys} toys/point, seed={config.seed}, workers={n_workers}"
    )

    tasks = [(float(mu), streams[i + 1]) for i, mu in enumerate(grid)]
    points: List[ScanPoint] = []

    if n_workers > 1:
        initargs = (background, signal, observed, toys_b, n_toys,
                    config.on_degenerate, tuple(config.band_quantiles))
        with Pool(n_workers, initializer=_init_worker, initargs=initargs) as pool:
            for point in pool.imap(_point_worker, tasks):
                _log_point(point, len(points), len(tasks))
                points.append(point)
    else:
        for mu, seed_seq in tasks:
            point = evaluate_point(mu, background, signal, observed, toys_b, n_toys,
                                   seed_seq, config.on_degenerate,
                                   tuple(config.band_quantiles))
            _log_point(point, len(points), len(tasks))
            points.append(point)

    result = ScanResult(analysis=analysis, config=config, points=points)
    result.limit_exp = upper_limit(result.poi, result.cls_exp, config.cl)
    result.limit_obs = upper_limit(result.poi, result.cls_obs, config.cl)
    result.elapsed_sec = time.time() - t0

    if result.n_degenerate:
        logger.warning(
            f"{result.n_degenerate}/{len(points)} grid points had CLb = 0; "
            f"their CLs values are NaN (increase n_toys to populate the tail)"
        )
    logger.info(
        f"Scan finished in {result.elapsed_sec:.1f}s: "
        f"limit_exp={_fmt_limit(result.limit_exp)}, limit_obs={_fmt_limit(result.limit_obs)} "
        f"at {100 * config.cl:.0f}% CL"
    )
    return result


def _fmt_limit(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.3f}"


def _log_point(point: ScanPoint, index: int, total: int) -> None:
    logger.info(
        f"[{index + 1}/{total}] mu={point.mu:.3f} CLs_exp={point.cls_exp:.4f} CLs_obs={point.cls_obs:.4f}"
    )
    logger.debug(
        f"  nllr_obs={point.nllr_obs:.4f} mean_nllr_b={point.mean_nllr_b:.4f} "
        f"CLsb_obs={point.clsb_obs:.4f} CLb_obs={point.clb_obs:.4f}"
    )
    if point.degenerate_exp:
        logger.warning(f"mu={point.mu:.3f}: CLb = 0 at the expected reference, CLs_exp set to NaN")
    if point.degenerate_obs:
        logger.warning(f"mu={point.mu:.3f}: CLb = 0 at the observed NLLR, CLs_obs set to NaN")


def scan_cls(background: ArrayLike, signal: ArrayLike, observed: ArrayLike,
             n_poi: int = 20, mu_min: float = 0.0, mu_max: float = 2.0,
             n_toys: int = 100000, seed: int = 42,
             n_workers: Optional[int] = None, on_degenerate: str = "nan",
             cl: float = 0.95,
             band_quantiles: Tuple[float, float] = DEFAULT_BAND_QUANTILES,
             name: str = "custom") -> ScanResult:
    """
    Expected and observed CLs as a function of mu.

    The returned ScanResult unpacks as (poi, cls_exp, cls_obs).
    """
    if np.ndim(background) != 1 or np.ndim(signal) != 1 or np.ndim(observed) != 1:
        raise DimensionMismatch("background, signal and observed must be 1-D vectors")
    analysis = AnalysisConfig(
        name=name,
        background=[float(v) for v in background],
        signal=[float(v) for v in signal],
        observed=[float(v) for v in observed],
    )
    config = ScanConfig(
        n_poi=n_poi,
        mu_min=mu_min,
        mu_max=mu_max,
        n_toys=n_toys,
        seed=seed,
        n_workers=n_workers,
        on_degenerate=on_degenerate,
        cl=cl,
        band_quantiles=band_quantiles,
    )
    return run_scan(analysis, config)


def config_to_dict(config: ScanConfig) -> Dict[str, Any]:
    out = asdict(config)
    out["band_quantiles"] = list(config.band_quantiles)
    return out
