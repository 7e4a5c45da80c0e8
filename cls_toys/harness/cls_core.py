"""
Core CLs toy functions.

Implements the binned Poisson counting model, pseudo-experiment generation,
the NLLR test statistic and the CLs = CLs+b / CLb tail ratio.

All likelihoods are accumulated in log space. Random numbers always come from
an explicit numpy Generator passed in by the caller.
"""

import numpy as np
from scipy.special import gammaln, xlogy
from dataclasses import dataclass
from typing import Sequence, Tuple, Union
import logging

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


# =============================================================================
# ERRORS
# =============================================================================

class CLsError(Exception):
    """Base class for CLs computation errors."""
    pass


class DimensionMismatch(CLsError, ValueError):
    """Raised when background/signal/data vectors have different lengths."""
    pass


class InvalidParameter(CLsError, ValueError):
    """Raised for negative expectations or non-positive toy/grid counts."""
    pass


class DegenerateTail(CLsError, ArithmeticError):
    """Raised when no B-only toy reaches the reference value (CLb == 0)."""

    def __init__(self, reference: float, n_b: int):
        # args mirror the signature so the error can be unpickled from a pool worker
        super().__init__(reference, n_b)
        self.reference = reference
        self.n_b = n_b

    def __str__(self) -> str:
        return f"CLb = 0: none of {self.n_b} B-only toys has NLLR >= {self.reference:.4f}"


@dataclass(frozen=True)
class ClsValues:
    cls: float
    clsb: float
    clb: float


def _as_vector(x: ArrayLike, name: str) -> np.ndarray:
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatch(f"{name} must be a 1-D vector, got shape {arr.shape}")
    return arr


def _check_same_length(**vectors: np.ndarray) -> None:
    lengths = {name: v.shape[-1] for name, v in vectors.items()}
    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"len({k})={n}" for k, n in lengths.items())
        raise DimensionMismatch(f"Bin count mismatch: {detail}")


def _check_n_toys(n_toys: int) -> None:
    if int(n_toys) <= 0:
        raise InvalidParameter(f"n_toys must be > 0, got {n_toys}")


# ============================================================================
# MODEL BUILDER
# ============================================================================

def model_prediction(background: ArrayLike, signal: ArrayLike, mu: float) -> np.ndarray:
    """
    Expected counts per bin for signal strength mu.

    prediction[i] = background[i] + mu * signal[i]
    """
    bkg = _as_vector(background, "background")
    sig = _as_vector(signal, "signal")
    _check_same_length(background=bkg, signal=sig)
    return bkg + mu * sig


# ============================================================================
# PSEUDO-EXPERIMENTS
# ============================================================================

def _check_poisson_means(prediction: np.ndarray) -> None:
    if not np.all(np.isfinite(prediction)):
        raise InvalidParameter("Poisson means must be finite")
    if np.any(prediction < 0):
        bad = np.flatnonzero(prediction < 0).tolist()
        raise InvalidParameter(f"Negative Poisson mean in bin(s) {bad}")


def create_pseudodata(prediction: ArrayLike, rng: np.random.Generator) -> np.ndarray:
    """Draw one pseudo-experiment: an independent Poisson count per bin."""
    pred = _as_vector(prediction, "prediction")
    _check_poisson_means(pred)
    return rng.poisson(pred).astype(np.float64)


def generate_toys(prediction: ArrayLike, n_toys: int,
                  rng: np.random.Generator) -> np.ndarray:
    """
    Draw n_toys pseudo-experiments at once.

    Returns:
        Array of shape (n_toys, n_bins)
    """
    _check_n_toys(n_toys)
    pred = _as_vector(prediction, "prediction")
    _check_poisson_means(pred)
    return rng.poisson(pred, size=(int(n_toys), len(pred))).astype(np.float64)


# ============================================================================
# LIKELIHOOD AND TEST STATISTIC
# ============================================================================

def log_likelihood(data: ArrayLike, model: ArrayLike) -> Union[float, np.ndarray]:
    """
    Poisson log-likelihood summed over bins.

    logL = sum_i [ d_i ln(m_i) - m_i - lnGamma(d_i + 1) ]

    `data` may be a single dataset (n_bins,) or a toy matrix (n_toys, n_bins),
    in which case one value per toy is returned. Non-integer counts are
    handled through the Gamma function.
    """
    d = np.asarray(data, dtype=np.float64)
    m = _as_vector(model, "model")
    if d.ndim not in (1, 2):
        raise DimensionMismatch(f"data must be 1-D or 2-D, got shape {d.shape}")
    _check_same_length(data=d, model=m)

    terms = xlogy(d, m) - m - gammaln(d + 1.0)
    total = np.sum(terms, axis=-1)
    if d.ndim == 1:
        return float(total)
    return total


def poisson_likelihood(data: ArrayLike, model: ArrayLike) -> float:
    """Product over bins of the Poisson probability of data given model."""
    return float(np.exp(log_likelihood(data, model)))


def nllr(data: ArrayLike, model1: ArrayLike, model2: ArrayLike) -> Union[float, np.ndarray]:
    """
    Negative log-likelihood ratio -2 ln( L(data|model1) / L(data|model2) ).

    Large values favour model2. Works on a single dataset or a toy matrix.

    Evaluated bin by bin as a log ratio; the lnGamma terms cancel and bins
    where model1 == model2 contribute exactly zero, including empty bins
    (m = 0) that contain data.
    """
    d = np.asarray(data, dtype=np.float64)
    m1 = _as_vector(model1, "model1")
    m2 = _as_vector(model2, "model2")
    if d.ndim not in (1, 2):
        raise DimensionMismatch(f"data must be 1-D or 2-D, got shape {d.shape}")
    _check_same_length(data=d, model1=m1, model2=m2)

    differ = m1 != m2
    d_diff = d[..., differ]
    m1_diff, m2_diff = m1[differ], m2[differ]
    terms = xlogy(d_diff, m1_diff) - xlogy(d_diff, m2_diff) - (m1_diff - m2_diff)
    total = -2.0 * np.sum(terms, axis=-1)
    if d.ndim == 1:
        return float(total)
    return total


# ============================================================================
# TOY ENSEMBLES
# ============================================================================

def nllr_ensemble(toys: np.ndarray, model_sb: ArrayLike, model_b: ArrayLike) -> np.ndarray:
    """Evaluate NLLR(toy, S+B, B) for every row of a precomputed toy matrix."""
    toys = np.asarray(toys, dtype=np.float64)
    if toys.ndim != 2:
        raise DimensionMismatch(f"toy matrix must be 2-D, got shape {toys.shape}")
    return np.asarray(nllr(toys, model_sb, model_b), dtype=np.float64)


def build_ensemble(model_sb: ArrayLike, model_b: ArrayLike, n_toys: int,
                   rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the NLLR distributions under S+B and under B-only.

    Returns: (sample_sb, sample_b), each of length n_toys
    """
    _check_n_toys(n_toys)
    m_sb = _as_vector(model_sb, "model_sb")
    m_b = _as_vector(model_b, "model_b")
    _check_same_length(model_sb=m_sb, model_b=m_b)

    toys_sb = generate_toys(m_sb, n_toys, rng)
    toys_b = generate_toys(m_b, n_toys, rng)

    sample_sb = nllr_ensemble(toys_sb, m_sb, m_b)
    sample_b = nllr_ensemble(toys_b, m_sb, m_b)
    logger.debug(
        f"Ensemble of {n_toys} toys: mean NLLR S+B={np.mean(sample_sb):.3f}, "
        f"B-only={np.mean(sample_b):.3f}"
    )
    return sample_sb, sample_b


# ============================================================================
# CLs
# ============================================================================

def tail_fraction(sample: ArrayLike, reference: float) -> float:
    """Fraction of the sample with value >= reference."""
    arr = np.asarray(sample, dtype=np.float64)
    if arr.size == 0:
        raise InvalidParameter("Cannot compute a tail fraction of an empty sample")
    return float(np.count_nonzero(arr >= reference)) / arr.size


def compute_cls_components(sample_sb: ArrayLike, sample_b: ArrayLike,
                           reference: float) -> ClsValues:
    """
    CLs+b, CLb and their ratio for a given reference NLLR.

    The ratio is not clamped: with finite toys it can exceed 1.
    """
    clsb = tail_fraction(sample_sb, reference)
    clb = tail_fraction(sample_b, reference)
    if clb == 0.0:
        raise DegenerateTail(float(reference), int(np.size(sample_b)))
    return ClsValues(cls=clsb / clb, clsb=clsb, clb=clb)


def compute_cls(sample_sb: ArrayLike, sample_b: ArrayLike, reference: float) -> float:
    """CLs = CLs+b / CLb with a non-strict (>=) upper-tail convention."""
    return compute_cls_components(sample_sb, sample_b, reference).cls
