import numpy as np
import pytest
from scipy.stats import poisson

from cls_toys.harness.cls_core import (
    DegenerateTail,
    DimensionMismatch,
    InvalidParameter,
    build_ensemble,
    compute_cls,
    compute_cls_components,
    create_pseudodata,
    generate_toys,
    log_likelihood,
    model_prediction,
    nllr,
    nllr_ensemble,
    poisson_likelihood,
    tail_fraction,
)

BKG = [100.0, 140.0, 130.0, 120.0, 110.0]
SIG = [0.0, 5.0, 20.0, 15.0, 2.0]
OBS = [102.0, 135.0, 132.0, 125.0, 108.0]


def test_model_prediction_values():
    pred = model_prediction(BKG, SIG, 1.0)
    assert np.allclose(pred, [100.0, 145.0, 150.0, 135.0, 112.0])
    assert np.allclose(model_prediction(BKG, SIG, 0.0), BKG)


@pytest.mark.parametrize("mu1, mu2", [(0.0, 1.0), (0.3, 0.7), (1.5, -0.25)])
def test_model_prediction_linearity(mu1, mu2):
    lhs = model_prediction(BKG, SIG, mu1 + mu2)
    rhs = model_prediction(BKG, SIG, mu1) + mu2 * np.asarray(SIG)
    assert np.allclose(lhs, rhs)


def test_model_prediction_is_pure():
    bkg = list(BKG)
    first = model_prediction(bkg, SIG, 0.5)
    second = model_prediction(bkg, SIG, 0.5)
    assert np.array_equal(first, second)
    assert bkg == BKG


def test_model_prediction_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        model_prediction([1.0, 2.0], [1.0, 2.0, 3.0], 1.0)


def test_create_pseudodata_shape_and_values():
    rng = np.random.default_rng(7)
    toy = create_pseudodata(BKG, rng)
    assert toy.shape == (5,)
    assert np.all(toy >= 0)
    assert np.all(toy == np.round(toy))


def test_create_pseudodata_zero_mean_gives_zero():
    toy = create_pseudodata([0.0, 0.0], np.random.default_rng(1))
    assert np.array_equal(toy, [0.0, 0.0])


def test_create_pseudodata_rejects_negative_mean():
    with pytest.raises(InvalidParameter):
        create_pseudodata([1.0, -0.5], np.random.default_rng(1))


def test_generate_toys_rejects_non_positive_count():
    with pytest.raises(InvalidParameter):
        generate_toys(BKG, 0, np.random.default_rng(1))


def test_generate_toys_mean_close_to_prediction():
    toys = generate_toys(BKG, 20000, np.random.default_rng(3))
    assert toys.shape == (20000, 5)
    assert np.allclose(toys.mean(axis=0), BKG, rtol=0.01)


def test_log_likelihood_matches_scipy_poisson():
    data = [3.0, 5.0, 0.0]
    model = [2.5, 4.0, 1.2]
    expected = np.sum(poisson.logpmf([3, 5, 0], model))
    assert np.isclose(log_likelihood(data, model), expected)


def test_log_likelihood_zero_count_zero_mean_bin():
    # 0 events expected and 0 observed has probability 1
    assert log_likelihood([0.0], [0.0]) == 0.0


def test_log_likelihood_toy_matrix_returns_one_value_per_row():
    toys = np.array([[1.0, 2.0], [3.0, 4.0], [0.0, 0.0]])
    values = log_likelihood(toys, [1.5, 2.5])
    assert values.shape == (3,)
    assert np.isclose(values[1], log_likelihood([3.0, 4.0], [1.5, 2.5]))


def test_poisson_likelihood_in_unit_interval():
    rng = np.random.default_rng(11)
    for _ in range(20):
        model = rng.uniform(0.5, 30.0, size=4)
        data = rng.poisson(model).astype(float)
        value = poisson_likelihood(data, model)
        assert 0.0 < value <= 1.0


def test_poisson_likelihood_non_integer_counts():
    value = poisson_likelihood([2.5, 7.3], [2.5, 7.0])
    assert np.isfinite(value)
    assert value > 0.0


def test_likelihood_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        poisson_likelihood([1.0, 2.0], [1.0])
    with pytest.raises(DimensionMismatch):
        nllr([1.0, 2.0], [1.0, 2.0], [1.0])


def test_nllr_same_model_is_zero():
    for data in (OBS, [0.0, 0.0, 3.0, 1.0, 250.0], [1.5, 2.5, 3.5, 4.5, 5.5]):
        assert nllr(data, BKG, BKG) == 0.0


def test_nllr_sign_convention():
    model_sb = model_prediction(BKG, SIG, 1.0)
    model_b = model_prediction(BKG, SIG, 0.0)
    # data equal to the S+B expectation favours S+B -> negative NLLR
    assert nllr(model_sb, model_sb, model_b) < 0
    assert nllr(model_b, model_sb, model_b) > 0


def test_nllr_stable_for_many_bins():
    """Raw likelihood products underflow here; log-space NLLR must stay finite."""
    model_b = np.full(500, 1000.0)
    model_sb = model_b * 1.01
    data = model_b.copy()
    assert poisson_likelihood(data, model_b) == 0.0
    value = nllr(data, model_sb, model_b)
    assert np.isfinite(value)
    assert value > 0


def test_nllr_ensemble_matches_single_evaluation():
    model_sb = model_prediction(BKG, SIG, 1.0)
    model_b = model_prediction(BKG, SIG, 0.0)
    toys = generate_toys(model_b, 50, np.random.default_rng(5))
    values = nllr_ensemble(toys, model_sb, model_b)
    assert values.shape == (50,)
    for toy, value in zip(toys[:5], values[:5]):
        assert np.isclose(value, nllr(toy, model_sb, model_b))


def test_build_ensemble_deterministic_for_fixed_seed():
    model_sb = model_prediction(BKG, SIG, 1.0)
    model_b = model_prediction(BKG, SIG, 0.0)
    sb1, b1 = build_ensemble(model_sb, model_b, 2000, np.random.default_rng(123))
    sb2, b2 = build_ensemble(model_sb, model_b, 2000, np.random.default_rng(123))
    assert np.array_equal(sb1, sb2)
    assert np.array_equal(b1, b2)

    sb3, _ = build_ensemble(model_sb, model_b, 2000, np.random.default_rng(124))
    assert not np.array_equal(sb1, sb3)


def test_build_ensemble_separates_hypotheses():
    model_sb = model_prediction(BKG, SIG, 1.0)
    model_b = model_prediction(BKG, SIG, 0.0)
    sample_sb, sample_b = build_ensemble(model_sb, model_b, 5000, np.random.default_rng(9))
    assert len(sample_sb) == len(sample_b) == 5000
    assert np.mean(sample_sb) < 0 < np.mean(sample_b)


def test_build_ensemble_rejects_bad_input():
    with pytest.raises(InvalidParameter):
        build_ensemble(BKG, BKG, 0, np.random.default_rng(1))
    with pytest.raises(DimensionMismatch):
        build_ensemble(BKG, BKG[:3], 10, np.random.default_rng(1))


def test_tail_fraction_is_non_strict():
    sample = [0.0, 1.0, 2.0, 3.0]
    assert tail_fraction(sample, 2.0) == 0.5
    assert tail_fraction(sample, 2.5) == 0.25
    assert tail_fraction(sample, -1.0) == 1.0


def test_compute_cls_ratio():
    sample_sb = [0.0, 1.0, 2.0, 3.0]      # CLsb(>=2) = 0.5
    sample_b = [1.0, 2.0, 3.0, 4.0, 5.0]  # CLb(>=2) = 0.8
    values = compute_cls_components(sample_sb, sample_b, 2.0)
    assert values.clsb == 0.5
    assert values.clb == 0.8
    assert np.isclose(values.cls, 0.625)
    assert np.isclose(compute_cls(sample_sb, sample_b, 2.0), 0.625)


def test_compute_cls_not_clamped_above_one():
    sample_sb = [5.0, 5.0, 5.0, 5.0]
    sample_b = [0.0, 0.0, 5.0, 5.0]
    assert compute_cls(sample_sb, sample_b, 5.0) == 2.0


def test_compute_cls_degenerate_tail():
    model_sb = model_prediction(BKG, SIG, 1.0)
    model_b = model_prediction(BKG, SIG, 0.0)
    sample_sb, sample_b = build_ensemble(model_sb, model_b, 1000, np.random.default_rng(2))
    reference = float(np.max(sample_sb)) + 1000.0
    with pytest.raises(DegenerateTail) as excinfo:
        compute_cls(sample_sb, sample_b, reference)
    assert excinfo.value.n_b == 1000
    assert "CLb = 0" in str(excinfo.value)


def test_compute_cls_empty_sample():
    with pytest.raises(InvalidParameter):
        compute_cls([], [1.0], 0.0)


def test_nllr_empty_bin_with_data():
    # a bin with zero expectation under both models cancels instead of giving -inf - -inf
    assert nllr([1.0, 3.0], [0.0, 2.0], [0.0, 2.0]) == 0.0
    value = nllr([1.0, 52.0], [0.0, 60.0], [0.0, 50.0])
    assert np.isclose(value, nllr([52.0], [60.0], [50.0]))

    toys = np.array([[2.0, 48.0], [0.0, 55.0]])
    values = nllr_ensemble(toys, [0.0, 60.0], [0.0, 50.0])
    assert np.all(np.isfinite(values))
    assert np.isclose(values[1], nllr([55.0], [60.0], [50.0]))


def test_nllr_data_impossible_under_model1():
    assert nllr([1.0], [0.0], [2.0]) == np.inf


def test_nllr_matches_log_likelihood_difference():
    model_sb = model_prediction(BKG, SIG, 1.3)
    model_b = model_prediction(BKG, SIG, 0.0)
    expected = -2.0 * (log_likelihood(OBS, model_sb) - log_likelihood(OBS, model_b))
    assert np.isclose(nllr(OBS, model_sb, model_b), expected)
