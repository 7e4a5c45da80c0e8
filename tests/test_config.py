import pytest
import yaml

from cls_toys.config import (
    ConfigError,
    build_scan_config,
    get_default_config_path,
    load_config,
    parse_config,
    validate_config,
)
from cls_toys.harness.analysis_configs import get_analysis_config, list_analyses
from cls_toys.harness.scan import ScanConfig


def _raw(**scan):
    raw = {
        "analysis": {
            "background": [10, 20],
            "signal": [1, 2],
            "observed": [11, 19],
        }
    }
    if scan:
        raw["scan"] = scan
    return raw


def test_example_config_loads():
    analysis, config = load_config(get_default_config_path())
    assert analysis.name == "five_bin_example"
    assert analysis.n_bins == 5
    assert analysis.signal == [0.0, 5.0, 20.0, 15.0, 2.0]
    assert config.n_poi == 20
    assert config.n_toys == 100000
    assert config.n_workers is None
    assert config.band_quantiles == (0.16, 0.84)


def test_builtin_analysis_by_name():
    analysis, config = parse_config({"analysis": "strong_signal_example"})
    assert analysis.signal[2] == 50.0
    assert config == ScanConfig()


def test_builtin_analysis_is_a_copy():
    first = get_analysis_config("five_bin_example")
    first.background[0] = -1.0
    assert get_analysis_config("five_bin_example").background[0] == 100.0
    assert "five_bin_example" in list_analyses()


def test_unknown_builtin_analysis():
    errors = validate_config({"analysis": "no_such_analysis"})
    assert len(errors) == 1
    assert "Unknown analysis" in errors[0]
    with pytest.raises(KeyError):
        get_analysis_config("no_such_analysis")


def test_valid_inline_config_has_no_errors():
    assert validate_config(_raw(n_poi=5, mu_max=3.0, on_degenerate="raise")) == []


def test_length_mismatch_reported():
    raw = _raw()
    raw["analysis"]["observed"] = [1, 2, 3]
    errors = validate_config(raw)
    assert any("equal length" in e for e in errors)


def test_missing_and_unknown_keys_reported():
    raw = {"analysis": {"background": [1.0], "sgnal": [1.0]}, "extra": 1}
    errors = validate_config(raw)
    assert any("Unknown top-level keys" in e for e in errors)
    assert any("missing required keys" in e for e in errors)
    assert any("unknown keys" in e and "sgnal" in e for e in errors)


def test_negative_observed_rejected():
    raw = _raw()
    raw["analysis"]["observed"] = [-1, 2]
    assert any("non-negative" in e for e in validate_config(raw))


@pytest.mark.parametrize("scan, fragment", [
    ({"n_toys": 0}, "n_toys"),
    ({"n_poi": 2.5}, "n_poi"),
    ({"seed": -3}, "seed"),
    ({"n_workers": 0}, "n_workers"),
    ({"mu_min": 2.0, "mu_max": 1.0}, "mu_max"),
    ({"cl": 1.0}, "cl"),
    ({"on_degenerate": "skip"}, "on_degenerate"),
    ({"band_quantiles": [0.9, 0.1]}, "band_quantiles"),
    ({"n_toy": 10}, "unknown keys"),
])
def test_bad_scan_values(scan, fragment):
    errors = validate_config(_raw(**scan))
    assert errors
    assert any(fragment in e for e in errors)


def test_bool_is_not_an_integer():
    assert validate_config(_raw(n_toys=True))


def test_overrides_applied_on_top_of_yaml():
    config = build_scan_config(
        {"n_toys": 1000, "mu_max": 3, "band_quantiles": [0.025, 0.975]},
        {"n_toys": 50, "seed": None, "n_workers": 1},
    )
    assert config.n_toys == 50
    assert config.seed == ScanConfig().seed
    assert config.n_workers == 1
    assert config.mu_max == 3.0
    assert isinstance(config.mu_max, float)
    assert config.band_quantiles == (0.025, 0.975)


def test_load_config_raises_on_invalid_file(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump(_raw(n_toys=-5)))
    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert excinfo.value.source == str(path)
    assert any("n_toys" in e for e in excinfo.value.errors)


def test_non_mapping_config():
    assert validate_config(["analysis"]) == ["Top-level configuration must be a mapping"]
    assert validate_config(None)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path / "missing.yaml")
    assert "Cannot read file" in excinfo.value.errors[0]


def test_load_config_malformed_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("analysis: [1, 2\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert "Malformed YAML" in excinfo.value.errors[0]


def test_load_config_applies_overrides():
    _, config = load_config(get_default_config_path(), {"n_toys": 10, "seed": None})
    assert config.n_toys == 10
    assert config.seed == 42
