import csv
import json
import math

import pytest

from cls_toys.harness.analysis_configs import get_analysis_config
from cls_toys.harness.scan import ScanConfig, ScanPoint, ScanResult, run_scan
from cls_toys.reporting.write_report import (
    SCAN_TABLE_COLUMNS,
    render_report,
    result_to_dict,
    write_outputs,
)


def _point(mu, cls_obs, degenerate_obs=False):
    return ScanPoint(
        mu=mu,
        nllr_obs=1.0,
        mean_nllr_b=2.0,
        cls_exp=0.5,
        cls_obs=cls_obs,
        clsb_obs=0.1,
        clb_obs=0.0 if degenerate_obs else 0.2,
        cls_exp_band=(0.3, 0.7),
        degenerate_obs=degenerate_obs,
    )


@pytest.fixture
def degenerate_result():
    return ScanResult(
        analysis=get_analysis_config("five_bin_example"),
        config=ScanConfig(n_poi=2),
        points=[_point(0.0, 0.5), _point(1.0, float("nan"), degenerate_obs=True)],
        limit_exp=None,
        limit_obs=None,
    )


def test_result_to_dict_writes_nan_as_none(degenerate_result):
    d = result_to_dict(degenerate_result)
    assert d["n_degenerate"] == 1
    assert d["points"][0]["cls_obs"] == 0.5
    assert d["points"][1]["cls_obs"] is None
    assert d["points"][1]["degenerate_obs"] is True
    assert d["config"]["band_quantiles"] == [0.16, 0.84]
    # strict JSON: no NaN tokens
    text = json.dumps(d, allow_nan=False)
    assert json.loads(text)["analysis"]["name"] == "five_bin_example"


def test_render_report_flags_degenerate_points(degenerate_result):
    report = render_report(degenerate_result)
    assert report.startswith("# CLs scan: five_bin_example")
    assert "DEGENERATE_TAIL" in report
    assert "n/a" in report
    assert "| 1.000 |" in report


def test_write_outputs_from_scan(tmp_path):
    result = run_scan(
        get_analysis_config("five_bin_example"),
        ScanConfig(n_poi=3, n_toys=1000, seed=11, n_workers=1),
    )
    paths = write_outputs(result, tmp_path / "out")
    assert set(paths) == {"json", "csv", "report"}
    for path in paths.values():
        assert path.exists()

    with open(paths["csv"], newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 3
    assert list(rows[0]) == SCAN_TABLE_COLUMNS
    assert math.isclose(float(rows[0]["cls_obs"]), 1.0)

    data = json.loads(paths["json"].read_text(encoding="utf-8"))
    assert len(data["points"]) == 3
    assert data["config"]["n_toys"] == 1000
    assert "CLs vs mu" in paths["report"].read_text(encoding="utf-8")


def test_plot_cls_curve(tmp_path):
    from cls_toys.reporting.plot_cls import plot_cls_curve

    result = run_scan(
        get_analysis_config("strong_signal_example"),
        ScanConfig(n_poi=4, n_toys=1000, seed=2, n_workers=1),
    )
    path = plot_cls_curve(result, tmp_path / "figs" / "cls.png")
    assert path.exists()
    assert path.stat().st_size > 0
