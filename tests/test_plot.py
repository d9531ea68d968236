"""Smoke tests for the statistics-stage figures."""

import os

import numpy as np
import pandas as pd
import pytest

from hostcooc.evaluate import evaluate_thresholds
from hostcooc.plot import plot_analysis, plot_auc_heatmaps, plot_evaluation, plot_log_odds, plot_roc_curves


@pytest.fixture
def subset():
    rng = np.random.default_rng(0)
    rows = []
    for ht in (0.01, 0.1):
        for pt in (0.01, 0.1):
            for label, shift in (("Positive Control", 2.0), ("Negative Control", 0.0), ("Random", 0.5)):
                for _ in range(6):
                    rows.append({"host_threshold": ht, "pathogen_threshold": pt,
                                 "Interaction_type": label, "log_odds": rng.normal(shift, 1.0)})
    return pd.DataFrame(rows)


def test_individual_figures(tmp_path, subset):
    curves, grid = evaluate_thresholds(subset)
    roc = tmp_path / "roc.png"
    plot_roc_curves(curves, grid, str(roc), comparison="Pos vs Neg")
    heat = tmp_path / "heat.png"
    plot_auc_heatmaps(grid, str(heat))
    hist = tmp_path / "hist.png"
    plot_log_odds(subset, str(hist))
    for path in (roc, heat, hist):
        assert path.stat().st_size > 0


def test_plot_evaluation_skips_empty_comparisons(tmp_path, subset):
    """Comparisons with no evaluable cell (no Commensal or PHI-Base rows) get no ROC figure."""
    curves, grid = evaluate_thresholds(subset)
    written = plot_evaluation(subset, curves, grid, str(tmp_path), tag="t_")
    names = sorted(os.path.basename(p) for p in written)
    assert names == ["t_auc_heatmaps.png", "t_log_odds_hist.png",
                     "t_roc_Pos_vs_Neg.png", "t_roc_Pos_vs_Random.png"]


def test_plot_analysis_from_file(tmp_path, subset):
    path = tmp_path / "sampled_pairs.tsv"
    subset.to_csv(path, sep="\t", index=False)
    written = plot_analysis(str(path), str(tmp_path / "figs"))
    assert all(os.path.exists(p) for p in written)


def test_empty_inputs_raise(tmp_path):
    with pytest.raises(ValueError):
        plot_auc_heatmaps(pd.DataFrame(columns=["comparison", "host_threshold",
                                                "pathogen_threshold", "AUC"]), str(tmp_path / "x.png"))
    with pytest.raises(ValueError):
        plot_log_odds(pd.DataFrame({"Interaction_type": ["Random"], "log_odds": [np.nan]}),
                      str(tmp_path / "y.png"))
    with pytest.raises(FileNotFoundError):
        plot_analysis(str(tmp_path / "missing.tsv"), str(tmp_path))
