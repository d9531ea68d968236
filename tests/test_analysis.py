"""Tests for scores, interaction labels, sampling and co-occurrence metrics."""

import math

import numpy as np
import pandas as pd
import pytest
from scipy.stats import fisher_exact

from hostcooc.analysis import (
    cooccurrence_metrics,
    hypergeometric_scores,
    label_pairs,
    log_odds_scores,
    prioritize_metadata,
    resolve_interaction_type,
    sample_pairs,
    score_summary,
)


def _rows(*counts):
    host, path, shared = zip(*counts)
    return pd.DataFrame({
        "host_tax_id": range(len(counts)),
        "path_tax_id": range(100, 100 + len(counts)),
        "host_threshold": 0.01,
        "pathogen_threshold": 0.01,
        "num_host_datasets": host,
        "num_pathogen_datasets": path,
        "num_shared_datasets": shared,
    })


def test_hypergeometric_upper_tail():
    """Full overlap of 5 and 5 out of 10 has probability 1 / C(10, 5)."""
    scored = hypergeometric_scores(_rows((5, 5, 5), (5, 5, 0), (0, 3, 0)), n_total=10)
    assert scored["Hyp_Geo_Score"].iloc[0] == pytest.approx(1 / math.comb(10, 5))
    assert scored["Hyp_Geo_Score"].iloc[1] == pytest.approx(1.0)
    assert scored["Hyp_Geo_Score"].iloc[2] == pytest.approx(1.0)
    assert scored["neg_log_p"].iloc[0] == pytest.approx(math.log10(math.comb(10, 5)))


def test_hypergeometric_scores_stay_positive():
    scored = hypergeometric_scores(_rows((1000, 1000, 1000)), n_total=2000)
    assert (scored["Hyp_Geo_Score"] > 0).all()
    assert np.isfinite(scored["neg_log_p"]).all()


def test_log_odds():
    scored = log_odds_scores(_rows((10, 10, 10), (0, 0, 0)), n_total=100)
    assert scored["log_odds"].iloc[0] == pytest.approx(math.log2(0.11 / 0.02))
    assert scored["log_odds_2"].iloc[0] == pytest.approx(math.log2(0.55 / 0.30))
    # no data at all: global log-odds is log2(1) = 0, local is undefined
    assert scored["log_odds"].iloc[1] == pytest.approx(0.0)
    assert np.isnan(scored["log_odds_2"].iloc[1])


def test_cooccurrence_metrics():
    """a=2, b=1, c=1, d=6."""
    m = cooccurrence_metrics(_rows((3, 3, 2)), n_universe=10).iloc[0]
    assert m["Jaccard"] == pytest.approx(0.5)
    assert m["Sorensen_Dice"] == pytest.approx(4 / 6)
    assert m["ochiai"] == pytest.approx(2 / 3)
    assert m["phi"] == pytest.approx(11 / 21)
    assert m["c_score"] == 1
    assert m["mutual_info"] > 0
    assert m["fisher_p"] == pytest.approx(fisher_exact([[2, 1], [1, 6]])[1])


def test_cooccurrence_metrics_undefined_cases():
    """A taxon seen nowhere leaves phi and Fisher undefined."""
    m = cooccurrence_metrics(_rows((0, 4, 0)), n_universe=10).iloc[0]
    assert m["Jaccard"] == 0
    assert np.isnan(m["phi"])
    assert np.isnan(m["fisher_p"])
    assert np.isnan(m["ochiai"])


def test_fisher_can_be_skipped():
    m = cooccurrence_metrics(_rows((3, 3, 2)), n_universe=10, compute_fisher=False)
    assert m["fisher_p"].isna().all()


def test_resolve_interaction_type():
    assert resolve_interaction_type(["PHI-Base", "Commensal"]) == "Commensal"
    assert resolve_interaction_type(["Negative Control", "Positive Control"]) == "Positive Control"
    assert resolve_interaction_type(["Other", "PHI-Base"]) == "PHI-Base"
    assert resolve_interaction_type(["Other", "Another"]) == "Other"
    with pytest.raises(ValueError):
        resolve_interaction_type([])


def test_prioritize_metadata():
    metadata = pd.DataFrame({
        "host_tax_id": [1, 1, 2],
        "path_tax_id": [9, 9, 9],
        "Interaction_type": ["PHI-Base", "Negative Control", "Commensal"],
    })
    resolved = prioritize_metadata(metadata)
    assert resolved.values.tolist() == [[1, 9, "Negative Control"], [2, 9, "Commensal"]]


def test_label_pairs_defaults_to_random():
    scores = _rows((1, 1, 1), (1, 1, 0))
    metadata = pd.DataFrame({
        "host_tax_id": [0, 0],
        "path_tax_id": [100, 100],
        "Interaction_type": ["PHI-Base", "Positive Control"],
    })
    labelled = label_pairs(scores, metadata)
    assert len(labelled) == 2
    assert labelled["Interaction_type"].tolist() == ["Positive Control", "Random"]


def _labelled(n_random, n_phi):
    rows = []
    for i in range(n_random + n_phi):
        label = "Random" if i < n_random else "PHI-Base"
        for t in (0.01, 0.1):
            rows.append({"host_tax_id": i, "path_tax_id": 1000 + i, "host_threshold": t,
                         "pathogen_threshold": t, "Interaction_type": label, "log_odds": float(i)})
    return pd.DataFrame(rows)


def test_sample_pairs_caps_each_type():
    """Every threshold row of a sampled pair is kept; small types are kept whole."""
    sample = sample_pairs(_labelled(5, 2), n_per_type=3, random_state=1)
    assert len(sample) == 10
    per_type = sample.drop_duplicates(["host_tax_id", "path_tax_id"])["Interaction_type"].value_counts()
    assert per_type.to_dict() == {"Random": 3, "PHI-Base": 2}


def test_sample_pairs_is_reproducible():
    labelled = _labelled(20, 0)
    first = sample_pairs(labelled, n_per_type=5, random_state=1)
    second = sample_pairs(labelled, n_per_type=5, random_state=1)
    pd.testing.assert_frame_equal(first, second)


def test_score_summary(pairs, host_abundance, pathogen_abundance):
    from hostcooc.shared import compute_shared_counts

    summary = compute_shared_counts(pairs, host_abundance, pathogen_abundance, [0.01, 0.1], [0.01, 0.1])
    metadata = pd.DataFrame({
        "host_tax_id": [1, 2],
        "path_tax_id": [9, 9],
        "Interaction_type": ["Positive Control", "Negative Control"],
    })
    scored, subset = score_summary(summary, metadata, n_total=1000, n_universe=1000)
    assert len(scored) == len(summary)
    assert {"Hyp_Geo_Score", "log_odds", "log_odds_2", "Interaction_type"} <= set(scored.columns)
    assert set(scored["Interaction_type"]) == {"Positive Control", "Negative Control", "Random"}
    assert len(subset) == len(summary)
    assert {"Jaccard", "phi", "fisher_p"} <= set(subset.columns)
