"""Tests for shared-dataset counting and the equivalence of both strategies."""

import numpy as np
import pandas as pd
import pytest

from hostcooc._data_config import SUMMARY_COLUMNS
from hostcooc.counts import host_threshold_counts, pathogen_threshold_counts
from hostcooc.exceptions import ConfigurationError
from hostcooc.shared import (
    check_shared_invariant,
    compute_shared_counts,
    shared_counts_intersection,
    shared_counts_rejoin,
)

from conftest import THRESHOLDS


def _intersection(pairs, host_abundance, pathogen_abundance, ht=THRESHOLDS, pt=THRESHOLDS):
    return compute_shared_counts(pairs, host_abundance, pathogen_abundance, ht, pt, strategy="intersection")


def _rejoin(pairs, host_abundance, pathogen_abundance, ht=THRESHOLDS, pt=THRESHOLDS, **kwargs):
    return compute_shared_counts(pairs, host_abundance, pathogen_abundance, ht, pt, strategy="rejoin", **kwargs)


def test_summary_layout(pairs, host_abundance, pathogen_abundance, expected_shared):
    summary = _intersection(pairs, host_abundance, pathogen_abundance)
    assert list(summary.columns) == SUMMARY_COLUMNS
    assert len(summary) == len(pairs) * len(THRESHOLDS) ** 2
    assert summary["num_shared_datasets"].tolist() == expected_shared
    assert summary["host_threshold"].tolist()[:4] == [0.01, 0.01, 0.1, 0.1]
    assert summary["pathogen_threshold"].tolist()[:4] == [0.01, 0.1, 0.01, 0.1]
    assert summary["host_tax_id"].tolist()[::4] == [1, 1, 2, 3]


def test_shared_example():
    """Host in {A,B}, pathogen X in {B,C}: one shared dataset."""
    pairs = pd.DataFrame({
        "host_tax_id": [1], "path_tax_id": [9], "pathogen_root_label": ["X"],
        "host_name": ["h"], "pathogen_name": ["p"],
    })
    host = pd.DataFrame({"acc": ["A", "B"], "tax_id": [1, 1], "total_abundance": [1.0, 1.0]})
    pathogen = pd.DataFrame({
        "acc": ["B", "C"], "tax_id": [9, 9], "total_abundance": [1.0, 1.0], "pathogen_type": ["X", "X"],
    })
    for strategy in ("intersection", "rejoin"):
        summary = compute_shared_counts(pairs, host, pathogen, [0.5], [0.5], strategy=strategy)
        assert summary[["num_host_datasets", "num_pathogen_datasets", "num_shared_datasets"]].values.tolist() == [[2, 2, 1]]


def test_pair_without_host_datasets_keeps_rows(pairs, host_abundance, pathogen_abundance):
    """Host 3 has no records; its rows still appear with zero counts."""
    summary = _intersection(pairs, host_abundance, pathogen_abundance)
    rows = summary[summary["host_tax_id"] == 3]
    assert len(rows) == 4
    assert rows["num_host_datasets"].tolist() == [0, 0, 0, 0]
    assert rows["num_shared_datasets"].tolist() == [0, 0, 0, 0]
    assert rows["num_pathogen_datasets"].tolist() == [2, 1, 2, 1]


def test_shared_never_exceeds_either_side(pairs, host_abundance, pathogen_abundance):
    from hostcooc._data_config import DEFAULT_THRESHOLDS

    summary = _intersection(pairs, host_abundance, pathogen_abundance, DEFAULT_THRESHOLDS, DEFAULT_THRESHOLDS)
    limit = np.minimum(summary["num_host_datasets"], summary["num_pathogen_datasets"])
    assert (summary["num_shared_datasets"] <= limit).all()


def test_strategies_agree(pairs, host_abundance, pathogen_abundance, expected_shared):
    inter = _intersection(pairs, host_abundance, pathogen_abundance)
    rejoin = _rejoin(pairs, host_abundance, pathogen_abundance)
    pd.testing.assert_frame_equal(inter, rejoin)
    assert rejoin["num_shared_datasets"].tolist() == expected_shared


@pytest.mark.parametrize("n_chunks", [1, 2, 3, 50])
def test_rejoin_chunking_does_not_change_counts(pairs, host_abundance, pathogen_abundance, n_chunks):
    reference = _intersection(pairs, host_abundance, pathogen_abundance)
    chunked = _rejoin(pairs, host_abundance, pathogen_abundance, n_chunks=n_chunks)
    pd.testing.assert_frame_equal(reference, chunked)


def test_rejoin_memory_limit(pairs, host_abundance, pathogen_abundance):
    """A tiny memory ceiling only raises the chunk count."""
    reference = _intersection(pairs, host_abundance, pathogen_abundance)
    limited = _rejoin(pairs, host_abundance, pathogen_abundance, n_chunks=1, memory_limit=16)
    pd.testing.assert_frame_equal(reference, limited)


def test_strategies_agree_with_duplicates(pairs, host_abundance, pathogen_abundance):
    """Duplicated pairs and thresholds give duplicated rows under both strategies."""
    doubled = pd.concat([pairs, pairs.iloc[[0, 3]]], ignore_index=True)
    ht = [0.1, 0.01, 0.1]
    pt = [0.001, 0.5]
    inter = _intersection(doubled, host_abundance, pathogen_abundance, ht, pt)
    rejoin = _rejoin(doubled, host_abundance, pathogen_abundance, ht, pt, n_chunks=2)
    assert len(inter) == len(doubled) * len(ht) * len(pt)
    pd.testing.assert_frame_equal(inter, rejoin)
    first, repeat = inter.iloc[:6].reset_index(drop=True), inter.iloc[24:30].reset_index(drop=True)
    pd.testing.assert_frame_equal(first, repeat)


def test_strategies_agree_on_random_data():
    rng = np.random.default_rng(7)
    n_records = 400
    accs = [f"SRR{i}" for i in range(40)]
    host = pd.DataFrame({
        "acc": rng.choice(accs, n_records),
        "tax_id": rng.integers(1, 6, n_records),
        "total_abundance": rng.choice([0.0, 0.001, 0.01, 0.05, 0.1, 0.5, 2.0], n_records),
    })
    pathogen = pd.DataFrame({
        "acc": rng.choice(accs, n_records),
        "tax_id": rng.integers(100, 104, n_records),
        "total_abundance": rng.choice([0.0, 0.001, 0.01, 0.05, 0.1, 0.5, 2.0], n_records),
        "pathogen_type": rng.choice(["bacteria", "virus", None], n_records),
    })
    pairs = pd.DataFrame({
        "host_tax_id": rng.integers(1, 7, 25),
        "path_tax_id": rng.integers(100, 105, 25),
        "pathogen_root_label": rng.choice(["bacteria", "virus"], 25),
    })
    pairs["host_name"] = "h"
    pairs["pathogen_name"] = "p"
    thresholds = [0.001, 0.01, 0.05, 0.1, 0.5, 1.0]

    inter = _intersection(pairs, host, pathogen, thresholds, thresholds)
    for n_chunks in (1, 4, 100):
        rejoin = _rejoin(pairs, host, pathogen, thresholds, thresholds, n_chunks=n_chunks)
        pd.testing.assert_frame_equal(inter, rejoin)


def test_intersection_requires_lists(pairs, host_abundance, pathogen_abundance):
    host = host_threshold_counts(pairs, host_abundance, THRESHOLDS, keep_datasets=False)
    pathogen = pathogen_threshold_counts(pairs, pathogen_abundance, THRESHOLDS)
    with pytest.raises(ValueError, match="host_datasets"):
        shared_counts_intersection(pairs, host, pathogen)


def test_empty_pairs(pairs, host_abundance, pathogen_abundance):
    empty = pairs.iloc[0:0]
    host = host_threshold_counts(empty, host_abundance, THRESHOLDS)
    pathogen = pathogen_threshold_counts(empty, pathogen_abundance, THRESHOLDS)
    for summary in (
        shared_counts_intersection(empty, host, pathogen),
        shared_counts_rejoin(empty, host_abundance, pathogen_abundance, THRESHOLDS, THRESHOLDS),
    ):
        assert summary.empty
        assert list(summary.columns) == SUMMARY_COLUMNS


def test_unknown_strategy(pairs, host_abundance, pathogen_abundance):
    with pytest.raises(ConfigurationError):
        compute_shared_counts(pairs, host_abundance, pathogen_abundance, THRESHOLDS, THRESHOLDS,
                              strategy="guess")
def test_invariant_check():
    bad = pd.DataFrame({
        "host_tax_id": [9606, 9606],
        "path_tax_id": [562, 1280],
        "host_threshold": [0.01, 0.01],
        "pathogen_threshold": [0.1, 0.1],
        "num_host_datasets": [3, 1],
        "num_pathogen_datasets": [3, 5],
        "num_shared_datasets": [2, 2],
    })
    with pytest.raises(ValueError, match="1 rows.*path_tax_id=1280"):
        check_shared_invariant(bad)
    check_shared_invariant(bad.iloc[[0]])


@pytest.mark.parametrize("strategy", ["intersection", "rejoin"])
def test_resume_after_pairs_change_keeps_every_row(tmp_path, pairs, host_abundance, pathogen_abundance, strategy):
    parts_dir = str(tmp_path / "parts")
    compute_shared_counts(pairs.iloc[:1], host_abundance, pathogen_abundance, [0.01], [0.01],
                          strategy=strategy, parts_dir=parts_dir)
    resumed = compute_shared_counts(pairs, host_abundance, pathogen_abundance, [0.01], [0.01],
                                    strategy=strategy, parts_dir=parts_dir)
    fresh = compute_shared_counts(pairs, host_abundance, pathogen_abundance, [0.01], [0.01], strategy=strategy)
    assert len(resumed) == len(pairs)
    pd.testing.assert_frame_equal(resumed, fresh)


def test_rejoin_writes_and_reuses_parts(tmp_path, pairs, host_abundance, pathogen_abundance):
    parts_dir = tmp_path / "parts"
    first = _rejoin(pairs, host_abundance, pathogen_abundance, parts_dir=str(parts_dir))
    written = sorted(p.name for p in parts_dir.iterdir())
    assert len(written) == 2 * len(THRESHOLDS)
    assert all(name.startswith(("host_threshold=", "pathogen_threshold=")) for name in written)

    second = _rejoin(pairs, host_abundance, pathogen_abundance, parts_dir=str(parts_dir))
    pd.testing.assert_frame_equal(first, second)


def test_intersection_rejects_counts_missing_a_pair(pairs, host_abundance, pathogen_abundance):
    host_counts = host_threshold_counts(pairs.iloc[:1], host_abundance, THRESHOLDS)
    pathogen_counts = pathogen_threshold_counts(pairs, pathogen_abundance, THRESHOLDS)
    with pytest.raises(ValueError, match="paired host keys"):
        shared_counts_intersection(pairs, host_counts, pathogen_counts)


def test_rejoin_memory_limit_splits_records_of_one_pair():
    """A single pair with many accessions is counted in record slices."""
    accs = [f"SRR{i}" for i in range(40)]
    pairs = pd.DataFrame({
        "host_tax_id": [1, 2],
        "path_tax_id": [10, 10],
        "pathogen_root_label": ["bacteria", "bacteria"],
        "host_name": ["h1", "h2"],
        "pathogen_name": ["p", "p"],
    })
    host = pd.DataFrame({
        "acc": accs + accs[:2],
        "tax_id": [1] * 40 + [2, 2],
        "total_abundance": np.linspace(0.005, 0.5, 40).tolist() + [0.2, 0.2],
    })
    pathogen = pd.DataFrame({
        "acc": accs,
        "tax_id": [10] * 40,
        "total_abundance": np.linspace(0.5, 0.005, 40).tolist(),
        "pathogen_type": ["bacteria"] * 40,
    })
    reference = _intersection(pairs, host, pathogen)
    # room for 4 joined records per pass
    limited = _rejoin(pairs, host, pathogen, n_chunks=1, memory_limit=4 * len(THRESHOLDS) ** 2 * 5)
    pd.testing.assert_frame_equal(reference, limited)
