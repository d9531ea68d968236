"""Tests for summary export/import and the sparse COO export."""

import os

import pandas as pd
import pytest

from hostcooc.exceptions import SchemaError
from hostcooc.format import (
    abundances_from_coo,
    export_sparse_matrix,
    export_summary,
    read_summary,
    sparse_matrix_coo,
)
from hostcooc.pantry import Abundances
from hostcooc.shared import compute_shared_counts

from conftest import THRESHOLDS


@pytest.fixture
def summary(pairs, host_abundance, pathogen_abundance):
    from hostcooc._data_config import DEFAULT_THRESHOLDS

    return compute_shared_counts(pairs, host_abundance, pathogen_abundance,
                                 DEFAULT_THRESHOLDS, THRESHOLDS)


def test_export_file_names(tmp_path, summary):
    csv_path, parquet_path = export_summary(summary, str(tmp_path), tag="run1_")
    assert os.path.basename(csv_path) == "run1_host_pathogen_analysis_results.csv"
    assert os.path.basename(parquet_path) == "run1_host_pathogen_analysis_results.parquet"
    with open(csv_path) as f:
        header = f.readline().strip()
    assert header == ("host_tax_id,path_tax_id,host_threshold,pathogen_threshold,"
                      "num_host_datasets,num_pathogen_datasets,num_shared_datasets")


def test_round_trip_both_formats(tmp_path, summary):
    """Text and parquet copies read back to identical rows and values."""
    csv_path, parquet_path = export_summary(summary, str(tmp_path))
    from_csv = read_summary(csv_path)
    from_parquet = read_summary(parquet_path)

    key = list(summary.columns)
    expected = summary.sort_values(key).reset_index(drop=True)
    pd.testing.assert_frame_equal(from_csv.sort_values(key).reset_index(drop=True), expected)
    pd.testing.assert_frame_equal(from_parquet.sort_values(key).reset_index(drop=True), expected)


def test_read_summary_missing_column(tmp_path, summary):
    path = tmp_path / "partial.csv"
    summary.drop(columns=["num_shared_datasets"]).to_csv(path, index=False)
    with pytest.raises(SchemaError, match="num_shared_datasets"):
        read_summary(str(path))


def test_sparse_matrix_coo():
    abundance = pd.DataFrame({
        "acc": ["SRR2", "SRR1", "SRR2", "SRR3"],
        "tax_id": [20, 10, 10, 30],
        "total_abundance": [0.5, 1.5, 2.0, 0.0],
    })
    row_mapping, col_mapping, triplets = sparse_matrix_coo(abundance)
    assert row_mapping.to_dict("list") == {"acc": ["SRR1", "SRR2", "SRR3"], "row_idx": [0, 1, 2]}
    assert col_mapping.to_dict("list") == {"tax_id": [10, 20, 30], "col_idx": [0, 1, 2]}
    # zero abundance is left out of the triplets
    assert sorted(map(tuple, triplets.values.tolist())) == [(0, 0, 1.5), (1, 0, 2.0), (1, 1, 0.5)]


def test_export_sparse_matrix_round_trip(tmp_path):
    abundance = pd.DataFrame({
        "acc": ["a", "b", "b"],
        "tax_id": [1, 1, 2],
        "total_abundance": [1.0, 2.0, 3.0],
    })
    paths = export_sparse_matrix(abundance, str(tmp_path))
    assert set(paths) == {"row_mapping", "col_mapping", "sparse_matrix"}
    rebuilt = abundances_from_coo(*(pd.read_parquet(paths[k])
                                    for k in ("row_mapping", "col_mapping", "sparse_matrix")))
    direct = Abundances.from_records(abundance)
    assert rebuilt.accessions == direct.accessions
    assert rebuilt.taxa.tolist() == direct.taxa.tolist()
    assert (rebuilt.abundance_matrix != direct.abundance_matrix).nnz == 0
