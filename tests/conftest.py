"""Shared fixtures: a four-pair data set small enough to count by hand.

Host records (max abundance per acc):
    host 1: A 0.02, B 0.2, C 0.005
    host 2: A 0.5,  B 0.05, D 0.001
    host 3: no records
Pathogen records:
    (9, X):  B 0.3, C 0.5     (A 0.4 carries label Z and is excluded)
    (10, Y): A 1.0, D 0.01    (B has no label and is excluded)
"""

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

THRESHOLDS = [0.01, 0.1]


@pytest.fixture
def pairs():
    return pd.DataFrame({
        "host_tax_id": pd.Series([1, 1, 2, 3], dtype="int64"),
        "path_tax_id": pd.Series([9, 10, 9, 10], dtype="int64"),
        "pathogen_root_label": ["X", "Y", "X", "Y"],
        "host_name": ["Host one", "Host one", "Host two", "Host three"],
        "pathogen_name": ["Path nine", "Path ten", "Path nine", "Path ten"],
    })


@pytest.fixture
def host_abundance():
    return pd.DataFrame({
        "acc": ["A", "B", "C", "A", "A", "B", "D", "E"],
        "tax_id": pd.Series([1, 1, 1, 1, 2, 2, 2, 4], dtype="int64"),
        "total_abundance": [0.02, 0.2, 0.005, 0.015, 0.5, 0.05, 0.001, 3.0],
    })


@pytest.fixture
def pathogen_abundance():
    return pd.DataFrame({
        "acc": ["B", "C", "A", "D", "A", "B"],
        "tax_id": pd.Series([9, 9, 9, 10, 10, 10], dtype="int64"),
        "total_abundance": [0.3, 0.5, 0.4, 0.01, 1.0, 0.002],
        "pathogen_type": ["X", "X", "Z", "Y", "Y", None],
    })


@pytest.fixture
def input_files(tmp_path, pairs, host_abundance, pathogen_abundance):
    """The fixture tables written to disk the way the CLI expects them."""
    paths = {
        "pairs": str(tmp_path / "pairs.tsv"),
        "host": str(tmp_path / "host.parquet"),
        "pathogen": str(tmp_path / "pathogen.parquet"),
    }
    pairs.to_csv(paths["pairs"], sep="\t", index=False)
    host_abundance.to_parquet(paths["host"], index=False)
    pathogen_abundance.to_parquet(paths["pathogen"], index=False)
    return paths


@pytest.fixture
def expected_shared():
    """num_shared_datasets per pair for (0.01, 0.01), (0.01, 0.1), (0.1, 0.01), (0.1, 0.1)."""
    return [
        1, 1, 1, 1,   # (1, 9, X): {A,B}/{B} vs {B,C}/{B,C}
        1, 1, 0, 0,   # (1, 10, Y): {A,B}/{B} vs {A,D}/{A}
        1, 1, 0, 0,   # (2, 9, X): {A,B}/{A} vs {B,C}/{B,C}
        0, 0, 0, 0,   # (3, 10, Y): no host records
    ]
