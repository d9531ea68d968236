"""Tests for random-projection embeddings."""

import math
import os

import numpy as np
import pandas as pd
import pytest

from hostcooc.embeddings import (
    accession_signs,
    dataset_embeddings,
    run_embeddings,
    species_embeddings,
    taxon_signs,
)
from hostcooc.exceptions import ConfigurationError
from hostcooc.pantry import Abundances


@pytest.fixture
def abundances():
    records = pd.DataFrame({
        "acc": ["a", "a", "b", "c", "c", "d", "e"],
        "tax_id": [1, 2, 2, 1, 3, 3, 2],
        "total_abundance": [1.0, 0.5, 2.0, 0.25, 1.0, 3.0, 0.1],
    })
    return Abundances.from_records(records)


def test_signs_are_scaled_plus_minus_one():
    signs = taxon_signs(5, dim=16, seed=42)
    assert signs.shape == (5, 16)
    assert set(np.unique(np.abs(signs))) == {np.float32(1 / math.sqrt(16))}
    np.testing.assert_array_equal(signs, taxon_signs(5, dim=16, seed=42))


def test_accession_signs_do_not_depend_on_neighbours():
    both = accession_signs(["SRR1", "SRR2"], dim=32, seed=42)
    alone = accession_signs(["SRR2"], dim=32, seed=42)
    np.testing.assert_array_equal(both[1], alone[0])
    assert not np.array_equal(both[0], both[1])
    assert not np.array_equal(alone, accession_signs(["SRR2"], dim=32, seed=7))


def test_dataset_embeddings_are_projection(abundances):
    dim = 8
    frames = list(dataset_embeddings(abundances, dim=dim, seed=42, n_shards=2))
    assert len(frames) == 2
    result = pd.concat(frames, ignore_index=True)
    assert result["acc"].tolist() == ["a", "b", "c", "d", "e"]
    expected = abundances.abundance_matrix @ taxon_signs(len(abundances.taxa), dim, 42)
    np.testing.assert_allclose(result.drop(columns="acc").to_numpy(), expected, rtol=1e-6, atol=1e-7)


def test_species_embeddings_do_not_depend_on_shards(abundances):
    one = species_embeddings(abundances, dim=8, seed=42, n_shards=1)
    many = species_embeddings(abundances, dim=8, seed=42, n_shards=4)
    assert one["tax_id"].tolist() == [1, 2, 3]
    assert list(one.columns) == ["tax_id"] + [f"emb_{i}" for i in range(8)]
    np.testing.assert_allclose(one.drop(columns="tax_id"), many.drop(columns="tax_id"), rtol=1e-6, atol=1e-7)


def test_bad_dimension(abundances):
    with pytest.raises(ConfigurationError):
        species_embeddings(abundances, dim=0)


def test_run_embeddings(tmp_path):
    source = tmp_path / "abundance.parquet"
    pd.DataFrame({
        "acc": ["x", "y", "y"],
        "tax_id": [5, 5, 6],
        "total_abundance": [1.0, 2.0, 3.0],
    }).to_parquet(source, index=False)
    paths = run_embeddings(str(source), str(tmp_path / "jl"), dim=4, n_shards=2)
    for path in paths.values():
        assert os.path.exists(path)
    datasets = pd.read_parquet(paths["dataset_embeddings"])
    assert datasets["acc"].tolist() == ["x", "y"]
    assert pd.read_parquet(paths["taxa_ids"])["tax_id"].tolist() == [5, 6]
    assert pd.read_parquet(paths["species_embeddings"]).shape == (2, 5)
