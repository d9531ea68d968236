#!/usr/bin/env python3
###############################################################################
#                                                                             #
#    This program is free software: you can redistribute it and/or modify     #
#    it under the terms of the GNU General Public License as published by     #
#    the Free Software Foundation, either version 3 of the License, or        #
#    (at your option) any later version.                                      #
#                                                                             #
#    This program is distributed in the hope that it will be useful,          #
#    but WITHOUT ANY WARRANTY; without even the implied warranty of           #
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the            #
#    GNU General Public License for more details.                             #
#                                                                             #
#    You should have received a copy of the GNU General Public License        #
#    along with this program. If not, see <http://www.gnu.org/licenses/>.     #
#                                                                             #
###############################################################################

"""
embeddings.py

Johnson-Lindenstrauss random projections of an abundance matrix.

  Species embedding of taxon t:  sum over datasets of abundance * sign_i(acc) / sqrt(k)
  Dataset embedding of acc a:    sum over taxa of abundance * sign_i(tax) / sqrt(k)

Taxon signs come from a seeded generator over the sorted taxon ids.
Accession signs are derived from a hash of the accession string, so an
accession keeps its signs whatever else is in the table. Both passes walk
the accession rows in shards so the sign block and the output stay small.

Usage:
  hostcooc embed --abundance data.parquet --output_dir /path/to/out --dim 512
"""

import logging
import math
import os

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from hostcooc._data_config import EMBEDDING_DIM, EMBEDDING_SEED, EMBEDDING_SHARDS
from hostcooc.exceptions import ConfigurationError
from hostcooc.pantry import Abundances, load_abundance

logger = logging.getLogger(__name__)

_GOLDEN = np.uint64(0x9E3779B97F4A7C15)


def _mix64(x: np.ndarray) -> np.ndarray:
    # splitmix64 finaliser, wraps modulo 2**64
    x = (x ^ (x >> np.uint64(30))) * np.uint64(0xBF58476D1CE4E5B9)
    x = (x ^ (x >> np.uint64(27))) * np.uint64(0x94D049BB133111EB)
    return x ^ (x >> np.uint64(31))


def taxon_signs(n_taxa: int, dim: int = EMBEDDING_DIM, seed: int = EMBEDDING_SEED) -> np.ndarray:
    """(n_taxa, dim) float32 matrix of +-1/sqrt(dim)."""
    rng = np.random.default_rng(seed)
    signs = rng.choice(np.int8([-1, 1]), size=(n_taxa, dim), replace=True)
    return signs.astype(np.float32) * np.float32(1.0 / math.sqrt(dim))


def accession_signs(accessions, dim: int = EMBEDDING_DIM, seed: int = EMBEDDING_SEED) -> np.ndarray:
    """(len(accessions), dim) float32 matrix of +-1/sqrt(dim), one row per accession."""
    hashed = pd.util.hash_array(np.asarray(accessions, dtype=object))
    base = _mix64(hashed ^ np.uint64(seed))
    offsets = np.arange(1, dim + 1, dtype=np.uint64) * _GOLDEN
    bits = _mix64(base[:, None] + offsets[None, :]) & np.uint64(1)
    scale = np.float32(1.0 / math.sqrt(dim))
    return np.where(bits == 1, scale, -scale).astype(np.float32)


def _check_dim(dim: int):
    if dim < 1:
        raise ConfigurationError(f"Embedding dimension must be at least 1, got {dim}")


def species_embeddings(abundances: Abundances,
                       dim: int = EMBEDDING_DIM,
                       seed: int = EMBEDDING_SEED,
                       n_shards: int = EMBEDDING_SHARDS) -> pd.DataFrame:
    """Embedding per taxon: columns tax_id, emb_0 .. emb_{dim-1}."""
    _check_dim(dim)
    result = np.zeros((len(abundances.taxa), dim), dtype=np.float64)
    for start, stop, block in abundances.shards(n_shards):
        signs = accession_signs(abundances.accessions[start:stop], dim, seed)
        result += np.asarray(block.T @ signs)

    out = pd.DataFrame(result.astype(np.float32), columns=[f"emb_{i}" for i in range(dim)])
    out.insert(0, "tax_id", abundances.taxa)
    return out


def dataset_embeddings(abundances: Abundances,
                       dim: int = EMBEDDING_DIM,
                       seed: int = EMBEDDING_SEED,
                       n_shards: int = EMBEDDING_SHARDS):
    """
    Yield one DataFrame (acc, emb_0 .. emb_{dim-1}) per accession shard.
    Empty shards are skipped.
    """
    _check_dim(dim)
    signs = taxon_signs(len(abundances.taxa), dim, seed)
    columns = [f"emb_{i}" for i in range(dim)]
    for start, stop, block in abundances.shards(n_shards):
        values = np.asarray(block @ signs, dtype=np.float32)
        out = pd.DataFrame(values, columns=columns)
        out.insert(0, "acc", abundances.accessions[start:stop])
        yield out


def run_embeddings(abundance_file: str,
                   output_dir: str,
                   dim: int = EMBEDDING_DIM,
                   seed: int = EMBEDDING_SEED,
                   n_shards: int = EMBEDDING_SHARDS,
                   tag: str = ""):
    """
    Write taxa_ids, species_embeddings and dataset_embeddings parquet
    files (zstd) to output_dir. Returns a dict of the paths written.
    """
    _check_dim(dim)
    os.makedirs(output_dir, exist_ok=True)

    logger.info(f"Embedding dim={dim}, seed={seed}, shards={n_shards}")
    records = load_abundance(abundance_file, side="host")
    abundances = Abundances.from_records(records)
    logger.info(f"Abundance matrix: {abundances}")

    paths = {name: os.path.join(output_dir, f"{tag}{name}.parquet")
             for name in ("taxa_ids", "species_embeddings", "dataset_embeddings")}

    logger.info("Step 1: Taxon ids")
    pd.DataFrame({"tax_id": abundances.taxa}).to_parquet(paths["taxa_ids"], index=False, compression="zstd")

    logger.info("Step 2: Species embeddings over accessions")
    species = species_embeddings(abundances, dim, seed, n_shards)
    species.to_parquet(paths["species_embeddings"], index=False, compression="zstd")
    logger.info(f"  {len(species)} species embeddings saved to {paths['species_embeddings']}")

    logger.info("Step 3: Dataset embeddings per shard")
    writer = None
    n_rows = 0
    try:
        for shard in dataset_embeddings(abundances, dim, seed, n_shards):
            table = pa.Table.from_pandas(shard, preserve_index=False)
            if writer is None:
                writer = pq.ParquetWriter(paths["dataset_embeddings"], table.schema, compression="zstd")
            writer.write_table(table)
            n_rows += len(shard)
    finally:
        if writer is not None:
            writer.close()
    if writer is None:
        # No accessions at all: still leave a readable, empty table behind
        empty = pd.DataFrame({"acc": pd.Series(dtype=str),
                              **{f"emb_{i}": pd.Series(dtype=np.float32) for i in range(dim)}})
        empty.to_parquet(paths["dataset_embeddings"], index=False, compression="zstd")
    logger.info(f"  {n_rows} dataset embeddings saved to {paths['dataset_embeddings']}")

    return paths
