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
format.py

Writing and reading the tables the pipeline produces:
    1. The shared-count summary, as comma separated text and as parquet.
    2. A sparse COO view of an abundance table: accession -> row index and
       taxon -> column index mappings plus (row_idx, col_idx, value) triplets.

Usage (for the sparse export):
  hostcooc sparse --abundance data.parquet --output_dir /path/to/out
"""

import logging
import os
from typing import Tuple

import pandas as pd
import scipy.sparse as sp

from hostcooc._data_config import SUMMARY_BASENAME, SUMMARY_COLUMNS
from hostcooc.exceptions import SchemaError
from hostcooc.pantry import Abundances, _check_exists, _is_parquet

logger = logging.getLogger(__name__)

_SUMMARY_DTYPES = {
    "host_tax_id": "int64",
    "path_tax_id": "int64",
    "host_threshold": "float64",
    "pathogen_threshold": "float64",
    "num_host_datasets": "int64",
    "num_pathogen_datasets": "int64",
    "num_shared_datasets": "int64",
}

# --- Summary table ---

def summary_paths(output_dir: str, tag: str = "") -> Tuple[str, str]:
    base = os.path.join(output_dir, f"{tag}{SUMMARY_BASENAME}")
    return f"{base}.csv", f"{base}.parquet"


def export_summary(summary: pd.DataFrame, output_dir: str, tag: str = "") -> Tuple[str, str]:
    """
    Write the summary as CSV (with header) and parquet. Existing files are
    replaced.

    Returns:
        (csv_path, parquet_path)
    """
    os.makedirs(output_dir, exist_ok=True)
    csv_path, parquet_path = summary_paths(output_dir, tag)
    table = summary[SUMMARY_COLUMNS]
    table.to_csv(csv_path, index=False)
    table.to_parquet(parquet_path, index=False)
    logger.info(f"Summary saved to {csv_path}")
    logger.info(f"Summary saved to {parquet_path}")
    return csv_path, parquet_path


def read_summary(path: str) -> pd.DataFrame:
    """Read a summary written by export_summary (either format)."""
    _check_exists(path)
    if _is_parquet(path):
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path, sep=",", float_precision="round_trip")
    missing = [c for c in SUMMARY_COLUMNS if c not in df.columns]
    if missing:
        raise SchemaError(f"{path}: missing summary column(s) {', '.join(missing)}")
    try:
        return df[SUMMARY_COLUMNS].astype(_SUMMARY_DTYPES)
    except (TypeError, ValueError) as e:
        raise SchemaError(f"{path}: summary columns have unexpected types ({e})") from e

# --- Sparse COO export ---

def build_indices(abundance: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Build 0-based row and column indices for accessions and taxa.

    Returns:
        row_mapping (pd.DataFrame): acc, row_idx (accessions in sorted order).
        col_mapping (pd.DataFrame): tax_id, col_idx (taxa in sorted order).
    """
    accessions = pd.Series(abundance["acc"].unique()).sort_values(ignore_index=True)
    taxa = pd.Series(abundance["tax_id"].unique()).sort_values(ignore_index=True)
    row_mapping = pd.DataFrame({"acc": accessions, "row_idx": range(len(accessions))})
    col_mapping = pd.DataFrame({"tax_id": taxa, "col_idx": range(len(taxa))})
    return row_mapping, col_mapping


def sparse_matrix_coo(abundance: pd.DataFrame):
    """
    Return (row_mapping, col_mapping, triplets) for the abundance records.

    Triplets hold row_idx, col_idx, value for records with positive
    abundance. Records are not aggregated: a duplicated (acc, taxon) record
    gives a duplicated triplet, to be summed by whatever builds the matrix.
    """
    row_mapping, col_mapping = build_indices(abundance)
    positive = abundance[abundance["total_abundance"] > 0]
    triplets = (
        positive.merge(row_mapping, on="acc", how="inner")
        .merge(col_mapping, on="tax_id", how="inner")
        .rename(columns={"total_abundance": "value"})
    )[["row_idx", "col_idx", "value"]]
    return row_mapping, col_mapping, triplets.reset_index(drop=True)


def export_sparse_matrix(abundance: pd.DataFrame, output_dir: str, tag: str = ""):
    """
    Write row_mapping, col_mapping and sparse_matrix parquet files (zstd).
    """
    os.makedirs(output_dir, exist_ok=True)
    row_mapping, col_mapping, triplets = sparse_matrix_coo(abundance)
    paths = {}
    for name, df in (("row_mapping", row_mapping), ("col_mapping", col_mapping), ("sparse_matrix", triplets)):
        path = os.path.join(output_dir, f"{tag}{name}.parquet")
        df.to_parquet(path, index=False, compression="zstd")
        paths[name] = path
        logger.info(f"{name} ({len(df)} rows) saved to {path}")
    return paths


def abundances_from_coo(row_mapping: pd.DataFrame, col_mapping: pd.DataFrame,
                        triplets: pd.DataFrame) -> Abundances:
    """Rebuild an Abundances matrix from an exported sparse COO triple."""
    matrix = sp.coo_matrix(
        (triplets["value"].to_numpy(dtype=float),
         (triplets["row_idx"].to_numpy(), triplets["col_idx"].to_numpy())),
        shape=(len(row_mapping), len(col_mapping)),
    ).tocsr()
    accessions = row_mapping.sort_values("row_idx")["acc"].astype(str).tolist()
    taxa = col_mapping.sort_values("col_idx")["tax_id"].to_numpy()
    return Abundances(accessions, taxa, matrix)
