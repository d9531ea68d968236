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
search.py

Dataset accessions behind host-pathogen pairs, and the metadata rows that
describe them.

Exposes:
  1. pair_datasets(pairs, host_abundance, pathogen_abundance, host_threshold, pathogen_threshold)
     - One row per pair with the sorted list of accessions where both taxa
       pass their thresholds (SRA_datasets).
  2. unique_accessions(datasets, column="SRA_datasets")
     - Sorted distinct accessions over every non-empty list.
  3. extract_metadata(accessions, metadata_paths)
     - Rows of the metadata tables whose acc is one of `accessions`.
  4. search_metadata(...)
     - File-based interface writing unique_accessions.parquet and
       sra_metadata.parquet to output_dir.
"""

import glob
import logging
import os
from typing import Iterable, List, Sequence, Union

import pandas as pd

from hostcooc.counts import host_threshold_counts, pathogen_threshold_counts
from hostcooc.exceptions import MissingInputError, SchemaError
from hostcooc.pantry import load_abundance, load_pairs, read_table
from hostcooc.utils import flatten

logger = logging.getLogger(__name__)

DATASETS_COLUMN = "SRA_datasets"


def pair_datasets(pairs: pd.DataFrame,
                  host_abundance: pd.DataFrame,
                  pathogen_abundance: pd.DataFrame,
                  host_threshold: float,
                  pathogen_threshold: float) -> pd.DataFrame:
    """
    Shared accessions per pair at a single threshold combination.

    Pairs keep their input order; pairs with nothing in common get an empty
    list.
    """
    host = host_threshold_counts(pairs, host_abundance, [host_threshold])
    pathogen = pathogen_threshold_counts(pairs, pathogen_abundance, [pathogen_threshold])

    merged = (
        pairs.merge(host[["host_tax_id", "host_datasets"]], on="host_tax_id", how="left")
        .merge(pathogen[["path_tax_id", "pathogen_root_label", "pathogen_datasets"]],
               on=["path_tax_id", "pathogen_root_label"], how="left")
    )
    merged[DATASETS_COLUMN] = [
        sorted(set(h) & set(p)) for h, p in zip(merged["host_datasets"], merged["pathogen_datasets"])
    ]
    merged["host_threshold"] = float(host_threshold)
    merged["pathogen_threshold"] = float(pathogen_threshold)
    return merged.drop(columns=["host_datasets", "pathogen_datasets"])


def unique_accessions(datasets: pd.DataFrame, column: str = DATASETS_COLUMN) -> List[str]:
    if column not in datasets.columns:
        raise SchemaError(f"Dataset table has no '{column}' column")
    lists = [v for v in datasets[column] if v is not None and not isinstance(v, float)]
    if any(isinstance(v, str) for v in lists):
        raise SchemaError(
            f"Column '{column}' holds text instead of accession lists; write the table as parquet"
        )
    return sorted(set(flatten(v for v in lists if len(v) > 0)))


def _expand_paths(metadata_paths: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(metadata_paths, str):
        metadata_paths = [metadata_paths]
    paths = []
    for pattern in metadata_paths:
        matched = sorted(glob.glob(pattern))
        if not matched:
            raise MissingInputError(f"No metadata file matches '{pattern}'.")
        paths.extend(matched)
    return paths


def extract_metadata(accessions: Iterable[str], metadata_paths: Union[str, Sequence[str]]) -> pd.DataFrame:
    """
    Concatenate the rows of every metadata file (parquet or delimited text,
    globs allowed) whose `acc` column is in `accessions`.
    """
    wanted = set(accessions)
    frames = []
    for path in _expand_paths(metadata_paths):
        df = read_table(path)
        if "acc" not in df.columns:
            raise SchemaError(f"{path}: metadata table has no 'acc' column")
        hits = df[df["acc"].astype(str).isin(wanted)]
        logger.debug(f"{path}: {len(hits)} matching rows")
        frames.append(hits)
    if not frames:
        return pd.DataFrame(columns=["acc"])
    return pd.concat(frames, ignore_index=True)


def search_metadata(metadata_paths: Union[str, Sequence[str]],
                    output_dir: str,
                    datasets_file: str = None,
                    pairs_file: str = None,
                    host_abundance_file: str = None,
                    pathogen_abundance_file: str = None,
                    host_threshold: float = None,
                    pathogen_threshold: float = None,
                    column: str = DATASETS_COLUMN,
                    tag: str = ""):
    """
    Either read pair dataset lists from `datasets_file` or build them from
    the pair and abundance files at one threshold combination, then pull the
    matching metadata rows.

    Returns:
        dict: paths of the files written.
    """
    if datasets_file:
        if not str(datasets_file).lower().endswith((".parquet", ".pq")):
            raise SchemaError(
                f"{datasets_file}: the datasets file must be parquet so that '{column}' keeps its lists"
            )
        datasets = read_table(datasets_file)
    else:
        needed = (pairs_file, host_abundance_file, pathogen_abundance_file,
                  host_threshold, pathogen_threshold)
        if any(v is None for v in needed):
            raise ValueError(
                "Provide either a datasets file or pairs, both abundance files and both thresholds"
            )
        datasets = pair_datasets(
            load_pairs(pairs_file),
            load_abundance(host_abundance_file, side="host"),
            load_abundance(pathogen_abundance_file, side="pathogen"),
            host_threshold,
            pathogen_threshold,
        )

    os.makedirs(output_dir, exist_ok=True)
    paths = {}
    if not datasets_file:
        paths["pair_datasets"] = os.path.join(output_dir, f"{tag}pair_datasets.parquet")
        datasets.to_parquet(paths["pair_datasets"], index=False)

    accessions = unique_accessions(datasets, column=column)
    logger.info(f"Total unique accessions: {len(accessions)}")
    paths["unique_accessions"] = os.path.join(output_dir, f"{tag}unique_accessions.parquet")
    pd.DataFrame({"acc": accessions}).to_parquet(paths["unique_accessions"], index=False)

    metadata = extract_metadata(accessions, metadata_paths)
    logger.info(f"Total metadata rows extracted: {len(metadata)}")
    paths["sra_metadata"] = os.path.join(output_dir, f"{tag}sra_metadata.parquet")
    metadata.to_parquet(paths["sra_metadata"], index=False)
    return paths
