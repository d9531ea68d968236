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
counts.py

Per-taxon, per-threshold dataset membership.

For every taxon of interest and every threshold, count the distinct dataset
accessions in which the taxon's abundance is >= the threshold, and (unless a
count-only projection is requested) keep the sorted list of those
accessions for later intersection.

Host taxa are keyed by host_tax_id. Pathogen taxa are keyed by
(path_tax_id, pathogen_root_label), and a record only counts towards a key
when its pathogen_type equals the key's root label.

Every key gets a row at every threshold: a taxon with no qualifying dataset
has a count of 0 and an empty list.
"""

import logging
import os
from typing import List, Optional, Sequence

import pandas as pd

from hostcooc.exceptions import ResourceExhaustionError

logger = logging.getLogger(__name__)

HOST_KEYS = ["host_tax_id"]
PATHOGEN_KEYS = ["path_tax_id", "pathogen_root_label"]


def host_records(pairs: pd.DataFrame, host_abundance: pd.DataFrame) -> pd.DataFrame:
    """
    Host abundance records restricted to the paired host taxa, one row per
    (host_tax_id, acc) holding the highest abundance seen.
    """
    keys = pairs[HOST_KEYS].drop_duplicates()
    records = host_abundance.rename(columns={"tax_id": "host_tax_id"})
    records = records[records["host_tax_id"].isin(keys["host_tax_id"])]
    return _collapse(records, HOST_KEYS)


def pathogen_records(pairs: pd.DataFrame, pathogen_abundance: pd.DataFrame) -> pd.DataFrame:
    """
    Pathogen abundance records whose (tax_id, pathogen_type) matches a paired
    (path_tax_id, pathogen_root_label), one row per key and accession.
    """
    keys = pairs[PATHOGEN_KEYS].drop_duplicates()
    records = pathogen_abundance.rename(
        columns={"tax_id": "path_tax_id", "pathogen_type": "pathogen_root_label"}
    )
    records = records.merge(keys, on=PATHOGEN_KEYS, how="inner")
    return _collapse(records, PATHOGEN_KEYS)


def _collapse(records: pd.DataFrame, key_cols: List[str]) -> pd.DataFrame:
    # A dataset passes a threshold if any of its records for the key does
    return (
        records.groupby(key_cols + ["acc"], as_index=False, sort=True)["total_abundance"]
        .max()
    )


def _counts_at_threshold(keys: pd.DataFrame,
                         records: pd.DataFrame,
                         key_cols: List[str],
                         threshold: float,
                         count_col: str,
                         list_col: Optional[str]) -> pd.DataFrame:
    passing = records.loc[records["total_abundance"] >= threshold, key_cols + ["acc"]]
    if passing.empty:
        out = keys.copy()
        out[count_col] = 0
        if list_col is not None:
            out[list_col] = [[] for _ in range(len(out))]
        return out

    grouped = passing.groupby(key_cols, sort=False)["acc"]
    if list_col is None:
        agg = grouped.size().rename(count_col).reset_index()
    else:
        agg = grouped.agg(list).rename(list_col).reset_index()
        agg[count_col] = agg[list_col].map(len)

    # left join from every key so that empty keys still get a row
    out = keys.merge(agg, on=key_cols, how="left")
    out[count_col] = out[count_col].fillna(0).astype("int64")
    if list_col is not None:
        out[list_col] = [v if isinstance(v, list) else [] for v in out[list_col]]
    return out


def _part_path(parts_dir: str, side: str, threshold: float) -> str:
    return os.path.join(parts_dir, f"{side}_threshold={float(threshold)!r}.parquet")


def _reuse_part(path: str,
                keys: pd.DataFrame,
                key_cols: List[str],
                list_col: Optional[str]) -> Optional[pd.DataFrame]:
    """
    Read a stored part back in the row order of `keys`, or None when it was
    written for a different key set or lacks the dataset lists.
    """
    df = pd.read_parquet(path)
    if list_col is not None and list_col not in df.columns:
        return None
    if len(df) != len(keys) or df.duplicated(key_cols).any():
        return None
    out = keys.merge(df, on=key_cols, how="left", indicator=True)
    if (out["_merge"] != "both").any():
        return None
    out = out.drop(columns="_merge")
    if list_col is not None:
        out[list_col] = out[list_col].map(list)
    return out


def _threshold_counts(side: str,
                      keys: pd.DataFrame,
                      records: pd.DataFrame,
                      key_cols: List[str],
                      thresholds: Sequence[float],
                      keep_datasets: bool,
                      parts_dir: Optional[str]) -> pd.DataFrame:
    threshold_col = f"{side}_threshold"
    count_col = f"num_{side}_datasets"
    list_col = f"{side}_datasets" if keep_datasets else None

    if parts_dir:
        os.makedirs(parts_dir, exist_ok=True)

    frames = []
    for threshold in thresholds:
        part = _part_path(parts_dir, side, threshold) if parts_dir else None
        if part and os.path.exists(part):
            reused = _reuse_part(part, keys, key_cols, list_col)
            if reused is not None:
                logger.info(f"  -> {side.capitalize()} threshold = {threshold:g} (already computed, reusing {part})")
                frames.append(reused)
                continue
            logger.warning(f"  Stored part {part} was written for other {side} taxa; recomputing.")

        logger.info(f"  -> {side.capitalize()} threshold = {threshold:g}")
        try:
            counts = _counts_at_threshold(keys, records, key_cols, threshold, count_col, list_col)
        except MemoryError as e:
            raise ResourceExhaustionError(
                f"Ran out of memory counting {side} datasets at threshold {threshold:g}"
            ) from e
        counts.insert(len(key_cols), threshold_col, float(threshold))
        if part:
            counts.to_parquet(part, index=False)
        frames.append(counts)

    columns = key_cols + [threshold_col, count_col] + ([list_col] if list_col else [])
    out = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=columns)
    logger.info(f"  Completed {side} dataset counts with {len(out)} rows.")
    return out[columns]


def host_threshold_counts(pairs: pd.DataFrame,
                          host_abundance: pd.DataFrame,
                          thresholds: Sequence[float],
                          keep_datasets: bool = True,
                          parts_dir: Optional[str] = None) -> pd.DataFrame:
    """
    Dataset counts per distinct host taxon and host threshold.

    Returns columns host_tax_id, host_threshold, num_host_datasets and, when
    keep_datasets is True, host_datasets (sorted accession list).

    When `parts_dir` is given each threshold is written there as its own
    parquet part. A stored part is read back instead of recomputed only if it
    holds exactly the current host taxa; otherwise it is overwritten.
    """
    keys = pairs[HOST_KEYS].drop_duplicates().reset_index(drop=True)
    records = host_records(pairs, host_abundance)
    return _threshold_counts("host", keys, records, HOST_KEYS, thresholds, keep_datasets, parts_dir)


def pathogen_threshold_counts(pairs: pd.DataFrame,
                              pathogen_abundance: pd.DataFrame,
                              thresholds: Sequence[float],
                              keep_datasets: bool = True,
                              parts_dir: Optional[str] = None) -> pd.DataFrame:
    """
    Dataset counts per distinct (pathogen taxon, root label) and pathogen
    threshold. See host_threshold_counts for the return layout.
    """
    keys = pairs[PATHOGEN_KEYS].drop_duplicates().reset_index(drop=True)
    records = pathogen_records(pairs, pathogen_abundance)
    return _threshold_counts("pathogen", keys, records, PATHOGEN_KEYS, thresholds, keep_datasets, parts_dir)


def audit_pathogen_labels(pairs: pd.DataFrame, pathogen_abundance: pd.DataFrame) -> pd.DataFrame:
    """
    For each paired (path_tax_id, pathogen_root_label), count the records of
    that taxon whose pathogen_type matches the label and those that do not
    (including missing labels). Mismatched records are silently excluded
    from the pathogen counts, so a large `n_mismatched` points at an
    undercount.
    """
    keys = pairs[PATHOGEN_KEYS].drop_duplicates()
    records = pathogen_abundance[pathogen_abundance["tax_id"].isin(keys["path_tax_id"])]
    records = records.rename(columns={"tax_id": "path_tax_id"})

    totals = records.groupby("path_tax_id").size().rename("n_records")
    matched = (
        records.rename(columns={"pathogen_type": "pathogen_root_label"})
        .merge(keys, on=PATHOGEN_KEYS, how="inner")
        .groupby(PATHOGEN_KEYS)
        .size()
        .rename("n_matching")
    )
    audit = keys.merge(totals, left_on="path_tax_id", right_index=True, how="left")
    audit = audit.merge(matched, left_on=PATHOGEN_KEYS, right_index=True, how="left")
    audit[["n_records", "n_matching"]] = audit[["n_records", "n_matching"]].fillna(0).astype("int64")
    audit["n_mismatched"] = audit["n_records"] - audit["n_matching"]

    flagged = audit[audit["n_mismatched"] > 0]
    if not flagged.empty:
        logger.warning(
            f"{len(flagged)} pathogen taxa have records whose pathogen_type differs from "
            f"their root label ({int(flagged['n_mismatched'].sum())} records excluded)."
        )
    return audit.reset_index(drop=True)
