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
shared.py

Number of datasets shared by each host-pathogen pair, for every combination
of host threshold and pathogen threshold.

Two strategies produce the same rows:

  - intersection: per-taxon accession lists from counts.py are intersected
    pair by pair. Needs the full lists in memory.
  - rejoin: host and pathogen records are joined on accession once, then the
    pair space is walked in chunks and, for every threshold cell, the
    accessions passing both thresholds are counted. Only counts are kept.

Output rows (SUMMARY_COLUMNS) come in pair order, then host threshold order,
then pathogen threshold order. Duplicated pairs give duplicated rows.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp

from hostcooc._data_config import DEFAULT_CHUNKS, STRATEGIES, SUMMARY_COLUMNS
from hostcooc.counts import (
    HOST_KEYS,
    PATHOGEN_KEYS,
    host_records,
    host_threshold_counts,
    pathogen_records,
    pathogen_threshold_counts,
)
from hostcooc.exceptions import ConfigurationError, ResourceExhaustionError
from hostcooc.pantry import SharedThresholdRecord
from hostcooc.utils import chunk_bounds, chunks_for_memory

logger = logging.getLogger(__name__)

PAIR_KEYS = ["host_tax_id", "path_tax_id", "pathogen_root_label"]


def _empty_summary() -> pd.DataFrame:
    return _finalize(pd.DataFrame({c: [] for c in SUMMARY_COLUMNS}))


def _finalize(df: pd.DataFrame) -> pd.DataFrame:
    out = df[SUMMARY_COLUMNS].reset_index(drop=True)
    for col in ("host_tax_id", "path_tax_id", "num_host_datasets",
                "num_pathogen_datasets", "num_shared_datasets"):
        out[col] = out[col].astype("int64")
    for col in ("host_threshold", "pathogen_threshold"):
        out[col] = out[col].astype("float64")
    return out


def check_shared_invariant(summary: pd.DataFrame) -> None:
    """Raise ValueError if any shared count exceeds either side's count."""
    limit = np.minimum(summary["num_host_datasets"], summary["num_pathogen_datasets"])
    bad = summary["num_shared_datasets"] > limit
    if bad.any():
        rows = summary.loc[bad, SUMMARY_COLUMNS].itertuples(index=False)
        first = SharedThresholdRecord._make(next(rows))
        raise ValueError(
            f"{int(bad.sum())} rows have num_shared_datasets above "
            f"min(num_host_datasets, num_pathogen_datasets), first: {first}"
        )


def _check_coverage(pairs: pd.DataFrame, counts: pd.DataFrame, key_cols, side: str) -> None:
    # every paired key needs a row at every threshold, or the join drops pairs
    threshold_col = f"{side}_threshold"
    n_thresholds = counts[threshold_col].nunique()
    per_key = counts.groupby(key_cols, sort=False).size().rename("_n").reset_index()
    wanted = pairs[key_cols].drop_duplicates().merge(per_key, on=key_cols, how="left")
    short = wanted[wanted["_n"].fillna(0) < n_thresholds]
    if not short.empty:
        first = short[key_cols].iloc[0].tolist()
        raise ValueError(
            f"{len(short)} paired {side} keys lack counts at some of the {n_thresholds} "
            f"{side} thresholds (first: {first})"
        )


def shared_counts_intersection(pairs: pd.DataFrame,
                               host_counts: pd.DataFrame,
                               pathogen_counts: pd.DataFrame) -> pd.DataFrame:
    """
    Set-intersection strategy.

    `host_counts` and `pathogen_counts` are the outputs of
    host_threshold_counts / pathogen_threshold_counts with keep_datasets=True.
    """
    for df, col in ((host_counts, "host_datasets"), (pathogen_counts, "pathogen_datasets")):
        if col not in df.columns:
            raise ValueError(f"'{col}' missing: the intersection strategy needs dataset lists")
    if pairs.empty:
        return _empty_summary()
    _check_coverage(pairs, host_counts, HOST_KEYS, "host")
    _check_coverage(pairs, pathogen_counts, PATHOGEN_KEYS, "pathogen")

    host_sets = host_counts.reset_index(drop=True)
    host_sets = host_sets.assign(_hset=host_sets["host_datasets"].map(frozenset), _hpos=np.arange(len(host_sets)))
    pathogen_sets = pathogen_counts.reset_index(drop=True)
    pathogen_sets = pathogen_sets.assign(_pset=pathogen_sets["pathogen_datasets"].map(frozenset),
                                         _ppos=np.arange(len(pathogen_sets)))

    rows = pairs[PAIR_KEYS].reset_index(drop=True)
    rows["_pair"] = np.arange(len(rows))
    merged = rows.merge(
        host_sets[HOST_KEYS + ["host_threshold", "num_host_datasets", "_hset", "_hpos"]],
        on=HOST_KEYS, how="inner",
    )
    merged = merged.merge(
        pathogen_sets[PATHOGEN_KEYS + ["pathogen_threshold", "num_pathogen_datasets", "_pset", "_ppos"]],
        on=PATHOGEN_KEYS, how="inner",
    )
    merged = merged.sort_values(["_pair", "_hpos", "_ppos"], kind="stable")
    merged["num_shared_datasets"] = [len(h & p) for h, p in zip(merged["_hset"], merged["_pset"])]

    summary = _finalize(merged)
    logger.info(f"Created {len(summary)} shared dataset records (intersection).")
    return summary


def pair_abundances(pairs: pd.DataFrame,
                    host_abundance: pd.DataFrame,
                    pathogen_abundance: pd.DataFrame):
    """
    Host and pathogen abundance of every distinct pair in every accession
    where both were recorded.

    Returns:
        triples (pd.DataFrame): distinct pairs with their index `_t`.
        joined (pd.DataFrame): _t, acc, host_abundance, path_abundance, sorted by _t.
    """
    triples = pairs[PAIR_KEYS].drop_duplicates().reset_index(drop=True)
    triples["_t"] = np.arange(len(triples))
    hrec = host_records(pairs, host_abundance).rename(columns={"total_abundance": "host_abundance"})
    prec = pathogen_records(pairs, pathogen_abundance).rename(columns={"total_abundance": "path_abundance"})
    joined = triples.merge(hrec, on=HOST_KEYS, how="inner")
    joined = joined.merge(prec, on=PATHOGEN_KEYS + ["acc"], how="inner")
    joined = joined.sort_values("_t", kind="stable").reset_index(drop=True)
    return triples, joined[["_t", "acc", "host_abundance", "path_abundance"]]


def _shared_cube(joined: pd.DataFrame,
                 n_triples: int,
                 host_thresholds: np.ndarray,
                 pathogen_thresholds: np.ndarray,
                 n_chunks: int,
                 max_records: Optional[int] = None) -> np.ndarray:
    """
    cube[t, i, j] = accessions where pair t has host abundance >= host
    threshold i and pathogen abundance >= pathogen threshold j.

    Each chunk of the pair space is counted in slices of at most
    `max_records` joined records, so one pair with many accessions does not
    have to fit in a single pass.
    """
    n_h, n_p = len(host_thresholds), len(pathogen_thresholds)
    cube = np.zeros((n_triples, n_h, n_p), dtype=np.int64)
    tids = joined["_t"].to_numpy()
    host_ab = joined["host_abundance"].to_numpy()
    path_ab = joined["path_abundance"].to_numpy()

    bounds = list(chunk_bounds(n_triples, n_chunks))
    for c, (start, stop) in enumerate(bounds, 1):
        lo, hi = np.searchsorted(tids, [start, stop])
        logger.info(f"  Processing chunk {c} of {len(bounds)} ({hi - lo} joined records)...")
        step = max_records or max(hi - lo, 1)
        for s_lo in range(lo, hi, step):
            s_hi = min(s_lo + step, hi)
            try:
                host_pass = host_ab[s_lo:s_hi, None] >= host_thresholds[None, :]
                path_pass = path_ab[s_lo:s_hi, None] >= pathogen_thresholds[None, :]
                both = (host_pass[:, :, None] & path_pass[:, None, :]).reshape(s_hi - s_lo, n_h * n_p)
                member = sp.csr_matrix(
                    (np.ones(s_hi - s_lo, dtype=np.int32), (tids[s_lo:s_hi] - start, np.arange(s_hi - s_lo))),
                    shape=(stop - start, s_hi - s_lo),
                )
                cube[start:stop] += np.asarray(member @ both.astype(np.int32)).reshape(stop - start, n_h, n_p)
            except MemoryError as e:
                raise ResourceExhaustionError(
                    f"Ran out of memory in chunk {c} of {len(bounds)}; "
                    f"raise --chunks or lower --memory"
                ) from e
    return cube


def shared_counts_rejoin(pairs: pd.DataFrame,
                         host_abundance: pd.DataFrame,
                         pathogen_abundance: pd.DataFrame,
                         host_thresholds: Sequence[float],
                         pathogen_thresholds: Sequence[float],
                         n_chunks: int = DEFAULT_CHUNKS,
                         memory_limit: Optional[int] = None,
                         parts_dir: Optional[str] = None) -> pd.DataFrame:
    """
    Count-via-rejoin strategy.

    Per-side counts use the count-only projection (stored in `parts_dir`
    when given); shared counts come from the pre-joined pair abundances,
    processed in `n_chunks` chunks of the pair space. With `memory_limit`
    the chunk count is raised and every pass is capped at the number of
    joined records that fit in that many bytes.
    """
    if pairs.empty:
        return _empty_summary()
    ht = np.asarray(host_thresholds, dtype=float)
    pt = np.asarray(pathogen_thresholds, dtype=float)
    n_h, n_p = len(ht), len(pt)

    host_counts = host_threshold_counts(pairs, host_abundance, ht, keep_datasets=False, parts_dir=parts_dir)
    pathogen_counts = pathogen_threshold_counts(pairs, pathogen_abundance, pt, keep_datasets=False,
                                                parts_dir=parts_dir)

    triples, joined = pair_abundances(pairs, host_abundance, pathogen_abundance)
    n_triples = len(triples)
    max_records = None
    if memory_limit is not None:
        # int32 cell counts plus the boolean mask, per joined record
        max_records = max(1, memory_limit // (n_h * n_p * 5))
        n_chunks = chunks_for_memory(len(joined), n_h * n_p, memory_limit, n_chunks, bytes_per_cell=5)
        n_chunks = min(n_chunks, max(1, n_triples))
    logger.info(f"Counting shared datasets for {n_triples} pairs over {len(joined)} joined records "
                f"in up to {n_chunks} chunks...")
    cube = _shared_cube(joined, n_triples, ht, pt, n_chunks, max_records=max_records)

    # counts frames are threshold-major blocks over the keys in first-seen order
    host_keys = host_counts[HOST_KEYS].iloc[: len(host_counts) // n_h].reset_index(drop=True)
    path_keys = pathogen_counts[PATHOGEN_KEYS].iloc[: len(pathogen_counts) // n_p].reset_index(drop=True)
    host_matrix = host_counts["num_host_datasets"].to_numpy().reshape(n_h, len(host_keys))
    path_matrix = pathogen_counts["num_pathogen_datasets"].to_numpy().reshape(n_p, len(path_keys))

    rows = pairs[PAIR_KEYS].reset_index(drop=True)
    rows["_pair"] = np.arange(len(rows))
    rows = rows.merge(host_keys.assign(_hk=np.arange(len(host_keys))), on=HOST_KEYS, how="left")
    rows = rows.merge(path_keys.assign(_pk=np.arange(len(path_keys))), on=PATHOGEN_KEYS, how="left")
    rows = rows.merge(triples, on=PAIR_KEYS, how="left").sort_values("_pair", kind="stable")

    n_pairs = len(rows)
    n_cells = n_h * n_p
    hk = rows["_hk"].to_numpy()
    pk = rows["_pk"].to_numpy()
    summary = pd.DataFrame({
        "host_tax_id": np.repeat(rows["host_tax_id"].to_numpy(), n_cells),
        "path_tax_id": np.repeat(rows["path_tax_id"].to_numpy(), n_cells),
        "host_threshold": np.tile(np.repeat(ht, n_p), n_pairs),
        "pathogen_threshold": np.tile(np.tile(pt, n_h), n_pairs),
        "num_host_datasets": np.repeat(host_matrix[:, hk].T, n_p, axis=1).ravel(),
        "num_pathogen_datasets": np.tile(path_matrix[:, pk].T, (1, n_h)).ravel(),
        "num_shared_datasets": cube[rows["_t"].to_numpy()].reshape(n_pairs, n_cells).ravel(),
    })
    summary = _finalize(summary)
    logger.info(f"Created {len(summary)} shared dataset records (rejoin).")
    return summary


def compute_shared_counts(pairs: pd.DataFrame,
                          host_abundance: pd.DataFrame,
                          pathogen_abundance: pd.DataFrame,
                          host_thresholds: Sequence[float],
                          pathogen_thresholds: Sequence[float],
                          strategy: str = "intersection",
                          n_chunks: int = DEFAULT_CHUNKS,
                          memory_limit: Optional[int] = None,
                          parts_dir: Optional[str] = None) -> pd.DataFrame:
    """
    Shared-count summary for `pairs` using the named strategy; the result is
    checked against num_shared <= min(num_host, num_pathogen).
    """
    if strategy not in STRATEGIES:
        raise ConfigurationError(f"Unknown strategy '{strategy}'. Choose from: {', '.join(STRATEGIES)}")

    if strategy == "intersection":
        host_counts = host_threshold_counts(pairs, host_abundance, host_thresholds, parts_dir=parts_dir)
        pathogen_counts = pathogen_threshold_counts(pairs, pathogen_abundance, pathogen_thresholds,
                                                    parts_dir=parts_dir)
        summary = shared_counts_intersection(pairs, host_counts, pathogen_counts)
    else:
        summary = shared_counts_rejoin(pairs, host_abundance, pathogen_abundance,
                                       host_thresholds, pathogen_thresholds,
                                       n_chunks=n_chunks, memory_limit=memory_limit, parts_dir=parts_dir)
    check_shared_invariant(summary)
    return summary
