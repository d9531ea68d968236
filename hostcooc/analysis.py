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
analysis.py

Statistics on the shared-count summary:

  1. Hypergeometric upper-tail p-value of the observed overlap and
     log-odds of co-occurrence against a global and a local background.
  2. Interaction labels from the pair metadata, one label per pair.
  3. A sample of up to N pairs per interaction type.
  4. 2x2 co-occurrence metrics (Jaccard, Sorensen-Dice, Ochiai, phi,
     C-score, mutual information, chi2, Fisher's exact test).
"""

import logging
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import chi2 as chi2_dist, fisher_exact as _fisher_exact, hypergeom

from hostcooc._data_config import (
    INTERACTION_PRIORITY,
    N_TOTAL_DATASETS,
    N_UNIVERSE,
    SAMPLE_PER_TYPE,
    SAMPLE_SEED,
    UNLABELLED,
)

logger = logging.getLogger(__name__)

PAIR_ID = ["host_tax_id", "path_tax_id"]

# Smallest p-value kept before taking logs
_P_FLOOR = 1e-323


def hypergeometric_scores(summary: pd.DataFrame, n_total: int = N_TOTAL_DATASETS) -> pd.DataFrame:
    """
    Add Hyp_Geo_Score = P(X >= num_shared_datasets) for
    X ~ Hypergeometric(population n_total, num_host_datasets successes,
    num_pathogen_datasets draws), and neg_log_p = -log10(score).
    """
    out = summary.copy()
    shared = out["num_shared_datasets"].to_numpy()
    score = hypergeom.sf(
        shared - 1,
        n_total,
        out["num_host_datasets"].to_numpy(),
        out["num_pathogen_datasets"].to_numpy(),
    )
    score = np.where(score == 0, _P_FLOOR, score)
    out["Hyp_Geo_Score"] = score
    out["neg_log_p"] = -np.log10(score)
    return out


def log_odds_scores(summary: pd.DataFrame, n_total: int = N_TOTAL_DATASETS) -> pd.DataFrame:
    """
    Add log2 odds of co-occurrence.

    log_odds uses every dataset (n_total) as background with a pseudo count
    of 1/n_total. log_odds_2 uses num_host + num_pathogen as background and
    is NaN when both are zero.
    """
    out = summary.copy()
    host = out["num_host_datasets"].to_numpy(dtype=float)
    path = out["num_pathogen_datasets"].to_numpy(dtype=float)
    both = out["num_shared_datasets"].to_numpy(dtype=float)

    k = 1.0 / n_total
    fh, fp, fhp = host / n_total, path / n_total, both / n_total
    out["fh"], out["fp"], out["fhp"] = fh, fp, fhp
    out["log_odds"] = np.log2((fhp + k) / (fh * fp + k))

    local = host + path
    with np.errstate(divide="ignore", invalid="ignore"):
        fh_2, fp_2, fhp_2 = host / local, path / local, both / local
        k_2 = 1.0 / local
        log_odds_2 = np.log2((fhp_2 + k_2) / (fh_2 * fp_2 + k_2))
    out["log_odds_2"] = np.where(local > 0, log_odds_2, np.nan)
    return out


def _chi2_phi_from_counts(a, b, c, d):
    a = np.asarray(a, float)
    b = np.asarray(b, float)
    c = np.asarray(c, float)
    d = np.asarray(d, float)

    n    = a + b + c + d
    row1 = a + b
    row2 = c + d
    col1 = a + c
    col2 = b + d

    with np.errstate(divide="ignore", invalid="ignore"):
        exp_a = row1 * col1 / n
        exp_b = row1 * col2 / n
        exp_c = row2 * col1 / n
        exp_d = row2 * col2 / n

        chi2 = ((a - exp_a) ** 2) / exp_a \
             + ((b - exp_b) ** 2) / exp_b \
             + ((c - exp_c) ** 2) / exp_c \
             + ((d - exp_d) ** 2) / exp_d

        denom = np.sqrt(row1 * col1 * col2 * row2)
        phi   = (a * d - b * c) / denom

        invalid = (
        (a < 0) | (b < 0) | (c < 0) | (d < 0) |               # impossible tables
        np.isclose(denom, 0) |                                # phi denominator zero
        ~np.isfinite(chi2) | ~np.isfinite(phi) |
        (row1 == 0) | (row2 == 0) |                           # host only absent or only present
        (col1 == 0) | (col2 == 0)                             # pathogen only absent or only present
        )

    chi2 = np.where(invalid, np.nan, chi2)
    phi = np.where(invalid, np.nan, phi)
    return chi2, phi, invalid


def _mutual_information(a, b, c, d, n):
    """Mutual information (bits) of a 2x2 table; empty cells contribute 0."""
    p = [np.asarray(x, float) / n for x in (a, b, c, d)]
    row1, row2 = p[0] + p[1], p[2] + p[3]
    col1, col2 = p[0] + p[2], p[1] + p[3]
    margins = [(row1, col1), (row1, col2), (row2, col1), (row2, col2)]
    total = np.zeros_like(p[0])
    with np.errstate(divide="ignore", invalid="ignore"):
        for cell, (r, c_) in zip(p, margins):
            total += np.where(cell > 0, cell * np.log2(cell / (r * c_)), 0.0)
    return total


def cooccurrence_metrics(df: pd.DataFrame,
                         n_universe: int = N_UNIVERSE,
                         compute_fisher: bool = True) -> pd.DataFrame:
    """
    Vectorised co-occurrence metrics from the 2x2 table of each row:

                      pathogen present   pathogen absent
    host present             a                  b
    host absent              c                  d

    with a = shared, b = host - a, c = pathogen - a (both floored at 0) and
    d = n_universe - (a + b + c). Metrics that are undefined for a table are
    NaN.
    """
    out = df.copy()
    a = out["num_shared_datasets"].to_numpy(dtype=float)
    b = np.maximum(out["num_host_datasets"].to_numpy(dtype=float) - a, 0)
    c = np.maximum(out["num_pathogen_datasets"].to_numpy(dtype=float) - a, 0)
    d = float(n_universe) - (a + b + c)

    with np.errstate(divide="ignore", invalid="ignore"):
        union = a + b + c
        out["Jaccard"] = np.where(union > 0, a / union, np.nan)
        out["Sorensen_Dice"] = np.where(2 * a + b + c > 0, 2 * a / (2 * a + b + c), np.nan)
        out["ochiai"] = np.where((a + b > 0) & (a + c > 0), a / np.sqrt((a + b) * (a + c)), np.nan)

    chi2, phi, invalid = _chi2_phi_from_counts(a, b, c, d)
    out["phi"] = phi
    out["chi2"] = chi2
    out["chi2_p"] = chi2_dist.sf(chi2, df=1)
    out["c_score"] = b * c
    out["mutual_info"] = _mutual_information(a, b, c, d, float(n_universe))

    fisher_p = np.full(len(out), np.nan, dtype=float)
    if compute_fisher:
        # table margins repeat across threshold rows; test each distinct table once
        tables = pd.DataFrame({"a": a, "b": b, "c": c, "d": d})
        valid = ~invalid
        cache = {}
        for i in np.where(valid)[0]:
            key = (tables.at[i, "a"], tables.at[i, "b"], tables.at[i, "c"], tables.at[i, "d"])
            if key not in cache:
                _, cache[key] = _fisher_exact(
                    [[key[0], key[1]], [key[2], key[3]]], alternative="two-sided"
                )
            fisher_p[i] = cache[key]
    out["fisher_p"] = fisher_p
    return out


def resolve_interaction_type(labels: Iterable[str], priority: Sequence[str] = INTERACTION_PRIORITY) -> str:
    """
    Pick one label out of several given for the same pair.

    The label appearing earliest in `priority` wins. Labels not listed rank
    after every listed one; among those, the first one seen wins.
    """
    labels = list(labels)
    if not labels:
        raise ValueError("No labels to resolve")
    rank = {label: i for i, label in enumerate(priority)}
    best = min(range(len(labels)), key=lambda i: (rank.get(labels[i], len(rank)), i))
    return labels[best]


def prioritize_metadata(metadata: pd.DataFrame,
                        priority: Sequence[str] = INTERACTION_PRIORITY) -> pd.DataFrame:
    """One Interaction_type per (host_tax_id, path_tax_id)."""
    dups = metadata.groupby(PAIR_ID)["Interaction_type"].transform("size") > 1
    if dups.any():
        logger.info(f"{metadata.loc[dups, PAIR_ID].drop_duplicates().shape[0]} pairs carry more "
                    f"than one metadata row; resolving by priority {list(priority)}")
    resolved = (
        metadata.groupby(PAIR_ID, sort=False)["Interaction_type"]
        .agg(lambda s: resolve_interaction_type(s, priority))
        .reset_index()
    )
    return resolved


def label_pairs(scores: pd.DataFrame, metadata: pd.DataFrame,
                priority: Sequence[str] = INTERACTION_PRIORITY) -> pd.DataFrame:
    """Attach Interaction_type; pairs absent from the metadata become 'Random'."""
    labels = prioritize_metadata(metadata, priority)
    out = scores.merge(labels, on=PAIR_ID, how="left")
    out["Interaction_type"] = out["Interaction_type"].fillna(UNLABELLED)
    counts = out.drop_duplicates(PAIR_ID)["Interaction_type"].value_counts()
    for label, n in counts.items():
        logger.info(f"  {label}: {n} pairs")
    return out


def sample_pairs(labelled: pd.DataFrame,
                 n_per_type: int = SAMPLE_PER_TYPE,
                 random_state: Optional[int] = SAMPLE_SEED) -> pd.DataFrame:
    """
    Keep every threshold row of up to `n_per_type` randomly chosen pairs per
    interaction type (all pairs when a type has fewer).
    """
    rng = np.random.default_rng(random_state)
    distinct = labelled[PAIR_ID + ["Interaction_type"]].drop_duplicates().reset_index(drop=True)
    picked = [
        group.sample(n=min(n_per_type, len(group)), random_state=rng)
        for _, group in distinct.groupby("Interaction_type", sort=True)
    ]
    if not picked:
        return labelled.iloc[0:0].copy()
    sampled = pd.concat(picked, ignore_index=True)
    return labelled.merge(sampled, on=PAIR_ID + ["Interaction_type"], how="inner")


def coverage_report(summary: pd.DataFrame, metadata: pd.DataFrame) -> dict:
    """
    Taxa present in the metadata but not the summary and the other way
    round.
    """
    report = {}
    for col in PAIR_ID:
        meta, data = set(metadata[col]), set(summary[col])
        report[col] = {
            "metadata_only": sorted(meta - data),
            "summary_only": sorted(data - meta),
        }
        if report[col]["metadata_only"]:
            logger.warning(f"{len(report[col]['metadata_only'])} {col} values in the metadata "
                           f"have no rows in the summary")
    return report


def score_summary(summary: pd.DataFrame,
                  metadata: pd.DataFrame,
                  n_total: int = N_TOTAL_DATASETS,
                  n_universe: int = N_UNIVERSE,
                  n_per_type: int = SAMPLE_PER_TYPE,
                  random_state: Optional[int] = SAMPLE_SEED,
                  priority: Sequence[str] = INTERACTION_PRIORITY,
                  compute_fisher: bool = True):
    """
    Full scoring: hypergeometric and log-odds on every row, labels, sample,
    then co-occurrence metrics on the sample.

    Returns:
        scored (pd.DataFrame): every summary row with scores and labels.
        subset (pd.DataFrame): sampled pairs with co-occurrence metrics.
    """
    coverage_report(summary, metadata)
    scored = log_odds_scores(hypergeometric_scores(summary, n_total), n_total)
    scored = label_pairs(scored, metadata, priority)
    subset = sample_pairs(scored, n_per_type, random_state)
    subset = cooccurrence_metrics(subset, n_universe, compute_fisher=compute_fisher)
    return scored, subset
