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
evaluate.py

How well a score separates two interaction types, for every
(host_threshold, pathogen_threshold) combination: ROC curve, AUC and the
Youden-optimal cutoff. Higher scores are taken to mean "positive class"
unless the evaluation is asked to pick the direction per cell.

A combination where one of the two classes has no rows cannot be
evaluated; it is reported with AUC = NaN and N_correct = <NA>.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from hostcooc._data_config import COMPARISONS
from hostcooc.exceptions import DegenerateComparisonError

logger = logging.getLogger(__name__)

THRESHOLD_COLS = ["host_threshold", "pathogen_threshold"]
DIRECTIONS = ("higher", "auto")


def _split(labels, scores) -> Tuple[np.ndarray, np.ndarray]:
    labels = np.asarray(labels).astype(bool)
    scores = np.asarray(scores, dtype=float)
    if labels.shape != scores.shape:
        raise ValueError("labels and scores must have the same length")
    n_pos = int(labels.sum())
    n_neg = len(labels) - n_pos
    if n_pos == 0 or n_neg == 0:
        raise DegenerateComparisonError(
            f"Need both classes to build a ROC curve ({n_pos} positive, {n_neg} negative)"
        )
    return labels, scores


def roc_curve(labels, scores) -> pd.DataFrame:
    """
    ROC points for the rule "positive if score >= threshold", from the
    strictest threshold (+inf, nothing positive) down to the lowest score.
    """
    labels, scores = _split(labels, scores)
    n_pos = labels.sum()
    n_neg = len(labels) - n_pos

    thresholds = np.unique(scores)[::-1]
    pos_sorted = np.sort(scores[labels])
    neg_sorted = np.sort(scores[~labels])
    tp = n_pos - np.searchsorted(pos_sorted, thresholds, side="left")
    fp = n_neg - np.searchsorted(neg_sorted, thresholds, side="left")

    thresholds = np.concatenate([[np.inf], thresholds])
    tp = np.concatenate([[0], tp])
    fp = np.concatenate([[0], fp])
    curve = pd.DataFrame({
        "threshold": thresholds,
        "tp": tp,
        "fp": fp,
        "tn": n_neg - fp,
        "fn": n_pos - tp,
    })
    curve["tpr"] = curve["tp"] / n_pos
    curve["fpr"] = curve["fp"] / n_neg
    curve["sensitivity"] = curve["tpr"]
    curve["specificity"] = 1.0 - curve["fpr"]
    return curve


def roc_auc(labels, scores) -> float:
    """Area under the ROC curve (Mann-Whitney form; tied scores count 1/2)."""
    labels, scores = _split(labels, scores)
    n_pos = labels.sum()
    n_neg = len(labels) - n_pos
    ranks = rankdata(scores)
    return float((ranks[labels].sum() - n_pos * (n_pos + 1) / 2.0) / (n_pos * n_neg))


def best_cutoff(labels, scores, curve: pd.DataFrame = None) -> dict:
    """ROC point maximising sensitivity + specificity (first one on ties)."""
    if curve is None:
        curve = roc_curve(labels, scores)
    youden = curve["tpr"] - curve["fpr"]
    row = curve.loc[youden.idxmax()]
    total = row["tp"] + row["tn"] + row["fp"] + row["fn"]
    return {
        "threshold": float(row["threshold"]),
        "tp": int(row["tp"]),
        "tn": int(row["tn"]),
        "fp": int(row["fp"]),
        "fn": int(row["fn"]),
        "accuracy": float((row["tp"] + row["tn"]) / total),
    }


def _orient(labels: np.ndarray, scores: np.ndarray, direction: str) -> Tuple[np.ndarray, str]:
    # "auto" follows the class medians: lower scores mean positive when the
    # negative class has the higher median
    if direction == "auto" and labels.any() and (~labels).any():
        if np.median(scores[~labels]) > np.median(scores[labels]):
            return -scores, "lower"
    return scores, "higher"


def evaluate_thresholds(df: pd.DataFrame,
                        comparisons: Sequence[Tuple[str, str, str]] = COMPARISONS,
                        predictor: str = "log_odds",
                        direction: str = "higher") -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    ROC evaluation per comparison and threshold combination.

    Parameters
    ----------
    df : pd.DataFrame
        Labelled scores with host_threshold, pathogen_threshold,
        Interaction_type and the `predictor` column.
    comparisons : sequence of (name, positive_type, negative_type)
    predictor : str
        Score column; rows where it is NaN are dropped.
    direction : {"higher", "auto"}
        "higher" treats higher scores as the positive class everywhere.
        "auto" picks the side per cell from the class medians, so AUC is
        never below 0.5.

    Returns
    -------
    curves : pd.DataFrame
        ROC points (comparison, thresholds, sensitivity, specificity, AUC).
    grid : pd.DataFrame
        One row per comparison and threshold combination: AUC, N_total
        (rows evaluated), N_correct (tp + tn at the best cutoff) and the
        direction used.
    """
    if predictor not in df.columns:
        raise ValueError(f"Predictor column '{predictor}' not found")
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown direction '{direction}'. Choose from: {', '.join(DIRECTIONS)}")

    curve_list: List[pd.DataFrame] = []
    grid_rows = []
    n_degenerate = 0
    for name, pos_type, neg_type in comparisons:
        pool = df[df["Interaction_type"].isin([pos_type, neg_type]) & df[predictor].notna()]
        for (ht, pt) in df[THRESHOLD_COLS].drop_duplicates().itertuples(index=False):
            cell = pool[(pool["host_threshold"] == ht) & (pool["pathogen_threshold"] == pt)]
            labels = (cell["Interaction_type"] == pos_type).to_numpy()
            scores, side = _orient(labels, cell[predictor].to_numpy(dtype=float), direction)
            row = {
                "comparison": name,
                "host_threshold": ht,
                "pathogen_threshold": pt,
                "AUC": np.nan,
                "N_total": len(cell),
                "N_correct": pd.NA,
                "direction": side,
            }
            try:
                curve = roc_curve(labels, scores)
                auc = roc_auc(labels, scores)
            except DegenerateComparisonError:
                n_degenerate += 1
                grid_rows.append(row)
                continue

            best = best_cutoff(labels, scores, curve=curve)
            row["AUC"] = auc
            row["N_correct"] = best["tp"] + best["tn"]
            grid_rows.append(row)

            curve = curve[["sensitivity", "specificity"]].iloc[::-1].reset_index(drop=True)
            curve.insert(0, "comparison", name)
            curve["host_threshold"] = ht
            curve["pathogen_threshold"] = pt
            curve["AUC"] = auc
            curve_list.append(curve)

    if n_degenerate:
        logger.info(f"{n_degenerate} comparison/threshold cells lacked one class; AUC left empty")

    grid = pd.DataFrame(grid_rows, columns=["comparison", "host_threshold", "pathogen_threshold",
                                            "AUC", "N_total", "N_correct", "direction"])
    grid["N_correct"] = grid["N_correct"].astype("Int64")
    curves = (pd.concat(curve_list, ignore_index=True) if curve_list else
              pd.DataFrame(columns=["comparison", "sensitivity", "specificity",
                                    "host_threshold", "pathogen_threshold", "AUC"]))
    return curves, grid
