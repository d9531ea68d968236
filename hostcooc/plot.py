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
plot.py

Figures for the statistics stage:

    plot_roc_curves   ROC curve per (host, pathogen) threshold panel
    plot_auc_heatmaps AUC over the threshold grid, one panel per comparison
    plot_log_odds     log-odds histogram per interaction type
    plot_analysis     all of the above from files on disk
"""

import logging
import math
import os

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from hostcooc.evaluate import evaluate_thresholds

logger = logging.getLogger(__name__)


def _sorted_levels(values):
    return sorted(pd.unique(values))


def plot_roc_curves(
    curves: pd.DataFrame,
    grid: pd.DataFrame,
    out_file: str,
    comparison: str = None,
):
    """
    Facet grid of ROC curves: one row per pathogen threshold, one column
    per host threshold. Each panel is annotated with the AUC and the number
    of correctly classified pairs at the best cutoff.
    """
    if comparison is not None:
        curves = curves[curves["comparison"] == comparison]
        grid = grid[grid["comparison"] == comparison]
    if grid.empty:
        raise ValueError("No evaluated threshold combinations to plot.")

    host_levels = _sorted_levels(grid["host_threshold"])
    path_levels = _sorted_levels(grid["pathogen_threshold"])
    n_rows, n_cols = len(path_levels), len(host_levels)

    fig, axes = plt.subplots(
        n_rows, n_cols,
        figsize=(2.2 * n_cols + 1, 2.2 * n_rows + 1),
        sharex=True, sharey=True,
        squeeze=False,
    )

    for i, pt in enumerate(path_levels):
        for j, ht in enumerate(host_levels):
            ax = axes[i][j]
            ax.plot([0, 1], [0, 1], linestyle="--", color="grey", lw=0.8)
            panel = curves[(curves["host_threshold"] == ht) & (curves["pathogen_threshold"] == pt)]
            for name, sub in panel.groupby("comparison", sort=False):
                ax.plot(1 - sub["specificity"], sub["sensitivity"], lw=1, label=name)

            cell = grid[(grid["host_threshold"] == ht) & (grid["pathogen_threshold"] == pt)]
            if len(cell) == 1 and not pd.isna(cell["AUC"].iloc[0]):
                ax.text(
                    0.6, 0.2,
                    f"AUC = {cell['AUC'].iloc[0]:.2f}\nN = {cell['N_correct'].iloc[0]}",
                    fontsize=7,
                )
            if i == 0:
                ax.set_title(f"host={ht:g}", fontsize=8)
            if j == n_cols - 1:
                ax.yaxis.set_label_position("right")
                ax.set_ylabel(f"pathogen={pt:g}", fontsize=8)
            ax.set_xlim(0, 1)
            ax.set_ylim(0, 1)
            ax.tick_params(labelsize=6)

    title = "ROC curves by host and pathogen thresholds"
    if comparison is not None:
        title += f" ({comparison})"
    fig.suptitle(title, fontsize=14)
    fig.supxlabel("False positive rate (1 - specificity)")
    fig.supylabel("True positive rate (sensitivity)")

    fig.tight_layout()
    fig.savefig(out_file, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"[plot_roc_curves] Saved: {out_file}")


def plot_auc_heatmaps(grid: pd.DataFrame, out_file: str):
    """AUC heatmap per comparison; cells without an AUC are grey."""
    if grid.empty:
        raise ValueError("AUC grid is empty, nothing to plot.")

    comparisons = list(pd.unique(grid["comparison"]))
    n_cols = min(3, len(comparisons))
    n_rows = math.ceil(len(comparisons) / n_cols)
    host_levels = _sorted_levels(grid["host_threshold"])
    path_levels = _sorted_levels(grid["pathogen_threshold"])

    cmap = plt.get_cmap("magma").copy()
    cmap.set_bad("#e5e5e5")

    fig, axes = plt.subplots(
        n_rows, n_cols,
        figsize=(5 * n_cols, 4.5 * n_rows),
        squeeze=False,
    )
    image = None
    for k, name in enumerate(comparisons):
        ax = axes[k // n_cols][k % n_cols]
        matrix = (
            grid[grid["comparison"] == name]
            .pivot_table(index="pathogen_threshold", columns="host_threshold",
                         values="AUC", aggfunc="first", dropna=False)
            .reindex(index=path_levels, columns=host_levels)
        )
        values = np.ma.masked_invalid(matrix.to_numpy(dtype=float))
        image = ax.imshow(values, origin="lower", aspect="auto", cmap=cmap, vmin=0, vmax=1)
        ax.set_title(name, fontsize=11)
        ax.set_xticks(range(len(host_levels)))
        ax.set_xticklabels([f"{v:g}" for v in host_levels], rotation=45, ha="right", fontsize=6)
        ax.set_yticks(range(len(path_levels)))
        ax.set_yticklabels([f"{v:g}" for v in path_levels], fontsize=6)
        ax.set_xlabel("Host abundance threshold")
        ax.set_ylabel("Pathogen abundance threshold")

    for k in range(len(comparisons), n_rows * n_cols):
        axes[k // n_cols][k % n_cols].axis("off")

    fig.colorbar(image, ax=axes, label="AUC", shrink=0.8)
    fig.suptitle("AUC heatmaps by interaction-type comparison", fontsize=14)
    fig.savefig(out_file, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"[plot_auc_heatmaps] Saved: {out_file}")


def plot_log_odds(df: pd.DataFrame, out_file: str, bins: int = 50):
    """Histogram of log_odds, one panel per interaction type (free y axis)."""
    df = df.replace([np.inf, -np.inf], np.nan)
    df = df[df["log_odds"].notna()]
    if df.empty:
        raise ValueError("No finite log_odds values to plot.")

    types = sorted(pd.unique(df["Interaction_type"]))
    n_cols = min(3, len(types))
    n_rows = math.ceil(len(types) / n_cols)

    fig, axes = plt.subplots(
        n_rows, n_cols,
        figsize=(4.5 * n_cols, 3.5 * n_rows),
        sharex=True,
        squeeze=False,
    )
    for k, name in enumerate(types):
        ax = axes[k // n_cols][k % n_cols]
        ax.hist(df.loc[df["Interaction_type"] == name, "log_odds"], bins=bins, color="#1f77b4")
        ax.set_title(name, fontsize=11)
        ax.set_xlabel("log-odds")
        ax.set_ylabel("Count")
        ax.grid(True, linestyle="--", alpha=0.6)

    for k in range(len(types), n_rows * n_cols):
        axes[k // n_cols][k % n_cols].axis("off")

    fig.suptitle("Distribution of log-odds by interaction type", fontsize=14)
    fig.tight_layout()
    fig.savefig(out_file, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"[plot_log_odds] Saved: {out_file}")


def plot_evaluation(
    subset: pd.DataFrame,
    curves: pd.DataFrame,
    grid: pd.DataFrame,
    output_dir: str,
    tag: str = "",
):
    """Write every figure for one scored subset; returns the paths written."""
    os.makedirs(output_dir, exist_ok=True)
    written = []

    for name in pd.unique(grid["comparison"]):
        if grid.loc[grid["comparison"] == name, "AUC"].notna().any():
            out_file = os.path.join(output_dir, f"{tag}roc_{name.replace(' ', '_')}.png")
            plot_roc_curves(curves, grid, out_file, comparison=name)
            written.append(out_file)
        else:
            logger.info(f"Skipping ROC plot for {name}: no evaluable threshold combination")

    if grid["AUC"].notna().any():
        out_file = os.path.join(output_dir, f"{tag}auc_heatmaps.png")
        plot_auc_heatmaps(grid, out_file)
        written.append(out_file)

    if subset["log_odds"].replace([np.inf, -np.inf], np.nan).notna().any():
        out_file = os.path.join(output_dir, f"{tag}log_odds_hist.png")
        plot_log_odds(subset, out_file)
        written.append(out_file)

    return written


def plot_analysis(
    df_file: str,
    output_dir: str,
    tag: str = "",
    predictor: str = "log_odds",
    direction: str = "higher",
):
    """Re-draw the figures from a scored subset table written by `score`."""
    if not os.path.exists(df_file):
        raise FileNotFoundError(df_file)

    sep = "," if df_file.endswith(".csv") else "\t"
    subset = pd.read_csv(df_file, sep=sep)
    curves, grid = evaluate_thresholds(subset, predictor=predictor, direction=direction)
    return plot_evaluation(subset, curves, grid, output_dir, tag=tag)
