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
pipelines.py

Pipeline functions for hostcooc.

    run_threshold_analysis(config)

Runs the counting pipeline end to end:
  1. Load the host-pathogen pairs (optionally expanded to every host x pathogen).
  2. Build the host x pathogen threshold grid.
  3. Load host and pathogen abundance records and audit pathogen labels.
  4. Count datasets per taxon and threshold and the datasets shared by each pair.
  5. Export the summary as CSV and parquet and log a short report.

    run_scoring(args)

Runs the statistics stage on an exported summary: scores every row, labels
and samples pairs, evaluates each comparison over the threshold grid and
draws the figures.
"""

import logging
import os

import pyarrow as pa

from hostcooc._data_config import (
    COMPARISONS,
    N_TOTAL_DATASETS,
    N_UNIVERSE,
    SAMPLE_PER_TYPE,
    SAMPLE_SEED,
    get_comparison,
)
from hostcooc.analysis import score_summary
from hostcooc.counts import audit_pathogen_labels
from hostcooc.evaluate import evaluate_thresholds
from hostcooc.format import export_summary, read_summary
from hostcooc.pantry import RunConfig, expand_cross_pairs, load_abundance, load_metadata, load_pairs
from hostcooc.plot import plot_evaluation
from hostcooc.shared import compute_shared_counts
from hostcooc.utils import threshold_grid

logger = logging.getLogger(__name__)

_RULE = "=" * 72


def _banner(text: str):
    logger.info(_RULE)
    logger.info(text)
    logger.info(_RULE)


def summarize(summary, n_pairs: int, n_combinations: int) -> dict:
    """Row counts and min/max/mean of each count column."""
    report = {
        "pairs": n_pairs,
        "theoretical_rows": n_pairs * n_combinations,
        "actual_rows": len(summary),
    }
    for col in ("num_host_datasets", "num_pathogen_datasets", "num_shared_datasets"):
        values = summary[col]
        report[col] = {
            "min": int(values.min()) if len(values) else 0,
            "max": int(values.max()) if len(values) else 0,
            "mean": float(values.mean()) if len(values) else 0.0,
        }
    return report


def run_threshold_analysis(config: RunConfig):
    """
    Run the counting pipeline described by `config`.

    Returns:
        summary (pd.DataFrame), (csv_path, parquet_path)
    """
    pa.set_cpu_count(config.threads)
    logger.info(f"Configuration: {config}")

    _banner("Step 1: Loading host-pathogen pairs")
    pairs = load_pairs(config.pairs_file)
    if config.cross_pairs:
        pairs = expand_cross_pairs(pairs)
        logger.info(f"Expanded to {len(pairs)} host x pathogen pairs")
    logger.info(f"Distinct hosts: {pairs['host_tax_id'].nunique()}, "
                f"distinct pathogens: {pairs[['path_tax_id', 'pathogen_root_label']].drop_duplicates().shape[0]}")

    _banner("Step 2: Threshold grid")
    grid = threshold_grid(config.host_thresholds, config.pathogen_thresholds)
    logger.info(f"{len(config.host_thresholds)} host x {len(config.pathogen_thresholds)} "
                f"pathogen thresholds = {len(grid)} combinations")

    _banner("Step 3: Loading abundance records")
    host_abundance = load_abundance(config.host_abundance_file, side="host")
    pathogen_abundance = load_abundance(config.pathogen_abundance_file, side="pathogen")
    audit_pathogen_labels(pairs, pathogen_abundance)

    _banner(f"Step 4: Counting shared datasets ({config.strategy} strategy)")
    parts_dir = None
    if config.resume:
        parts_dir = os.path.join(config.output_dir, f"{config.tag}threshold_parts")
        logger.info(f"Per-threshold parts kept in {parts_dir}")
    summary = compute_shared_counts(
        pairs,
        host_abundance,
        pathogen_abundance,
        config.host_thresholds,
        config.pathogen_thresholds,
        strategy=config.strategy,
        n_chunks=config.n_chunks,
        memory_limit=config.memory_limit,
        parts_dir=parts_dir,
    )

    _banner("Step 5: Exporting results")
    paths = export_summary(summary, config.output_dir, tag=config.tag)

    report = summarize(summary, len(pairs), len(grid))
    _banner("Summary")
    logger.info(f"Total pairs:                {report['pairs']}")
    logger.info(f"Threshold combinations:     {len(grid)}")
    logger.info(f"Theoretical combinations:   {report['theoretical_rows']}")
    logger.info(f"Actual rows:                {report['actual_rows']}")
    for col in ("num_host_datasets", "num_pathogen_datasets", "num_shared_datasets"):
        stats = report[col]
        logger.info(f"{col}: min={stats['min']} max={stats['max']} mean={stats['mean']:.2f}")

    return summary, paths


def run_scoring(args):
    """
    Run the statistics stage.

    Expected attributes in args:
      - summary, metadata, output_dir, tag
      - n_total, n_universe, n_per_type, seed
      - predictor, direction, comparisons, no_fisher, no_plots

    Writes {tag}scored_pairs.tsv (every row), {tag}sampled_pairs.tsv (the
    sample with co-occurrence metrics), {tag}auc_grid.tsv and
    {tag}roc_points.tsv, plus the figures unless no_plots is set.
    """
    summary = read_summary(args.summary)
    metadata = load_metadata(args.metadata)
    logger.info(f"Summary rows: {len(summary)}, metadata rows: {len(metadata)}")

    scored, subset = score_summary(
        summary,
        metadata,
        n_total=getattr(args, "n_total", N_TOTAL_DATASETS),
        n_universe=getattr(args, "n_universe", N_UNIVERSE),
        n_per_type=getattr(args, "n_per_type", SAMPLE_PER_TYPE),
        random_state=getattr(args, "seed", SAMPLE_SEED),
        compute_fisher=not getattr(args, "no_fisher", False),
    )

    os.makedirs(args.output_dir, exist_ok=True)
    tag = getattr(args, "tag", "")
    outputs = {}
    outputs["scored"] = os.path.join(args.output_dir, f"{tag}scored_pairs.tsv")
    scored.to_csv(outputs["scored"], sep="\t", index=False)
    outputs["sampled"] = os.path.join(args.output_dir, f"{tag}sampled_pairs.tsv")
    subset.to_csv(outputs["sampled"], sep="\t", index=False)
    logger.info(f"Scores saved to {outputs['scored']} and {outputs['sampled']}")

    predictor = getattr(args, "predictor", "log_odds")
    names = getattr(args, "comparisons", None)
    comparisons = [get_comparison(n) for n in names] if names else COMPARISONS
    direction = getattr(args, "direction", "higher")
    curves, grid = evaluate_thresholds(subset, comparisons=comparisons, predictor=predictor,
                                       direction=direction)
    outputs["auc_grid"] = os.path.join(args.output_dir, f"{tag}auc_grid.tsv")
    grid.to_csv(outputs["auc_grid"], sep="\t", index=False)
    outputs["roc_points"] = os.path.join(args.output_dir, f"{tag}roc_points.tsv")
    curves.to_csv(outputs["roc_points"], sep="\t", index=False)
    logger.info(f"AUC grid saved to {outputs['auc_grid']}")

    if not getattr(args, "no_plots", False):
        outputs["figures"] = plot_evaluation(subset, curves, grid, args.output_dir, tag=tag)

    return outputs
