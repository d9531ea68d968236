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

import argparse
import logging

from hostcooc._data_config import (
    DEFAULT_CHUNKS,
    DEFAULT_STRATEGY,
    DEFAULT_THREADS,
    EMBEDDING_DIM,
    EMBEDDING_SEED,
    EMBEDDING_SHARDS,
    N_TOTAL_DATASETS,
    N_UNIVERSE,
    SAMPLE_PER_TYPE,
    SAMPLE_SEED,
    STRATEGIES,
)


def positive_int(value):
    try:
        ivalue = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value} is not an integer")

    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def positive_float(value):
    try:
        fvalue = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value} is not a valid float.")

    if not fvalue > 0:
        raise argparse.ArgumentTypeError(f"{value} must be greater than 0.")
    return fvalue


def configure_logging(verbose=False, quiet=False):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def add_common_arguments(opt):
    opt.add_argument(
        "--tag",
        default="",
        help="Optional tag to prepend to output filenames for distinction.",
    )
    opt.add_argument(
        "--verbose",
        action="store_true",
        help="Print debug messages.",
    )
    opt.add_argument(
        "--quiet",
        action="store_true",
        help="Only print warnings and errors.",
    )


def parse_cli(argv=None):
    parser = argparse.ArgumentParser(
        description="Host-pathogen co-occurrence across sequencing dataset collections"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ----------------------------
    # THRESHOLDS SUBCOMMAND
    # ----------------------------
    thresholds_sub = subparsers.add_parser(
        "thresholds",
        help="Count host, pathogen and shared datasets over a grid of abundance thresholds.",
    )

    # Required arguments group
    req = thresholds_sub.add_argument_group("required arguments")
    req.add_argument(
        "--pairs",
        required=True,
        help="Host-pathogen pair table (host_tax_id, path_tax_id, pathogen_root_label, host_name, pathogen_name).",
    )
    req.add_argument(
        "--host_abundance",
        required=True,
        help="Host abundance records (acc, tax_id, total_abundance), parquet or delimited text.",
    )
    req.add_argument(
        "--pathogen_abundance",
        required=True,
        help="Pathogen abundance records (acc, tax_id, total_abundance, pathogen_type).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    # Optional arguments group
    opt = thresholds_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--host_thresholds",
        nargs="+",
        default=None,
        help="Host abundance thresholds, as numbers or a file with one value per line (default: built-in list of 30).",
    )
    opt.add_argument(
        "--pathogen_thresholds",
        nargs="+",
        default=None,
        help="Pathogen abundance thresholds, as numbers or a file with one value per line (default: built-in list of 30).",
    )
    opt.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=DEFAULT_STRATEGY,
        help="How shared datasets are counted (default: %(default)s).",
    )
    opt.add_argument(
        "--chunks",
        type=positive_int,
        default=DEFAULT_CHUNKS,
        help="Number of pair chunks for the rejoin strategy (default: %(default)s).",
    )
    opt.add_argument(
        "--threads",
        type=positive_int,
        default=DEFAULT_THREADS,
        help="Threads for parquet I/O (default: %(default)s).",
    )
    opt.add_argument(
        "--memory",
        default=None,
        help="Memory ceiling for one rejoin chunk, e.g. '180GB'. Raises the chunk count when needed.",
    )
    opt.add_argument(
        "--cross_pairs",
        action="store_true",
        help="Score every host against every pathogen instead of only the listed pairs.",
    )
    opt.add_argument(
        "--resume",
        action="store_true",
        help="Keep per-threshold count parts in the output directory and reuse existing ones.",
    )
    add_common_arguments(opt)

    def thresholds_command(args):
        from hostcooc.pantry import RunConfig
        from hostcooc.pipelines import run_threshold_analysis

        config = RunConfig(
            pairs_file=args.pairs,
            host_abundance_file=args.host_abundance,
            pathogen_abundance_file=args.pathogen_abundance,
            output_dir=args.output_dir,
            host_thresholds=args.host_thresholds,
            pathogen_thresholds=args.pathogen_thresholds,
            strategy=args.strategy,
            n_chunks=args.chunks,
            threads=args.threads,
            memory_limit=args.memory,
            cross_pairs=args.cross_pairs,
            resume=args.resume,
            tag=args.tag,
        )
        run_threshold_analysis(config)

    thresholds_sub.set_defaults(func=thresholds_command)

    # ----------------------------
    # SCORE SUBCOMMAND
    # ----------------------------
    score_sub = subparsers.add_parser(
        "score",
        help="Score, label and evaluate a threshold summary against interaction metadata.",
    )

    req = score_sub.add_argument_group("required arguments")
    req.add_argument(
        "--summary",
        required=True,
        help="Summary written by 'hostcooc thresholds' (csv or parquet).",
    )
    req.add_argument(
        "--metadata",
        required=True,
        help="Interaction metadata (host_tax_id, path_tax_id, Interaction_type).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = score_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--n_total",
        type=positive_int,
        default=N_TOTAL_DATASETS,
        help="Total number of datasets behind the hypergeometric score (default: %(default)s).",
    )
    opt.add_argument(
        "--n_universe",
        type=positive_int,
        default=N_UNIVERSE,
        help="Universe size for the 2x2 co-occurrence table (default: %(default)s).",
    )
    opt.add_argument(
        "--n_per_type",
        type=positive_int,
        default=SAMPLE_PER_TYPE,
        help="Pairs sampled per interaction type (default: %(default)s).",
    )
    opt.add_argument(
        "--seed",
        type=int,
        default=SAMPLE_SEED,
        help="Random seed for the pair sample (default: %(default)s).",
    )
    opt.add_argument(
        "--predictor",
        default="log_odds",
        help="Score column used for ROC evaluation (default: %(default)s).",
    )
    opt.add_argument(
        "--direction",
        choices=["higher", "auto"],
        default="higher",
        help="Which side of the score is positive: always higher, or chosen per threshold cell "
             "from the class medians (default: %(default)s).",
    )
    opt.add_argument(
        "--comparisons",
        nargs="+",
        default=None,
        help="Names of the interaction-type comparisons to evaluate, e.g. 'Pos vs Neg' (default: all six).",
    )
    opt.add_argument(
        "--no_fisher",
        action="store_true",
        help="Skip Fisher's exact test.",
    )
    opt.add_argument(
        "--no_plots",
        action="store_true",
        help="Do not draw figures.",
    )
    add_common_arguments(opt)

    def score_command(args):
        from hostcooc.pipelines import run_scoring

        run_scoring(args)

    score_sub.set_defaults(func=score_command)

    # ----------------------------
    # PLOT SUBCOMMAND
    # ----------------------------
    plot_sub = subparsers.add_parser(
        "plot",
        help="Draw ROC, AUC and log-odds figures from a sampled score table.",
    )

    req = plot_sub.add_argument_group("required arguments")
    req.add_argument(
        "--scores_file",
        required=True,
        help="Sampled score table written by 'hostcooc score' (sampled_pairs.tsv).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where figures will be saved.",
    )

    opt = plot_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--predictor",
        default="log_odds",
        help="Score column used for ROC evaluation (default: %(default)s).",
    )
    opt.add_argument(
        "--direction",
        choices=["higher", "auto"],
        default="higher",
        help="Which side of the score is positive: always higher, or chosen per threshold cell "
             "from the class medians (default: %(default)s).",
    )
    add_common_arguments(opt)

    def plot_command(args):
        from hostcooc.plot import plot_analysis

        plot_analysis(args.scores_file, args.output_dir, tag=args.tag,
                      predictor=args.predictor, direction=args.direction)

    plot_sub.set_defaults(func=plot_command)

    # ----------------------------
    # SPARSE SUBCOMMAND
    # ----------------------------
    sparse_sub = subparsers.add_parser(
        "sparse",
        help="Export abundance records as a sparse COO matrix with row and column mappings.",
    )

    req = sparse_sub.add_argument_group("required arguments")
    req.add_argument(
        "--abundance",
        required=True,
        help="Abundance records (acc, tax_id, total_abundance).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = sparse_sub.add_argument_group("optional arguments")
    add_common_arguments(opt)

    def sparse_command(args):
        from hostcooc.format import export_sparse_matrix
        from hostcooc.pantry import load_abundance

        export_sparse_matrix(load_abundance(args.abundance, side="host"), args.output_dir, tag=args.tag)

    sparse_sub.set_defaults(func=sparse_command)

    # ----------------------------
    # EMBED SUBCOMMAND
    # ----------------------------
    embed_sub = subparsers.add_parser(
        "embed",
        help="Random-projection embeddings of taxa and datasets.",
    )

    req = embed_sub.add_argument_group("required arguments")
    req.add_argument(
        "--abundance",
        required=True,
        help="Abundance records (acc, tax_id, total_abundance).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = embed_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--dim",
        type=positive_int,
        default=EMBEDDING_DIM,
        help="Embedding dimension (default: %(default)s).",
    )
    opt.add_argument(
        "--seed",
        type=int,
        default=EMBEDDING_SEED,
        help="Random seed for the projection signs (default: %(default)s).",
    )
    opt.add_argument(
        "--shards",
        type=positive_int,
        default=EMBEDDING_SHARDS,
        help="Number of accession shards processed one at a time (default: %(default)s).",
    )
    add_common_arguments(opt)

    def embed_command(args):
        from hostcooc.embeddings import run_embeddings

        run_embeddings(args.abundance, args.output_dir, dim=args.dim, seed=args.seed,
                       n_shards=args.shards, tag=args.tag)

    embed_sub.set_defaults(func=embed_command)

    # ----------------------------
    # DIVERSITY SUBCOMMAND
    # ----------------------------
    diversity_sub = subparsers.add_parser(
        "diversity",
        help="Per-dataset alpha diversity.",
    )

    req = diversity_sub.add_argument_group("required arguments")
    req.add_argument(
        "--abundance",
        required=True,
        help="Abundance records (acc, tax_id, total_abundance).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = diversity_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--prefix_len",
        type=int,
        default=3,
        help="Partition output by this many leading accession characters; 0 writes one file (default: %(default)s).",
    )
    add_common_arguments(opt)

    def diversity_command(args):
        from hostcooc.diversity import run_diversity

        run_diversity(args.abundance, args.output_dir, prefix_len=args.prefix_len, tag=args.tag)

    diversity_sub.set_defaults(func=diversity_command)

    # ----------------------------
    # METADATA SUBCOMMAND
    # ----------------------------
    metadata_sub = subparsers.add_parser(
        "metadata",
        help="Extract metadata rows for the datasets shared by host-pathogen pairs.",
    )

    req = metadata_sub.add_argument_group("required arguments")
    req.add_argument(
        "--metadata",
        required=True,
        nargs="+",
        help="Metadata files or glob patterns (parquet or delimited text with an 'acc' column).",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = metadata_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--datasets",
        help="Parquet table of pairs with a list column of accessions. Overrides the options below.",
    )
    opt.add_argument(
        "--datasets_column",
        default="SRA_datasets",
        help="List column holding the accessions (default: %(default)s).",
    )
    opt.add_argument("--pairs", help="Host-pathogen pair table.")
    opt.add_argument("--host_abundance", help="Host abundance records.")
    opt.add_argument("--pathogen_abundance", help="Pathogen abundance records.")
    opt.add_argument("--host_threshold", type=positive_float, help="Host abundance threshold.")
    opt.add_argument("--pathogen_threshold", type=positive_float, help="Pathogen abundance threshold.")
    add_common_arguments(opt)

    def metadata_command(args):
        from hostcooc.search import search_metadata

        search_metadata(
            args.metadata,
            args.output_dir,
            datasets_file=args.datasets,
            pairs_file=args.pairs,
            host_abundance_file=args.host_abundance,
            pathogen_abundance_file=args.pathogen_abundance,
            host_threshold=args.host_threshold,
            pathogen_threshold=args.pathogen_threshold,
            column=args.datasets_column,
            tag=args.tag,
        )

    metadata_sub.set_defaults(func=metadata_command)

    # --------------
    # Parse & Dispatch
    # --------------
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet)
    args.func(args)


if __name__ == "__main__":
    parse_cli()
