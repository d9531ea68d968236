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

# _data_config.py

DEFAULT_THRESHOLDS = [
    1e-06, 1e-05, 5e-05, 1e-04, 5e-04,
    0.001, 0.002, 0.003, 0.004, 0.005,
    0.006, 0.007, 0.008, 0.009, 0.01,
    0.02, 0.03, 0.04, 0.05, 0.06,
    0.07, 0.08, 0.09, 0.1,
    0.2, 0.3, 0.4, 0.5, 1.0, 5.0,
]

MAX_THRESHOLDS = 30

# Canonical column -> accepted spellings (matched case-insensitively)
PAIR_COLUMNS = {
    "host_tax_id": ["host_tax_id"],
    "path_tax_id": ["path_tax_id", "pathogen_tax_id", "microbe_tax_id"],
    "pathogen_root_label": ["pathogen_root_label", "microbe_root_label"],
    "host_name": ["host_name"],
    "pathogen_name": ["pathogen_name", "microbe_name"],
}

ABUNDANCE_COLUMNS = {
    "acc": ["acc", "accession", "dataset_accession"],
    "tax_id": ["tax_id", "taxon_id"],
    "total_abundance": ["total_abundance", "abundance"],
}

PATHOGEN_TYPE_COLUMN = {"pathogen_type": ["pathogen_type"]}

METADATA_COLUMNS = {
    "host_tax_id": ["host_tax_id"],
    "path_tax_id": ["path_tax_id", "pathogen_tax_id", "microbe_tax_id"],
    "Interaction_type": ["interaction_type"],
}

SUMMARY_COLUMNS = [
    "host_tax_id",
    "path_tax_id",
    "host_threshold",
    "pathogen_threshold",
    "num_host_datasets",
    "num_pathogen_datasets",
    "num_shared_datasets",
]

SUMMARY_BASENAME = "host_pathogen_analysis_results"

# Background sizes for the statistics stage
N_TOTAL_DATASETS = 29_289_124
N_UNIVERSE = 34_724_088

# Lower index wins when a pair carries more than one label
INTERACTION_PRIORITY = ["Positive Control", "Negative Control", "Commensal", "PHI-Base"]
UNLABELLED = "Random"

COMPARISONS = [
    ("Pos vs Neg", "Positive Control", "Negative Control"),
    ("Pos vs Random", "Positive Control", "Random"),
    ("Comm vs Neg", "Commensal", "Negative Control"),
    ("Comm vs Random", "Commensal", "Random"),
    ("PHI vs Neg", "PHI-Base", "Negative Control"),
    ("PHI vs Random", "PHI-Base", "Random"),
]

SAMPLE_PER_TYPE = 100
SAMPLE_SEED = 1

STRATEGIES = ["intersection", "rejoin"]
DEFAULT_STRATEGY = "intersection"
DEFAULT_CHUNKS = 100
DEFAULT_THREADS = 16

EMBEDDING_DIM = 512
EMBEDDING_SEED = 42
EMBEDDING_SHARDS = 64


def get_comparison(name):
    for comparison in COMPARISONS:
        if comparison[0] == name:
            return comparison
    raise ValueError(
        f"Comparison '{name}' is not available. "
        f"Available comparisons: {', '.join(c[0] for c in COMPARISONS)}"
    )
