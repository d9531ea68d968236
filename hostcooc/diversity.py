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
diversity.py

Per-accession alpha diversity from (acc, tax_id, total_abundance) records.

Records with non-positive abundance are dropped and duplicate (acc, tax_id)
records are summed before anything is computed. With x the summed
abundances of one accession, T = sum(x), S = number of taxa:

    richness                 S
    shannon                  ln(T) - sum(x ln x) / T
    simpson_1_minus_D        1 - sum(x^2) / T^2
    inverse_simpson          T^2 / sum(x^2)
    pielou_evenness          shannon / ln(S)     (S > 1 only)
    berger_parker_dominance  max(x) / T
"""

import logging
import os

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from hostcooc.pantry import load_abundance

logger = logging.getLogger(__name__)

DIVERSITY_COLUMNS = [
    "acc",
    "richness",
    "shannon",
    "simpson_1_minus_D",
    "inverse_simpson",
    "pielou_evenness",
    "berger_parker_dominance",
]


def alpha_diversity(records: pd.DataFrame) -> pd.DataFrame:
    """One row per accession with at least one positive record, sorted by acc."""
    positive = records.loc[records["total_abundance"] > 0, ["acc", "tax_id", "total_abundance"]]
    if positive.empty:
        return pd.DataFrame({c: pd.Series(dtype=object if c == "acc" else float)
                             for c in DIVERSITY_COLUMNS})

    x = positive.groupby(["acc", "tax_id"], sort=False)["total_abundance"].sum().reset_index()
    x["x_ln_x"] = x["total_abundance"] * np.log(x["total_abundance"])
    x["x_sq"] = x["total_abundance"] ** 2

    base = x.groupby("acc", sort=True).agg(
        T=("total_abundance", "sum"),
        A=("x_ln_x", "sum"),
        B=("x_sq", "sum"),
        M=("total_abundance", "max"),
        S=("total_abundance", "size"),
    )

    shannon = np.log(base["T"]) - base["A"] / base["T"]
    out = pd.DataFrame({
        "acc": base.index,
        "richness": base["S"].astype("int64").to_numpy(),
        "shannon": shannon.to_numpy(),
        "simpson_1_minus_D": (1 - base["B"] / base["T"] ** 2).to_numpy(),
        "inverse_simpson": (base["T"] ** 2 / base["B"]).to_numpy(),
        "pielou_evenness": (shannon / np.log(base["S"])).where(base["S"] > 1).to_numpy(),
        "berger_parker_dominance": (base["M"] / base["T"]).to_numpy(),
    })
    return out.reset_index(drop=True)


def run_diversity(abundance_file: str, output_dir: str, prefix_len: int = 3, tag: str = "") -> str:
    """
    Compute alpha diversity and write it as a parquet dataset partitioned
    by the first `prefix_len` characters of the accession (acc_prefix).
    A prefix_len of 0 writes a single parquet file instead.
    """
    records = load_abundance(abundance_file, side="host")
    alpha = alpha_diversity(records)
    logger.info(f"Alpha diversity computed for {len(alpha)} accessions")

    os.makedirs(output_dir, exist_ok=True)
    if prefix_len <= 0:
        path = os.path.join(output_dir, f"{tag}alpha_diversity.parquet")
        alpha.to_parquet(path, index=False, compression="zstd")
    else:
        path = os.path.join(output_dir, f"{tag}alpha_by_acc")
        alpha["acc_prefix"] = alpha["acc"].str.slice(0, prefix_len)
        pq.write_to_dataset(
            pa.Table.from_pandas(alpha, preserve_index=False),
            root_path=path,
            partition_cols=["acc_prefix"],
            compression="zstd",
        )
    logger.info(f"Alpha diversity saved to {path}")
    return path
