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
pantry.py

Loading of every input table the pipeline consumes, plus the containers the
later stages pass around.

Exposes:
  - load_pairs(path): host-pathogen pair table (delimited text).
  - expand_cross_pairs(pairs): every host against every (pathogen, label).
  - load_abundance(path, side): per-dataset abundance records (parquet or text).
  - load_metadata(path): interaction labels for the statistics stage.
  - Abundances: accession x taxon sparse abundance matrix.
  - RunConfig: parameters of one threshold analysis run.

Column names are matched case-insensitively against the spellings listed in
_data_config, then renamed to their canonical form.
"""

import logging
import os
import re
from typing import Dict, List, NamedTuple, Optional

import numpy as np
import pandas as pd
import pyarrow.parquet as pq
import scipy.sparse as sp

from hostcooc._data_config import (
    ABUNDANCE_COLUMNS,
    DEFAULT_CHUNKS,
    DEFAULT_STRATEGY,
    DEFAULT_THREADS,
    DEFAULT_THRESHOLDS,
    METADATA_COLUMNS,
    PAIR_COLUMNS,
    PATHOGEN_TYPE_COLUMN,
    STRATEGIES,
)
from hostcooc.exceptions import ConfigurationError, MissingInputError, SchemaError
from hostcooc.utils import chunk_bounds, parse_thresholds

logger = logging.getLogger(__name__)


class HostPathogenPair(NamedTuple):
    host_tax_id: int
    path_tax_id: int
    pathogen_root_label: str
    host_name: str
    pathogen_name: str


class SharedThresholdRecord(NamedTuple):
    host_tax_id: int
    path_tax_id: int
    host_threshold: float
    pathogen_threshold: float
    num_host_datasets: int
    num_pathogen_datasets: int
    num_shared_datasets: int


def _check_exists(path) -> None:
    if path is None or not os.path.exists(path):
        raise MissingInputError(f"Input file '{path}' not found.")


def _guess_sep(path) -> str:
    name = str(path).lower()
    if name.endswith(".gz"):
        name = name[:-3]
    return "\t" if name.endswith((".tsv", ".tab", ".txt")) else ","


def _is_parquet(path) -> bool:
    return str(path).lower().endswith((".parquet", ".pq"))


def _match_columns(available: List[str], wanted: Dict[str, List[str]], path) -> Dict[str, str]:
    """
    Map canonical names to the actual column names in `available`.

    Raises SchemaError listing every canonical column with no match.
    """
    lowered = {c.lower(): c for c in available}
    mapping = {}
    missing = []
    for canonical, spellings in wanted.items():
        found = next((lowered[s.lower()] for s in spellings if s.lower() in lowered), None)
        if found is None:
            missing.append(canonical)
        else:
            mapping[found] = canonical
    if missing:
        raise SchemaError(
            f"{path}: missing required column(s) {', '.join(missing)}. "
            f"Found: {', '.join(available)}"
        )
    return mapping


def _as_int64(df: pd.DataFrame, columns: List[str], path) -> pd.DataFrame:
    for col in columns:
        values = pd.to_numeric(df[col], errors="coerce")
        if values.isna().any():
            raise SchemaError(
                f"{path}: column '{col}' must hold integer taxon ids "
                f"({int(values.isna().sum())} unusable values)."
            )
        if not np.all(np.mod(values, 1) == 0):
            raise SchemaError(f"{path}: column '{col}' holds non-integer values.")
        df[col] = values.astype("int64")
    return df


def _as_float64(df: pd.DataFrame, column: str, path) -> pd.DataFrame:
    values = pd.to_numeric(df[column], errors="coerce")
    if (values.isna() & df[column].notna()).any():
        raise SchemaError(f"{path}: column '{column}' must be numeric.")
    df[column] = values.astype("float64")
    return df


def read_table(path, sep: Optional[str] = None, columns: Optional[Dict[str, List[str]]] = None) -> pd.DataFrame:
    """
    Read a parquet or delimited file, keeping (and renaming) only `columns`
    when given.
    """
    _check_exists(path)
    if _is_parquet(path):
        available = pq.read_schema(path).names
        if columns is None:
            return pd.read_parquet(path)
        mapping = _match_columns(available, columns, path)
        df = pd.read_parquet(path, columns=list(mapping))
    else:
        sep = sep or _guess_sep(path)
        try:
            df = pd.read_csv(path, sep=sep, engine="c")
        except pd.errors.ParserError as e:
            raise SchemaError(f"{path}: could not be parsed ({e}).") from e
        if columns is None:
            return df
        mapping = _match_columns(list(df.columns), columns, path)
        df = df[list(mapping)]
    return df.rename(columns=mapping)


def load_pairs(path, sep: Optional[str] = None) -> pd.DataFrame:
    """
    Load the host-pathogen pair table.

    Duplicated pairs are kept: each copy propagates through every later stage.
    """
    pairs = read_table(path, sep=sep, columns=PAIR_COLUMNS)
    pairs = _as_int64(pairs, ["host_tax_id", "path_tax_id"], path)
    if pairs["pathogen_root_label"].isna().any():
        raise SchemaError(f"{path}: column 'pathogen_root_label' has missing values.")
    pairs["pathogen_root_label"] = pairs["pathogen_root_label"].astype(str)
    pairs = pairs[list(HostPathogenPair._fields)].reset_index(drop=True)
    logger.info(f"Loaded {len(pairs)} host-pathogen pairs from {path}")
    return pairs


def expand_cross_pairs(pairs: pd.DataFrame) -> pd.DataFrame:
    """
    Cross every distinct host with every distinct (pathogen, root label).

    Names are carried over from the first pair mentioning each taxon.
    """
    hosts = pairs.drop_duplicates("host_tax_id")[["host_tax_id", "host_name"]]
    pathogens = pairs.drop_duplicates(["path_tax_id", "pathogen_root_label"])[
        ["path_tax_id", "pathogen_root_label", "pathogen_name"]
    ]
    cross = hosts.merge(pathogens, how="cross")
    return cross[list(HostPathogenPair._fields)].reset_index(drop=True)


def load_abundance(path, side: str = "host") -> pd.DataFrame:
    """
    Load abundance records for one side ("host" or "pathogen").

    The pathogen side additionally requires a pathogen_type column.
    """
    if side not in ("host", "pathogen"):
        raise ConfigurationError(f"side must be 'host' or 'pathogen', not '{side}'")
    wanted = dict(ABUNDANCE_COLUMNS)
    if side == "pathogen":
        wanted.update(PATHOGEN_TYPE_COLUMN)
    df = read_table(path, columns=wanted)
    df = _as_int64(df, ["tax_id"], path)
    df = _as_float64(df, "total_abundance", path)
    df["acc"] = df["acc"].astype(str)
    if side == "pathogen":
        # Missing labels stay None and never match a root label
        ptype = df["pathogen_type"]
        df["pathogen_type"] = ptype.astype(str).where(ptype.notna(), None)
    logger.info(f"{side.capitalize()} records: {len(df)} ({path})")
    return df[list(wanted)]


def load_metadata(path, sep: Optional[str] = None) -> pd.DataFrame:
    """Load interaction labels; extra columns (names etc.) are kept."""
    df = read_table(path, sep=sep)
    mapping = _match_columns(list(df.columns), METADATA_COLUMNS, path)
    df = df.rename(columns=mapping)
    df = _as_int64(df, ["host_tax_id", "path_tax_id"], path)
    df["Interaction_type"] = df["Interaction_type"].astype(str)
    return df


class Abundances:
    """
    Container for per-dataset abundances as a sparse matrix.

    Attributes:
        accessions (List[str]): Row identifiers, sorted.
        taxa (np.ndarray): Column taxon ids, sorted.
        abundance_matrix (sp.csr_matrix): accessions x taxa, summed abundance.
    """
    def __init__(self, accessions: List[str], taxa: np.ndarray, abundance_matrix: sp.csr_matrix):
        if abundance_matrix.shape != (len(accessions), len(taxa)):
            raise ValueError(
                f"Matrix shape {abundance_matrix.shape} does not match "
                f"{len(accessions)} accessions x {len(taxa)} taxa"
            )
        self.accessions = accessions
        self.taxa = taxa
        self.abundance_matrix = abundance_matrix.tocsr()

    def __repr__(self):
        return (
            f"<Abundances: {len(self.accessions)} accessions, "
            f"{len(self.taxa)} taxa, nnz: {self.abundance_matrix.nnz}>"
        )

    @classmethod
    def from_records(cls, records: pd.DataFrame) -> "Abundances":
        """
        Build from (acc, tax_id, total_abundance) records. Duplicate
        (acc, tax_id) records are summed; rows are ordered by accession and
        columns by taxon id.
        """
        acc_codes, accessions = pd.factorize(records["acc"], sort=True)
        tax_codes, taxa = pd.factorize(records["tax_id"], sort=True)
        matrix = sp.coo_matrix(
            (records["total_abundance"].to_numpy(dtype=float), (acc_codes, tax_codes)),
            shape=(len(accessions), len(taxa)),
        ).tocsr()
        return cls(list(accessions), np.asarray(taxa), matrix)

    def shards(self, n_shards: int):
        """Yield (row_start, row_stop, submatrix) over near-equal row blocks."""
        for start, stop in chunk_bounds(len(self.accessions), n_shards):
            yield start, stop, self.abundance_matrix[start:stop]


_MEMORY_UNITS = {"": 1, "B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3, "TB": 1024 ** 4}


def parse_memory(value) -> Optional[int]:
    """Parse '180GB', '512 MB' or a plain byte count into bytes."""
    if value is None:
        return None
    if isinstance(value, (int, np.integer)):
        if value <= 0:
            raise ConfigurationError(f"Memory limit must be positive, got {value}")
        return int(value)
    match = re.fullmatch(r"\s*([0-9]*\.?[0-9]+)\s*([KMGT]?B?)\s*", str(value).upper())
    if not match:
        raise ConfigurationError(f"Unrecognised memory limit '{value}' (expected e.g. '180GB')")
    number, unit = match.groups()
    if unit and not unit.endswith("B"):
        unit += "B"
    nbytes = int(float(number) * _MEMORY_UNITS[unit])
    if nbytes <= 0:
        raise ConfigurationError(f"Memory limit must be positive, got '{value}'")
    return nbytes


class RunConfig:
    """
    Parameters of one threshold analysis run.

    Input paths are checked when the config is built so that a missing file
    stops the run before anything is computed.
    """
    def __init__(
        self,
        pairs_file: str,
        host_abundance_file: str,
        pathogen_abundance_file: str,
        output_dir: str,
        host_thresholds: Optional[List[float]] = None,
        pathogen_thresholds: Optional[List[float]] = None,
        strategy: str = DEFAULT_STRATEGY,
        n_chunks: int = DEFAULT_CHUNKS,
        threads: int = DEFAULT_THREADS,
        memory_limit=None,
        cross_pairs: bool = False,
        resume: bool = False,
        tag: str = "",
    ):
        for path in (pairs_file, host_abundance_file, pathogen_abundance_file):
            _check_exists(path)
        if strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unknown strategy '{strategy}'. Choose from: {', '.join(STRATEGIES)}"
            )
        if n_chunks < 1:
            raise ConfigurationError(f"n_chunks must be at least 1, got {n_chunks}")
        if threads < 1:
            raise ConfigurationError(f"threads must be at least 1, got {threads}")

        self.pairs_file = pairs_file
        self.host_abundance_file = host_abundance_file
        self.pathogen_abundance_file = pathogen_abundance_file
        self.output_dir = output_dir
        self.host_thresholds = parse_thresholds(host_thresholds or DEFAULT_THRESHOLDS)
        self.pathogen_thresholds = parse_thresholds(pathogen_thresholds or DEFAULT_THRESHOLDS)
        self.strategy = strategy
        self.n_chunks = int(n_chunks)
        self.threads = int(threads)
        self.memory_limit = parse_memory(memory_limit)
        self.cross_pairs = cross_pairs
        self.resume = resume
        self.tag = tag

    def __repr__(self):
        return (
            f"<RunConfig: strategy={self.strategy}, "
            f"{len(self.host_thresholds)} host x {len(self.pathogen_thresholds)} pathogen thresholds, "
            f"chunks={self.n_chunks}, threads={self.threads}, memory_limit={self.memory_limit}>"
        )
