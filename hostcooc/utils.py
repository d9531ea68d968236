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

import os
from typing import Iterable, Iterator, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from hostcooc._data_config import MAX_THRESHOLDS
from hostcooc.exceptions import ConfigurationError, MissingInputError


def _read_threshold_file(path: str) -> List[str]:
    # one value per line, commas also accepted, '#' starts a comment
    values = []
    with open(path, "r") as f:
        for line in f:
            line = line.split("#", 1)[0]
            values.extend(v for v in line.replace(",", " ").split() if v)
    return values


def parse_thresholds(values: Union[str, Sequence[Union[str, float]]]) -> List[float]:
    """
    Turn thresholds given as numbers, text or a file into a list of floats.

    `values` may be a sequence of numbers/strings, a comma separated string,
    or the path to a file holding one value per line. Order and duplicates
    are preserved; every value must be a positive finite number.
    """
    if isinstance(values, (str, os.PathLike)):
        text = str(values)
        if os.path.isfile(text):
            raw = _read_threshold_file(text)
        elif "," in text or _looks_numeric(text):
            raw = [v for v in text.split(",") if v.strip()]
        else:
            raise MissingInputError(f"Threshold file '{text}' not found.")
    elif len(values) == 1 and isinstance(values[0], (str, os.PathLike)):
        # a single command line argument: file path or comma separated list
        return parse_thresholds(values[0])
    else:
        raw = list(values)

    thresholds = []
    for v in raw:
        try:
            t = float(v)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Threshold '{v}' is not a number")
        if not np.isfinite(t) or t <= 0:
            raise ConfigurationError(f"Threshold '{v}' must be a positive number")
        thresholds.append(t)

    if not thresholds:
        raise ConfigurationError("At least one threshold is required")
    if len(thresholds) > MAX_THRESHOLDS:
        raise ConfigurationError(
            f"{len(thresholds)} thresholds given; at most {MAX_THRESHOLDS} per side are supported"
        )
    return thresholds


def _looks_numeric(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def threshold_grid(host_thresholds: Sequence[float], pathogen_thresholds: Sequence[float]) -> pd.DataFrame:
    """
    Cross product of host and pathogen thresholds, host-major in list order.
    """
    ht = np.repeat(np.asarray(host_thresholds, dtype=float), len(pathogen_thresholds))
    pt = np.tile(np.asarray(pathogen_thresholds, dtype=float), len(host_thresholds))
    return pd.DataFrame({"host_threshold": ht, "pathogen_threshold": pt})


def chunk_bounds(n: int, n_chunks: int) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, stop) for `n_chunks` contiguous, near-equal slices of
    range(n). Earlier chunks take the remainder, like NTILE; empty chunks
    are skipped.
    """
    if n_chunks < 1:
        raise ValueError(f"n_chunks must be at least 1, got {n_chunks}")
    base, extra = divmod(n, n_chunks)
    start = 0
    for i in range(n_chunks):
        stop = start + base + (1 if i < extra else 0)
        if stop > start:
            yield start, stop
        start = stop


def chunks_for_memory(n_rows: int, cells_per_row: int, memory_limit: int,
                      n_chunks: int = 1, bytes_per_cell: int = 8) -> int:
    """
    Smallest chunk count >= n_chunks whose largest chunk keeps
    rows x cells x bytes_per_cell under `memory_limit`.
    """
    if memory_limit is None or n_rows == 0:
        return n_chunks
    rows_per_chunk = max(1, memory_limit // max(1, cells_per_row * bytes_per_cell))
    needed = -(-n_rows // rows_per_chunk)
    return max(n_chunks, int(needed))


def flatten(items: Iterable[Iterable]) -> List:
    return [x for group in items for x in group]
