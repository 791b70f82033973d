"""Data processing functions for AIRPLOT.

##############################################################################
# INPUT FILE RULES
# 1. One delimited file per (pollutant, year), named by resolve_pollution_file.
# 2. Leading metadata rows (label, metric, unit) precede a column header row
#    whose first field is "gridcode". Data rows follow.
# 3. Each data row is: grid code (int), x (int), y (int), value (float).
#    Rows failing to parse are skipped; they never abort a load.
# 4. Negative values mean "no data" and are kept in the DataSet. Validity
#    filtering happens in the queries, not during ingestion.
##############################################################################
"""

import os
import re
import csv
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from config import (
    DEFAULT_DATA_ROOT, HEADER_SCAN_LIMIT, HEADER_FIRST_FIELD, POLLUTANT_FILE_RULES,
)
from utils import normalize_delim, parse_int, parse_float, canonical_pollutant

_YEAR_RE = re.compile(r'(?<!\d)(\d{4})(?!\d)')
DATA_COLUMNS = ['grid_code', 'x', 'y', 'value']


class SourceUnavailable(Exception):
    """The measurement file for a pollutant/year is missing or unreadable."""

    def __init__(self, path: str, reason: str = 'not found'):
        super().__init__(f"Measurement source {path} unavailable: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class DataPoint:
    """One measurement at a grid cell. Negative values denote missing data."""

    grid_code: int
    x: int
    y: int
    value: float


def parse_row(fields: Sequence) -> Optional[DataPoint]:
    """Parse grid code, x, y and value from a raw row; None if any of them is malformed."""
    if fields is None or len(fields) < 4:
        return None
    grid_code = parse_int(fields[0])
    x = parse_int(fields[1])
    y = parse_int(fields[2])
    value = parse_float(fields[3])
    if grid_code is None or x is None or y is None or value is None:
        return None
    return DataPoint(grid_code, x, y, value)


class DataSet:
    """Measurements of one pollutant for one year, in file order."""

    def __init__(self, pollutant: str, year: str, metric: str = '', unit: str = ''):
        self.pollutant = pollutant
        self.year = str(year)
        self.metric = metric
        self.unit = unit
        self._points: List[DataPoint] = []

    def __repr__(self) -> str:
        return (
            f"DataSet(pollutant={self.pollutant!r}, year={self.year!r}, "
            f"metric={self.metric!r}, unit={self.unit!r}, points={len(self._points)})"
        )

    def __len__(self) -> int:
        return len(self._points)

    def add_data(self, raw_fields: Sequence) -> bool:
        """Append the row as a DataPoint. Malformed rows are ignored; returns whether one was added."""
        point = parse_row(raw_fields)
        if point is None:
            return False
        self._points.append(point)
        return True

    def get_data(self) -> List[DataPoint]:
        return list(self._points)

    def calculate_valid_average(self) -> float:
        """Mean value over non-negative readings, 0.0 when there are none.

        Region bounds are not applied here; see trends.valid_average for the
        map-level figure.
        """
        total = 0.0
        count = 0
        for point in self._points:
            if point.value >= 0:
                total += point.value
                count += 1
        return total / count if count > 0 else 0.0

    def get_highest_data_point(self) -> Optional[DataPoint]:
        """Highest non-negative reading; the first one wins on ties."""
        highest = None
        for point in self._points:
            if point.value < 0:
                continue
            if highest is None or point.value > highest.value:
                highest = point
        return highest

    def to_frame(self) -> pd.DataFrame:
        """Points as a DataFrame (grid_code, x, y, value) with the metadata in ``attrs``."""
        df = pd.DataFrame(
            [(p.grid_code, p.x, p.y, p.value) for p in self._points],
            columns=DATA_COLUMNS,
        )
        df = df.astype({'grid_code': 'int64', 'x': 'int64', 'y': 'int64', 'value': 'float64'})
        df.attrs = {
            'pollutant': self.pollutant,
            'year': self.year,
            'metric': self.metric,
            'unit': self.unit,
        }
        return df


def _first_field(row: Sequence[str]) -> str:
    for field in row:
        text = str(field).strip()
        if text:
            return text
    return ''


def _is_column_header(row: Sequence[str]) -> bool:
    return bool(row) and str(row[0]).strip().lower() == HEADER_FIRST_FIELD


def read_header(rows: Sequence[Sequence[str]]) -> Tuple[dict, int]:
    """Return (metadata, index of the first data row).

    Only the first HEADER_SCAN_LIMIT rows are searched for the column header.
    Without one, every row is a data row and the metadata is empty.
    """
    header_idx = None
    for idx, row in enumerate(rows[:HEADER_SCAN_LIMIT]):
        if _is_column_header(row):
            header_idx = idx
            break
    if header_idx is None:
        return {}, 0

    meta_rows = [_first_field(r) for r in rows[:header_idx]]
    meta: dict = {}
    if len(meta_rows) > 0 and meta_rows[0]:
        label = meta_rows[0]
        meta['label'] = label
        match = _YEAR_RE.search(label)
        if match:
            meta['year'] = match.group(1)
            label = (label[:match.start()] + ' ' + label[match.end():]).strip()
        tokens = label.split()
        if tokens:
            meta['pollutant'] = tokens[0]
    if len(meta_rows) > 1 and meta_rows[1]:
        meta['metric'] = meta_rows[1]
    if len(meta_rows) > 2 and meta_rows[2]:
        meta['unit'] = meta_rows[2]
    if len(rows[header_idx]) > 3:
        meta['value_column'] = str(rows[header_idx][3]).strip()
    return meta, header_idx + 1


def _check_source(path: str) -> None:
    if not os.path.exists(path):
        raise SourceUnavailable(path, 'not found')
    if not os.path.isfile(path):
        raise SourceUnavailable(path, 'not a regular file')


def _scan_leading_rows(path: str, sep: str, encoding: str) -> List[List[str]]:
    """Split the first HEADER_SCAN_LIMIT lines for header detection."""
    rows: List[List[str]] = []
    with open(path, 'r', encoding=encoding) as f:
        for idx, line in enumerate(f):
            if idx >= HEADER_SCAN_LIMIT:
                break
            line = line.rstrip('\r\n')
            rows.append([t.strip().strip('"').strip("'") for t in line.split(sep)] if line.strip() else [])
    return rows


def _read_data_block(path: str, sep: str, encoding: str, start: int) -> pd.DataFrame:
    """Read the rows after the header as strings, truncated to the four data columns."""
    read_kwargs = {
        'filepath_or_buffer': path,
        'sep': sep,
        'skiprows': start,
        'header': None,
        'names': DATA_COLUMNS,
        'index_col': False,
        'dtype': str,
        'keep_default_na': False,
        'skip_blank_lines': True,
        'encoding': encoding,
        # Python engine: rows with extra trailing fields keep their first four.
        'engine': 'python',
        'on_bad_lines': lambda bad_line: bad_line[:len(DATA_COLUMNS)],
    }
    try:
        df = pd.read_csv(**read_kwargs)
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=DATA_COLUMNS, dtype=str)
    return df.fillna('')


def load_data_file(
    path: str,
    pollutant: Optional[str] = None,
    year: Optional[str] = None,
    delim: Optional[str] = ',',
    encoding: Optional[str] = None,
) -> DataSet:
    """Parse one measurement file into a DataSet.

    ``pollutant`` and ``year`` are used when the file carries no label row.
    Raises SourceUnavailable when the file cannot be read.
    """
    sep = normalize_delim(delim) or ','
    enc = encoding or 'utf-8-sig'
    _check_source(path)
    try:
        meta, start = read_header(_scan_leading_rows(path, sep, enc))
        frame = _read_data_block(path, sep, enc, start)
    except (OSError, UnicodeDecodeError, csv.Error, pd.errors.ParserError) as exc:
        raise SourceUnavailable(path, str(exc)) from exc

    dataset = DataSet(
        pollutant=meta.get('pollutant') or pollutant or '',
        year=meta.get('year') or year or '',
        metric=meta.get('metric', ''),
        unit=meta.get('unit', ''),
    )
    skipped = 0
    for row in frame.itertuples(index=False, name=None):
        if not any(str(f).strip() for f in row):
            continue
        if not dataset.add_data(row):
            skipped += 1
    if skipped:
        logging.debug("Skipped %d malformed row(s) in %s", skipped, path)
    logging.info("Loaded %d data point(s) from %s", len(dataset), path)
    return dataset


def resolve_pollution_file(pollutant: str, year, data_root: str = DEFAULT_DATA_ROOT) -> str:
    """Path of the measurement file for (pollutant, year)."""
    canonical = canonical_pollutant(pollutant)
    folder, prefix, suffix = POLLUTANT_FILE_RULES[canonical]
    return os.path.join(data_root, folder, f"{prefix}{year}{suffix}.csv")


class FileLoader:
    """Loads pollutant data for a (pollutant, year) request from a data root."""

    def __init__(
        self,
        data_root: str = DEFAULT_DATA_ROOT,
        delim: Optional[str] = ',',
        encoding: Optional[str] = None,
        cache: bool = False,
        cache_size: int = 32,
    ):
        self.data_root = data_root
        self.delim = delim
        self.encoding = encoding
        if cache:
            self._load = lru_cache(maxsize=cache_size)(self._load_uncached)
        else:
            self._load = self._load_uncached

    def _load_uncached(self, pollutant: str, year: str) -> Optional[DataSet]:
        path = resolve_pollution_file(pollutant, year, self.data_root)
        try:
            return load_data_file(path, pollutant=pollutant, year=year, delim=self.delim, encoding=self.encoding)
        except SourceUnavailable as exc:
            logging.warning("%s; treating %s %s as having no data", exc, pollutant, year)
            return None

    def load_pollution_data(self, pollutant: str, year) -> Optional[DataSet]:
        """Return the DataSet for (pollutant, year), or None if its source is unavailable."""
        return self._load(canonical_pollutant(pollutant), str(year))
