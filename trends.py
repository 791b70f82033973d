"""Multi-year statistics over the map region.

Validity here is stricter than in DataSet: a point counts only when its value
is non-negative AND it lies inside the display region.
"""

import math
import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import DEFAULT_REGION, DEFAULT_YEARS, DisplayRegion
from data_processing import DataPoint, DataSet
from utils import canonical_pollutant


class YearlyMaxima(NamedTuple):
    per_year: List[Tuple[str, Optional[DataPoint]]]
    highest: Optional[DataPoint]
    highest_year: Optional[str]


class TrendSummary(NamedTuple):
    frame: pd.DataFrame
    maxima: YearlyMaxima
    overall_average: float


def _maxima(per_year: List[Tuple[str, Optional[DataPoint]]]) -> YearlyMaxima:
    # A later year replaces the running maximum only when strictly greater.
    highest = None
    highest_year = None
    for year, candidate in per_year:
        if candidate is not None and (highest is None or candidate.value > highest.value):
            highest = candidate
            highest_year = year
    return YearlyMaxima(per_year, highest, highest_year)


def is_valid_point(point: Optional[DataPoint], region: DisplayRegion = DEFAULT_REGION) -> bool:
    if point is None:
        return False
    if point.value < 0:
        return False
    return region.contains(point.x, point.y)


def valid_average(dataset: Optional[DataSet], region: DisplayRegion = DEFAULT_REGION) -> float:
    """Mean of the valid points of ``dataset``; 0.0 when there are none or no dataset."""
    if dataset is None:
        return 0.0
    total = 0.0
    count = 0
    for point in dataset.get_data():
        if is_valid_point(point, region):
            total += point.value
            count += 1
    return total / count if count > 0 else 0.0


def valid_highest(dataset: Optional[DataSet], region: DisplayRegion = DEFAULT_REGION) -> Optional[DataPoint]:
    """Valid point with the largest value; the first one wins on ties."""
    if dataset is None:
        return None
    highest = None
    for point in dataset.get_data():
        if is_valid_point(point, region) and (highest is None or point.value > highest.value):
            highest = point
    return highest


def mean_of_positive(values: Iterable[float]) -> float:
    """Mean over values strictly greater than zero.

    Years with an average of exactly 0.0 are indistinguishable from years
    without data and are left out of the overall figure.
    """
    total = 0.0
    count = 0
    for value in values:
        if value > 0:
            total += value
            count += 1
    return total / count if count > 0 else 0.0


def chart_upper_bound(values: Sequence[float]) -> float:
    """Y-axis limit for the trend chart: 20% headroom, rounded up to a multiple of 10."""
    finite = [v for v in values if v is not None and math.isfinite(v)]
    max_value = max(finite) if finite else 0.0
    if max_value <= 0:
        return 10.0
    return math.ceil((max_value * 1.2) / 10) * 10.0


class TrendAggregator:
    """Per-year averages and maxima for one pollutant.

    ``loader`` is anything with ``load_pollution_data(pollutant, year)``
    returning a DataSet, or None when that year has no source.
    """

    def __init__(
        self,
        loader,
        pollutant: str,
        years: Sequence = DEFAULT_YEARS,
        region: DisplayRegion = DEFAULT_REGION,
    ):
        self.loader = loader
        self.pollutant = canonical_pollutant(pollutant)
        self.years = [str(y) for y in years]
        self.region = region

    def _datasets(self):
        for year in self.years:
            dataset = self.loader.load_pollution_data(self.pollutant, year)
            if dataset is None:
                logging.info("No %s data for %s; counted as zero valid points", self.pollutant, year)
            yield year, dataset

    def _yearly_stats(self) -> List[Tuple[str, float, Optional[DataPoint]]]:
        """(year, valid average, highest valid point), loading each year once."""
        return [
            (year, valid_average(ds, self.region), valid_highest(ds, self.region))
            for year, ds in self._datasets()
        ]

    def yearly_valid_averages(self) -> List[Tuple[str, float]]:
        return [(year, avg) for year, avg, _ in self._yearly_stats()]

    def yearly_valid_maxima(self) -> YearlyMaxima:
        return _maxima([(year, top) for year, _, top in self._yearly_stats()])

    def overall_average(self) -> float:
        return mean_of_positive(avg for _, avg in self.yearly_valid_averages())

    def to_frame(self) -> pd.DataFrame:
        """One row per year with the valid average and the highest valid point."""
        return self._frame(self._yearly_stats())

    def summary(self) -> TrendSummary:
        """Trend table, maxima and overall average from a single pass over the years."""
        stats = self._yearly_stats()
        return TrendSummary(
            frame=self._frame(stats),
            maxima=_maxima([(year, top) for year, _, top in stats]),
            overall_average=mean_of_positive(avg for _, avg, _ in stats),
        )

    def _frame(self, stats) -> pd.DataFrame:
        records = []
        for year, avg, top in stats:
            records.append({
                'year': int(year) if year.isdigit() else year,
                'average': avg,
                'max_value': top.value if top is not None else np.nan,
                'max_grid_code': top.grid_code if top is not None else np.nan,
                'max_x': top.x if top is not None else np.nan,
                'max_y': top.y if top is not None else np.nan,
            })
        df = pd.DataFrame.from_records(
            records, columns=['year', 'average', 'max_value', 'max_grid_code', 'max_x', 'max_y']
        )
        df.attrs = {'pollutant': self.pollutant}
        return df
