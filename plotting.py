"""Plotting utilities for AIRPLOT."""

from typing import Optional, Sequence, Tuple

from matplotlib.collections import PatchCollection
from matplotlib.patches import Patch, Rectangle
from matplotlib.ticker import FormatStrFormatter

from config import (
    CONCENTRATION_UNIT, DEFAULT_YEARS, LEVEL_COLORS, MARKER_SIZE, POLLUTANT_THRESHOLDS,
)
from mapping import GridCoordinateMapper, SpatialPicker, grid_to_lonlat
from trends import chart_upper_bound
from utils import canonical_pollutant, display_pollutant


def classify_value(pollutant: str, value: float) -> str:
    """Colour class of a concentration: Low, Medium, High or Very High."""
    low, medium, high = POLLUTANT_THRESHOLDS[canonical_pollutant(pollutant)]
    if value < low:
        return 'Low'
    if value < medium:
        return 'Medium'
    if value < high:
        return 'High'
    return 'Very High'


def color_for_value(pollutant: str, value: float) -> Tuple[float, float, float, float]:
    return LEVEL_COLORS[classify_value(pollutant, value)]


def format_point_label(pollutant: str, point, with_lonlat: bool = False) -> str:
    """Hover text for a picked point."""
    text = f"{display_pollutant(pollutant)}: {point.value:.2f}\nLocation: {point.x}, {point.y}"
    if with_lonlat:
        lonlat = grid_to_lonlat(point.x, point.y)
        if lonlat is not None:
            text += f"\nlon={lonlat[0]:.4f}°, lat={lonlat[1]:.4f}°"
    return text


def _year_span(years: Sequence) -> str:
    years = [str(y) for y in years] or list(DEFAULT_YEARS)
    return f"{years[0]} to {years[-1]}"


def format_average_message(pollutant: str, average: float, years: Sequence = DEFAULT_YEARS) -> str:
    return (
        f"{display_pollutant(pollutant)}: the average pollution level from {_year_span(years)} "
        f"is: {average:.2f} {CONCENTRATION_UNIT}"
    )


def format_highest_message(pollutant: str, point, year: Optional[str], years: Sequence = DEFAULT_YEARS) -> str:
    if point is None:
        return "No data available for the highest pollution level."
    return (
        f"{display_pollutant(pollutant)}: the highest pollution level from {_year_span(years)} "
        f"was: {point.value:.2f} {CONCENTRATION_UNIT} in {year} at location ({point.x}, {point.y})"
    )


def create_map_plot(
    ax,
    dataset,
    mapper: GridCoordinateMapper,
    canvas_width: float,
    canvas_height: float,
    pollutant: str,
    title: Optional[str] = None,
) -> SpatialPicker:
    """Draw one square marker per valid point in display coordinates.

    Returns the SpatialPicker for the drawn markers so hit-testing matches
    exactly what is on the axes.
    """
    points = dataset.get_data() if dataset is not None else []
    picker = SpatialPicker.build(points, mapper, canvas_width, canvas_height)

    patches = []
    colors = []
    for marker in picker.markers:
        patches.append(Rectangle((marker.left, marker.top), MARKER_SIZE, MARKER_SIZE))
        colors.append(color_for_value(pollutant, marker.point.value))
    if patches:
        collection = PatchCollection(patches, facecolors=colors, edgecolors='none', match_original=False)
        ax.add_collection(collection)

    ax.set_xlim(0, canvas_width)
    # display rows grow downwards
    ax.set_ylim(canvas_height, 0)
    ax.set_aspect('equal')
    ax.set_xticks([])
    ax.set_yticks([])

    handles = [
        Patch(facecolor=LEVEL_COLORS[level], edgecolor='black', label=level)
        for level in ('Low', 'Medium', 'High', 'Very High')
    ]
    ax.legend(handles=handles, loc='lower right', fontsize=8, title='Level', title_fontsize=8)

    if title is None:
        year = getattr(dataset, 'year', '') if dataset is not None else ''
        title = f"{display_pollutant(pollutant)} {year}".strip()
        if not picker.markers:
            title += " (no data)"
    ax.set_title(title)
    return picker


def create_trend_plot(ax, yearly_averages: Sequence[Tuple[str, float]], pollutant: str, unit: Optional[str] = None):
    """Line chart of the yearly valid averages."""
    years = [int(y) for y, _ in yearly_averages]
    values = [v for _, v in yearly_averages]
    name = display_pollutant(pollutant)

    lines = ax.plot(years, values, marker='o', color='tab:blue', label=f"{name} Air Quality Index")
    if len(years) > 1:
        ax.set_xlim(min(years), max(years))
    if years:
        ax.set_xticks(years)
    ax.xaxis.set_major_formatter(FormatStrFormatter('%d'))
    upper = chart_upper_bound(values)
    ax.set_ylim(0, upper)
    ax.set_yticks([upper * i / 10 for i in range(11)])
    ax.set_xlabel('Years')
    ax.set_ylabel(f"Pollution Level ({unit or CONCENTRATION_UNIT})")
    ax.set_title(f"{name} Pollution Trends")
    ax.grid(True, color='#cccccc', linewidth=0.5)
    ax.legend(loc='upper right', fontsize=8)
    return lines
