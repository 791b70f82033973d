"""Configuration constants and settings for AIRPLOT."""

import os
import json
from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class DisplayRegion:
    """Rectangle in grid coordinates (easting/northing) shown on the map."""

    left_x: int
    right_x: int
    bottom_y: int
    top_y: int

    def __post_init__(self):
        if self.left_x >= self.right_x:
            raise ValueError(f"left_x ({self.left_x}) must be smaller than right_x ({self.right_x})")
        if self.bottom_y >= self.top_y:
            raise ValueError(f"bottom_y ({self.bottom_y}) must be smaller than top_y ({self.top_y})")

    @property
    def width(self) -> int:
        return self.right_x - self.left_x

    @property
    def height(self) -> int:
        return self.top_y - self.bottom_y

    def contains(self, x, y) -> bool:
        """Inclusive bounds test."""
        return self.left_x <= x <= self.right_x and self.bottom_y <= y <= self.top_y


# ---- Map of London: edges of the background image in grid coordinates ----
DEFAULT_REGION = DisplayRegion(left_x=510394, right_x=553297, bottom_y=168504, top_y=193305)

# ---- Years covered by the published measurement files ----
DEFAULT_YEARS: Tuple[str, ...] = ('2018', '2019', '2020', '2021', '2022', '2023')
DEFAULT_YEAR = '2023'

# ---- Marker geometry (display units) ----
MARKER_SIZE = 15
MARKER_OFFSET = 2

# ---- Input files ----
DEFAULT_DATA_ROOT = 'UKAirPollutionData'
HEADER_SCAN_LIMIT = 10
HEADER_FIRST_FIELD = 'gridcode'

# Canonical pollutant -> (folder, file prefix, file suffix)
# PM2.5 and PM10 files carry a trailing "g", NO2 files do not.
POLLUTANT_FILE_RULES: Dict[str, Tuple[str, str, str]] = {
    'NO2': ('NO2', 'mapno2', ''),
    'PM10': ('pm10', 'mappm10', 'g'),
    'PM2.5': ('pm2.5', 'mappm25', 'g'),
}
DEFAULT_POLLUTANT = 'NO2'

# ---- Colour classes: (low, medium, high) upper limits in ug/m3 ----
POLLUTANT_THRESHOLDS: Dict[str, Tuple[float, float, float]] = {
    'NO2': (20.0, 40.0, 60.0),
    'PM10': (15.0, 30.0, 45.0),
    'PM2.5': (10.0, 20.0, 30.0),
}
LEVEL_COLORS: Dict[str, Tuple[float, float, float, float]] = {
    'Low': (0.0, 1.0, 0.0, 0.4),
    'Medium': (1.0, 1.0, 0.0, 0.4),
    'High': (1.0, 165 / 255, 0.0, 0.4),
    'Very High': (1.0, 0.0, 0.0, 0.4),
}

# ---- Default display size (the map image is shown 800 px wide) ----
DEFAULT_CANVAS_WIDTH = 800
DEFAULT_CANVAS_HEIGHT = 462

CONCENTRATION_UNIT = 'µg/m³'

# British National Grid, the reference system of the grid coordinates
GRID_EPSG = 27700


def _config_file() -> str:
    """Return the path to the configuration file."""
    cfg_dir = os.environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('./'), '.config')
    return os.path.join(cfg_dir, 'airplot_settings.json')


def load_settings() -> dict:
    """Load the entire settings dictionary from the JSON config file."""
    try:
        cfg = _config_file()
        if not os.path.exists(cfg):
            return {}
        with open(cfg, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        return {}
