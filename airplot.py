#!/usr/bin/env python3
"""
Main entry point for the AIRPLOT application.

This script is the launcher for the headless batch mode. It handles:
- Command-line argument parsing.
- Configuration loading (JSON/YAML run files, user settings file).
- Logging setup.
- Dispatching execution to `batch.py`.
"""

import os
import sys
import argparse
import datetime
import json
import logging
import re
from typing import List, Optional

import matplotlib
import yaml

from config import (
    DEFAULT_CANVAS_HEIGHT, DEFAULT_CANVAS_WIDTH, DEFAULT_DATA_ROOT, DEFAULT_YEAR, DEFAULT_YEARS,
    load_settings,
)
from utils import canonical_pollutant, normalize_delim

AIRPLOT_VERSION = "1.0"

_LIST_SPLIT_RE = re.compile(r'[\s,]+')


def _split_list(raw) -> List[str]:
    """Normalize a comma/space separated string (or list) into a distinct ordered list."""
    if raw is None:
        return []
    items = list(raw) if isinstance(raw, (list, tuple, set)) else [raw]
    out: List[str] = []
    seen = set()
    for item in items:
        if item is None:
            continue
        parts = _LIST_SPLIT_RE.split(str(item).strip()) if str(item).strip() else []
        for part in parts:
            part = part.strip()
            if part and part not in seen:
                seen.add(part)
                out.append(part)
    return out


def _apply_config_payload(ap: argparse.ArgumentParser, args, path: str, kind: str) -> None:
    """Fill options left at their defaults from a JSON/YAML run file."""
    cfg_path = os.path.abspath(path)
    try:
        with open(cfg_path, 'r', encoding='utf-8') as f:
            payload = json.load(f) if kind == 'json' else yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        ap.error(f"Failed to read {kind.upper()} settings from {path}: {exc}")
    if not isinstance(payload, dict):
        ap.error(f"{kind.upper()} settings file must contain an object at the top level: {path}")
    cfg_args = payload.get('arguments', payload)
    if not isinstance(cfg_args, dict):
        ap.error(f"{kind.upper()} settings file must provide an 'arguments' object: {path}")
    for key, value in cfg_args.items():
        target_key = key if hasattr(args, key) else key.replace('-', '_')
        if target_key in {'json', 'yaml', 'config'} or not hasattr(args, target_key):
            continue
        if getattr(args, target_key) != ap.get_default(target_key):
            continue
        # Relative data roots are resolved against the run file's directory
        if target_key == 'data_root' and value and not os.path.isabs(str(value)):
            value = os.path.join(os.path.dirname(cfg_path), str(value))
        setattr(args, target_key, value)
    setattr(args, kind, cfg_path)
    args.config_path = cfg_path
    args.json_payload = payload


def parse_args(argv: Optional[List[str]] = None):
    settings = load_settings()
    ap = argparse.ArgumentParser(
        description="AIRPLOT: London air pollution maps (NO2, PM10, PM2.5) and multi-year trends.",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=(
            "Examples\n"
            "  # 1) Map of NO2 for 2023 plus the 2018-2023 trend chart\n"
            "  python3 airplot.py --data-root UKAirPollutionData --pollutant NO2 --outdir maps\n\n"
            "  # 2) Several pollutants, another year, hit-test two display positions\n"
            "  python3 airplot.py --pollutant NO2,PM2.5 --year 2020 --pick 120,80 --pick 400,200\n\n"
            "  # 3) Run settings from a YAML file\n"
            "  python3 airplot.py --config run.yaml\n\n"
            "Notes\n"
            "- Files are looked up as <data-root>/NO2/mapno2<year>.csv, <data-root>/pm10/mappm10<year>g.csv\n"
            "  and <data-root>/pm2.5/mappm25<year>g.csv.\n"
            "- --pick positions are in display units of the --width x --height canvas.\n"
        ),
    )
    ap.add_argument('-c', '--config', help='JSON or YAML run file providing defaults under an "arguments" object.')
    ap.add_argument('--data-root', default=settings.get('data_root', DEFAULT_DATA_ROOT), help='Directory holding the NO2/, pm10/ and pm2.5/ folders.')
    ap.add_argument('--pollutant', help='Pollutant(s) to process: NO2, PM10, PM2.5. Separate multiple values with comma or space.')
    ap.add_argument('--year', default=DEFAULT_YEAR, help=f'Year shown on the map (default {DEFAULT_YEAR}).')
    ap.add_argument('--years', default=','.join(DEFAULT_YEARS), help='Years of the trend chart (comma separated).')
    ap.add_argument('--width', type=float, default=settings.get('width', DEFAULT_CANVAS_WIDTH), help='Display canvas width.')
    ap.add_argument('--height', type=float, default=settings.get('height', DEFAULT_CANVAS_HEIGHT), help='Display canvas height.')
    ap.add_argument('--pick', action='append', help='Display position "X,Y" to resolve to the nearest plotted point. Repeatable.')
    ap.add_argument('--delim', default=',', help='Delimiter of the measurement files (comma | semicolon | tab | pipe | space).')
    ap.add_argument('--encoding', help='File encoding (e.g., latin1, utf-8).')
    ap.add_argument('--cache', action='store_true', help='Keep loaded datasets in memory for the duration of the run.')
    ap.add_argument('--export-csv', action='store_true', help='Export the parsed map-year data (with lon/lat) to CSV.')
    ap.add_argument('--outdir', default='outputs', help='Output directory (default to outputs).')
    ap.add_argument('--dpi', type=int, default=150, help='Resolution of the PNG outputs.')
    ap.add_argument('--self-test', action='store_true', help='Render sample outputs from synthetic data to --outdir/selftest.')
    ap.add_argument('--log-file', help='Write logs (INFO..ERROR) to this file (appends). If directory given, a timestamped file is created.')
    ap.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], help='Logging level (default INFO).')
    ap.add_argument('--version', action='version', version=f'%(prog)s {AIRPLOT_VERSION}')

    args = ap.parse_args(argv)
    args.json = None
    args.yaml = None
    args.json_payload = None

    if args.config:
        lower_path = args.config.lower()
        if lower_path.endswith('.yaml') or lower_path.endswith('.yml'):
            _apply_config_payload(ap, args, args.config, 'yaml')
        elif lower_path.endswith('.json'):
            _apply_config_payload(ap, args, args.config, 'json')
        else:
            ap.error(f"Unsupported configuration file (expected .json, .yaml or .yml): {args.config}")

    pollutants = []
    for name in _split_list(args.pollutant):
        canonical = canonical_pollutant(name)
        if canonical not in pollutants:
            pollutants.append(canonical)
    args.pollutant_list = pollutants
    args.year = str(args.year)
    args.years_list = _split_list(args.years) or list(DEFAULT_YEARS)
    if isinstance(args.pick, str):
        args.pick = [args.pick]
    try:
        args.width = float(args.width)
        args.height = float(args.height)
        args.dpi = int(args.dpi)
    except (TypeError, ValueError):
        ap.error("--width, --height and --dpi must be numbers")
    if not (args.width > 0 and args.height > 0):
        ap.error("--width and --height must be positive")
    if len(normalize_delim(args.delim) or ',') != 1:
        ap.error(f"--delim must resolve to a single character, got {args.delim!r}")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    # Setup logging early
    if args.log_file:
        log_path = args.log_file
        if os.path.isdir(log_path):
            ts = datetime.datetime.now().strftime('%Y%m%d_%H%M%S')
            log_path = os.path.join(log_path, f'airplot_{ts}.log')
        logging.basicConfig(
            level=getattr(logging, args.log_level.upper(), logging.INFO),
            format='%(asctime)s %(levelname)s %(message)s',
            handlers=[
                logging.FileHandler(log_path, mode='a'),
                logging.StreamHandler(sys.stdout)
            ],
            force=True,
        )
        logging.info("Logging started -> %s", log_path)
    else:
        logging.basicConfig(
            level=getattr(logging, args.log_level.upper(), logging.INFO),
            format='%(levelname)s %(message)s'
        )

    def _excepthook(exc_type, exc, tb):
        logging.critical("UNCAUGHT EXCEPTION", exc_info=(exc_type, exc, tb))
        # Preserve default behavior after logging
        sys.__excepthook__(exc_type, exc, tb)
    sys.excepthook = _excepthook

    matplotlib.use('Agg')
    from batch import _batch_mode
    return _batch_mode(args)


if __name__ == '__main__':
    sys.exit(main())
