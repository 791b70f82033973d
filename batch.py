"""
Batch processing module for AIRPLOT.

This module handles headless (non-GUI) execution of the pollution explorer.
It supports:
- Loading configuration from command-line arguments, JSON, or YAML files.
- Rendering the pollution map of one year for each requested pollutant.
- Resolving display positions to the plotted measurement (--pick).
- Rendering the multi-year trend chart and writing the trend table to CSV.
- Exporting parsed measurement data to CSV.
- Saving run configurations (snapshots) for reproducibility.
"""

import os
import logging
import json
import yaml
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt

from config import MARKER_SIZE
from data_processing import DataSet, FileLoader, resolve_pollution_file
from mapping import GridCoordinateMapper, grid_to_lonlat
from plotting import (
    create_map_plot, create_trend_plot, format_point_label,
    format_average_message, format_highest_message,
)
from trends import TrendAggregator
from utils import safe_slug, serialize_attrs


def _parse_pick(token: str) -> Optional[Tuple[float, float]]:
    """Parse an 'X,Y' display position."""
    parts = [p for p in str(token).replace(',', ' ').split() if p]
    if len(parts) != 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None


def _write_settings_snapshot(args, plots, files, datasets=None, picks=None):
    """Persist run configuration and generated artifacts for reuse."""
    try:
        os.makedirs(args.outdir, exist_ok=True)

        arg_dict = {
            k: getattr(args, k) for k in vars(args)
            if k not in {'json', 'yaml', 'json_payload', 'pollutant_list', 'years_list', 'config_path'}
        }

        payload = {
            'timestamp_utc': datetime.now(timezone.utc).isoformat(),
            'arguments': arg_dict,
            'outputs': {
                'output_directory': os.path.abspath(args.outdir),
                'plots': [os.path.abspath(p) for p in plots if p],
                'files': [os.path.abspath(p) for p in files if p],
            }
        }
        if datasets:
            payload['outputs']['datasets'] = [serialize_attrs(d) for d in datasets]
        if picks:
            payload['outputs']['picks'] = picks

        if getattr(args, 'yaml', None):
            yaml_path = os.path.join(args.outdir, "airplot_run.yaml")
            payload['outputs']['settings_yaml'] = os.path.abspath(yaml_path)
            with open(yaml_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(payload, f, sort_keys=False, allow_unicode=True)
            logging.info("Saved settings snapshot to %s", yaml_path)
            return yaml_path
        json_path = os.path.join(args.outdir, "airplot_run.json")
        payload['outputs']['settings_json'] = os.path.abspath(json_path)
        with open(json_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        logging.info("Saved settings snapshot to %s", json_path)
        return json_path
    except (OSError, TypeError, yaml.YAMLError):
        logging.exception("Failed to write settings snapshot")
        return None


def _export_dataset_csv(dataset: DataSet, out_file: str) -> str:
    df = dataset.to_frame()
    lonlat = [grid_to_lonlat(x, y) for x, y in zip(df['x'], df['y'])]
    df['lon'] = [ll[0] if ll else np.nan for ll in lonlat]
    df['lat'] = [ll[1] if ll else np.nan for ll in lonlat]
    df.to_csv(out_file, index=False)
    logging.info("Exported %d row(s) to %s", len(df), out_file)
    return os.path.abspath(out_file)


def _render_pollutant(pollutant: str, loader, args) -> Dict[str, Any]:
    """Produce the map, pick results and trend artifacts for one pollutant."""
    result: Dict[str, Any] = {'plots': [], 'files': [], 'picks': [], 'dataset': None}
    slug = safe_slug(pollutant)
    width, height = float(args.width), float(args.height)
    mapper = GridCoordinateMapper()

    dataset = loader.load_pollution_data(pollutant, args.year)
    if dataset is None:
        logging.warning("No %s data for %s; the map will be empty", pollutant, args.year)
    else:
        result['dataset'] = {
            'pollutant': dataset.pollutant, 'year': dataset.year,
            'metric': dataset.metric, 'unit': dataset.unit, 'points': len(dataset),
        }

    # Figure size follows the canvas aspect ratio at 100 display units per inch.
    fig, ax = plt.subplots(figsize=(max(width / 100.0, 4.0), max(height / 100.0, 3.0)))
    try:
        picker = create_map_plot(ax, dataset, mapper, width, height, pollutant)
        out_file = os.path.join(args.outdir, f"{slug}_{args.year}_map.png")
        fig.savefig(out_file, dpi=args.dpi, bbox_inches='tight', pad_inches=0.1)
        result['plots'].append(os.path.abspath(out_file))
        logging.info("Wrote %s (%d marker(s) of %d display units)", out_file, len(picker), MARKER_SIZE)
    finally:
        plt.close(fig)

    for token in getattr(args, 'pick', None) or []:
        query = _parse_pick(token)
        if query is None:
            logging.warning("Ignoring malformed --pick value %r (expected X,Y)", token)
            continue
        grid_x, grid_y = mapper.to_grid(query[0], query[1], width, height)
        point = picker.pick(*query)
        entry = {'query': list(query), 'grid': [round(grid_x), round(grid_y)], 'point': None}
        if point is None:
            logging.info("Pick (%g, %g) ~ grid (%.0f, %.0f): no marker", query[0], query[1], grid_x, grid_y)
        else:
            logging.info("Pick (%g, %g):\n%s", query[0], query[1], format_point_label(pollutant, point, with_lonlat=True))
            entry['point'] = {'grid_code': point.grid_code, 'x': point.x, 'y': point.y, 'value': point.value}
        result['picks'].append(entry)

    if dataset is not None and args.export_csv:
        out_csv = os.path.join(args.outdir, f"{slug}_{args.year}_data.csv")
        result['files'].append(_export_dataset_csv(dataset, out_csv))

    aggregator = TrendAggregator(loader, pollutant, years=args.years_list)
    summary = aggregator.summary()
    trend_df = summary.frame
    yearly = [(str(y), float(a)) for y, a in zip(trend_df['year'], trend_df['average'])]

    fig, ax = plt.subplots(figsize=(8, 5))
    try:
        unit = dataset.unit if dataset is not None and dataset.unit else None
        create_trend_plot(ax, yearly, pollutant, unit=unit)
        fig.tight_layout()
        out_file = os.path.join(args.outdir, f"{slug}_trend.png")
        fig.savefig(out_file, dpi=args.dpi)
        result['plots'].append(os.path.abspath(out_file))
        logging.info("Wrote %s", out_file)
    finally:
        plt.close(fig)

    out_csv = os.path.join(args.outdir, f"{slug}_trend.csv")
    trend_df.to_csv(out_csv, index=False)
    result['files'].append(os.path.abspath(out_csv))

    maxima = summary.maxima
    result['overall_average'] = summary.overall_average
    result['highest_year'] = maxima.highest_year
    logging.info(format_average_message(pollutant, result['overall_average'], aggregator.years))
    logging.info(format_highest_message(pollutant, maxima.highest, maxima.highest_year, aggregator.years))
    return result


class _SyntheticLoader:
    """In-memory stand-in for FileLoader used by --self-test."""

    def __init__(self, years, seed: int = 0):
        self._years = [str(y) for y in years]
        self._rng = np.random.default_rng(seed)
        self._cache: Dict[Tuple[str, str], DataSet] = {}

    def load_pollution_data(self, pollutant: str, year) -> Optional[DataSet]:
        key = (pollutant, str(year))
        if key not in self._cache:
            ds = DataSet(pollutant, str(year), metric='Annual mean', unit='ug m-3')
            offset = self._years.index(str(year)) if str(year) in self._years else 0
            code = 1
            for x in range(511000, 553000, 3000):
                for y in range(169000, 193000, 3000):
                    value = float(self._rng.uniform(5.0, 60.0)) - offset
                    if self._rng.random() < 0.05:
                        value = -1.0
                    ds.add_data([str(code), str(x), str(y), f"{value:.3f}"])
                    code += 1
            self._cache[key] = ds
        return self._cache[key]


def _run_self_test(args) -> Tuple[List[str], List[str]]:
    os.makedirs(args.outdir, exist_ok=True)
    loader = _SyntheticLoader(args.years_list)
    saved_outdir = args.outdir
    args.outdir = os.path.join(saved_outdir, 'selftest')
    os.makedirs(args.outdir, exist_ok=True)
    plots: List[str] = []
    files: List[str] = []
    try:
        for pol in ('NO2', 'PM10'):
            res = _render_pollutant(pol, loader, args)
            plots.extend(res['plots'])
            files.extend(res['files'])
        logging.info("Self-test artifacts written to %s", args.outdir)
    finally:
        args.outdir = saved_outdir
    return plots, files


def _batch_mode(args) -> int:
    generated_plots: List[str] = []
    generated_files: List[str] = []
    dataset_info: List[dict] = []
    pick_info: List[dict] = []

    def _finish(code: int):
        if code == 0:
            _write_settings_snapshot(args, generated_plots, generated_files, datasets=dataset_info, picks=pick_info)
        return code

    if args.self_test:
        try:
            plots, files = _run_self_test(args)
            generated_plots.extend(plots)
            generated_files.extend(files)
        except (OSError, ValueError):
            logging.exception("Self-test failed")
            return 1
        if not args.pollutant_list:
            return _finish(0)

    if not args.pollutant_list:
        logging.error("Nothing to do: use --pollutant (and --data-root) or --self-test.")
        return 2

    if not os.path.isdir(args.data_root):
        logging.error("Data root %s does not exist", args.data_root)
        return 1

    try:
        os.makedirs(args.outdir, exist_ok=True)
    except OSError:
        logging.exception("Unable to create output directory %s", args.outdir)
        return 1

    loader = FileLoader(args.data_root, delim=args.delim, encoding=args.encoding, cache=args.cache)
    for pol in args.pollutant_list:
        logging.info("Processing %s (map year %s) from %s", pol, args.year, resolve_pollution_file(pol, args.year, args.data_root))
        try:
            res = _render_pollutant(pol, loader, args)
        except (OSError, ValueError):
            logging.exception("Failed to process %s", pol)
            continue
        generated_plots.extend(res['plots'])
        generated_files.extend(res['files'])
        if res['dataset']:
            dataset_info.append(res['dataset'])
        for entry in res['picks']:
            pick_info.append(dict(entry, pollutant=pol))

    if not generated_plots:
        logging.error("No outputs were produced.")
        return 1
    return _finish(0)
