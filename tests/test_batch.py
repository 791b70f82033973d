import json
import os

import pandas as pd
import pytest
import yaml

import airplot
from mapping import GridCoordinateMapper
from conftest import IN_X, IN_Y


def _run(argv):
    return airplot.main(argv)


def test_parse_args_normalizes_lists():
    args = airplot.parse_args(['--pollutant', 'no2, pm2_5 NO2', '--years', '2020,2021', '--year', '2021'])
    assert args.pollutant_list == ['NO2', 'PM2.5']
    assert args.years_list == ['2020', '2021']
    assert args.year == '2021'


def test_parse_args_rejects_bad_canvas():
    with pytest.raises(SystemExit):
        airplot.parse_args(['--width', '0'])


def test_batch_writes_outputs(data_root, tmp_path):
    outdir = tmp_path / 'out'
    sx, sy = GridCoordinateMapper().to_screen(IN_X + 500, IN_Y + 500, 800, 462)
    code = _run([
        '--data-root', data_root, '--pollutant', 'NO2', '--outdir', str(outdir),
        '--pick', f'{sx},{sy}', '--pick', '1,1', '--export-csv', '--dpi', '40',
    ])
    assert code == 0
    for name in ('NO2_2023_map.png', 'NO2_trend.png', 'NO2_trend.csv', 'NO2_2023_data.csv', 'airplot_run.json'):
        assert (outdir / name).exists(), name

    trend = pd.read_csv(outdir / 'NO2_trend.csv')
    assert list(trend['average']) == pytest.approx([15.0, 0.0, 0.0, 40.0, 25.0, 50.0])

    data = pd.read_csv(outdir / 'NO2_2023_data.csv')
    assert list(data['grid_code']) == [7, 8]
    assert {'lon', 'lat'} <= set(data.columns)

    snapshot = json.loads((outdir / 'airplot_run.json').read_text(encoding='utf-8'))
    assert snapshot['arguments']['pollutant'] == 'NO2'
    assert len(snapshot['outputs']['plots']) == 2
    assert snapshot['outputs']['datasets'][0]['points'] == 2
    hit, miss = snapshot['outputs']['picks']
    assert hit['point']['grid_code'] == 7
    assert hit['grid'] == [IN_X + 500, IN_Y + 500]
    assert miss['point'] is None
    assert hit['pollutant'] == 'NO2'


def test_batch_missing_year_still_renders(data_root, tmp_path):
    outdir = tmp_path / 'out'
    code = _run(['--data-root', data_root, '--pollutant', 'PM2.5', '--year', '2019', '--outdir', str(outdir), '--dpi', '40'])
    assert code == 0
    assert (outdir / 'PM2_5_2019_map.png').exists()
    trend = pd.read_csv(outdir / 'PM2_5_trend.csv')
    assert (trend['average'] == 0.0).all()


def test_batch_from_yaml_config(data_root, tmp_path):
    outdir = tmp_path / 'yaml_out'
    cfg = tmp_path / 'run.yaml'
    cfg.write_text(yaml.safe_dump({'arguments': {
        'data_root': data_root,
        'pollutant': 'PM10',
        'years': ['2022', '2023'],
        'outdir': str(outdir),
        'dpi': 40,
    }}), encoding='utf-8')
    assert _run(['--config', str(cfg)]) == 0
    assert (outdir / 'PM10_trend.csv').exists()
    assert (outdir / 'airplot_run.yaml').exists()
    trend = pd.read_csv(outdir / 'PM10_trend.csv')
    assert list(trend['year']) == [2022, 2023]


def test_batch_self_test(tmp_path):
    outdir = tmp_path / 'st'
    assert _run(['--self-test', '--outdir', str(outdir), '--dpi', '40']) == 0
    produced = os.listdir(outdir / 'selftest')
    assert 'NO2_2023_map.png' in produced
    assert 'PM10_trend.png' in produced


def test_batch_without_work_or_data_root(tmp_path):
    assert _run(['--outdir', str(tmp_path)]) == 2
    assert _run(['--pollutant', 'NO2', '--data-root', str(tmp_path / 'missing'), '--outdir', str(tmp_path)]) == 1
