import csv
import os

import matplotlib

matplotlib.use('Agg')

import pytest

from data_processing import DataSet


IN_X = 520000
IN_Y = 180000
OUT_X = 600000


def write_measurement_file(path, rows, label='NO2 2023', metric='Annual mean', unit='ug m-3',
                           value_column='no22023', header=True):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.writer(f)
        if header:
            writer.writerow([label, '', '', ''])
            writer.writerow([metric, '', '', ''])
            writer.writerow([unit, '', '', ''])
            writer.writerow(['gridcode', 'x', 'y', value_column])
        for row in rows:
            writer.writerow(row)
    return str(path)


def make_dataset(values, pollutant='NO2', year='2023', x=IN_X, y=IN_Y):
    ds = DataSet(pollutant, year, 'Annual mean', 'ug m-3')
    for i, value in enumerate(values):
        ds.add_data([str(100 + i), str(x + i), str(y + i), str(value)])
    return ds


class StubLoader:
    def __init__(self, by_year):
        self.by_year = by_year
        self.calls = []

    def load_pollution_data(self, pollutant, year):
        self.calls.append((pollutant, str(year)))
        return self.by_year.get(str(year))


@pytest.fixture
def data_root(tmp_path):
    """NO2 files for 2018-2023 (2019 missing) and one PM10 file for 2023.

    Valid averages: 2018=15, 2019=0 (no file), 2020=0 (no valid point),
    2021=40, 2022=25, 2023=50. The highest valid value, 50, occurs in 2021
    and again in 2023.
    """
    root = tmp_path / 'UKAirPollutionData'
    no2 = {
        '2018': [[1, IN_X, IN_Y, '10'], [2, IN_X + 1000, IN_Y, '-1'], [3, IN_X + 2000, IN_Y, '20']],
        '2020': [[1, IN_X, IN_Y, '-1'], [2, OUT_X, IN_Y, '70']],
        '2021': [[1, IN_X, IN_Y, '30'], [2, IN_X + 1000, IN_Y + 1000, '50']],
        '2022': [[1, IN_X, IN_Y, '25'], ['bad', IN_X, IN_Y, '99']],
        '2023': [[7, IN_X + 500, IN_Y + 500, '50'], [8, OUT_X, IN_Y, '90'], [9, IN_X, IN_Y, 'MISSING']],
    }
    for year, rows in no2.items():
        write_measurement_file(
            root / 'NO2' / f'mapno2{year}.csv', rows,
            label=f'NO2 {year}', value_column=f'no2{year}',
        )
    write_measurement_file(
        root / 'pm10' / 'mappm102023g.csv',
        [[1, IN_X, IN_Y, '12.5'], [2, IN_X + 1000, IN_Y, '17.5']],
        label='PM10 2023', value_column='pm102023g',
    )
    return str(root)
