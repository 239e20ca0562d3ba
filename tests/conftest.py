"""Shared fixtures: synthetic monthly sources written to a temp data dir."""

from datetime import date

import matplotlib

matplotlib.use('Agg')

import numpy as np
import polars as pl
import pytest

from macro_stocks.config import SourceConfig


def monthly(start: date, n: int) -> list[date]:
    """n consecutive month-start dates beginning at *start*."""
    out = []
    for i in range(n):
        month = start.month - 1 + i
        out.append(date(start.year + month // 12, month % 12 + 1, 1))
    return out


def make_sources(
    unemployment_trim: int = 2,
    inflation_trim: int = 1,
    rates_trim: int = 14,
    price_trim: int = 3,
) -> list[SourceConfig]:
    """Source list mirroring the production layout with small files."""
    return [
        SourceConfig(
            name='unemployment',
            file='unemployment.csv',
            kind='series',
            columns={'period': 'DATE', 'value': 'UNRATE'},
            value_name='unemployment',
            trailing_trim=unemployment_trim,
        ),
        SourceConfig(
            name='inflation',
            file='cpi.csv',
            kind='series',
            columns={'period': 'DATE', 'value': 'CPIAUCSL'},
            value_name='cpi',
            trailing_trim=inflation_trim,
        ),
        SourceConfig(
            name='industrial_production',
            file='industrial_production.csv',
            kind='categorical',
            columns={'period': 'date', 'category': 'sector', 'value': 'index'},
            categories={
                'Manufacturing': 'ip_manufacturing',
                'Mining': 'ip_mining',
                'Electric and gas utilities': 'ip_utilities',
            },
        ),
        SourceConfig(
            name='interest_rates',
            file='interest_rates.csv',
            kind='categorical',
            columns={'period': 'date', 'category': 'tenor', 'value': 'rate'},
            categories={'3-Month': 'rate_3m', '10-Year': 'rate_10y'},
            trailing_trim=rates_trim,
        ),
        SourceConfig(
            name='price_history',
            file='sp500.csv',
            kind='ohlc',
            columns={
                'period': 'Date',
                'open': 'Open',
                'high': 'High',
                'low': 'Low',
                'close': 'Close',
                'volume': 'Volume',
            },
            role='response',
            value_name='log_close',
            trailing_trim=price_trim,
            transform='log',
        ),
    ]


def write_source_files(
    data_dir,
    lengths: dict[str, int],
    extra_months: dict[str, int] | None = None,
    seed: int = 0,
) -> None:
    """Write the five CSVs.

    *lengths* gives the number of months per file.  Each file ends in
    December 2019 plus ``extra_months[name]`` months, so a file whose
    trailing trim removes exactly those months ends in December 2019.
    """
    rng = np.random.default_rng(seed)
    extra_months = extra_months or {}

    def periods(name: str) -> list[date]:
        n = lengths[name]
        last = 2019 * 12 + 11 + extra_months.get(name, 0)
        first = last - (n - 1)
        return monthly(date(first // 12, first % 12 + 1, 1), n)

    n = lengths['unemployment']
    pl.DataFrame({
        'DATE': periods('unemployment'),
        'UNRATE': 5.0 + 0.01 * np.arange(n) + rng.normal(0, 0.2, n),
    }).write_csv(data_dir / 'unemployment.csv')

    n = lengths['inflation']
    pl.DataFrame({
        'DATE': periods('inflation'),
        'CPIAUCSL': 200.0 + 0.3 * np.arange(n) + rng.normal(0, 0.5, n),
    }).write_csv(data_dir / 'cpi.csv')

    rows = []
    for i, d in enumerate(periods('industrial_production')):
        for sector, base in [
            ('Manufacturing', 100.0),
            ('Mining', 80.0),
            ('Electric and gas utilities', 90.0),
        ]:
            rows.append({'date': d, 'sector': sector, 'index': base + 0.1 * i + rng.normal(0, 1)})
    pl.DataFrame(rows).write_csv(data_dir / 'industrial_production.csv')

    rows = []
    for i, d in enumerate(periods('interest_rates')):
        rows.append({'date': d, 'tenor': '3-Month', 'rate': 2.0 + rng.normal(0, 0.3)})
        rows.append({'date': d, 'tenor': '10-Year', 'rate': 3.5 - 0.005 * i + rng.normal(0, 0.2)})
    pl.DataFrame(rows).write_csv(data_dir / 'interest_rates.csv')

    n = lengths['price_history']
    close = 1000.0 * np.exp(0.005 * np.arange(n) + rng.normal(0, 0.03, n))
    pl.DataFrame({
        'Date': periods('price_history'),
        'Open': close * 0.99,
        'High': close * 1.02,
        'Low': close * 0.97,
        'Close': close,
        'Volume': rng.integers(1_000_000, 2_000_000, n).astype(float),
    }).write_csv(data_dir / 'sp500.csv')


@pytest.fixture
def sources() -> list[SourceConfig]:
    return make_sources()


@pytest.fixture
def data_dir(tmp_path):
    """Data dir whose sources all end in December 2019 after trimming.

    The unemployment, inflation, rates and price files run past December by
    exactly their trailing trim (rates: 14 rows = 7 months of two tenors).
    The shortest table is industrial production at 60 months.
    """
    write_source_files(
        tmp_path,
        lengths={
            'unemployment': 70,
            'inflation': 65,
            'industrial_production': 60,
            'interest_rates': 80,
            'price_history': 90,
        },
        extra_months={
            'unemployment': 2,
            'inflation': 1,
            'interest_rates': 7,
            'price_history': 3,
        },
    )
    return tmp_path
