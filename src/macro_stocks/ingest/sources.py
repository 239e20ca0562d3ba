"""Flat-file loaders for the macroeconomic and price-history sources.

Each loader returns a period-sorted table with a ``period`` column plus the
source's output columns (see :attr:`SourceConfig.output_columns`), with the
configured trailing trim already applied.
"""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl

from ..align import pivot_categories, trim_trailing
from ..config import DATA_DIR, SOURCES, SourceConfig
from .base import select_fields, validate_columns

logger = logging.getLogger(__name__)


def read_source(config: SourceConfig, data_dir: Path | None = None) -> pl.DataFrame:
    """Read and validate one source file, returning semantic columns.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If an expected column is missing.
    """
    if data_dir is None:
        data_dir = DATA_DIR
    fpath = data_dir / config.file
    if not fpath.exists():
        raise FileNotFoundError(f'Source file for {config.name!r} not found: {fpath}')

    raw = pl.read_csv(str(fpath), try_parse_dates=True)
    validate_columns(raw, config)
    df = select_fields(raw, config)

    value_fields = ['value'] if config.kind != 'ohlc' else ['close']
    n_null = df.filter(pl.any_horizontal(pl.col(value_fields).is_null())).height
    if n_null:
        logger.warning(f'{config.name}: dropping {n_null} rows with missing values')
        df = df.drop_nulls(value_fields)

    sort_keys = ['period', 'category'] if config.kind == 'categorical' else ['period']
    return df.sort(sort_keys, maintain_order=True)


def load_source(config: SourceConfig, data_dir: Path | None = None) -> pl.DataFrame:
    """Load one source into ``period`` + output columns.

    The trailing trim is applied to the period-sorted file rows, i.e. before a
    categorical table is pivoted.
    """
    df = trim_trailing(read_source(config, data_dir), config.trailing_trim)

    if config.kind == 'categorical':
        return pivot_categories(df, config.categories)

    dup = df['period'].is_duplicated()
    if dup.any():
        sample = df.filter(dup)['period'].unique().sort().head(3).to_list()
        raise ValueError(
            f'Source {config.name!r} has {int(dup.sum())} rows with duplicated '
            f'periods, e.g. {sample}'
        )

    value_field = 'close' if config.kind == 'ohlc' else 'value'
    return df.select(['period', pl.col(value_field).alias(config.output_columns[0])])


def load_sources(
    sources: list[SourceConfig] | None = None,
    data_dir: Path | None = None,
) -> dict[str, pl.DataFrame]:
    """Load every configured source, keyed by source name."""
    if sources is None:
        sources = SOURCES

    tables: dict[str, pl.DataFrame] = {}
    for cfg in sources:
        df = load_source(cfg, data_dir)
        logger.info(
            f'{cfg.name}: {len(df)} rows '
            f'({df["period"].min()} → {df["period"].max()}), '
            f'trailing trim {cfg.trailing_trim}'
        )
        tables[cfg.name] = df
    return tables
