# ---------------------------------------------------------------------------
# macro_stocks.align — Trimming, category pivots, common-window alignment
# ---------------------------------------------------------------------------
"""Bring every input table onto one monthly window.

Longer tables lose rows from the *start*, so the aligned window is the most
recent stretch covered by every source.  Row *i* of every aligned table is
expected to refer to the same calendar month; :func:`check_alignment` reports
when it does not.
"""

from __future__ import annotations

import logging

import polars as pl

logger = logging.getLogger(__name__)


def trim_trailing(df: pl.DataFrame, n: int) -> pl.DataFrame:
    """Drop the last *n* rows of *df*."""
    if n < 0:
        raise ValueError(f'Trailing trim must be non-negative, got {n}')
    if n == 0:
        return df
    return df.head(max(len(df) - n, 0))


def pivot_categories(
    df: pl.DataFrame,
    categories: dict[str, str],
) -> pl.DataFrame:
    """Reshape a long ``period, category, value`` table to one column per category.

    Parameters
    ----------
    df : pl.DataFrame
        Long table with ``period``, ``category`` and ``value`` columns.
    categories : dict[str, str]
        Category label -> output column name.  Labels not listed are ignored.

    Returns
    -------
    pl.DataFrame
        ``period`` plus one ``Float64`` column per configured category, sorted
        by period.  Periods missing any configured category are dropped.

    Raises
    ------
    ValueError
        If a (period, category) pair occurs more than once, or a configured
        category never occurs.
    """
    long = df.filter(pl.col('category').is_in(list(categories)))

    dups = long.group_by(['period', 'category']).len().filter(pl.col('len') > 1)
    if len(dups) > 0:
        sample = dups.sort('period').head(3).to_dicts()
        raise ValueError(
            f'{len(dups)} duplicate (period, category) pairs; cannot pivot '
            f'unambiguously. Examples: {sample}'
        )

    present = set(long['category'].unique().to_list())
    absent = [c for c in categories if c not in present]
    if absent:
        raise ValueError(
            f'Categories {absent} not found. Available: '
            f'{sorted(df["category"].unique().drop_nulls().to_list())}'
        )

    wide = (
        long.pivot(on='category', index='period', values='value')
        .rename(categories)
        .select(['period', *categories.values()])
        .sort('period')
    )

    complete = wide.drop_nulls()
    n_dropped = len(wide) - len(complete)
    if n_dropped:
        logger.info(f'Dropped {n_dropped} periods with incomplete categories')
    return complete


def align_tables(tables: dict[str, pl.DataFrame]) -> dict[str, pl.DataFrame]:
    """Cut every table to the trailing window of the shortest one.

    Tables must already be sorted by period.  Rows are removed from the
    start of the longer tables, so the most recent periods are kept.
    """
    if not tables:
        raise ValueError('No tables to align')

    lengths = {name: len(df) for name, df in tables.items()}
    empty = [name for name, n in lengths.items() if n == 0]
    if empty:
        raise ValueError(f'Cannot align empty tables: {empty}')

    n_common = min(lengths.values())
    shortest = min(lengths, key=lengths.get)
    for name, n in lengths.items():
        if n > n_common:
            logger.info(f'{name}: dropping {n - n_common} leading rows')
    logger.info(f'Aligned window: {n_common} periods (limited by {shortest})')

    return {name: df.tail(n_common) for name, df in tables.items()}


def check_alignment(tables: dict[str, pl.DataFrame], reference: str) -> bool:
    """Report rows whose calendar month differs from the *reference* table.

    Misalignment is logged rather than raised: the tables keep their
    positional pairing.
    """
    ref_months = tables[reference]['period'].dt.truncate('1mo')
    aligned = True
    for name, df in tables.items():
        if name == reference:
            continue
        if len(df) != len(ref_months):
            logger.warning(
                f'{name}: {len(df)} rows vs {len(ref_months)} in {reference}'
            )
            aligned = False
            continue
        months = df['period'].dt.truncate('1mo')
        mismatched = int((months != ref_months).sum())
        if mismatched:
            first = int((months != ref_months).arg_true()[0])
            logger.warning(
                f'{name}: {mismatched} periods differ from {reference} '
                f'(first at row {first}: {months[first]} vs {ref_months[first]})'
            )
            aligned = False
    return aligned
