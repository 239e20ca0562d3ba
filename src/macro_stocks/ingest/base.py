"""Column schemas for the raw input files and load-time validation.

Each source file is described by semantic field names (``period``,
``value``, ...) mapped to whatever column labels the file actually uses.
Validation fails fast, before any model is built, if an expected column is
absent.
"""

from __future__ import annotations

import polars as pl

from ..config import SourceConfig

# Required semantic fields per file layout
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    'series': ('period', 'value'),
    'categorical': ('period', 'category', 'value'),
    'ohlc': ('period', 'open', 'high', 'low', 'close'),
}

# Optional semantic fields kept when present
OPTIONAL_FIELDS: dict[str, tuple[str, ...]] = {
    'series': (),
    'categorical': (),
    'ohlc': ('volume',),
}

# dtypes after renaming to semantic names
FIELD_DTYPES: dict[str, pl.DataType] = {
    'period': pl.Date,
    'category': pl.Utf8,
    'value': pl.Float64,
    'open': pl.Float64,
    'high': pl.Float64,
    'low': pl.Float64,
    'close': pl.Float64,
    'volume': pl.Float64,
}


def validate_columns(df: pl.DataFrame, config: SourceConfig) -> pl.DataFrame:
    """Check that *df* carries every column *config* needs.

    Parameters
    ----------
    df : pl.DataFrame
        Table as read from ``config.file``.
    config : SourceConfig
        Source definition with the semantic-field -> column mapping.

    Returns
    -------
    pl.DataFrame
        The input DataFrame (unchanged) if valid.

    Raises
    ------
    ValueError
        If the layout is unknown, a required field has no mapping, or a mapped
        column is missing from the file.
    """
    if config.kind not in REQUIRED_FIELDS:
        raise ValueError(f'Source {config.name!r}: unknown kind {config.kind!r}')

    unmapped = [f for f in REQUIRED_FIELDS[config.kind] if f not in config.columns]
    if unmapped:
        raise ValueError(
            f'Source {config.name!r}: no column mapping for required fields {unmapped}'
        )

    missing = {
        f: config.columns[f]
        for f in REQUIRED_FIELDS[config.kind]
        if config.columns[f] not in df.columns
    }
    if missing:
        detail = ', '.join(f'{fld} (expected column {col!r})' for fld, col in missing.items())
        raise ValueError(
            f'Source {config.name!r} ({config.file}) is missing {detail}. '
            f'Available: {df.columns}'
        )

    if config.kind == 'categorical' and not config.categories:
        raise ValueError(f'Source {config.name!r}: categorical source needs categories')

    return df


def select_fields(df: pl.DataFrame, config: SourceConfig) -> pl.DataFrame:
    """Rename mapped columns to their semantic names and cast dtypes.

    The period column may arrive as a parsed date, a datetime, or an ISO
    string; all are normalised to ``pl.Date``.
    """
    fields = list(REQUIRED_FIELDS[config.kind]) + [
        f for f in OPTIONAL_FIELDS[config.kind]
        if f in config.columns and config.columns[f] in df.columns
    ]
    out = df.select([pl.col(config.columns[f]).alias(f) for f in fields])

    period_dtype = out.schema['period']
    if period_dtype == pl.Utf8:
        period_expr = pl.col('period').str.to_date()
    elif isinstance(period_dtype, pl.Datetime):
        period_expr = pl.col('period').dt.date()
    else:
        period_expr = pl.col('period').cast(pl.Date)

    # Non-numeric placeholders (FRED writes '.') become null
    casts = [period_expr.alias('period')]
    for f in fields:
        if f != 'period':
            casts.append(pl.col(f).cast(FIELD_DTYPES[f], strict=False))
    return out.with_columns(casts)
