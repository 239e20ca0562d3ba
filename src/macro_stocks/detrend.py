# ---------------------------------------------------------------------------
# macro_stocks.detrend — Linear de-trending and standardisation
# ---------------------------------------------------------------------------
"""Replace each series with the z-score of its residual from an OLS time trend.

The order matters: residuals are computed first and standardised second, so
the output always has mean 0 and sample standard deviation 1.  Standardising
first and de-trending afterwards leaves residuals with standard deviation
below 1 whenever the series has any trend.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl

# Residual sd below this fraction of the series magnitude is rounding noise
CONSTANT_RTOL = 1e-12


@dataclass(frozen=True)
class TrendFit:
    """OLS trend ``value ≈ intercept + slope · t`` and residual moments."""

    intercept: float
    slope: float
    resid_mean: float
    resid_std: float


def period_index(periods: pl.Series) -> np.ndarray:
    """Months elapsed since the first period (0, 1, 2, ... for monthly data)."""
    months = (periods.dt.year().cast(pl.Int64) * 12 + periods.dt.month().cast(pl.Int64))
    months = months.to_numpy()
    return (months - months[0]).astype(float)


def fit_trend(t: np.ndarray, values: np.ndarray) -> tuple[float, float]:
    """Least-squares ``(intercept, slope)`` of *values* on *t*."""
    t = np.asarray(t, dtype=float)
    values = np.asarray(values, dtype=float)
    if t.shape != values.shape:
        raise ValueError(f'Shape mismatch: t {t.shape} vs values {values.shape}')
    if len(t) < 2:
        raise ValueError(f'Need at least 2 points to fit a trend, got {len(t)}')
    design = np.column_stack([np.ones_like(t), t])
    coef, *_ = np.linalg.lstsq(design, values, rcond=None)
    return float(coef[0]), float(coef[1])


def detrend(values: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Residuals of *values* after removing the OLS trend on *t*."""
    intercept, slope = fit_trend(t, values)
    return np.asarray(values, dtype=float) - (intercept + slope * np.asarray(t, dtype=float))


def standardize(values: np.ndarray, scale: float | None = None) -> np.ndarray:
    """Z-score with the sample standard deviation (``ddof=1``).

    *scale* is the magnitude of the series the values were derived from
    (defaults to the values themselves).  A standard deviation at rounding
    level relative to it counts as constant.
    """
    values = np.asarray(values, dtype=float)
    if scale is None:
        scale = float(np.abs(values).max()) if values.size else 0.0
    sd = values.std(ddof=1)
    if not np.isfinite(sd) or sd <= CONSTANT_RTOL * max(1.0, scale):
        raise ValueError('Cannot standardise a constant series')
    return (values - values.mean()) / sd


def detrend_and_standardize(values: np.ndarray, t: np.ndarray) -> np.ndarray:
    """De-trend, then standardise the residuals."""
    values = np.asarray(values, dtype=float)
    return standardize(detrend(values, t), scale=float(np.abs(values).max()))


def detrend_frame(
    df: pl.DataFrame,
    columns: list[str],
    period_col: str = 'period',
) -> tuple[pl.DataFrame, dict[str, TrendFit]]:
    """Replace each of *columns* with its standardised trend residual.

    Columns are processed independently; the result does not depend on the
    order of *columns*.

    Returns
    -------
    (pl.DataFrame, dict[str, TrendFit])
        New frame (other columns untouched) and the fitted trend per column.
    """
    if df[columns].null_count().sum_horizontal().item() > 0:
        raise ValueError(f'Missing values in columns to de-trend: {columns}')

    t = period_index(df[period_col])
    fits: dict[str, TrendFit] = {}
    replaced: list[pl.Series] = []
    for col in columns:
        values = df[col].to_numpy().astype(float)
        intercept, slope = fit_trend(t, values)
        resid = values - (intercept + slope * t)
        fits[col] = TrendFit(
            intercept=intercept,
            slope=slope,
            resid_mean=float(resid.mean()),
            resid_std=float(resid.std(ddof=1)),
        )
        try:
            z = standardize(resid, scale=float(np.abs(values).max()))
        except ValueError as e:
            raise ValueError(f'{col}: {e} (exactly linear in time)') from e
        replaced.append(pl.Series(col, z))

    return df.with_columns(replaced), fits
