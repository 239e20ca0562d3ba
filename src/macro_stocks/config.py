# ---------------------------------------------------------------------------
# macro_stocks.config — Source configuration and project constants
# ---------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = BASE_DIR / "output"

# ---------------------------------------------------------------------------
# Trailing-row corrections
#
# Each count removes rows from the *end* of one source file (after sorting by
# period) before alignment.  They correct known gaps in the downloaded files:
# the latest releases are preliminary or partially populated.  Re-check these
# whenever the input files are refreshed.
# ---------------------------------------------------------------------------

UNEMPLOYMENT_TRAILING_TRIM = 2  # two newest months not yet published in the export
INFLATION_TRAILING_TRIM = 1  # newest CPI month is a placeholder
INTEREST_RATE_TRAILING_TRIM = 14  # 7 months x 2 tenors of partial-month averages
PRICE_HISTORY_TRAILING_TRIM = 3  # incomplete current-month bars

# ---------------------------------------------------------------------------
# Model constants
# ---------------------------------------------------------------------------

BETA_PRIOR_SIGMA = 1.0  # beta ~ Normal(0, 1)
SIGMA_PRIOR_BETA = 2.5  # sigma ~ HalfCauchy(0, 2.5)
N_COMPONENTS = 2
HDI_PROB = 0.90

# Plot colours — one per predictor, cycled if more predictors are added
PREDICTOR_COLORS = [
    "#1f77b4",  # blue
    "#ff7f0e",  # orange
    "#2ca02c",  # green
    "#d62728",  # red
    "#9467bd",  # purple
    "#8c564b",  # brown
    "#17becf",  # cyan
]


# ---------------------------------------------------------------------------
# Source specification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceConfig:
    """Specification for a single input file.

    Adding a predictor requires only a new entry in ``SOURCES``.  Loading,
    alignment, de-trending, the models and the plots adapt automatically.

    Parameters
    ----------
    name : str
        Short identifier used in log messages (e.g. ``'unemployment'``).
    file : str
        CSV filename under ``data/``.
    kind : ``'series'`` | ``'categorical'`` | ``'ohlc'``
        Layout of the file.  ``'categorical'`` files are long tables with one
        row per (period, category); ``'ohlc'`` files are price bars.
    columns : dict[str, str]
        Semantic field name -> column label in *file*.
    role : ``'predictor'`` | ``'response'``
    value_name : str, optional
        Output column name for ``'series'`` and ``'ohlc'`` sources.
    categories : dict[str, str], optional
        Category label in *file* -> output column name (categorical only).
    trailing_trim : int
        Rows removed from the end of the period-sorted file.
    transform : ``'none'`` | ``'log'``
        Applied to the value column before de-trending.
    """

    name: str
    file: str
    kind: Literal["series", "categorical", "ohlc"]
    columns: dict[str, str]
    role: Literal["predictor", "response"] = "predictor"
    value_name: str | None = None
    categories: dict[str, str] = field(default_factory=dict)
    trailing_trim: int = 0
    transform: Literal["none", "log"] = "none"

    @property
    def output_columns(self) -> list[str]:
        """Column names this source contributes to the analysis table."""
        if self.kind == "categorical":
            return list(self.categories.values())
        return [self.value_name or self.name]


# ---------------------------------------------------------------------------
# Active source list — edit here to add/remove inputs
# ---------------------------------------------------------------------------

SOURCES: list[SourceConfig] = [
    SourceConfig(
        name="unemployment",
        file="unemployment.csv",
        kind="series",
        columns={"period": "DATE", "value": "UNRATE"},
        value_name="unemployment",
        trailing_trim=UNEMPLOYMENT_TRAILING_TRIM,
    ),
    SourceConfig(
        name="inflation",
        file="cpi.csv",
        kind="series",
        columns={"period": "DATE", "value": "CPIAUCSL"},
        value_name="cpi",
        trailing_trim=INFLATION_TRAILING_TRIM,
    ),
    SourceConfig(
        name="industrial_production",
        file="industrial_production.csv",
        kind="categorical",
        columns={"period": "date", "category": "sector", "value": "index"},
        categories={
            "Manufacturing": "ip_manufacturing",
            "Mining": "ip_mining",
            "Electric and gas utilities": "ip_utilities",
        },
    ),
    SourceConfig(
        name="interest_rates",
        file="interest_rates.csv",
        kind="categorical",
        columns={"period": "date", "category": "tenor", "value": "rate"},
        categories={"3-Month": "rate_3m", "10-Year": "rate_10y"},
        trailing_trim=INTEREST_RATE_TRAILING_TRIM,
    ),
    SourceConfig(
        name="price_history",
        file="sp500.csv",
        kind="ohlc",
        columns={
            "period": "Date",
            "open": "Open",
            "high": "High",
            "low": "Low",
            "close": "Close",
            "volume": "Volume",
        },
        role="response",
        value_name="log_close",
        trailing_trim=PRICE_HISTORY_TRAILING_TRIM,
        transform="log",
    ),
]
