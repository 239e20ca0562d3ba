# ---------------------------------------------------------------------------
# macro_stocks.data — Load, align and de-trend all sources
# ---------------------------------------------------------------------------
"""Assemble the predictor matrix and response vector from the raw sources."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path

import numpy as np
import polars as pl

from .align import align_tables, check_alignment
from .config import SOURCES, SourceConfig
from .detrend import TrendFit, detrend_frame
from .ingest import load_sources


@dataclass(frozen=True)
class AnalysisData:
    """Aligned, de-trended inputs shared by every later stage.

    Attributes
    ----------
    raw : pl.DataFrame
        Aligned values before de-trending (response already transformed).
    standardized : pl.DataFrame
        Same layout with every modelled column replaced by its standardised
        trend residual.
    trends : dict[str, TrendFit]
        Fitted trend per modelled column.
    predictor_names : tuple[str, ...]
    response_name : str
    """

    raw: pl.DataFrame
    standardized: pl.DataFrame
    trends: dict[str, TrendFit]
    predictor_names: tuple[str, ...]
    response_name: str

    @property
    def periods(self) -> list[date]:
        return self.standardized["period"].to_list()

    @property
    def n_obs(self) -> int:
        return len(self.standardized)

    @property
    def X(self) -> np.ndarray:
        return self.standardized.select(list(self.predictor_names)).to_numpy().astype(float)

    @property
    def y(self) -> np.ndarray:
        return self.standardized[self.response_name].to_numpy().astype(float)


def build_analysis_data(
    tables: dict[str, pl.DataFrame],
    sources: list[SourceConfig] | None = None,
) -> AnalysisData:
    """Align *tables*, join them on the response periods and de-trend.

    Parameters
    ----------
    tables : dict[str, pl.DataFrame]
        Output of :func:`macro_stocks.ingest.load_sources`, keyed by source
        name.
    sources : list[SourceConfig], optional
        Source definitions.  Defaults to :pydata:`SOURCES` from config.
        Exactly one must have ``role='response'``.
    """
    if sources is None:
        sources = SOURCES

    responses = [cfg for cfg in sources if cfg.role == "response"]
    if len(responses) != 1:
        raise ValueError(f"Expected exactly one response source, got {len(responses)}")
    response_cfg = responses[0]
    predictor_cfgs = [cfg for cfg in sources if cfg.role == "predictor"]

    aligned = align_tables({cfg.name: tables[cfg.name] for cfg in sources})
    check_alignment(aligned, reference=response_cfg.name)

    # ------------------------------------------------------------------
    # Join predictors positionally onto the response periods
    # ------------------------------------------------------------------
    parts = [aligned[response_cfg.name].select("period")]
    predictor_names: list[str] = []
    for cfg in predictor_cfgs:
        cols = cfg.output_columns
        parts.append(aligned[cfg.name].select(cols))
        predictor_names.extend(cols)
    response_name = response_cfg.output_columns[0]
    parts.append(aligned[response_cfg.name].select(response_name))
    raw = pl.concat(parts, how="horizontal")

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------
    for cfg in sources:
        if cfg.transform != "log":
            continue
        for col in cfg.output_columns:
            if (raw[col] <= 0).any():
                raise ValueError(f"Cannot log-transform {col!r}: non-positive values")
        raw = raw.with_columns([pl.col(c).log() for c in cfg.output_columns])

    modelled = [*predictor_names, response_name]
    standardized, trends = detrend_frame(raw, modelled)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    periods = raw["period"]
    print(f"Analysis window: T = {len(raw)} periods ({periods.min()} → {periods.max()})")
    print(f"  Predictors ({len(predictor_names)}): {', '.join(predictor_names)}")
    print(f"  Response: {response_name}")
    for col in modelled:
        fit = trends[col]
        print(
            f"  {col:18} trend slope {fit.slope:+.5f}/mo  "
            f"resid sd {fit.resid_std:.4f}"
        )

    return AnalysisData(
        raw=raw,
        standardized=standardized,
        trends=trends,
        predictor_names=tuple(predictor_names),
        response_name=response_name,
    )


def load_data(
    sources: list[SourceConfig] | None = None,
    data_dir: Path | None = None,
) -> AnalysisData:
    """Load every source from *data_dir* and build :class:`AnalysisData`."""
    if sources is None:
        sources = SOURCES
    tables = load_sources(sources, data_dir)
    return build_analysis_data(tables, sources)
