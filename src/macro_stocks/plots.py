# ---------------------------------------------------------------------------
# macro_stocks.plots — Series, trace, interval, histogram and ELBO plots
# ---------------------------------------------------------------------------
from __future__ import annotations

from pathlib import Path

import arviz as az
import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import numpy as np

from .config import HDI_PROB, OUTPUT_DIR, PREDICTOR_COLORS
from .data import AnalysisData
from .detrend import period_index
from .diagnostics import model_var_names
from .sampling import VariationalResult


def slugify(label: str) -> str:
    return label.lower().replace(" ", "_").replace("/", "_")


def _save(fig, fpath: Path) -> Path:
    fig.savefig(fpath, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {fpath}")
    return fpath


# =========================================================================
# Input series
# =========================================================================


def plot_series(data: AnalysisData, output_dir: Path | None = None) -> Path:
    """Raw aligned series (left) next to their standardised residuals (right)."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    columns = [*data.predictor_names, data.response_name]
    dates = data.periods
    t = period_index(data.raw["period"])

    fig, axes = plt.subplots(len(columns), 2, figsize=(14, 2.4 * len(columns)),
                             sharex=True, squeeze=False)
    for i, col in enumerate(columns):
        color = "black" if col == data.response_name else PREDICTOR_COLORS[i % len(PREDICTOR_COLORS)]
        fit = data.trends[col]

        ax = axes[i, 0]
        ax.plot(dates, data.raw[col].to_numpy(), color=color, lw=1.2)
        ax.plot(dates, fit.intercept + fit.slope * t, color="gray", lw=0.8, ls="--",
                label="OLS trend")
        ax.set_ylabel(col, fontsize=8)
        if i == 0:
            ax.set_title("Aligned series with linear trend")
            ax.legend(fontsize=7)

        ax = axes[i, 1]
        ax.plot(dates, data.standardized[col].to_numpy(), color=color, lw=1.0)
        ax.axhline(0, color="k", lw=0.5, ls="--")
        if i == 0:
            ax.set_title("Standardised residuals")

    for ax in axes[-1]:
        _year_axis(ax)
    plt.tight_layout()
    return _save(fig, output_dir / "series.png")


def plot_predictor_correlations(data: AnalysisData, output_dir: Path | None = None) -> Path:
    """Correlation heatmap of the standardised predictors and response."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    columns = [*data.predictor_names, data.response_name]
    corr = np.corrcoef(data.standardized.select(columns).to_numpy().T)

    fig, ax = plt.subplots(1, 1, figsize=(8, 7))
    im = ax.imshow(corr, cmap="RdBu_r", vmin=-1, vmax=1)
    ax.set_xticks(range(len(columns)))
    ax.set_yticks(range(len(columns)))
    ax.set_xticklabels(columns, rotation=45, ha="right", fontsize=8)
    ax.set_yticklabels(columns, fontsize=8)
    for i in range(len(columns)):
        for j in range(len(columns)):
            ax.text(j, i, f"{corr[i, j]:.2f}", ha="center", va="center", fontsize=7)
    fig.colorbar(im, ax=ax, shrink=0.8)
    ax.set_title("Correlation of de-trended series")
    plt.tight_layout()
    return _save(fig, output_dir / "correlations.png")


# =========================================================================
# Posterior
# =========================================================================


def plot_traces(idata: az.InferenceData, label: str, output_dir: Path | None = None) -> Path:
    """Trace plot: draw value vs iteration per parameter and chain."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    axes = az.plot_trace(idata, var_names=model_var_names(idata), compact=True,
                         legend=False)
    fig = np.asarray(axes).ravel()[0].figure
    fig.suptitle(f"Trace plots: {label}", fontsize=13, fontweight="bold")
    plt.tight_layout()
    return _save(fig, output_dir / f"trace_{slugify(label)}.png")


def plot_intervals(idata: az.InferenceData, label: str, output_dir: Path | None = None) -> Path:
    """Forest plot of posterior intervals for the coefficients and scales."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    axes = az.plot_forest(idata, var_names=model_var_names(idata), combined=True,
                          hdi_prob=HDI_PROB, figsize=(8, 8))
    fig = np.asarray(axes).ravel()[0].figure
    axes_flat = np.asarray(axes).ravel()
    axes_flat[0].axvline(0, color="k", lw=0.5, ls="--")
    axes_flat[0].set_title(f"{int(HDI_PROB * 100)}% HDI: {label}")
    return _save(fig, output_dir / f"intervals_{slugify(label)}.png")


def plot_posterior_histograms(
    idata: az.InferenceData, label: str, output_dir: Path | None = None,
) -> Path:
    """Posterior histograms with HDI for every reported parameter."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    axes = az.plot_posterior(idata, var_names=model_var_names(idata), kind="hist",
                             hdi_prob=HDI_PROB, ref_val=None, textsize=8)
    fig = np.asarray(axes).ravel()[0].figure
    fig.suptitle(f"Posterior histograms: {label}", fontsize=13, fontweight="bold")
    plt.tight_layout()
    return _save(fig, output_dir / f"posterior_{slugify(label)}.png")


def plot_elbo(result: VariationalResult, label: str, output_dir: Path | None = None) -> Path:
    """ELBO by iteration with a rolling mean."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    elbo = result.elbo
    window = max(1, min(100, len(elbo) // 10))
    rolling = np.convolve(elbo, np.ones(window) / window, mode="valid")

    fig, ax = plt.subplots(1, 1, figsize=(10, 4))
    ax.plot(elbo, color="lightgray", lw=0.5, label="ELBO")
    ax.plot(np.arange(window - 1, len(elbo)), rolling, color="steelblue", lw=1.5,
            label=f"{window}-step mean")
    lo = np.percentile(elbo, 5)
    ax.set_ylim(lo, elbo.max() + 0.05 * abs(elbo.max() - lo))
    ax.set_xlabel("Iteration")
    ax.set_ylabel("ELBO")
    ax.set_title(f"ELBO history: {label}")
    ax.legend(fontsize=8)
    plt.tight_layout()
    return _save(fig, output_dir / f"elbo_{slugify(label)}.png")


# =========================================================================
# Helpers
# =========================================================================


def _year_axis(ax) -> None:
    ax.xaxis.set_major_locator(mdates.YearLocator(5))
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%Y"))
