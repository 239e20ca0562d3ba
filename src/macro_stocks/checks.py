# ---------------------------------------------------------------------------
# macro_stocks.checks — Prior / posterior predictive checks, PSIS-LOO
# ---------------------------------------------------------------------------
from __future__ import annotations

from pathlib import Path

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pymc as pm
from scipy import stats as sp_stats

from .config import OUTPUT_DIR
from .data import AnalysisData
from .plots import slugify


# =========================================================================
# Prior predictive
# =========================================================================


def run_prior_predictive_checks(
    model: pm.Model,
    data: AnalysisData,
    label: str,
    output_dir: Path | None = None,
    samples: int = 500,
) -> az.InferenceData:
    """Sample from the prior predictive and compare to the observed response.

    Validates that priors produce data in a plausible range before
    fitting (Gabry et al. 2019, Section 3).
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR
    print(f"Sampling prior predictive ({label})…")
    with model:
        prior_idata = pm.sample_prior_predictive(samples, random_seed=42)

    pp = prior_idata.prior_predictive["y_obs"].values.flatten()
    lo, hi = np.percentile(pp, [1, 99])
    pp_clip = pp[(pp >= lo) & (pp <= hi)]

    fig, ax = plt.subplots(1, 1, figsize=(8, 4.5))
    ax.hist(pp_clip, bins=80, density=True, alpha=0.4, color="steelblue",
            label="Prior predictive")
    ax.hist(data.y, bins=30, density=True, alpha=0.6, color="darkorange",
            label="Observed")
    ax.set_xlabel("Standardised de-trended log close")
    ax.set_title(f"Prior Predictive Check: {label}")
    ax.legend(fontsize=8)
    plt.tight_layout()
    fpath = output_dir / f"prior_predictive_{slugify(label)}.png"
    fig.savefig(fpath, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {fpath}")

    lo5, hi95 = np.percentile(pp, [5, 95])
    print(f"  prior 90% [{lo5:+.2f}, {hi95:+.2f}]  | obs range "
          f"[{data.y.min():+.2f}, {data.y.max():+.2f}]")
    return prior_idata


# =========================================================================
# Posterior predictive
# =========================================================================


def _lag1_acf(x: np.ndarray) -> float:
    if len(x) < 3:
        return 0.0
    xc = x - x.mean()
    c0 = np.dot(xc, xc)
    return float(np.dot(xc[:-1], xc[1:]) / c0) if c0 > 0 else 0.0


def posterior_predictive_pvalues(
    y_rep: np.ndarray, y: np.ndarray,
) -> dict[str, float]:
    """Posterior predictive p-values ``P(T(y_rep) >= T(y))``.

    *y_rep* has one replicated dataset per row.
    """
    stat_fns = {"skewness": lambda x: float(sp_stats.skew(x)), "lag1_acf": _lag1_acf}
    out: dict[str, float] = {}
    for name, fn in stat_fns.items():
        t_obs = fn(y)
        t_rep = np.array([fn(row) for row in y_rep])
        out[name] = float(np.mean(t_rep >= t_obs))
    return out


def run_posterior_predictive_checks(
    model: pm.Model,
    idata: az.InferenceData,
    data: AnalysisData,
    label: str,
    output_dir: Path | None = None,
) -> dict[str, float]:
    """Density overlay and test statistics comparing replicated to observed.

    Extends *idata* with a ``posterior_predictive`` group and returns the
    posterior predictive p-values.
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR
    print(f"Sampling posterior predictive ({label})…")
    with model:
        pm.sample_posterior_predictive(
            idata, extend_inferencedata=True, random_seed=42, progressbar=False
        )

    rng = np.random.default_rng(42)
    y = data.y
    pp = idata.posterior_predictive["y_obs"].values
    pp_flat = pp.reshape(-1, pp.shape[-1])
    n_sub = min(500, pp_flat.shape[0])
    y_rep = pp_flat[rng.choice(pp_flat.shape[0], size=n_sub, replace=False)]

    pad = 0.5 * np.ptp(y)
    bins = np.linspace(y.min() - pad, y.max() + pad, 50)
    fig, ax = plt.subplots(1, 1, figsize=(8, 4.5))
    for row in y_rep[:100]:
        ax.hist(row, bins=bins, density=True, histtype="step", alpha=0.08,
                color="steelblue", lw=0.5)
    ax.hist(y, bins=bins, density=True, histtype="step", color="black", lw=2,
            label="Observed")
    ax.set_xlabel("Standardised de-trended log close")
    ax.set_title(f"Posterior Predictive Density Overlay: {label}")
    ax.legend(fontsize=8)
    plt.tight_layout()
    fpath = output_dir / f"ppc_density_{slugify(label)}.png"
    fig.savefig(fpath, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {fpath}")

    pvals = posterior_predictive_pvalues(y_rep, y)
    for name, p in pvals.items():
        flag = "  ** extreme" if p < 0.05 or p > 0.95 else ""
        print(f"  {name:10} p = {p:.3f}{flag}")
    return pvals


# =========================================================================
# LOO-CV model comparison
# =========================================================================


def compare_models(
    fits: dict[str, tuple[pm.Model, az.InferenceData]],
    output_dir: Path | None = None,
):
    """Compare fitted models by PSIS-LOO and plot k-hat per model.

    Parameters
    ----------
    fits : dict[str, (pm.Model, az.InferenceData)]
        Label -> (model, posterior).  Log-likelihood is computed when absent.

    Returns
    -------
    pandas.DataFrame or None
        ``az.compare`` table, or ``None`` if fewer than two models could be
        scored.
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR

    print("\n" + "=" * 72)
    print("LEAVE-ONE-OUT CROSS-VALIDATION (PSIS-LOO)")
    print("=" * 72)

    scored: dict[str, az.InferenceData] = {}
    khats: dict[str, np.ndarray] = {}
    for label, (model, idata) in fits.items():
        if "log_likelihood" not in idata.groups():
            try:
                with model:
                    pm.compute_log_likelihood(idata, progressbar=False)
            except Exception as e:
                print(f"{label}: could not compute log-likelihood ({e}); skipping")
                continue
        loo = az.loo(idata, pointwise=True)
        khat = np.asarray(loo.pareto_k)
        print(f"\n{label}:")
        print(f"  ELPD LOO: {loo.elpd_loo:.1f} +/- {loo.se:.1f}")
        print(f"  p_loo:    {loo.p_loo:.1f}")
        print(f"  k-hat > 0.7 (bad):  {int(np.sum(khat > 0.7))}")
        print(f"  k-hat > 0.5 (warn): {int(np.sum((khat > 0.5) & (khat <= 0.7)))}")
        scored[label] = idata
        khats[label] = khat

    if not khats:
        return None

    fig, axes = plt.subplots(1, len(khats), figsize=(6 * len(khats), 4), squeeze=False)
    for ax, (label, khat) in zip(axes[0], khats.items(), strict=True):
        colors = np.where(khat > 0.7, "red", np.where(khat > 0.5, "orange", "steelblue"))
        ax.scatter(range(len(khat)), khat, s=8, c=colors, alpha=0.6)
        ax.axhline(0.7, color="red", ls="--", lw=1, alpha=0.7, label="k-hat = 0.7")
        ax.axhline(0.5, color="orange", ls="--", lw=1, alpha=0.7, label="k-hat = 0.5")
        ax.set_xlabel("Observation index")
        ax.set_ylabel("k-hat")
        ax.set_title(f"{label}: PSIS-LOO k-hat")
        ax.legend(fontsize=7)
    fig.suptitle("LOO-CV k-hat Diagnostics (Pareto shape parameter)",
                 fontsize=13, fontweight="bold")
    plt.tight_layout()
    fpath = output_dir / "loo_khat.png"
    fig.savefig(fpath, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"\nSaved: {fpath}")

    if len(scored) < 2:
        return None
    comparison = az.compare(scored, ic="loo")
    print("\n" + comparison.to_string())
    return comparison
