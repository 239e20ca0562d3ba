# ---------------------------------------------------------------------------
# macro_stocks.diagnostics — Sampling and variational diagnostics
# ---------------------------------------------------------------------------
from __future__ import annotations

from collections.abc import Sequence

import arviz as az
import numpy as np
import polars as pl

from .config import HDI_PROB
from .sampling import PARETO_K_BAD, PARETO_K_OK, VariationalResult

RHAT_MAX = 1.01
ESS_MIN = 400


def model_var_names(idata: az.InferenceData) -> list[str]:
    """Reported parameters present in *idata* (``beta``, ``sigma``, ``w``)."""
    return [v for v in ("beta", "sigma", "w") if v in idata.posterior]


# =========================================================================
# MCMC
# =========================================================================


def print_diagnostics(idata: az.InferenceData, label: str):
    """Print sampling diagnostics and the parameter summary.

    Returns the ``az.summary`` table.  Nothing here raises on poor
    convergence; problems are reported for the reader.
    """
    print("=" * 72)
    print(f"SAMPLING DIAGNOSTICS — {label}")
    print("=" * 72)

    divs = count_divergences(idata)
    print(f"Divergences: {divs}")
    try:
        max_td = int(idata.sample_stats.tree_depth.max().values)
        print(f"Max tree depth: {max_td}")
    except (AttributeError, KeyError):
        pass

    summary = az.summary(idata, var_names=model_var_names(idata), hdi_prob=HDI_PROB)
    print(summary.to_string())

    rhat_bad = summary[summary["r_hat"] > RHAT_MAX]
    ess_bad = summary[summary["ess_bulk"] < ESS_MIN]
    if len(rhat_bad) > 0:
        print(f"\n** WARNING: Parameters with R-hat > {RHAT_MAX}:")
        for pname, row in rhat_bad.iterrows():
            print(f"    {pname}: R-hat = {row['r_hat']:.4f}")
    if len(ess_bad) > 0:
        print(f"\n** WARNING: Parameters with ESS_bulk < {ESS_MIN}:")
        for pname, row in ess_bad.iterrows():
            print(f"    {pname}: ESS = {row['ess_bulk']:.0f}")
    if len(rhat_bad) == 0 and len(ess_bad) == 0:
        print(f"\nAll parameters converged (R-hat <= {RHAT_MAX}, ESS_bulk >= {ESS_MIN})")

    return summary


def count_divergences(idata: az.InferenceData) -> int:
    if not hasattr(idata, "sample_stats") or "diverging" not in idata.sample_stats:
        return 0
    return int(idata.sample_stats.diverging.sum().values)


# =========================================================================
# Variational
# =========================================================================


def pareto_k_verdict(k: float | None) -> str:
    """Classify an importance-sampling k-hat."""
    if k is None:
        return "not computed"
    if k <= PARETO_K_OK:
        return "good"
    if k <= PARETO_K_BAD:
        return "ok"
    return "bad"


def print_variational_diagnostics(result: VariationalResult, label: str) -> None:
    """ELBO trajectory, convergence status and Pareto k-hat."""
    print("=" * 72)
    print(f"VARIATIONAL DIAGNOSTICS — {label}")
    print("=" * 72)

    elbo = result.elbo
    tail = elbo[-min(len(elbo), 500):]
    print(f"Method:      {result.method}")
    print(f"Iterations:  {result.n_iterations} ({'converged' if result.converged else 'not converged'})")
    print(f"Final ELBO:  {tail.mean():.2f} (mean of last {len(tail)} steps, sd {tail.std():.2f})")

    k = result.pareto_k
    if k is None:
        print("Pareto k-hat: not computed (no importance resampling)")
    else:
        print(f"Pareto k-hat: {k:.3f} ({pareto_k_verdict(k)})")
        if k > PARETO_K_BAD:
            print(
                f"\n** WARNING: k-hat > {PARETO_K_BAD}; the approximation is not a "
                "reliable stand-in for the posterior"
            )

    summary = az.summary(
        result.idata, var_names=model_var_names(result.idata), kind="stats", hdi_prob=HDI_PROB
    )
    print(summary.to_string())


# =========================================================================
# Coefficient tables
# =========================================================================


def coefficient_table(
    idata: az.InferenceData,
    predictor_names: Sequence[str],
    hdi_prob: float = HDI_PROB,
) -> pl.DataFrame:
    """Posterior mean, sd and central interval for each coefficient.

    One row per (component, predictor); the plain regression reports a single
    component ``0``.
    """
    beta = idata.posterior["beta"].values  # (chain, draw, [component,] predictor)
    draws = beta.reshape(-1, *beta.shape[2:])
    if draws.ndim == 2:
        draws = draws[:, None, :]

    lo_q = (1.0 - hdi_prob) / 2.0
    rows: list[dict] = []
    for k in range(draws.shape[1]):
        for j, name in enumerate(predictor_names):
            v = draws[:, k, j]
            lo, hi = np.quantile(v, [lo_q, 1.0 - lo_q])
            rows.append(
                {
                    "component": k,
                    "predictor": name,
                    "mean": float(v.mean()),
                    "sd": float(v.std()),
                    "lower": float(lo),
                    "upper": float(hi),
                    "excludes_zero": bool(lo > 0.0 or hi < 0.0),
                }
            )
    return pl.DataFrame(rows)
