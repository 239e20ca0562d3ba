# ---------------------------------------------------------------------------
# macro_stocks.model — PyMC model specifications
# ---------------------------------------------------------------------------
"""Plain and mixture Bayesian linear regressions of the de-trended stock
index on de-trended macroeconomic predictors."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pymc as pm
import pytensor.tensor as pt

from .config import BETA_PRIOR_SIGMA, N_COMPONENTS, SIGMA_PRIOR_BETA


def _check_inputs(
    X: np.ndarray, y: np.ndarray, predictor_names: Sequence[str] | None,
) -> list[str]:
    X = np.asarray(X)
    y = np.asarray(y)
    if X.ndim != 2:
        raise ValueError(f"X must be 2-D, got shape {X.shape}")
    if y.ndim != 1 or len(y) != X.shape[0]:
        raise ValueError(f"y shape {y.shape} does not match X rows {X.shape[0]}")
    if predictor_names is None:
        return [f"x{j}" for j in range(X.shape[1])]
    if len(predictor_names) != X.shape[1]:
        raise ValueError(
            f"{len(predictor_names)} predictor names for {X.shape[1]} columns"
        )
    return list(predictor_names)


def build_regression_model(
    X: np.ndarray,
    y: np.ndarray,
    predictor_names: Sequence[str] | None = None,
) -> pm.Model:
    """Build the single-component regression.

    ::

        y_i   ~ Normal(x_i · β, σ)
        β_j   ~ Normal(0, 1)
        σ     ~ HalfCauchy(0, 2.5)

    No intercept: predictors and response are standardised residuals.
    """
    names = _check_inputs(X, y, predictor_names)
    coords = {"predictor": names, "obs": np.arange(len(y))}

    with pm.Model(coords=coords) as model:
        X_data = pm.Data("X", np.asarray(X, dtype=float), dims=("obs", "predictor"))

        beta = pm.Normal("beta", mu=0.0, sigma=BETA_PRIOR_SIGMA, dims="predictor")
        sigma = pm.HalfCauchy("sigma", beta=SIGMA_PRIOR_BETA)

        mu = pt.dot(X_data, beta)
        pm.Normal("y_obs", mu=mu, sigma=sigma, observed=np.asarray(y, dtype=float), dims="obs")

    return model


def build_mixture_model(
    X: np.ndarray,
    y: np.ndarray,
    predictor_names: Sequence[str] | None = None,
    n_components: int = N_COMPONENTS,
) -> pm.Model:
    """Build the *n_components* mixture regression.

    ::

        y_i    ~ Σ_k w_k Normal(x_i · β_k, σ_k)
        β_k,j  ~ Normal(0, 1)
        σ_k    ~ HalfCauchy(0, 2.5)
        w      ~ Dirichlet(1, …, 1)

    The per-observation log-likelihood is
    ``logsumexp_k(log w_k + log N(y_i | x_i · β_k, σ_k))``.  With
    ``n_components=1`` the weight is fixed at 1 and the model is the plain
    regression with an extra leading ``component`` dimension.

    Components are exchangeable, so chains may settle on different labelings.
    """
    if n_components < 1:
        raise ValueError(f"n_components must be >= 1, got {n_components}")
    names = _check_inputs(X, y, predictor_names)
    coords = {
        "predictor": names,
        "component": np.arange(n_components),
        "obs": np.arange(len(y)),
    }

    with pm.Model(coords=coords) as model:
        X_data = pm.Data("X", np.asarray(X, dtype=float), dims=("obs", "predictor"))

        beta = pm.Normal(
            "beta", mu=0.0, sigma=BETA_PRIOR_SIGMA, dims=("component", "predictor")
        )
        sigma = pm.HalfCauchy("sigma", beta=SIGMA_PRIOR_BETA, dims="component")

        if n_components > 1:
            w = pm.Dirichlet("w", a=np.ones(n_components), dims="component")
        else:
            w = pm.Deterministic("w", pt.ones(1), dims="component")

        mu = pt.dot(X_data, beta.T)  # (obs, component)
        pm.NormalMixture(
            "y_obs",
            w=w,
            mu=mu,
            sigma=sigma,
            observed=np.asarray(y, dtype=float),
            dims="obs",
        )

    return model
