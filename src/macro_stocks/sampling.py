# ---------------------------------------------------------------------------
# macro_stocks.sampling — MCMC and variational fitting
# ---------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

import arviz as az
import numpy as np
import pymc as pm
from pymc.initial_point import make_initial_point_fn
from scipy import stats as sp_stats

# Default sampling configuration (full report run)
DEFAULT_SAMPLER_KWARGS: dict = dict(
    draws=2000,
    tune=2000,
    chains=4,
    target_accept=0.95,
    return_inferencedata=True,
)

# Lighter configuration for tests and quick iterations
LIGHT_SAMPLER_KWARGS: dict = dict(
    draws=500,
    tune=500,
    chains=2,
    cores=1,
    target_accept=0.9,
    return_inferencedata=True,
    progressbar=False,
)

# Mean-field ADVI: relative objective tolerance, iteration cap, optimiser, output draws
DEFAULT_VI_KWARGS: dict = dict(
    method="advi",
    max_iterations=10_000,
    tolerance=0.01,
    optimizer="adam",
    learning_rate=0.01,
    draws=1000,
    importance_resampling=True,
    init="random",
)

LIGHT_VI_KWARGS: dict = dict(
    method="advi",
    max_iterations=5_000,
    tolerance=0.01,
    optimizer="adam",
    learning_rate=0.01,
    draws=500,
    importance_resampling=True,
    init="random",
)

# Pareto k-hat thresholds for importance-resampled draws
PARETO_K_OK = 0.5
PARETO_K_BAD = 0.7

OPTIMIZERS = {
    "adam": pm.adam,
    "adagrad_window": pm.adagrad_window,
}


@dataclass
class VariationalResult:
    """Output of :func:`fit_variational`.

    ``elbo`` is the per-iteration ELBO (negated loss history).  ``pareto_k``
    is ``None`` when importance resampling was not requested.
    """

    approx: Any
    idata: az.InferenceData
    elbo: np.ndarray
    n_iterations: int
    converged: bool
    pareto_k: float | None
    method: str


# =========================================================================
# MCMC
# =========================================================================


def sample_model(
    model: pm.Model,
    sampler_kwargs: dict | None = None,
    nuts_sampler: str = "nutpie",
    random_seed: int | None = None,
) -> az.InferenceData:
    """Sample the model using nutpie (preferred) or PyMC NUTS.

    Parameters
    ----------
    model : pm.Model
        Compiled PyMC model.
    sampler_kwargs : dict, optional
        Override the default sampling configuration.  Use
        ``LIGHT_SAMPLER_KWARGS`` for tests.
    nuts_sampler : str
        ``'nutpie'`` (falls back to PyMC if unavailable) or ``'pymc'``.
    random_seed : int, optional
    """
    if sampler_kwargs is None:
        sampler_kwargs = DEFAULT_SAMPLER_KWARGS
    kwargs = dict(sampler_kwargs)
    if random_seed is not None:
        kwargs["random_seed"] = random_seed

    with model:
        if nuts_sampler == "pymc":
            idata = pm.sample(**kwargs)
            sampler_used = "pymc"
        else:
            try:
                idata = pm.sample(nuts_sampler=nuts_sampler, **kwargs)
                sampler_used = nuts_sampler
            except Exception as e:
                print(f"{nuts_sampler} unavailable ({e}), falling back to PyMC NUTS")
                idata = pm.sample(**kwargs)
                sampler_used = "pymc"

    print(f"\nSampling complete ({sampler_used})")
    return idata


# =========================================================================
# Variational inference
# =========================================================================


class RelativeObjectiveConvergence(pm.callbacks.Callback):
    """Stop ``pm.fit`` once the windowed loss stops moving.

    Every *every* steps the mean loss over the last *window* steps is
    compared with the mean at the previous check.  The fit stops after
    *patience* consecutive checks with relative change below *tolerance*.
    """

    def __init__(
        self,
        every: int = 100,
        tolerance: float = 0.01,
        window: int = 100,
        patience: int = 2,
    ) -> None:
        self.every = every
        self.tolerance = tolerance
        self.window = window
        self.patience = patience
        self.previous: float | None = None
        self.n_small = 0

    def __call__(self, approx, loss_hist, i) -> None:
        if i % self.every != 0 or len(loss_hist) < self.window:
            return
        current = float(np.mean(loss_hist[-self.window:]))
        if not np.isfinite(current):
            return
        if self.previous is not None:
            rel = abs(current - self.previous) / max(abs(current), 1e-12)
            self.n_small = self.n_small + 1 if rel < self.tolerance else 0
            if self.n_small >= self.patience:
                raise StopIteration(
                    f"Relative objective change {rel:.2e} below {self.tolerance}"
                )
        self.previous = current


def fit_variational(
    model: pm.Model,
    method: Literal["advi", "fullrank_advi"] = "advi",
    max_iterations: int = 10_000,
    tolerance: float = 0.01,
    draws: int = 1000,
    importance_resampling: bool = True,
    var_names: list[str] | None = None,
    init: Literal["random", "default"] = "random",
    optimizer: Literal["adam", "adagrad_window"] = "adam",
    learning_rate: float = 0.01,
    random_seed: int | None = None,
) -> VariationalResult:
    """Fit a variational approximation and draw from it.

    Parameters
    ----------
    model : pm.Model
    method : ``'advi'`` | ``'fullrank_advi'``
        Mean-field or full-rank Gaussian family.  Importance resampling is
        only available for mean-field.
    max_iterations : int
        Optimisation steps before giving up on convergence.
    tolerance : float
        Relative change of the 100-step mean loss, checked every 100 steps;
        two consecutive checks below it stop the fit.
    draws : int
        Number of posterior draws to output.
    importance_resampling : bool
        Re-weight the draws by ``p / q`` with Pareto smoothing and resample.
    var_names : list[str], optional
        Parameters to retain.  Defaults to every free RV and deterministic.
    init : ``'random'`` | ``'default'``
        ``'random'`` jitters the starting point uniformly in (-1, 1) on the
        unconstrained scale.
    optimizer : ``'adam'`` | ``'adagrad_window'``
        Stochastic optimiser for the ELBO.
    learning_rate : float
        Step size passed to *optimizer*.
    random_seed : int, optional
    """
    if importance_resampling and method != "advi":
        raise ValueError(
            f"Importance resampling requires mean-field ADVI, got method={method!r}"
        )
    if init not in ("random", "default"):
        raise ValueError(f"Unknown init mode {init!r}")
    if optimizer not in OPTIMIZERS:
        raise ValueError(
            f"Unknown optimizer {optimizer!r}; expected one of {sorted(OPTIMIZERS)}"
        )

    rng = np.random.default_rng(random_seed)
    fit_seed = int(rng.integers(2**30))
    draw_seed = int(rng.integers(2**30))

    callback = RelativeObjectiveConvergence(every=100, tolerance=tolerance)
    with model:
        start = _random_start(model, int(rng.integers(2**30))) if init == "random" else None
        approx = pm.fit(
            n=max_iterations,
            method=method,
            start=start,
            callbacks=[callback],
            obj_optimizer=OPTIMIZERS[optimizer](learning_rate=learning_rate),
            random_seed=fit_seed,
            progressbar=False,
        )

    loss = np.asarray(approx.hist, dtype=float)
    n_iterations = len(loss)
    converged = n_iterations < max_iterations

    if importance_resampling:
        idata, pareto_k = importance_resample(
            model, approx, draws=draws, var_names=var_names, random_seed=draw_seed
        )
    else:
        idata = approx.sample(draws, random_seed=draw_seed, return_inferencedata=True)
        if var_names is not None:
            idata = az.InferenceData(posterior=idata.posterior[var_names])
        pareto_k = None

    status = "converged" if converged else "hit iteration cap"
    print(f"\nVariational fit complete ({method}, {n_iterations} iterations, {status})")
    return VariationalResult(
        approx=approx,
        idata=idata,
        elbo=-loss,
        n_iterations=n_iterations,
        converged=converged,
        pareto_k=pareto_k,
        method=method,
    )


def importance_resample(
    model: pm.Model,
    approx: Any,
    draws: int = 1000,
    var_names: list[str] | None = None,
    random_seed: int | None = None,
) -> tuple[az.InferenceData, float]:
    """Pareto-smoothed importance resampling of a mean-field approximation.

    Draws ``z ~ q`` on the unconstrained scale, weights each draw by
    ``log p(z) - log q(z)`` (``log p`` includes the Jacobian of the
    transforms), smooths the weights with :func:`arviz.psislw`, and resamples
    with replacement.

    Returns
    -------
    (az.InferenceData, float)
        One-chain posterior on the constrained scale and the Pareto k-hat of
        the importance weights.
    """
    rng = np.random.default_rng(random_seed)

    mean = np.asarray(approx.mean.eval(), dtype=float)
    std = np.asarray(approx.std.eval(), dtype=float)
    z = mean + std * rng.standard_normal((draws, mean.size))
    log_q = sp_stats.norm.logpdf(z, loc=mean, scale=std).sum(axis=1)

    unflatten = _unflattener(model, mean.size)
    logp_fn = model.compile_logp()
    log_p = np.array([float(logp_fn(unflatten(row))) for row in z])

    log_w, pareto_k = az.psislw(log_p - log_q)
    weights = np.exp(log_w - log_w.max())
    weights /= weights.sum()
    idx = rng.choice(draws, size=draws, replace=True, p=weights)

    outs = model.unobserved_value_vars
    out_names = [v.name for v in outs]
    point_fn = model.compile_fn(outs, inputs=model.value_vars, on_unused_input="ignore")

    if var_names is None:
        var_names = [v.name for v in model.free_RVs + model.deterministics]

    samples: dict[str, list[np.ndarray]] = {name: [] for name in var_names}
    for row in z[idx]:
        values = dict(zip(out_names, point_fn(unflatten(row)), strict=True))
        for name in var_names:
            samples[name].append(np.asarray(values[name]))

    posterior = {name: np.stack(vals)[None, ...] for name, vals in samples.items()}
    dims = {
        name: list(model.named_vars_to_dims[name])
        for name in var_names
        if name in model.named_vars_to_dims
    }
    coords = {k: list(v) for k, v in model.coords.items() if v is not None}
    idata = az.from_dict(posterior=posterior, coords=coords, dims=dims)
    return idata, float(pareto_k)


def _unflattener(model: pm.Model, size: int):
    """Map a flat unconstrained vector to ``{value_var_name: array}``.

    Ordering follows ``model.value_vars``, which is the ordering the
    mean-field group uses when it covers every free variable.
    """
    point = model.initial_point()
    names = [v.name for v in model.value_vars]
    shapes = [np.shape(point[n]) for n in names]
    sizes = [int(np.prod(s)) for s in shapes]
    if sum(sizes) != size:
        raise ValueError(
            f"Approximation has {size} parameters, model value vars have {sum(sizes)}"
        )
    splits = np.cumsum(sizes)[:-1]

    def unflatten(row: np.ndarray) -> dict[str, np.ndarray]:
        return {
            n: chunk.reshape(s)
            for n, s, chunk in zip(names, shapes, np.split(row, splits), strict=True)
        }

    return unflatten


def _random_start(model: pm.Model, seed: int) -> dict[str, np.ndarray]:
    """Initial point jittered uniformly in (-1, 1) on the unconstrained scale."""
    ipfn = make_initial_point_fn(
        model=model,
        jitter_rvs=set(model.free_RVs),
        return_transformed=True,
    )
    return ipfn(seed)


# =========================================================================
# Engine interface
# =========================================================================


class InferenceEngine(Protocol):
    """Posterior approximation capability used by the report pipeline."""

    def sample(
        self, model: pm.Model, iterations: int | None = None, **kwargs: Any
    ) -> az.InferenceData: ...

    def variational_fit(
        self,
        model: pm.Model,
        tolerance: float = 0.01,
        max_iterations: int = 10_000,
        **kwargs: Any,
    ) -> VariationalResult: ...


class PyMCEngine:
    """:class:`InferenceEngine` backed by PyMC (NUTS and ADVI)."""

    def __init__(
        self,
        sampler_kwargs: dict | None = None,
        vi_kwargs: dict | None = None,
        nuts_sampler: str = "nutpie",
        random_seed: int | None = None,
    ) -> None:
        self.sampler_kwargs = dict(sampler_kwargs or DEFAULT_SAMPLER_KWARGS)
        self.vi_kwargs = dict(vi_kwargs or DEFAULT_VI_KWARGS)
        self.nuts_sampler = nuts_sampler
        self.random_seed = random_seed

    def sample(
        self, model: pm.Model, iterations: int | None = None, **kwargs: Any
    ) -> az.InferenceData:
        sampler_kwargs = {**self.sampler_kwargs, **kwargs}
        if iterations is not None:
            sampler_kwargs["draws"] = iterations
        return sample_model(
            model,
            sampler_kwargs=sampler_kwargs,
            nuts_sampler=self.nuts_sampler,
            random_seed=self.random_seed,
        )

    def variational_fit(
        self,
        model: pm.Model,
        tolerance: float | None = None,
        max_iterations: int | None = None,
        **kwargs: Any,
    ) -> VariationalResult:
        vi_kwargs = {**self.vi_kwargs, **kwargs}
        if tolerance is not None:
            vi_kwargs["tolerance"] = tolerance
        if max_iterations is not None:
            vi_kwargs["max_iterations"] = max_iterations
        vi_kwargs.setdefault("random_seed", self.random_seed)
        return fit_variational(model, **vi_kwargs)
