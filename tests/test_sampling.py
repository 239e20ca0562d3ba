"""Tests for macro_stocks.sampling — NUTS, ADVI and importance resampling.

Fitting tests are marked ``slow``; deselect with ``-m 'not slow'``.
"""

import numpy as np
import pymc as pm
import pytest

from macro_stocks import sampling
from macro_stocks.model import build_mixture_model, build_regression_model
from macro_stocks.sampling import (
    LIGHT_SAMPLER_KWARGS,
    LIGHT_VI_KWARGS,
    PyMCEngine,
    RelativeObjectiveConvergence,
    VariationalResult,
    fit_variational,
    importance_resample,
    sample_model,
)

TRUE_BETA = np.array([0.8, -0.5, 0.0])
TRUE_SIGMA = 0.5


@pytest.fixture(scope='module')
def synthetic():
    rng = np.random.default_rng(2024)
    X = rng.normal(0, 1, (200, 3))
    y = X @ TRUE_BETA + rng.normal(0, TRUE_SIGMA, 200)
    return X, y


def _posterior_mean(idata, name):
    return idata.posterior[name].values.mean(axis=(0, 1))


class TestFitVariationalArguments:
    """Argument checks that fail before any optimisation."""

    def test_fullrank_with_resampling_raises(self, synthetic):
        model = build_regression_model(*synthetic)
        with pytest.raises(ValueError, match='mean-field'):
            fit_variational(model, method='fullrank_advi', importance_resampling=True)

    def test_unknown_init_raises(self, synthetic):
        model = build_regression_model(*synthetic)
        with pytest.raises(ValueError, match='init'):
            fit_variational(model, init='zeros')

    def test_unknown_optimizer_raises(self, synthetic):
        model = build_regression_model(*synthetic)
        with pytest.raises(ValueError, match='optimizer'):
            fit_variational(model, optimizer='sgd')


class TestRelativeObjectiveConvergence:
    """The stopping rule, driven with synthetic loss histories."""

    def _run(self, callback, loss):
        for i in range(len(loss)):
            callback(None, loss[: i + 1], i)

    def test_flat_loss_stops_after_patience(self):
        callback = RelativeObjectiveConvergence(every=100, tolerance=0.01, patience=2)
        loss = np.full(1000, 250.0)
        with pytest.raises(StopIteration):
            self._run(callback, loss)
        # checks at 100 (first), 200 and 300 (two small changes)
        assert callback.n_small == 2

    def test_falling_loss_keeps_going(self):
        callback = RelativeObjectiveConvergence(every=100, tolerance=0.01, patience=2)
        loss = 1e4 * np.exp(-np.arange(1000) / 100.0) + 10.0
        self._run(callback, loss)
        assert callback.n_small == 0

    def test_nothing_checked_before_window(self):
        callback = RelativeObjectiveConvergence(every=10, window=100)
        self._run(callback, np.full(99, 1.0))
        assert callback.previous is None


class TestPyMCEngine:
    """Keyword merging in PyMCEngine, with the fitters replaced."""

    def test_sample_overrides_draws(self, monkeypatch):
        seen = {}

        def fake_sample_model(model, sampler_kwargs, nuts_sampler, random_seed):
            seen.update(sampler_kwargs, nuts_sampler=nuts_sampler, random_seed=random_seed)
            return 'idata'

        monkeypatch.setattr(sampling, 'sample_model', fake_sample_model)
        engine = PyMCEngine(sampler_kwargs=LIGHT_SAMPLER_KWARGS, nuts_sampler='pymc',
                            random_seed=7)
        assert engine.sample(object(), iterations=123, chains=1) == 'idata'
        assert seen['draws'] == 123
        assert seen['chains'] == 1
        assert seen['tune'] == LIGHT_SAMPLER_KWARGS['tune']
        assert seen['nuts_sampler'] == 'pymc'
        assert seen['random_seed'] == 7

    def test_variational_overrides(self, monkeypatch):
        seen = {}

        def fake_fit_variational(model, **kwargs):
            seen.update(kwargs)
            return 'result'

        monkeypatch.setattr(sampling, 'fit_variational', fake_fit_variational)
        engine = PyMCEngine(vi_kwargs=LIGHT_VI_KWARGS, random_seed=3)
        assert engine.variational_fit(object(), tolerance=0.001, max_iterations=50) == 'result'
        assert seen['tolerance'] == 0.001
        assert seen['max_iterations'] == 50
        assert seen['draws'] == LIGHT_VI_KWARGS['draws']
        assert seen['random_seed'] == 3

    def test_defaults_not_mutated(self):
        engine = PyMCEngine()
        engine.sampler_kwargs['draws'] = 1
        assert sampling.DEFAULT_SAMPLER_KWARGS['draws'] == 2000


@pytest.mark.slow
class TestNUTS:
    """NUTS recovers known coefficients."""

    def test_regression_recovers_beta(self, synthetic):
        model = build_regression_model(*synthetic, predictor_names=['a', 'b', 'c'])
        idata = sample_model(model, LIGHT_SAMPLER_KWARGS, nuts_sampler='pymc', random_seed=1)
        np.testing.assert_allclose(_posterior_mean(idata, 'beta'), TRUE_BETA, atol=0.15)
        assert _posterior_mean(idata, 'sigma') == pytest.approx(TRUE_SIGMA, abs=0.1)
        assert list(idata.posterior['beta'].coords['predictor'].values) == ['a', 'b', 'c']


@pytest.mark.slow
class TestADVI:
    """Mean-field ADVI with and without importance resampling."""

    def test_importance_resampled_recovers_beta(self, synthetic):
        model = build_regression_model(*synthetic)
        result = fit_variational(model, **{**LIGHT_VI_KWARGS, 'random_seed': 11})
        assert isinstance(result, VariationalResult)
        assert result.method == 'advi'
        assert result.pareto_k is not None and np.isfinite(result.pareto_k)
        assert result.idata.posterior['beta'].shape == (1, LIGHT_VI_KWARGS['draws'], 3)
        assert len(result.elbo) == result.n_iterations
        np.testing.assert_allclose(_posterior_mean(result.idata, 'beta'), TRUE_BETA, atol=0.15)
        assert np.all(result.idata.posterior['sigma'].values > 0)

    def test_plain_draws_without_resampling(self, synthetic):
        model = build_regression_model(*synthetic)
        result = fit_variational(
            model,
            importance_resampling=False,
            draws=200,
            max_iterations=3000,
            random_seed=5,
        )
        assert result.pareto_k is None
        assert result.idata.posterior['beta'].shape[-1] == 3
        np.testing.assert_allclose(_posterior_mean(result.idata, 'beta'), TRUE_BETA, atol=0.15)

    def test_iteration_cap_reported(self, synthetic):
        model = build_regression_model(*synthetic)
        result = fit_variational(
            model, max_iterations=50, tolerance=1e-12, draws=50, random_seed=2
        )
        assert result.converged is False
        assert result.n_iterations == 50

    def test_single_component_mixture_matches_regression(self, synthetic):
        """A one-component mixture fits like the plain regression."""
        kwargs = {**LIGHT_VI_KWARGS, 'random_seed': 17}
        reg = fit_variational(build_regression_model(*synthetic), **kwargs)
        mix = fit_variational(build_mixture_model(*synthetic, n_components=1), **kwargs)

        beta_reg = _posterior_mean(reg.idata, 'beta')
        beta_mix = _posterior_mean(mix.idata, 'beta')
        assert beta_mix.shape == (1, 3)
        np.testing.assert_allclose(beta_mix[0], beta_reg, atol=0.1)
        np.testing.assert_allclose(mix.idata.posterior['w'].values, 1.0)

    def test_light_settings_converge(self, synthetic):
        """Adam with the relative-objective rule stops well before the cap."""
        model = build_regression_model(*synthetic)
        result = fit_variational(model, **{**LIGHT_VI_KWARGS, 'random_seed': 23})
        assert result.converged is True
        assert result.n_iterations < LIGHT_VI_KWARGS['max_iterations']

    def test_adagrad_window_accepted(self, synthetic):
        model = build_regression_model(*synthetic)
        result = fit_variational(
            model,
            optimizer='adagrad_window',
            learning_rate=0.05,
            max_iterations=500,
            draws=50,
            importance_resampling=False,
            random_seed=29,
        )
        assert result.n_iterations <= 500
        assert np.all(np.isfinite(result.elbo))


@pytest.mark.slow
class TestImportanceResample:
    """importance_resample on an approximation fitted directly with pm.fit."""

    def test_constrained_draws_and_khat(self, synthetic):
        model = build_mixture_model(*synthetic, n_components=2)
        with model:
            approx = pm.fit(n=3000, method='advi', obj_optimizer=pm.adam(learning_rate=0.01),
                            random_seed=31, progressbar=False)
        idata, k = importance_resample(model, approx, draws=300, random_seed=37)

        assert np.isfinite(k)
        assert idata.posterior['beta'].shape == (1, 300, 2, 3)
        w = idata.posterior['w'].values
        np.testing.assert_allclose(w.sum(axis=-1), 1.0)
        assert np.all(idata.posterior['sigma'].values > 0)
        # only model-space names; no transformed value variables
        assert not any(name.endswith('__') for name in idata.posterior.data_vars)
