"""Tests for macro_stocks.model — model structure and log-density identities."""

import numpy as np
import pytest

from macro_stocks.model import build_mixture_model, build_regression_model


def _design(n: int = 40, p: int = 3, seed: int = 0):
    rng = np.random.default_rng(seed)
    X = rng.normal(0, 1, (n, p))
    y = X @ np.linspace(0.5, -0.5, p) + rng.normal(0, 0.5, n)
    return X, y


class TestRegressionModel:
    """Tests for build_regression_model."""

    def test_free_variables(self):
        X, y = _design()
        model = build_regression_model(X, y, ['a', 'b', 'c'])
        assert {rv.name for rv in model.free_RVs} == {'beta', 'sigma'}
        assert [rv.name for rv in model.observed_RVs] == ['y_obs']
        assert model.coords['predictor'] == ('a', 'b', 'c')

    def test_default_predictor_names(self):
        X, y = _design(p=2)
        model = build_regression_model(X, y)
        assert model.coords['predictor'] == ('x0', 'x1')

    def test_initial_point_shapes(self):
        X, y = _design(p=4)
        point = build_regression_model(X, y).initial_point()
        assert point['beta'].shape == (4,)
        assert np.shape(point['sigma_log__']) == ()

    def test_X_must_be_2d(self):
        with pytest.raises(ValueError, match='2-D'):
            build_regression_model(np.zeros(5), np.zeros(5))

    def test_row_mismatch(self):
        X, y = _design(n=10)
        with pytest.raises(ValueError, match='does not match'):
            build_regression_model(X, y[:-1])

    def test_name_count_mismatch(self):
        X, y = _design(p=3)
        with pytest.raises(ValueError, match='2 predictor names for 3 columns'):
            build_regression_model(X, y, ['a', 'b'])


class TestMixtureModel:
    """Tests for build_mixture_model."""

    def test_two_components(self):
        X, y = _design()
        model = build_mixture_model(X, y, n_components=2)
        assert {rv.name for rv in model.free_RVs} == {'beta', 'sigma', 'w'}
        point = model.initial_point()
        assert point['beta'].shape == (2, 3)
        assert point['sigma_log__'].shape == (2,)

    def test_single_component_weight_fixed(self):
        X, y = _design()
        model = build_mixture_model(X, y, n_components=1)
        assert {rv.name for rv in model.free_RVs} == {'beta', 'sigma'}
        assert [d.name for d in model.deterministics] == ['w']

    def test_zero_components_raises(self):
        X, y = _design()
        with pytest.raises(ValueError, match='n_components'):
            build_mixture_model(X, y, n_components=0)

    def test_single_component_logp_matches_regression(self):
        """With one component the mixture density is the regression density."""
        X, y = _design(n=30, p=3)
        reg = build_regression_model(X, y)
        mix = build_mixture_model(X, y, n_components=1)

        beta = np.array([0.3, -0.2, 0.7])
        log_sigma = np.log(0.8)
        lp_reg = reg.compile_logp()({'beta': beta, 'sigma_log__': np.array(log_sigma)})
        lp_mix = mix.compile_logp()(
            {'beta': beta[None, :], 'sigma_log__': np.array([log_sigma])}
        )
        assert float(lp_mix) == pytest.approx(float(lp_reg), rel=1e-9)

    def test_mixture_logp_is_logsumexp(self):
        """Likelihood of two identical components equals one component."""
        X, y = _design(n=30, p=2)
        mix = build_mixture_model(X, y, n_components=2)
        reg = build_regression_model(X, y)

        beta = np.array([0.4, -0.1])
        log_sigma = np.log(1.3)
        like_mix = mix.compile_logp(vars=[mix['y_obs']])(
            {
                'beta': np.stack([beta, beta]),
                'sigma_log__': np.array([log_sigma, log_sigma]),
                'w_simplex__': np.array([0.2]),
            }
        )
        like_reg = reg.compile_logp(vars=[reg['y_obs']])(
            {'beta': beta, 'sigma_log__': np.array(log_sigma)}
        )
        assert float(like_mix) == pytest.approx(float(like_reg), rel=1e-9)
