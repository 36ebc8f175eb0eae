"""Tests for problem construction, immutability and the model registry."""

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from finsde import (
    MODELS,
    ConfigurationError,
    ModelConfig,
    SDEProblem,
    black_scholes_problem,
    extended_ornstein_uhlenbeck_problem,
    generalized_black_scholes_problem,
    geometric_brownian_motion_problem,
    heston_problem,
    make_problem,
    mf_state_problem,
    ornstein_uhlenbeck_problem,
)
from finsde import models


HESTON_ARGS = dict(mu=0.05, kappa=2.0, theta=0.04, sigma=0.3, rho=-0.7,
                   u0=[100.0, 0.04], tspan=(0.0, 1.0))


class TestConstruction:
    @pytest.mark.parametrize("tspan", [(0.0, 0.0), (1.0, 0.5), (float("nan"), 1.0)])
    def test_bad_tspan(self, tspan):
        with pytest.raises(ConfigurationError):
            geometric_brownian_motion_problem(mu=0.1, sigma=0.2, u0=1.0, tspan=tspan)

    def test_tspan_not_a_pair(self):
        with pytest.raises(ConfigurationError, match="pair"):
            ornstein_uhlenbeck_problem(a=1.0, r=0.0, sigma=0.1, u0=0.0, tspan=(0.0, 1.0, 2.0))

    @pytest.mark.parametrize("rho", [1.5, -1.01])
    def test_correlation_out_of_range(self, rho):
        with pytest.raises(ConfigurationError, match=r"\[-1, 1\]"):
            heston_problem(**{**HESTON_ARGS, "rho": rho})

    def test_heston_needs_two_dimensional_state(self):
        with pytest.raises(ConfigurationError, match="dimension 1"):
            heston_problem(**{**HESTON_ARGS, "u0": 100.0})

    def test_one_dimensional_model_rejects_vector_state(self):
        with pytest.raises(ConfigurationError, match="dimension"):
            ornstein_uhlenbeck_problem(a=1.0, r=0.0, sigma=0.1, u0=[0.0, 1.0], tspan=(0.0, 1.0))

    def test_negative_initial_variance(self):
        with pytest.raises(ConfigurationError, match="variance"):
            heston_problem(**{**HESTON_ARGS, "u0": [100.0, -0.01]})

    @pytest.mark.parametrize("missing", ["mu", "sigma", "u0", "tspan"])
    def test_missing_parameter(self, missing):
        args = dict(mu=0.1, sigma=0.2, u0=1.0, tspan=(0.0, 1.0))
        args[missing] = None
        with pytest.raises(ConfigurationError, match="Missing"):
            geometric_brownian_motion_problem(**args)

    def test_negative_constant_volatility(self):
        with pytest.raises(ConfigurationError, match="non-negative"):
            ornstein_uhlenbeck_problem(a=1.0, r=0.0, sigma=-0.1, u0=0.0, tspan=(0.0, 1.0))

    def test_constant_only_parameter_rejects_callable(self):
        with pytest.raises(ConfigurationError, match="constant"):
            geometric_brownian_motion_problem(mu=lambda t: 0.1, sigma=0.2, u0=1.0, tspan=(0.0, 1.0))

    def test_unknown_variance_policy(self):
        with pytest.raises(ConfigurationError, match="variance policy"):
            ModelConfig(variance_policy="absorb")

    def test_feller_violation_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="finsde.models"):
            heston_problem(**{**HESTON_ARGS, "kappa": 0.5, "sigma": 1.0})
        assert "Feller" in caplog.text

    def test_infinite_horizon_allowed(self):
        prob = mf_state_problem(a=0.1, sigma=0.2, u0=0.0, tspan=(0.0, float("inf")))
        assert prob.t1 == float("inf")


class TestDescriptor:
    @pytest.mark.parametrize(
        "build, dim, noise_dim, has_analytic",
        [
            (lambda: black_scholes_problem(0.05, 0.2, 0.2, 0.0, (0.0, 1.0)), 1, 1, False),
            (lambda: generalized_black_scholes_problem(0.05, 0.01, 0.2, 0.2, 0.0, (0.0, 1.0)), 1, 1, False),
            (lambda: geometric_brownian_motion_problem(0.1, 0.2, 1.0, (0.0, 1.0)), 1, 1, True),
            (lambda: ornstein_uhlenbeck_problem(1.0, 0.5, 0.3, 2.0, (0.0, 1.0)), 1, 1, True),
            (lambda: extended_ornstein_uhlenbeck_problem(1.0, 0.5, 0.3, 2.0, (0.0, 1.0)), 1, 1, True),
            (lambda: mf_state_problem(0.5, 0.2, 0.0, (0.0, 1.0)), 1, 1, False),
            (lambda: heston_problem(**HESTON_ARGS), 2, 2, False),
        ],
    )
    def test_dimensions(self, build, dim, noise_dim, has_analytic):
        prob = build()
        assert isinstance(prob, SDEProblem)
        assert prob.dim == dim
        assert prob.noise_dim == noise_dim
        assert prob.u0.shape == (dim,)
        assert prob.has_analytic is has_analytic

    def test_heston_correlation(self, heston):
        np.testing.assert_allclose(heston.correlation, [[1.0, -0.7], [-0.7, 1.0]])
        assert heston.params["rho"].value == -0.7

    def test_uncorrelated_models_have_no_correlation(self, gbm):
        assert gbm.correlation is None
        np.testing.assert_allclose(gbm.diffusion_matrix(0.0, np.array([2.0])), [[0.4]])

    def test_time_grid(self, gbm):
        np.testing.assert_allclose(gbm.time_grid(4), [0.0, 0.25, 0.5, 0.75, 1.0])

    def test_no_analytic_solution(self, heston):
        with pytest.raises(NotImplementedError):
            heston.analytic(1.0, 0.0)
        with pytest.raises(NotImplementedError):
            heston.analytic_path(np.array([0.0, 1.0]), np.zeros(2))


class TestImmutability:
    def test_frozen_fields(self, gbm):
        with pytest.raises(dataclasses.FrozenInstanceError):
            gbm.tspan = (0.0, 2.0)

    def test_u0_read_only(self, heston):
        with pytest.raises(ValueError):
            heston.u0[0] = 1.0

    def test_correlation_read_only(self, heston):
        with pytest.raises(ValueError):
            heston.correlation[0, 1] = 0.0

    def test_params_read_only(self, gbm):
        with pytest.raises(TypeError):
            gbm.params["mu"] = 0.5

    def test_constant_parameter_frozen(self, gbm):
        with pytest.raises(AttributeError, match="immutable"):
            gbm.params["mu"]._value = 5.0
        with pytest.raises(AttributeError):
            gbm.params["sigma"].nonnegative = False
        with pytest.raises(AttributeError):
            del gbm.params["mu"].name
        np.testing.assert_allclose(gbm.drift(0.0, 1.0), 0.1)

    def test_callable_parameter_frozen(self):
        prob = mf_state_problem(0.0, lambda t: 0.2, 1.0, (0.0, 1.0))
        with pytest.raises(AttributeError, match="immutable"):
            prob.params["sigma"].func = lambda t: 9.0
        with pytest.raises(AttributeError):
            prob.params["sigma"].takes_state = True
        np.testing.assert_allclose(prob.diffusion(0.0, 1.0), 0.2)

    def test_caller_array_is_copied(self):
        u0 = np.array([100.0, 0.04])
        prob = heston_problem(**{**HESTON_ARGS, "u0": u0})
        u0[0] = 1.0
        assert prob.u0[0] == 100.0

    def test_remake_builds_new_problem(self, gbm):
        other = gbm.remake(sigma=0.3)
        assert other is not gbm
        assert other.params["sigma"].value == 0.3
        assert gbm.params["sigma"].value == 0.2

    def test_remake_revalidates(self, gbm):
        with pytest.raises(ConfigurationError):
            gbm.remake(tspan=(1.0, 1.0))

    def test_remake_unknown_argument(self, gbm):
        with pytest.raises(ConfigurationError, match="Unknown"):
            gbm.remake(kappa=1.0)

    def test_concurrent_evaluation(self, heston):
        states = np.column_stack([np.linspace(80, 120, 64), np.linspace(0.01, 0.09, 64)])
        expected = [heston.diffusion(0.5, x) for x in states]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda x: heston.diffusion(0.5, x), states))
        for got, want in zip(results, expected):
            np.testing.assert_array_equal(got, want)


class TestRegistry:
    def test_all_models_registered(self):
        assert set(MODELS) == {
            "black_scholes",
            "generalized_black_scholes",
            "geometric_brownian_motion",
            "ornstein_uhlenbeck",
            "extended_ornstein_uhlenbeck",
            "mf_state",
            "heston",
        }

    def test_make_problem(self):
        prob = make_problem("ornstein_uhlenbeck", a=1.0, r=0.0, sigma=0.1, u0=0.5, tspan=(0.0, 1.0))
        assert prob.model == "ornstein_uhlenbeck"

    def test_unknown_model(self):
        with pytest.raises(ConfigurationError, match="Unknown model"):
            make_problem("cir", u0=0.04, tspan=(0.0, 1.0))

    def test_register_contributed_model(self, monkeypatch):
        monkeypatch.setattr(models, "MODELS", dict(models.MODELS))

        @models.register_model("brownian_motion")
        def brownian_motion_problem(sigma, u0, tspan, config=None):
            return SDEProblem(
                model="brownian_motion", dim=1, noise_dim=1,
                drift_fn=lambda t, x, p: np.zeros_like(np.asarray(x, dtype=float)),
                diffusion_fn=lambda t, x, p: np.full_like(np.asarray(x, dtype=float), p["sigma"](t)),
                params={"sigma": models.as_constant(sigma, "sigma", nonnegative=True)},
                u0=u0, tspan=tspan,
            )

        prob = models.make_problem("brownian_motion", sigma=0.4, u0=0.0, tspan=(0.0, 1.0))
        assert float(prob.diffusion(0.0, 1.0)) == pytest.approx(0.4)

    def test_duplicate_registration(self):
        with pytest.raises(ValueError, match="already registered"):
            models.register_model("heston")(lambda **kw: None)
