import unittest
import numpy as np
from scipy.integrate import solve_ivp
from scipy.interpolate import interp1d

from dro_viewer.core.errors import UnknownModelError
from dro_viewer.core.modeling import (
    DRO_MODELS,
    ModelRegistry,
    ModelSpec,
    _convolve_with_aif,
    _ode_system_2cxm,
    exchange_model,
    extended_tofts_model,
    residual_sum_of_squares,
    tofts_model,
    uptake_model,
)


class TestModeling(unittest.TestCase):
    def setUp(self):
        # Fine, uniform grid so the convolution models agree with the ODE solution.
        self.time = np.linspace(0, 5, 601)
        self.dt = self.time[1] - self.time[0]
        # Smooth gamma-variate bolus peaking near 1 mM at t = 0.5 min.
        self.aif = 30.0 * self.time ** 2 * np.exp(-self.time / 0.25)

        self.Ktrans_true = 0.2
        self.ve_true = 0.3
        self.vp_true = 0.1
        self.PS_true = 0.15
        self.Fp_true = 0.6

    # --- Tofts family ---
    def test_tofts_matches_extended_tofts_without_vp(self):
        tofts = tofts_model(self.time, self.aif, {"Kt": self.Ktrans_true, "ve": self.ve_true})
        extended = extended_tofts_model(self.time, self.aif,
                                        {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": 0.0})
        np.testing.assert_allclose(tofts, extended)

    def test_tofts_vp_adds_plasma_term(self):
        base = tofts_model(self.time, self.aif, {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": 0.0})
        with_vp = tofts_model(self.time, self.aif,
                              {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": self.vp_true})
        np.testing.assert_allclose(with_vp - base, self.vp_true * self.aif, atol=1e-12)

    def test_extended_tofts_explicit_kep_matches_derived(self):
        params = {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": self.vp_true}
        derived = extended_tofts_model(self.time, self.aif, params)
        explicit = extended_tofts_model(self.time, self.aif,
                                        dict(params, kep=self.Ktrans_true / self.ve_true))
        np.testing.assert_allclose(derived, explicit)

    def test_extended_tofts_nan_kep_falls_back_to_ve(self):
        params = {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": self.vp_true}
        np.testing.assert_allclose(extended_tofts_model(self.time, self.aif, dict(params, kep=np.nan)),
                                   extended_tofts_model(self.time, self.aif, params))

    def test_tofts_ktrans_zero(self):
        Ct_tissue = tofts_model(self.time, self.aif, {"Kt": 0.0, "ve": self.ve_true})
        np.testing.assert_array_almost_equal(Ct_tissue, 0.0)

    def test_tofts_ve_zero_raises(self):
        with self.assertRaises(ValueError):
            tofts_model(self.time, self.aif, {"Kt": self.Ktrans_true, "ve": 0.0})

    def test_convolution_of_unit_impulse(self):
        impulse = np.zeros_like(self.time)
        impulse[0] = 1.0 / self.dt
        kernel = np.exp(-self.time)
        np.testing.assert_allclose(_convolve_with_aif(self.time, impulse, kernel), kernel)

    # --- Uptake and exchange ---
    def test_uptake_and_exchange_agree_without_exchange(self):
        # With PS = 0 neither model fills the EES: both reduce to a single plasma compartment.
        params = {"Fp": self.Fp_true, "PS": 0.0, "vp": self.vp_true}
        uptake = uptake_model(self.time, self.aif, params)
        exchange = exchange_model(self.time, self.aif, dict(params, ve=self.ve_true))
        np.testing.assert_allclose(uptake, exchange, atol=0.01)

    def test_exchange_ps_zero_matches_plasma_ode(self):
        aif_interp = interp1d(self.time, self.aif, kind='linear', bounds_error=False, fill_value=0.0)

        def plasma_comp_ode(t, Cp_t_val, Fp, vp):
            return (Fp / vp) * (aif_interp(t) - Cp_t_val)

        sol_plasma = solve_ivp(plasma_comp_ode, [self.time[0], self.time[-1]], [0.0], t_eval=self.time,
                               args=(self.Fp_true, self.vp_true), method='RK45', max_step=self.dt)
        expected_Ct = self.vp_true * sol_plasma.y[0]
        Ct_tissue = exchange_model(self.time, self.aif,
                                   {"Fp": self.Fp_true, "PS": 0.0, "vp": self.vp_true, "ve": self.ve_true})
        np.testing.assert_allclose(Ct_tissue, expected_Ct, atol=1e-3)

    def test_exchange_ignores_derived_parameters(self):
        params = {"Fp": self.Fp_true, "PS": self.PS_true, "vp": self.vp_true, "ve": self.ve_true}
        with_derived = dict(params, T=np.nan, Te=123.0, Tp=-1.0)
        np.testing.assert_allclose(exchange_model(self.time, self.aif, params),
                                   exchange_model(self.time, self.aif, with_derived))

    def test_exchange_output_shape_and_start(self):
        Ct_tissue = exchange_model(self.time, self.aif,
                                   {"Fp": self.Fp_true, "PS": self.PS_true, "vp": self.vp_true, "ve": self.ve_true})
        self.assertEqual(Ct_tissue.shape, self.time.shape)
        self.assertAlmostEqual(Ct_tissue[0], 0.0)
        self.assertGreater(Ct_tissue.max(), 0.0)

    def test_ode_system_2cxm(self):
        y_sample = [0.05, 0.1]
        Fp, PS, ve, vp = self.Fp_true, self.PS_true, self.ve_true, self.vp_true
        mock_aif_val = 0.5
        dCp_t_dt, dCe_dt = _ode_system_2cxm(1.0, y_sample, Fp, PS, vp, ve, lambda t: mock_aif_val)
        expected_dCp_t_dt = (Fp / vp) * (mock_aif_val - 0.05) - (PS / vp) * (0.05 - 0.1)
        expected_dCe_dt = (PS / ve) * (0.05 - 0.1)
        self.assertAlmostEqual(dCp_t_dt, expected_dCp_t_dt)
        self.assertAlmostEqual(dCe_dt, expected_dCe_dt)

    def test_uptake_zero_flow_raises(self):
        with self.assertRaises(ValueError):
            uptake_model(self.time, self.aif, {"Fp": 0.0, "PS": 0.0, "vp": self.vp_true})

    def test_negative_params_raise(self):
        cases = [
            (tofts_model, {"Kt": -0.1, "ve": self.ve_true}),
            (extended_tofts_model, {"Kt": self.Ktrans_true, "ve": self.ve_true, "vp": -0.1}),
            (uptake_model, {"Fp": self.Fp_true, "PS": -0.1, "vp": self.vp_true}),
            (exchange_model, {"Fp": -0.1, "PS": self.PS_true, "vp": self.vp_true, "ve": self.ve_true}),
        ]
        for model, params in cases:
            with self.subTest(model=model.__name__):
                with self.assertRaises(ValueError):
                    model(self.time, self.aif, params)

    def test_nan_params_raise(self):
        with self.assertRaises(ValueError):
            tofts_model(self.time, self.aif, {"Kt": np.nan, "ve": self.ve_true})

    # --- RSS ---
    def test_residual_sum_of_squares(self):
        self.assertAlmostEqual(residual_sum_of_squares(np.array([1.0, 2.0, 3.0]), np.array([1.0, 1.0, 1.0])), 5.0)
        self.assertEqual(residual_sum_of_squares(self.aif, self.aif), 0.0)
        self.assertTrue(np.isnan(residual_sum_of_squares(np.array([1.0, np.nan]), np.zeros(2))))


def zero_evaluator(time, aif, parameters):
    return np.zeros_like(time)


class TestModelRegistry(unittest.TestCase):
    def test_default_canonical_order(self):
        registry = ModelRegistry.default()
        self.assertEqual(registry.canonical_order, ("exchange", "extendedtofts", "uptake", "tofts"))
        self.assertEqual(len(registry), 4)
        self.assertEqual([spec.name for spec in registry], list(registry.canonical_order))

    def test_parameter_names(self):
        registry = ModelRegistry()
        self.assertEqual(registry.parameter_names("exchange"), ("Fp", "PS", "ve", "vp", "T", "Te", "Tp"))
        self.assertEqual(registry.parameter_names("extendedtofts"), ("Kt", "ve", "vp", "kep"))
        self.assertEqual(registry.parameter_names("uptake"), ("Fp", "PS", "vp"))
        self.assertEqual(registry.parameter_names("tofts"), ("Kt", "ve", "vp"))

    def test_unknown_model(self):
        registry = ModelRegistry.default()
        self.assertNotIn("patlak", registry)
        with self.assertRaises(UnknownModelError) as ctx:
            registry.get("patlak")
        self.assertEqual(ctx.exception.model_name, "patlak")

    def test_duplicate_names_rejected(self):
        with self.assertRaises(ValueError):
            ModelRegistry([ModelSpec("a", ("p",), zero_evaluator), ModelSpec("a", ("q",), zero_evaluator)])

    def test_model_spec_requires_parameters(self):
        with self.assertRaises(ValueError):
            ModelSpec("empty", (), zero_evaluator)
        self.assertEqual(ModelSpec("m", ["p", "q"], zero_evaluator).parameter_names, ("p", "q"))

    def test_custom_order_is_canonical(self):
        registry = ModelRegistry(reversed(DRO_MODELS))
        self.assertEqual(registry.canonical_order, ("tofts", "uptake", "extendedtofts", "exchange"))

    def test_every_model_returns_one_value_per_time_point(self):
        time = np.linspace(0, 3, 31)
        aif = np.exp(-time)
        params = {"Fp": 0.6, "PS": 0.15, "ve": 0.3, "vp": 0.1, "T": 0.7, "Te": 2.0, "Tp": 0.13,
                  "Kt": 0.2, "kep": 0.2 / 0.3}
        for spec in ModelRegistry.default():
            with self.subTest(model=spec.name):
                curve = spec.evaluate(time, aif, {p: params[p] for p in spec.parameter_names})
                self.assertEqual(curve.shape, time.shape)
                self.assertTrue(np.all(np.isfinite(curve)))


if __name__ == '__main__':
    unittest.main()
