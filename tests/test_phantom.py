import unittest
import numpy as np

from dro_viewer.core.curves import compose_curves
from dro_viewer.core.maps import UNDEFINED_MODEL, resolve_best_model_map, resolve_parameter_map
from dro_viewer.core.modeling import ModelRegistry
from dro_viewer.core.phantom import _model_parameters, make_synthetic_dro
from dro_viewer.core.selection import SelectionState


class TestSyntheticDRO(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.registry = ModelRegistry.default()
        cls.dataset = make_synthetic_dro(nx=8, ny=8, nt=15, invalid_fraction=0.0, registry=cls.registry)

    def test_shape_and_models(self):
        self.assertEqual(self.dataset.shape, (8, 8, 15))
        self.assertEqual(self.dataset.models, self.registry.canonical_order)
        for spec in self.registry:
            self.assertEqual(self.dataset.parameter_names(spec.name), spec.parameter_names)
        self.dataset.check_against(self.registry)  # Should not raise

    def test_corner_voxel_is_undefined(self):
        best = resolve_best_model_map(self.dataset, self.registry.canonical_order)
        self.assertEqual(best[0, 0], UNDEFINED_MODEL)
        self.assertTrue(np.all(best[1:, :] >= 0))
        for model in self.dataset.models:
            self.assertTrue(np.isnan(self.dataset.residual_map(model)[0, 0]))

    def test_generating_model_fits_best(self):
        ext = self.dataset.residual_map("extendedtofts")
        tofts = self.dataset.residual_map("tofts")
        self.assertLess(np.nanmean(ext), 2e-4)
        self.assertGreater(np.nanmedian(tofts), np.nanmedian(ext))

    def test_reproducible_with_seed(self):
        first = make_synthetic_dro(nx=7, ny=7, nt=10, seed=3)
        second = make_synthetic_dro(nx=7, ny=7, nt=10, seed=3)
        other = make_synthetic_dro(nx=7, ny=7, nt=10, seed=4)
        np.testing.assert_array_equal(first.concentration, second.concentration)
        np.testing.assert_array_equal(first.residual_map("uptake"), second.residual_map("uptake"))
        self.assertFalse(np.array_equal(first.concentration, other.concentration))

    def test_invalid_fraction_marks_non_converged_voxels(self):
        dataset = make_synthetic_dro(nx=10, ny=10, nt=10, invalid_fraction=0.5, seed=1)
        kt = dataset.parameter_map("tofts", "Kt")
        rss = dataset.residual_map("tofts")
        self.assertGreater(np.sum(np.isnan(kt)), 10)
        np.testing.assert_array_equal(np.isnan(kt), np.isnan(rss))

    def test_unknown_model_parameters(self):
        with self.assertRaises(ValueError):
            _model_parameters("patlak", 0.1, 0.2, 0.05)

    def test_default_selection_renders(self):
        selection = SelectionState.default(self.dataset, self.registry)
        selection.validate(self.dataset, self.registry)
        image, bounds, _ = resolve_parameter_map(self.dataset, selection.primary_model,
                                                 selection.parameter, selection.voxel)
        self.assertEqual(image.shape, (8, 8))
        self.assertGreater(bounds[1], 0.0)

        bundle = compose_curves(self.dataset, self.registry, selection.models, selection.voxel)
        self.assertEqual(bundle.skipped, ())
        self.assertEqual(bundle.failures, {})
        for model, curve in bundle.curves():
            with self.subTest(model=model):
                self.assertEqual(curve.shape, (15,))


if __name__ == '__main__':
    unittest.main()
