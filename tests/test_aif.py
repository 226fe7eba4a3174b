import unittest
import numpy as np

from dro_viewer.core.aif import PARKER_DEFAULTS, parker_aif


class TestAIF(unittest.TestCase):
    def test_parker_aif_default_params(self):
        time_points = np.array([0, 1, 2, 3, 4, 5])  # minutes
        aif = parker_aif(time_points)
        self.assertEqual(aif.shape, time_points.shape)
        self.assertAlmostEqual(aif[0], PARKER_DEFAULTS["A1"] + PARKER_DEFAULTS["A2"])
        self.assertTrue(np.all(np.diff(aif) < 0))

    def test_parker_aif_custom_params(self):
        time_points = np.array([0.0, 1.0, 2.0])
        aif = parker_aif(time_points, D_scaler=2.0, A1=0.5, m1=0.1, A2=0.6, m2=0.2)
        expected = 2.0 * (0.5 * np.exp(-0.1 * time_points) + 0.6 * np.exp(-0.2 * time_points))
        np.testing.assert_allclose(aif, expected)

    def test_parker_aif_zero_before_arrival(self):
        time_points = np.linspace(0, 2, 9)
        aif = parker_aif(time_points, **PARKER_DEFAULTS, t_arrival=0.5)
        np.testing.assert_array_equal(aif[time_points < 0.5], 0.0)
        self.assertAlmostEqual(aif[2], PARKER_DEFAULTS["A1"] + PARKER_DEFAULTS["A2"])

    def test_parker_aif_negative_params(self):
        time_points = np.array([0, 1, 2])
        with self.assertRaises(ValueError):
            parker_aif(time_points, A1=-0.5)
        with self.assertRaises(ValueError):
            parker_aif(time_points, t_arrival=-1.0)

    def test_parker_aif_invalid_time_input(self):
        time_points = [0, 1, 2]  # Should be numpy array
        with self.assertRaises(TypeError):
            parker_aif(time_points)


if __name__ == '__main__':
    unittest.main()
