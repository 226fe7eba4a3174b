import unittest
import subprocess
import os
import tempfile
import shutil
import sys
import nibabel as nib
import numpy as np
import csv
import scipy.io

# Determine project root to construct path to batch_processor.py
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
BATCH_PROCESSOR_SCRIPT_PATH = os.path.join(project_root, "batch_processor.py")
if not os.path.exists(BATCH_PROCESSOR_SCRIPT_PATH):
    raise FileNotFoundError(f"Batch processor script not found at: {BATCH_PROCESSOR_SCRIPT_PATH}")

MODELS = ["exchange", "extendedtofts", "uptake", "tofts"]


class BatchProcessorTestCase(unittest.TestCase):
    def setUp(self):
        self.script_path = BATCH_PROCESSOR_SCRIPT_PATH
        self.test_dir = tempfile.mkdtemp()
        self.out_dir = os.path.join(self.test_dir, "results")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _run_script(self, args_list):
        """Helper to run the batch_processor.py script with given arguments."""
        return subprocess.run(
            [sys.executable, self.script_path] + args_list,
            capture_output=True, text=True, check=False  # check=False to allow non-zero exit codes
        )


class TestBatchProcessorArgs(BatchProcessorTestCase):
    """Tests for command-line argument parsing of batch_processor.py."""

    def test_help_message(self):
        result = self._run_script(["--help"])
        self.assertEqual(result.returncode, 0, "Running with --help should exit with 0.")
        self.assertIn("usage: batch_processor.py", result.stdout.lower())
        for option in ["--data", "--demo", "--demo_shape", "--out_dir", "--export_fits", "--debug"]:
            self.assertIn(option, result.stdout)

    def test_missing_out_dir(self):
        result = self._run_script(["--demo"])
        self.assertEqual(result.returncode, 2, f"Script should fail with argparse error (2). Stderr: {result.stderr}")
        self.assertIn("the following arguments are required: --out_dir", result.stderr.lower())

    def test_missing_data_source(self):
        result = self._run_script(["--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 2)
        self.assertIn("one of the arguments --data --demo is required", result.stderr.lower())

    def test_mutually_exclusive_sources(self):
        result = self._run_script(["--data", "dro.mat", "--demo", "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 2)
        self.assertIn("not allowed with argument", result.stderr)

    def test_invalid_demo_shape(self):
        result = self._run_script(["--demo", "--demo_shape", "8", "8", "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 2)


class TestBatchProcessorRuns(BatchProcessorTestCase):
    """End-to-end runs of batch_processor.py."""

    def test_missing_data_file(self):
        result = self._run_script(["--data", os.path.join(self.test_dir, "missing.mat"), "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 1)
        self.assertIn("Could not load dataset", result.stderr)

    def test_invalid_data_file(self):
        bad_file = os.path.join(self.test_dir, "bad.mat")
        with open(bad_file, 'w') as f:
            f.write("dummy content")
        result = self._run_script(["--data", bad_file, "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 1)

    def test_no_known_models(self):
        data_file = os.path.join(self.test_dir, "patlak_only.mat")
        nt = 4
        scipy.io.savemat(data_file, {
            "t": np.arange(nt, dtype=float), "ca": np.ones(nt), "ct": np.zeros((3, 3, nt)),
            "fits": {"patlak": {"Kt": np.zeros((3, 3))}}, "rss": {"patlak": np.zeros((3, 3))},
        })
        result = self._run_script(["--data", data_file, "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 1)
        self.assertIn("none of the known models", result.stderr)

    def test_demo_exports_maps_and_report(self):
        result = self._run_script(["--demo", "--demo_shape", "8", "8", "15",
                                   "--out_dir", self.out_dir, "--export_fits"])
        self.assertEqual(result.returncode, 0, f"Stderr: {result.stderr}")
        self.assertIn("Model comparison (RSS):", result.stdout)

        best = nib.load(os.path.join(self.out_dir, "best_model.nii.gz")).get_fdata()
        self.assertEqual(best.shape, (8, 8, 1))
        self.assertEqual(best[0, 0, 0], -1)
        self.assertTrue(set(np.unique(best)).issubset({-1, 0, 1, 2, 3}))

        for model in MODELS:
            self.assertTrue(os.path.exists(os.path.join(self.out_dir, f"rss_{model}.nii.gz")))
        self.assertTrue(os.path.exists(os.path.join(self.out_dir, "fit_tofts_Kt.nii.gz")))
        self.assertTrue(os.path.exists(os.path.join(self.out_dir, "fit_exchange_Tp.nii.gz")))

        with open(os.path.join(self.out_dir, "model_comparison.csv"), newline='') as f:
            rows = list(csv.DictReader(f))
        self.assertEqual([row["Model"] for row in rows], MODELS)
        self.assertEqual(sum(int(row["BestCount"]) for row in rows), 8 * 8 - int(np.sum(best == -1)))

    def test_data_file_without_fit_export(self):
        data_file = os.path.join(self.test_dir, "dro.mat")
        nt = 5
        scipy.io.savemat(data_file, {
            "t": np.linspace(0, 4, nt), "ca": np.linspace(1, 0, nt), "ct": np.zeros((4, 4, nt)),
            "fits": {"tofts": {"Kt": np.full((4, 4), 0.1), "ve": np.full((4, 4), 0.2), "vp": np.zeros((4, 4))}},
            "rss": {"tofts": np.full((4, 4), 1e-4)},
        })
        result = self._run_script(["--data", data_file, "--out_dir", self.out_dir])
        self.assertEqual(result.returncode, 0, f"Stderr: {result.stderr}")
        self.assertEqual(sorted(os.listdir(self.out_dir)),
                         ["best_model.nii.gz", "model_comparison.csv", "rss_tofts.nii.gz"])


if __name__ == '__main__':
    unittest.main()
