"""
Synthetic Digital Reference Object (DRO) generator.

Builds a small, fully populated `Dataset` without an upstream fitting run:
tissue curves are simulated with the extended Tofts model from smooth
ground-truth maps (Kt varies along x, ve along y), every registry model is
given parameter maps derived from that ground truth, and each model's RSS
map is computed by evaluating it against the noisy measured curves.
A fraction of voxels can be marked as non-converged (NaN) per model, and the
corner voxel is invalid for every model so the "undefined" best-model
category is always present.

Used by `main.py --demo`, `batch_processor.py --demo` and the test suite.
"""
import logging

import numpy as np

from .aif import PARKER_DEFAULTS, parker_aif
from .dataset import INVALID, Dataset
from .modeling import ModelRegistry, extended_tofts_model, residual_sum_of_squares

logger = logging.getLogger(__name__)


def _ground_truth(nx: int, ny: int) -> dict[str, np.ndarray]:
    Kt, ve = np.meshgrid(np.linspace(0.01, 0.2, nx), np.linspace(0.1, 0.5, ny), indexing='ij')
    vp = np.full((nx, ny), 0.05)
    return {"Kt": Kt, "ve": ve, "vp": vp}


def _model_parameters(model: str, Kt: float, ve: float, vp: float, Fp: float = 1.0) -> dict:
    """Parameters for `model` that approximate the extended Tofts ground truth."""
    if model == "tofts":
        return {"Kt": Kt, "ve": ve, "vp": 0.0}
    if model == "extendedtofts":
        return {"Kt": Kt, "ve": ve, "vp": vp, "kep": Kt / ve}
    if model == "uptake":
        return {"Fp": Fp, "PS": Kt, "vp": vp}
    if model == "exchange":
        return {"Fp": Fp, "PS": Kt, "ve": ve, "vp": vp,
                "T": (vp + ve) / Fp, "Te": ve / Kt, "Tp": vp / (Fp + Kt)}
    raise ValueError(f"No synthetic parameters defined for model '{model}'.")


def make_synthetic_dro(nx: int = 16, ny: int = 16, nt: int = 40, duration: float = 5.0,
                       noise_std: float = 0.002, invalid_fraction: float = 0.05,
                       seed: int = 0, registry: ModelRegistry = None) -> Dataset:
    """
    Generates a synthetic DRO dataset.

    Args:
        nx, ny (int): Spatial dimensions.
        nt (int): Number of time points, uniformly spaced over [0, duration].
        duration (float): Acquisition length in minutes.
        noise_std (float): Standard deviation of Gaussian noise added to the
                           simulated tissue curves.
        invalid_fraction (float): Fraction of voxels marked non-converged per model.
        seed (int): Seed for the random generator, for reproducible datasets.
        registry (ModelRegistry, optional): Models to populate. Defaults to the four DRO models.

    Returns:
        Dataset: The synthetic dataset.
    """
    registry = registry or ModelRegistry.default()
    rng = np.random.default_rng(seed)

    time = np.linspace(0.0, duration, nt)
    aif = parker_aif(time, **PARKER_DEFAULTS, t_arrival=0.5)
    truth = _ground_truth(nx, ny)

    concentration = np.empty((nx, ny, nt))
    for x in range(nx):
        for y in range(ny):
            params = {name: truth[name][x, y] for name in ("Kt", "ve", "vp")}
            concentration[x, y] = extended_tofts_model(time, aif, params)
    concentration += rng.normal(0.0, noise_std, size=concentration.shape)

    fits, rss = {}, {}
    for spec in registry:
        maps = {name: np.full((nx, ny), INVALID) for name in spec.parameter_names}
        rss_map = np.full((nx, ny), INVALID)
        non_converged = rng.random((nx, ny)) < invalid_fraction
        non_converged[0, 0] = True

        for x in range(nx):
            for y in range(ny):
                if non_converged[x, y]:
                    continue
                params = _model_parameters(spec.name, truth["Kt"][x, y], truth["ve"][x, y], truth["vp"][x, y])
                try:
                    fitted = spec.evaluate(time, aif, params)
                except (ValueError, RuntimeError) as e:
                    logger.debug("%s: synthetic voxel (%d, %d) left invalid: %s", spec.name, x, y, e)
                    continue
                for name in spec.parameter_names:
                    maps[name][x, y] = params[name]
                rss_map[x, y] = residual_sum_of_squares(concentration[x, y], fitted)
        fits[spec.name] = maps
        rss[spec.name] = rss_map

    logger.info("Synthetic DRO generated: %dx%dx%d, models=%s", nx, ny, nt, list(registry.canonical_order))
    return Dataset(time, aif, concentration, fits, rss)
