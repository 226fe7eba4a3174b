"""
Curve composer: observed vs. fitted concentration curves at one voxel.

For every selected model the stored parameters are read at the voxel and
passed to the model's evaluator. A model whose first parameter is invalid
(NaN) is skipped, since its fit did not converge there. A model whose
evaluator fails is dropped with a `ModelEvaluationError` recorded in the
bundle. Neither case stops the other models from being drawn.
"""
import logging
from dataclasses import dataclass, field

import numpy as np

from .errors import ModelEvaluationError

logger = logging.getLogger(__name__)

Y_LIMIT_SCALE = 1.1


@dataclass
class CurveBundle:
    """
    Everything the time-series view needs for one voxel.

    Attributes:
        time (np.ndarray): Time grid (minutes).
        observed (np.ndarray): Measured concentration at the voxel.
        fitted (dict): Model name -> reconstructed curve, or None when skipped
                       or failed. Keys follow the selection order.
        skipped (tuple[str, ...]): Models whose fit is invalid at the voxel.
        failures (dict): Model name -> ModelEvaluationError.
        y_limits (tuple[float, float] | None): Suggested y-range, 1.1 x the
                       observed extrema; fitted curves may exceed it.
    """
    time: np.ndarray
    observed: np.ndarray
    fitted: dict = field(default_factory=dict)
    skipped: tuple = ()
    failures: dict = field(default_factory=dict)
    y_limits: tuple | None = None

    def is_skipped(self, model: str) -> bool:
        return model in self.skipped

    def curves(self):
        """(model, curve) pairs that can be drawn, in selection order."""
        return [(m, c) for m, c in self.fitted.items() if c is not None]


def parameter_record(dataset, registry, model: str, voxel: tuple[int, int]) -> dict:
    """Fitted parameters of `model` at `voxel`, keyed in ModelSpec order."""
    x, y = voxel
    return {name: float(dataset.parameter_map(model, name)[x, y])
            for name in registry.parameter_names(model)}


def fit_curve(dataset, registry, model: str, parameters: dict) -> np.ndarray:
    """
    Evaluates `model` with `parameters` on the dataset's time grid and AIF.

    Raises:
        ModelEvaluationError: If the evaluator raises or returns a curve of the
                              wrong length.
        UnknownModelError: If the model is not registered.
    """
    spec = registry.get(model)
    try:
        curve = np.asarray(spec.evaluate(dataset.time, dataset.aif, parameters), dtype=float)
    except Exception as e:
        raise ModelEvaluationError(model, f"evaluator failed: {e}") from e
    if curve.shape != (dataset.n_timepoints,):
        raise ModelEvaluationError(
            model, f"evaluator returned shape {curve.shape}, expected ({dataset.n_timepoints},)"
        )
    return curve


def observed_y_limits(observed: np.ndarray, scale: float = Y_LIMIT_SCALE) -> tuple[float, float] | None:
    """`scale` times the (min, max) of the finite observed values, or None if there are none."""
    finite = observed[np.isfinite(observed)]
    if finite.size == 0:
        return None
    return scale * float(finite.min()), scale * float(finite.max())


def compose_curves(dataset, registry, models, voxel: tuple[int, int]) -> CurveBundle:
    """
    Observed curve plus one fitted curve per selected model at `voxel`.

    Args:
        dataset (Dataset): Loaded DRO fits.
        registry (ModelRegistry): Model parameter names and evaluators.
        models (Sequence[str]): Selected models, in selection order.
        voxel (tuple[int, int]): Voxel (x, y).

    Returns:
        CurveBundle: Curves, skipped models and per-model evaluation failures.

    Raises:
        OutOfRangeError: If the voxel is outside the image grid.
        UnknownModelError, UnknownParameterError: If a model or map is missing.
    """
    x, y = voxel
    observed = dataset.time_series_at(x, y)
    bundle = CurveBundle(time=dataset.time, observed=observed,
                         y_limits=observed_y_limits(observed))

    skipped = []
    for model in models:
        parameters = parameter_record(dataset, registry, model, voxel)
        first_value = next(iter(parameters.values()))
        if np.isnan(first_value):
            logger.debug("%s: fit unavailable at voxel (%d, %d)", model, x, y)
            bundle.fitted[model] = None
            skipped.append(model)
            continue
        try:
            bundle.fitted[model] = fit_curve(dataset, registry, model, parameters)
        except ModelEvaluationError as e:
            logger.warning("Dropping curve at voxel (%d, %d): %s", x, y, e)
            bundle.fitted[model] = None
            bundle.failures[model] = e
    bundle.skipped = tuple(skipped)
    return bundle
