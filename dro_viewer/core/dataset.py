"""
In-memory representation of a loaded Digital Reference Object (DRO) study.

A `Dataset` owns the time grid, the arterial input function (AIF), the
measured concentration volume and, for every fitted model, its parameter maps
and residual-sum-of-squares (RSS) map. All arrays are validated once at
construction and stored as read-only copies; a dataset is never partially
built and never mutated afterwards.
"""
import logging

import numpy as np

from .errors import (
    DatasetLoadError,
    ShapeMismatchError,
    UnknownModelError,
    UnknownParameterError,
)
from ..utils.validators import check_spatial_shape, check_voxel_in_bounds

logger = logging.getLogger(__name__)

INVALID = np.nan
"""Sentinel stored in parameter and RSS maps where a fit did not converge."""


def _frozen(array, dtype=float) -> np.ndarray:
    """Returns a read-only float copy of `array`."""
    frozen = np.array(array, dtype=dtype, copy=True)
    frozen.setflags(write=False)
    return frozen


class Dataset:
    """
    Validated, immutable container for DRO fit results.

    Args:
        time (array-like): 1D strictly increasing time grid of length nt (minutes).
        aif (array-like): 1D arterial input function, aligned with `time`.
        concentration (array-like): 3D (x, y, t) measured tissue concentration.
        fits (dict): Mapping model name -> {parameter name -> 2D (x, y) map}.
                     Parameter order is preserved.
        rss (dict): Mapping model name -> 2D (x, y) RSS map.

    Raises:
        ShapeMismatchError: If any array disagrees with the volume's dimensions.
        DatasetLoadError: If a fitted model lacks parameter maps or an RSS map,
                          an RSS map has no fitted model, an RSS map holds
                          negative values, or the time grid is not strictly
                          increasing.
    """

    def __init__(self, time, aif, concentration, fits: dict, rss: dict):
        time = _frozen(time).ravel()
        aif = _frozen(aif).ravel()
        concentration = _frozen(concentration)

        if concentration.ndim != 3:
            raise ShapeMismatchError(
                f"Concentration volume must be 3D (x, y, t), got {concentration.ndim}D."
            )
        nt = concentration.shape[2]
        if time.size != nt:
            raise ShapeMismatchError(f"Time grid has {time.size} points, volume has {nt}.")
        if aif.size != nt:
            raise ShapeMismatchError(f"AIF has {aif.size} points, volume has {nt}.")
        if nt > 1 and not np.all(np.diff(time) > 0):
            raise DatasetLoadError("Time grid must be strictly increasing.")

        spatial_shape = concentration.shape[:2]
        orphaned = [name for name in rss if name not in fits]
        if orphaned:
            raise DatasetLoadError(f"RSS maps without parameter maps for models: {', '.join(orphaned)}")
        parameter_maps = {}
        residual_maps = {}
        for model_name, model_fits in fits.items():
            if not model_fits:
                raise DatasetLoadError(f"Model '{model_name}' has no parameter maps.")
            if model_name not in rss:
                raise DatasetLoadError(f"Model '{model_name}' has no RSS map.")
            parameter_maps[model_name] = {}
            for param_name, param_map in model_fits.items():
                param_map = _frozen(param_map)
                check_spatial_shape(f"fits/{model_name}/{param_name}", param_map, spatial_shape)
                parameter_maps[model_name][param_name] = param_map
            rss_map = _frozen(rss[model_name])
            check_spatial_shape(f"rss/{model_name}", rss_map, spatial_shape)
            if np.any(rss_map < 0):  # NaN compares false
                raise DatasetLoadError(f"RSS map of model '{model_name}' has negative values.")
            residual_maps[model_name] = rss_map

        # Assign only after every check has passed.
        self._time = time
        self._aif = aif
        self._concentration = concentration
        self._parameter_maps = parameter_maps
        self._residual_maps = residual_maps
        logger.debug(
            "Dataset built: shape=%s, models=%s", concentration.shape, list(parameter_maps)
        )

    # --- Shape information ---
    @property
    def shape(self) -> tuple[int, int, int]:
        return self._concentration.shape

    @property
    def spatial_shape(self) -> tuple[int, int]:
        return self._concentration.shape[:2]

    @property
    def n_timepoints(self) -> int:
        return self._concentration.shape[2]

    @property
    def time(self) -> np.ndarray:
        return self._time

    @property
    def aif(self) -> np.ndarray:
        return self._aif

    @property
    def concentration(self) -> np.ndarray:
        return self._concentration

    @property
    def models(self) -> tuple[str, ...]:
        """Fitted model names, in the order they were supplied."""
        return tuple(self._parameter_maps)

    def parameter_names(self, model: str) -> tuple[str, ...]:
        return tuple(self._model_fits(model))

    # --- Accessors ---
    def time_series_at(self, x: int, y: int) -> np.ndarray:
        """
        Measured concentration curve at voxel (x, y).

        Raises:
            OutOfRangeError: If (x, y) is outside the image grid.
        """
        check_voxel_in_bounds(x, y, self.spatial_shape)
        return self._concentration[x, y, :]

    def parameter_map(self, model: str, param: str) -> np.ndarray:
        """
        2D map of fitted `param` values for `model` (read-only).

        Raises:
            UnknownModelError: If the model was not fitted.
            UnknownParameterError: If the model has no such parameter map.
        """
        model_fits = self._model_fits(model)
        if param not in model_fits:
            raise UnknownParameterError(model, param)
        return model_fits[param]

    def residual_map(self, model: str) -> np.ndarray:
        """
        2D RSS map for `model` (read-only).

        Raises:
            UnknownModelError: If the model was not fitted.
        """
        if model not in self._residual_maps:
            raise UnknownModelError(model)
        return self._residual_maps[model]

    def check_against(self, registry) -> None:
        """
        Verifies that every registry model present here has all of its parameter maps.

        Raises:
            DatasetLoadError: If a model is missing a parameter its ModelSpec names.
        """
        for model_name in registry.canonical_order:
            if model_name not in self._parameter_maps:
                continue
            missing = [p for p in registry.get(model_name).parameter_names
                       if p not in self._parameter_maps[model_name]]
            if missing:
                raise DatasetLoadError(
                    f"Model '{model_name}' is missing parameter maps: {', '.join(missing)}"
                )

    def _model_fits(self, model: str) -> dict:
        try:
            return self._parameter_maps[model]
        except KeyError:
            raise UnknownModelError(model) from None
