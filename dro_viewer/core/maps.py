"""
Map resolvers: turn a dataset and a selection into the 2D arrays to draw.

- `resolve_parameter_map`: one fitted parameter of one model, with robust
  colour bounds and a crosshair marking the selected voxel.
- `resolve_best_model_map`: per-voxel index of the model with the lowest RSS.
- `resolve_residual_maps`: the fixed panel of RSS maps.

All functions are pure: stored maps are copied before any modification.
Arrays keep the (x, y) storage orientation; flipping for display is left to
the renderer.
"""
from typing import NamedTuple

import numpy as np

from .errors import EmptyDistributionError
from ..utils.validators import clipped_indices, finite_values

PARAMETER_PERCENTILE = 90
RSS_COLOR_MAX = 0.0005
UNDEFINED_MODEL = -1
"""Best-model category for voxels where every model's fit is invalid."""


class ResolvedMap(NamedTuple):
    image: np.ndarray
    bounds: tuple
    title: str = ""


def color_bounds(data_map: np.ndarray, percentile: float = PARAMETER_PERCENTILE) -> tuple[float, float]:
    """
    Colour range (0, p-th percentile) over the finite entries of `data_map`.

    NaN (invalid fits) and infinities are excluded before the percentile is
    taken, so they never shift the bound.

    Raises:
        EmptyDistributionError: If the map holds no finite values.
    """
    values = finite_values(data_map)
    if values.size == 0:
        raise EmptyDistributionError("No valid fits: the map contains no finite values.")
    return 0.0, float(np.percentile(values, percentile))


def apply_crosshair(data_map: np.ndarray, x: int, y: int, gap: int = 2, length: int = 2) -> np.ndarray:
    """
    Returns a copy of `data_map` with an open cross zeroed around (x, y).

    With the defaults the zeroed cells are rows x-3..x-2 and x+2..x+3 in column y,
    and columns y-3..y-2 and y+2..y+3 in row x; the centre and its direct
    neighbours are left untouched. Segments falling outside the array are
    skipped cell by cell.
    """
    masked = np.array(data_map, copy=True)
    nx, ny = masked.shape
    outer = gap + length

    if 0 <= y < ny:
        for i in (*clipped_indices(x - outer + 1, x - gap + 1, nx),
                  *clipped_indices(x + gap, x + outer, nx)):
            masked[i, y] = 0
    if 0 <= x < nx:
        for j in (*clipped_indices(y - outer + 1, y - gap + 1, ny),
                  *clipped_indices(y + gap, y + outer, ny)):
            masked[x, j] = 0
    return masked


def resolve_parameter_map(dataset, model: str, param: str, voxel: tuple[int, int]) -> ResolvedMap:
    """
    Parameter map for the parameter-map view.

    Args:
        dataset (Dataset): Loaded DRO fits.
        model (str): Primary model name.
        param (str): Parameter of `model` to display.
        voxel (tuple[int, int]): Selected voxel (x, y), marked by the crosshair.

    Returns:
        ResolvedMap: (masked copy of the map, (0, 90th percentile), "model: param").

    Raises:
        UnknownModelError, UnknownParameterError: If the map does not exist.
        EmptyDistributionError: If every fit in the map is invalid.
    """
    source = dataset.parameter_map(model, param)
    bounds = color_bounds(source)
    x, y = voxel
    return ResolvedMap(apply_crosshair(source, x, y), bounds, f"{model}: {param}")


def resolve_best_model_map(dataset, models_in_fixed_order) -> np.ndarray:
    """
    Per-voxel index of the model with the lowest RSS.

    Models are stacked in the given canonical order, not the analyst's
    selection order. Invalid RSS values count as +inf as long as one model is
    valid at the voxel; voxels where all models are invalid get
    `UNDEFINED_MODEL`. Ties go to the earlier model.

    Returns:
        np.ndarray: 2D int array of model indices or `UNDEFINED_MODEL`.
    """
    models = tuple(models_in_fixed_order)
    if not models:
        raise ValueError("At least one model is required to compare residuals.")
    stacked = np.stack([dataset.residual_map(m) for m in models]).astype(float)
    invalid = np.isnan(stacked)
    # argmin returns the first minimum, which implements the tie-break.
    best = np.argmin(np.where(invalid, np.inf, stacked), axis=0).astype(int)
    best[invalid.all(axis=0)] = UNDEFINED_MODEL
    return best


def resolve_residual_maps(dataset, models, color_max: float = RSS_COLOR_MAX) -> list[ResolvedMap]:
    """RSS maps for the fixed residual panel, one per model, with a shared colour range."""
    return [ResolvedMap(np.array(dataset.residual_map(m), copy=True), (0.0, color_max), m)
            for m in models]
