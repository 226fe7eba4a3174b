"""Data validation utilities for the DRO viewer.

Small helpers shared by the dataset, the selection state and the map
resolvers: coordinate bounds checks, shape checks for loaded arrays and
filtering of invalid (non-finite) values.
"""
import numpy as np

from ..core.errors import OutOfRangeError, ShapeMismatchError

CROSSHAIR_MARGIN = 3
"""Minimum distance, in voxels, between a selectable voxel and the image edge."""


def check_voxel_in_bounds(x: int, y: int, spatial_shape: tuple[int, int]) -> None:
    """
    Checks that voxel (x, y) lies inside a grid of the given spatial shape.

    Raises:
        OutOfRangeError: If either coordinate is outside [0, dim).
    """
    nx, ny = spatial_shape
    if not (0 <= x < nx and 0 <= y < ny):
        raise OutOfRangeError(f"Voxel ({x}, {y}) is outside the image grid {nx}x{ny}.")


def check_spatial_shape(name: str, array: np.ndarray, expected_shape: tuple[int, int]) -> None:
    """
    Checks that `array` is 2D with the expected (x, y) shape.

    Args:
        name (str): Label used in the error message (e.g. "fits/tofts/Kt").
        array (np.ndarray): Array to check.
        expected_shape (tuple[int, int]): Spatial shape of the concentration volume.

    Raises:
        ShapeMismatchError: If the array is not 2D or its shape differs.
    """
    if array.ndim != 2 or array.shape != tuple(expected_shape):
        raise ShapeMismatchError(
            f"'{name}' has shape {array.shape}, expected spatial shape {tuple(expected_shape)}."
        )


def finite_values(array: np.ndarray) -> np.ndarray:
    """Returns the finite entries of `array` as a flat array (NaN and +/-inf dropped)."""
    values = np.asarray(array, dtype=float).ravel()
    return values[np.isfinite(values)]


def slider_bounds(dim: int, margin: int = CROSSHAIR_MARGIN) -> tuple[int, int]:
    """
    Half-open range [lo, hi) of selectable coordinates along an axis of length `dim`.

    The range is empty (lo >= hi) for axes shorter than 2 * margin + 1.
    """
    return margin, dim - margin


def clipped_indices(start: int, stop: int, size: int) -> range:
    """
    Indices in [start, stop) that fall inside [0, size).

    Negative starts are clipped to 0 instead of wrapping around.
    """
    return range(max(start, 0), min(stop, size))
