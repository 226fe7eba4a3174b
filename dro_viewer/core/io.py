import logging
import os

import nibabel as nib
import numpy as np
import scipy.io

from .dataset import Dataset
from .errors import DatasetLoadError

"""
This module provides the input/output boundary of the DRO viewer.

The functions handle:
- Loading a DRO fit file (MATLAB .mat) into a validated `Dataset`. The file
  holds the time grid `t`, the arterial input function `ca`, the concentration
  volume `ct` (x, y, t), and per-model structs `fits` (parameter -> 2D map)
  and `rss` (2D map).
- Writing a `Dataset` back to the same layout, used by the synthetic DRO demo.
- Saving a derived 2D/3D map (parameter map, RSS map, best-model map) as a
  NIfTI file for inspection in other tools.
"""

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("t", "ca", "ct", "fits", "rss")


def load_dro_file(filepath: str, registry=None) -> Dataset:
    """
    Loads a DRO fit file into a `Dataset`.

    Args:
        filepath (str): Path to the .mat file.
        registry (ModelRegistry, optional): If given, every registry model found
                                            in the file must provide all of its
                                            parameter maps.

    Returns:
        Dataset: The validated dataset.

    Raises:
        FileNotFoundError: If the file does not exist.
        DatasetLoadError: If the file cannot be read, lacks a required key, or
                          its arrays are inconsistent (ShapeMismatchError).
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"DRO file not found at: {filepath}")
    try:
        contents = scipy.io.loadmat(filepath, simplify_cells=True)
    except Exception as e:
        raise DatasetLoadError(f"Invalid DRO file: {filepath}. Error: {e}") from e

    missing = [key for key in REQUIRED_KEYS if key not in contents]
    if missing:
        raise DatasetLoadError(f"DRO file {filepath} is missing keys: {', '.join(missing)}")

    fits, rss = contents["fits"], contents["rss"]
    if not isinstance(fits, dict) or not isinstance(rss, dict):
        raise DatasetLoadError("'fits' and 'rss' must be structs keyed by model name.")
    for model_name, model_fits in fits.items():
        if not isinstance(model_fits, dict):
            raise DatasetLoadError(f"'fits/{model_name}' must be a struct keyed by parameter name.")

    dataset = Dataset(contents["t"], contents["ca"], contents["ct"], fits, rss)
    if registry is not None:
        dataset.check_against(registry)
    logger.info("Loaded DRO file %s: shape=%s, models=%s", filepath, dataset.shape, list(dataset.models))
    return dataset


def save_dro_file(dataset: Dataset, filepath: str) -> None:
    """
    Writes `dataset` to a .mat file readable by `load_dro_file`.

    Raises:
        IOError: If the file cannot be written.
    """
    contents = {
        "t": np.asarray(dataset.time),
        "ca": np.asarray(dataset.aif),
        "ct": np.asarray(dataset.concentration),
        "fits": {m: {p: np.asarray(dataset.parameter_map(m, p)) for p in dataset.parameter_names(m)}
                 for m in dataset.models},
        "rss": {m: np.asarray(dataset.residual_map(m)) for m in dataset.models},
    }
    try:
        scipy.io.savemat(filepath, contents)
    except Exception as e:
        raise IOError(f"Could not save DRO file to {filepath}. Error: {e}") from e
    logger.info("DRO file saved to: %s", filepath)


def save_nifti_map(data_map: np.ndarray, output_filepath: str, affine: np.ndarray = None) -> None:
    """
    Saves a 2D or 3D map as a float32 NIfTI file.

    2D maps are stored as a single-slice volume (x, y, 1).

    Args:
        data_map (np.ndarray): Map to save (e.g. a parameter or best-model map).
        output_filepath (str): Destination path (.nii or .nii.gz).
        affine (np.ndarray, optional): 4x4 voxel-to-world transform.
                                       Defaults to the identity.

    Raises:
        ValueError: If `data_map` is not 2D or 3D, or `affine` is not 4x4.
        IOError: If the file cannot be written.
    """
    data_map = np.asarray(data_map)
    if data_map.ndim == 2:
        data_map = data_map[:, :, np.newaxis]
    if data_map.ndim != 3:
        raise ValueError(f"data_map must be a 2D or 3D array. Got {data_map.ndim} dimensions.")
    affine = np.eye(4) if affine is None else np.asarray(affine, dtype=float)
    if affine.shape != (4, 4):
        raise ValueError(f"affine must be 4x4, got {affine.shape}.")

    image = nib.Nifti1Image(data_map.astype(np.float32), affine)
    image.header.set_data_dtype(np.float32)
    try:
        nib.save(image, output_filepath)
    except Exception as e:
        raise IOError(f"Could not save NIfTI map to {output_filepath}. Error: {e}") from e
    logger.info("NIfTI map saved to: %s", output_filepath)
