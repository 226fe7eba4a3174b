import csv
import logging

import numpy as np

from .maps import UNDEFINED_MODEL, resolve_best_model_map

"""
This module provides model-comparison reports for DRO fit results.

It includes utilities to:
- Calculate descriptive statistics (N, N_valid, mean, median, ...) of a map,
  optionally restricted to a mask, ignoring invalid (NaN) fits.
- Count, for each model, the voxels where it achieves the lowest RSS.
- Combine both into one row per model, format the rows as text and save
  them to a CSV file.
"""

logger = logging.getLogger(__name__)

STAT_KEYS = ["N", "N_valid", "Mean", "StdDev", "Median", "Min", "Max"]
UNDEFINED_LABEL = "undefined"


def calculate_map_statistics(data_map: np.ndarray, mask: np.ndarray = None) -> dict:
    """
    Calculates basic statistics of a 2D map, ignoring NaN entries.

    Args:
        data_map (np.ndarray): 2D map (e.g. an RSS or parameter map).
        mask (np.ndarray, optional): 2D boolean array of the same shape; only
                                     True pixels are included. Defaults to all pixels.

    Returns:
        dict: {"N", "N_valid", "Mean", "StdDev", "Median", "Min", "Max"}. When no
              pixel is valid, the statistics other than the counts are NaN.

    Raises:
        ValueError: If the inputs are not 2D or their shapes differ.
    """
    if not isinstance(data_map, np.ndarray) or data_map.ndim != 2:
        raise ValueError("data_map must be a 2D NumPy array.")
    if mask is None:
        mask = np.ones(data_map.shape, dtype=bool)
    if not isinstance(mask, np.ndarray) or mask.shape != data_map.shape:
        raise ValueError("mask must be a NumPy array with the same shape as data_map.")

    values = data_map[mask.astype(bool)].astype(float)
    valid = values[~np.isnan(values)]
    if valid.size == 0:
        return {"N": int(values.size), "N_valid": 0, "Mean": np.nan, "StdDev": np.nan,
                "Median": np.nan, "Min": np.nan, "Max": np.nan}
    return {
        "N": int(values.size),
        "N_valid": int(valid.size),
        "Mean": float(np.mean(valid)),
        "StdDev": float(np.std(valid)),
        "Median": float(np.median(valid)),
        "Min": float(np.min(valid)),
        "Max": float(np.max(valid)),
    }


def count_best_model_voxels(best_map: np.ndarray, models) -> dict:
    """
    Number of voxels won by each model in a best-model map.

    Returns:
        dict: model name -> count, in the given order, plus UNDEFINED_LABEL ->
              number of voxels where no model produced a valid fit.
    """
    counts = {model: int(np.sum(best_map == index)) for index, model in enumerate(models)}
    counts[UNDEFINED_LABEL] = int(np.sum(best_map == UNDEFINED_MODEL))
    return counts


def model_comparison_rows(dataset, models) -> list[dict]:
    """
    One row per model: RSS statistics plus the number of voxels where the
    model has the lowest RSS among `models` (given in canonical order).
    """
    models = tuple(models)
    best_counts = count_best_model_voxels(resolve_best_model_map(dataset, models), models)
    rows = []
    for model in models:
        row = {"Model": model}
        row.update(calculate_map_statistics(np.asarray(dataset.residual_map(model))))
        row["BestCount"] = best_counts[model]
        rows.append(row)
    return rows


def format_model_comparison(rows: list[dict]) -> str:
    """Formats comparison rows as a human-readable, multi-line string."""
    if not rows:
        return "No models to compare."
    lines = ["Model comparison (RSS):"]
    for row in rows:
        if row.get("N_valid", 0) == 0:
            lines.append(f"  {row['Model']}: no valid fits")
            continue
        lines.append(
            f"  {row['Model']}: N_valid={row['N_valid']}/{row['N']}, "
            f"Median={row['Median']:.3g}, Mean={row['Mean']:.3g}, best at {row['BestCount']} voxels"
        )
    return "\n".join(lines)


def save_model_comparison_csv(rows: list[dict], filepath: str) -> None:
    """
    Saves model comparison rows to a CSV file.

    Columns are Model, the statistics in STAT_KEYS order, and BestCount.

    Raises:
        ValueError: If `rows` is empty.
        IOError: If an error occurs during file writing.
    """
    if not rows:
        raise ValueError("No comparison rows provided to save.")
    fieldnames = ["Model"] + STAT_KEYS + ["BestCount"]
    try:
        with open(filepath, 'w', newline='') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
            writer.writeheader()
            for row in rows:
                writer.writerow({key: row.get(key, np.nan) for key in fieldnames})
    except IOError as e:
        raise IOError(f"Error writing model comparison to CSV file {filepath}: {e}") from e
    logger.info("Model comparison saved to: %s", filepath)
