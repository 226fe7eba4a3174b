"""
Command-line batch exporter for DRO model-comparison results.

This script loads one DRO fit file (or generates a synthetic DRO), then
writes the selection-independent results to an output directory without
starting the GUI:

-   `best_model.nii.gz`: per-voxel index of the lowest-RSS model in canonical
    order (-1 where no model produced a valid fit).
-   `rss_<model>.nii.gz`: the RSS map of every model.
-   `model_comparison.csv`: RSS statistics and best-model voxel counts per model.
-   Optionally (`--export_fits`), `fit_<model>_<parameter>.nii.gz` for every
    stored parameter map.

Example Usage:
python batch_processor.py --data /path/to/dro.mat --out_dir /path/to/results
python batch_processor.py --demo --demo_shape 8 8 20 --out_dir /tmp/dro_demo --export_fits
"""
import argparse
import logging
import os
import sys

from dro_viewer.core import io
from dro_viewer.core import maps
from dro_viewer.core import reporting
from dro_viewer.core.errors import DatasetLoadError
from dro_viewer.core.modeling import ModelRegistry
from dro_viewer.core.phantom import make_synthetic_dro

logger = logging.getLogger("batch_processor")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DRO Fit Viewer Batch Exporter")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--data", help="Path to the DRO fit file (.mat).")
    source.add_argument("--demo", action="store_true", help="Use a generated synthetic DRO.")
    parser.add_argument("--demo_shape", type=int, nargs=3, default=[16, 16, 40], metavar=("NX", "NY", "NT"),
                        help="Dimensions of the synthetic DRO. Default is 16 16 40.")
    parser.add_argument("--out_dir", required=True, help="Output directory for the exported maps and report.")
    parser.add_argument("--export_fits", action="store_true", help="Also export every stored parameter map.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser


def main():
    """
    Parses arguments, loads the dataset and writes maps and the comparison report.
    Exits with status 1 on load or write errors.
    """
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        os.makedirs(args.out_dir, exist_ok=True)
    except OSError as e:
        logger.error("Could not create output directory '%s': %s", args.out_dir, e)
        sys.exit(1)

    # --- 1. Load dataset ---
    registry = ModelRegistry.default()
    try:
        if args.demo:
            nx, ny, nt = args.demo_shape
            dataset = make_synthetic_dro(nx=nx, ny=ny, nt=nt, registry=registry)
        else:
            dataset = io.load_dro_file(args.data, registry)
    except (FileNotFoundError, DatasetLoadError) as e:
        logger.error("Could not load dataset: %s", e)
        sys.exit(1)

    models = tuple(m for m in registry.canonical_order if m in dataset.models)
    if not models:
        logger.error("Dataset contains none of the known models: %s", ", ".join(registry.canonical_order))
        sys.exit(1)

    # --- 2. Export maps and report ---
    try:
        io.save_nifti_map(maps.resolve_best_model_map(dataset, models),
                          os.path.join(args.out_dir, "best_model.nii.gz"))
        for resolved in maps.resolve_residual_maps(dataset, models):
            io.save_nifti_map(resolved.image, os.path.join(args.out_dir, f"rss_{resolved.title}.nii.gz"))
        if args.export_fits:
            for model in models:
                for param in dataset.parameter_names(model):
                    io.save_nifti_map(dataset.parameter_map(model, param),
                                      os.path.join(args.out_dir, f"fit_{model}_{param}.nii.gz"))

        rows = reporting.model_comparison_rows(dataset, models)
        reporting.save_model_comparison_csv(rows, os.path.join(args.out_dir, "model_comparison.csv"))
        print(reporting.format_model_comparison(rows))
    except (IOError, ValueError) as e:
        logger.error("Error writing results: %s", e)
        sys.exit(1)

    logger.info("Batch export completed: %s", args.out_dir)


if __name__ == "__main__":
    main()
