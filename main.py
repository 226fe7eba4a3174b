"""
Main entry point for the DRO fit viewer GUI.

Loads a DRO fit file (or generates a synthetic one with --demo), creates the
`MainWindow` from `dro_viewer.ui.main_window`, displays it and starts the Qt
event loop.

Example Usage:
python main.py dro.mat
python main.py --demo --debug
"""
import argparse
import logging
import sys

from PyQt5.QtWidgets import QApplication

from dro_viewer.core.errors import DatasetLoadError, OutOfRangeError, UnknownModelError
from dro_viewer.core.io import load_dro_file
from dro_viewer.core.modeling import ModelRegistry
from dro_viewer.core.phantom import make_synthetic_dro
from dro_viewer.core.selection import FIGURE_SIZE_RANGE, SelectionState
from dro_viewer.ui.main_window import MainWindow


def main():
    parser = argparse.ArgumentParser(description="Viewer for pharmacokinetic model fits on a Digital Reference Object")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("data", nargs="?", help="Path to the DRO fit file (.mat).")
    source.add_argument("--demo", action="store_true", help="Show a generated synthetic DRO instead of a file.")
    parser.add_argument("--width", type=int, default=600, help="Initial figure width in pixels. Default is 600.")
    parser.add_argument("--height", type=int, default=400, help="Initial figure height in pixels. Default is 400.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()
    lo, hi = FIGURE_SIZE_RANGE
    for name in ("width", "height"):
        if not lo <= getattr(args, name) <= hi:
            parser.error(f"--{name} must be between {lo} and {hi} pixels.")

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    registry = ModelRegistry.default()
    try:
        dataset = make_synthetic_dro(registry=registry) if args.demo else load_dro_file(args.data, registry)
    except (FileNotFoundError, DatasetLoadError) as e:
        logger.error("Could not load dataset: %s", e)
        sys.exit(1)

    try:
        selection = SelectionState.default(dataset, registry).with_figure_size(args.width, args.height)
        selection.validate(dataset, registry)
    except (OutOfRangeError, UnknownModelError, ValueError) as e:
        logger.error("Dataset cannot be displayed: %s", e)
        sys.exit(1)

    app = QApplication(sys.argv)
    main_win = MainWindow(dataset, registry, selection)
    main_win.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
