"""Custom pyqtgraph widgets for the DRO viewer.

- `MapView`: a single 2D map with fixed colour levels, row 0 drawn at the top.
- `ResidualPanel`: the fixed grid of per-model RSS maps.
- `BestModelView`: the categorical lowest-RSS map with a colour legend.
"""
import numpy as np
import pyqtgraph as pg

from ..core.maps import UNDEFINED_MODEL

# Colour-blind friendly palette (seaborn "colorblind") shared by curves and categories.
MODEL_COLORS = ["#0173b2", "#de8f05", "#029e73", "#d55e00", "#cc78bc", "#ca9161", "#fbafe4"]
UNDEFINED_COLOR = "#b0b0b0"


def model_color(index: int) -> str:
    return MODEL_COLORS[index % len(MODEL_COLORS)]


class MapView(pg.PlotWidget):
    """Plot widget showing one 2D map as an image with explicit colour levels."""

    def __init__(self, cmap_name: str = 'viridis', parent=None):
        super().__init__(parent=parent)
        self.image_item = pg.ImageItem(axisOrder='row-major')
        self.image_item.setLookupTable(pg.colormap.get(cmap_name).getLookupTable())
        self.addItem(self.image_item)
        self.getViewBox().invertY(True)  # row 0 at the top
        self.getViewBox().setAspectLocked(True)

    def show_map(self, image: np.ndarray, bounds: tuple, title: str = ""):
        self.image_item.setImage(np.asarray(image, dtype=float), levels=bounds, autoLevels=False)
        self.setTitle(title)

    def show_message(self, message: str):
        self.image_item.clear()
        self.setTitle(message)


class ResidualPanel(pg.GraphicsLayoutWidget):
    """Grid of RSS maps, one per model, sharing the same colour range."""

    def __init__(self, columns: int = 2, parent=None):
        super().__init__(parent=parent)
        self.columns = columns

    def show_maps(self, resolved_maps):
        self.clear()
        lut = pg.colormap.get('viridis').getLookupTable()
        for i, resolved in enumerate(resolved_maps):
            plot = self.addPlot(row=i // self.columns, col=i % self.columns, title=resolved.title)
            item = pg.ImageItem(np.asarray(resolved.image, dtype=float), axisOrder='row-major')
            item.setLookupTable(lut)
            item.setLevels(resolved.bounds)
            plot.addItem(item)
            plot.getViewBox().invertY(True)
            plot.getViewBox().setAspectLocked(True)


class BestModelView(pg.GraphicsLayoutWidget):
    """Categorical map of the lowest-RSS model per voxel, with a legend."""

    def __init__(self, parent=None):
        super().__init__(parent=parent)
        self.plot = self.addPlot(title="Lowest RSS")
        self.plot.getViewBox().invertY(True)
        self.plot.getViewBox().setAspectLocked(True)
        self.image_item = pg.ImageItem(axisOrder='row-major')
        self.plot.addItem(self.image_item)
        self.legend = pg.LegendItem(offset=(-10, 10))
        self.legend.setParentItem(self.plot.getViewBox())

    def show_categories(self, best_map: np.ndarray, models):
        # Shift so UNDEFINED_MODEL (-1) maps to LUT entry 0.
        categories = np.asarray(best_map) - UNDEFINED_MODEL
        colors = [UNDEFINED_COLOR] + [model_color(i) for i in range(len(models))]
        lut = np.array([pg.mkColor(c).getRgb()[:3] for c in colors], dtype=np.ubyte)
        self.image_item.setImage(categories.astype(float), levels=(0, len(colors)), autoLevels=False)
        self.image_item.setLookupTable(lut)

        self.legend.clear()
        for color, label in zip(colors, ("undefined",) + tuple(models)):
            swatch = pg.ScatterPlotItem(symbol='s', size=10, brush=pg.mkBrush(color), pen=None)
            self.legend.addItem(swatch, label)
