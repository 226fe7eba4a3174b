"""
Module defining the main window of the DRO fit viewer.

The `MainWindow` owns the current `SelectionState` and replaces it whenever a
control changes. Every view is then redrawn from the new snapshot through the
pure resolvers in `core.maps` and `core.curves`; the window itself holds no
derived data beyond what is currently displayed.
"""
import logging

import numpy as np
import pyqtgraph as pg
from PyQt5.QtWidgets import (
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QGridLayout,
    QPushButton,
    QLabel,
    QFileDialog,
    QTextEdit,
    QGroupBox,
    QFormLayout,
    QComboBox,
    QListWidget,
    QAbstractItemView,
    QSlider,
    QSpinBox,
)
from PyQt5.QtCore import Qt

from ..core import io
from ..core import maps
from ..core import reporting
from ..core.curves import compose_curves
from ..core.errors import EmptyDistributionError
from ..core.selection import FIGURE_SIZE_RANGE, SelectionState
from ..utils.validators import slider_bounds
from .widgets import BestModelView, MapView, ResidualPanel, model_color

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """
    Main application window for comparing model fits on a DRO.

    Layout: selection controls on the left; parameter map and fitted curves in
    the middle; RSS panel, best-model map and log console on the right.

    Attributes:
        dataset (Dataset): Loaded fit results (never modified).
        registry (ModelRegistry): Model parameter names, evaluators and canonical order.
        selection (SelectionState): Current analyst choices.
        current_parameter_map (np.ndarray | None): Masked map currently displayed.
        best_model_map (np.ndarray): Lowest-RSS category map, computed once.
    """
    def __init__(self, dataset, registry, selection: SelectionState = None):
        super().__init__()
        self.setWindowTitle("DRO Fit Viewer")
        self.setGeometry(100, 100, 1500, 900)

        pg.setConfigOption('background', 'w')
        pg.setConfigOption('foreground', 'k')

        self.dataset = dataset
        self.registry = registry
        self.canonical_models = tuple(m for m in registry.canonical_order if m in dataset.models)
        self.selection = selection or SelectionState.default(dataset, registry)
        self.selection.validate(dataset, registry)
        self.current_parameter_map = None
        # The best-model and RSS views always compare every model, whatever the selection.
        self.best_model_map = maps.resolve_best_model_map(dataset, self.canonical_models)

        self.central_widget = QWidget()
        self.setCentralWidget(self.central_widget)
        self.main_layout = QHBoxLayout(self.central_widget)

        self._create_selection_section()
        self._create_views_section()
        self._create_comparison_section()

        self._sync_controls_to_selection()
        self._connect_signals()

        self.update_residual_views()
        self.refresh_views()

    # --- UI construction ---
    def _create_selection_section(self):
        """Model list, parameter combo box, voxel sliders, figure size and export buttons."""
        self.selection_group = QGroupBox("Selection")
        layout = QVBoxLayout(self.selection_group)

        layout.addWidget(QLabel("Models (first selected is mapped):"))
        self.model_list = QListWidget(); self.model_list.setSelectionMode(QAbstractItemView.MultiSelection)
        for model in self.canonical_models:
            self.model_list.addItem(model)
            self.model_list.item(self.model_list.count() - 1).setToolTip(self.registry.get(model).description)
        layout.addWidget(self.model_list)

        form = QFormLayout()
        self.parameter_combo = QComboBox(); form.addRow("Parameter:", self.parameter_combo)

        nx, ny = self.dataset.spatial_shape
        self.x_slider = self._make_voxel_slider(nx); self.x_label = QLabel()
        self.y_slider = self._make_voxel_slider(ny); self.y_label = QLabel()
        x_row = QHBoxLayout(); x_row.addWidget(self.x_slider, 1); x_row.addWidget(self.x_label)
        y_row = QHBoxLayout(); y_row.addWidget(self.y_slider, 1); y_row.addWidget(self.y_label)
        form.addRow("x:", x_row)
        form.addRow("y:", y_row)

        self.width_spin = QSpinBox(); self.width_spin.setRange(*FIGURE_SIZE_RANGE); self.width_spin.setSingleStep(50)
        self.height_spin = QSpinBox(); self.height_spin.setRange(*FIGURE_SIZE_RANGE); self.height_spin.setSingleStep(50)
        form.addRow("Figure width:", self.width_spin)
        form.addRow("Figure height:", self.height_spin)
        layout.addLayout(form)

        self.export_parameter_button = QPushButton("Export Parameter Map (NIfTI)")
        self.export_best_button = QPushButton("Export Best-Model Map (NIfTI)")
        self.export_report_button = QPushButton("Save Model Comparison (CSV)")
        for button in (self.export_parameter_button, self.export_best_button, self.export_report_button):
            layout.addWidget(button)
        layout.addStretch(1)
        self.main_layout.addWidget(self.selection_group, stretch=1)

    def _make_voxel_slider(self, dim: int) -> QSlider:
        lo, hi = slider_bounds(dim)
        slider = QSlider(Qt.Horizontal)
        slider.setRange(lo, hi - 1)  # QSlider bounds are inclusive
        return slider

    def _create_views_section(self):
        """Parameter map view and the observed/fitted curve plot."""
        views_group = QGroupBox("Fits")
        layout = QVBoxLayout(views_group)
        self.parameter_view = MapView()
        layout.addWidget(self.parameter_view)
        self.voxel_label = QLabel()
        layout.addWidget(self.voxel_label)
        self.curve_plot = pg.PlotWidget()
        self.curve_plot.setLabel('bottom', 'Time [min]'); self.curve_plot.setLabel('left', 'Concentration [mM]')
        self.curve_plot.showGrid(x=True, y=True, alpha=0.5)
        self.curve_legend = self.curve_plot.addLegend(offset=(-10, -10))
        layout.addWidget(self.curve_plot)
        layout.addStretch(1)
        self.main_layout.addWidget(views_group, stretch=2)

    def _create_comparison_section(self):
        """RSS panel, best-model map, comparison summary and log console."""
        comparison_group = QGroupBox("Residual Sum of Squares")
        layout = QGridLayout(comparison_group)
        self.residual_panel = ResidualPanel()
        self.best_model_view = BestModelView()
        self.summary_text = QTextEdit(); self.summary_text.setReadOnly(True)
        self.log_console = QTextEdit(); self.log_console.setReadOnly(True)
        layout.addWidget(self.residual_panel, 0, 0)
        layout.addWidget(self.best_model_view, 1, 0)
        layout.addWidget(self.summary_text, 2, 0)
        layout.addWidget(self.log_console, 3, 0)
        self.main_layout.addWidget(comparison_group, stretch=2)

    def _connect_signals(self):
        """Connects control signals to the handlers that replace the selection."""
        self.model_list.itemSelectionChanged.connect(self.handle_models_changed)
        self.parameter_combo.currentTextChanged.connect(self.handle_parameter_changed)
        self.x_slider.valueChanged.connect(self.handle_voxel_changed)
        self.y_slider.valueChanged.connect(self.handle_voxel_changed)
        self.width_spin.valueChanged.connect(self.handle_figure_size_changed)
        self.height_spin.valueChanged.connect(self.handle_figure_size_changed)
        self.export_parameter_button.clicked.connect(self.export_parameter_map)
        self.export_best_button.clicked.connect(self.export_best_model_map)
        self.export_report_button.clicked.connect(self.save_model_comparison)

    def _sync_controls_to_selection(self):
        """Sets every control to the current selection without triggering handlers."""
        widgets = (self.model_list, self.parameter_combo, self.x_slider, self.y_slider,
                   self.width_spin, self.height_spin)
        for widget in widgets:
            widget.blockSignals(True)

        for row in range(self.model_list.count()):
            item = self.model_list.item(row)
            item.setSelected(item.text() in self.selection.models)
        self.parameter_combo.clear()
        self.parameter_combo.addItems(self.registry.parameter_names(self.selection.primary_model))
        self.parameter_combo.setCurrentText(self.selection.parameter)
        self.x_slider.setValue(self.selection.x); self.y_slider.setValue(self.selection.y)
        self.width_spin.setValue(self.selection.width); self.height_spin.setValue(self.selection.height)

        for widget in widgets:
            widget.blockSignals(False)
        self.x_label.setText(str(self.selection.x)); self.y_label.setText(str(self.selection.y))

    # --- Selection handlers ---
    def _replace_selection(self, new_selection: SelectionState):
        self.selection = new_selection
        logger.debug("Selection changed: %s", new_selection)
        self._sync_controls_to_selection()
        self.refresh_views()

    def handle_models_changed(self):
        # List order is the canonical order, so the primary model is the first selected in that order.
        selected = [self.model_list.item(row).text() for row in range(self.model_list.count())
                    if self.model_list.item(row).isSelected()]
        if not selected:
            self.log_console.append("At least one model must be selected; keeping the previous selection.")
            self._sync_controls_to_selection()
            return
        self._replace_selection(self.selection.with_models(selected, self.registry))

    def handle_parameter_changed(self, parameter: str):
        if parameter:
            self._replace_selection(self.selection.with_parameter(parameter))

    def handle_voxel_changed(self, _value: int):
        self._replace_selection(self.selection.with_voxel(self.x_slider.value(), self.y_slider.value()))

    def handle_figure_size_changed(self, _value: int):
        self._replace_selection(self.selection.with_figure_size(self.width_spin.value(), self.height_spin.value()))

    # --- Rendering ---
    def refresh_views(self):
        """Redraws the selection-dependent views from the current snapshot."""
        for view in (self.parameter_view, self.curve_plot):
            view.setFixedSize(self.selection.width, self.selection.height)
        self.update_parameter_view()
        self.update_curve_plot()

    def update_parameter_view(self):
        s = self.selection
        try:
            resolved = maps.resolve_parameter_map(self.dataset, s.primary_model, s.parameter, s.voxel)
        except EmptyDistributionError:
            self.current_parameter_map = None
            self.parameter_view.show_message(f"{s.primary_model}: {s.parameter} (no valid fits)")
            self.log_console.append(f"No valid fits for {s.primary_model}: {s.parameter}.")
            return
        self.current_parameter_map = resolved.image
        self.parameter_view.show_map(resolved.image, resolved.bounds, resolved.title)

    def update_curve_plot(self):
        s = self.selection
        self.voxel_label.setText(f"Fitted values at voxel (x = {s.x}, y = {s.y})")
        self.curve_plot.clear()
        self.curve_legend.clear()

        bundle = compose_curves(self.dataset, self.registry, s.models, s.voxel)
        self.curve_plot.plot(bundle.time, bundle.observed, pen=None, symbol='o', symbolSize=6,
                             symbolBrush=pg.mkBrush('k'))
        for model, curve in bundle.curves():
            color = model_color(self.canonical_models.index(model))
            self.curve_plot.plot(bundle.time, curve, pen=pg.mkPen(color, width=3.5), name=model)
        for model in bundle.skipped:
            self.log_console.append(f"{model}: fit unavailable at this voxel")
        for model, error in bundle.failures.items():
            self.log_console.append(f"{model}: curve could not be evaluated ({error})")

        if bundle.y_limits is not None and bundle.y_limits[0] != bundle.y_limits[1]:
            self.curve_plot.setYRange(*bundle.y_limits, padding=0)
        else:
            self.curve_plot.enableAutoRange(axis='y')
        self.curve_plot.setXRange(bundle.time[0], bundle.time[-1])

    def update_residual_views(self):
        """Draws the selection-independent views: RSS panel, best-model map and summary."""
        self.residual_panel.show_maps(maps.resolve_residual_maps(self.dataset, self.canonical_models))
        self.best_model_view.show_categories(self.best_model_map, self.canonical_models)
        rows = reporting.model_comparison_rows(self.dataset, self.canonical_models)
        self.summary_text.setPlainText(reporting.format_model_comparison(rows))

    # --- Export ---
    def export_parameter_map(self):
        if self.current_parameter_map is None:
            self.log_console.append("No parameter map to export.")
            return
        s = self.selection
        source = np.asarray(self.dataset.parameter_map(s.primary_model, s.parameter))
        self._save_map(source, f"{s.primary_model}_{s.parameter}.nii.gz")

    def export_best_model_map(self):
        self._save_map(self.best_model_map, "best_model.nii.gz")

    def _save_map(self, data_map: np.ndarray, default_name: str):
        filepath, _ = QFileDialog.getSaveFileName(self, "Save Map", default_name, "NIfTI (*.nii *.nii.gz)")
        if not filepath:
            return
        try:
            io.save_nifti_map(data_map, filepath)
            self.log_console.append(f"Map saved to {filepath}")
        except (IOError, ValueError) as e:
            logger.error("Map export failed: %s", e)
            self.log_console.append(f"Error saving map: {e}")

    def save_model_comparison(self):
        filepath, _ = QFileDialog.getSaveFileName(self, "Save Model Comparison", "model_comparison.csv", "CSV (*.csv)")
        if not filepath:
            return
        try:
            reporting.save_model_comparison_csv(
                reporting.model_comparison_rows(self.dataset, self.canonical_models), filepath)
            self.log_console.append(f"Model comparison saved to {filepath}")
        except (IOError, ValueError) as e:
            logger.error("Model comparison export failed: %s", e)
            self.log_console.append(f"Error saving model comparison: {e}")
