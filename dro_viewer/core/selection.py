"""
The analyst's current choices, as an immutable snapshot.

The UI layer owns a single `SelectionState` and replaces it wholesale
whenever a control changes (`with_models`, `with_parameter`, `with_voxel`,
`with_figure_size`). Resolvers only ever read it, so every render sees a
consistent set of choices.
"""
from dataclasses import dataclass, replace

from .errors import OutOfRangeError, UnknownModelError, UnknownParameterError
from ..utils.validators import slider_bounds

DEFAULT_FIGURE_SIZE = (600, 400)
FIGURE_SIZE_RANGE = (100, 3000)
"""Inclusive pixel range accepted for figure width and height."""


@dataclass(frozen=True)
class SelectionState:
    """
    Attributes:
        models (tuple[str, ...]): Selected models; the first one is the primary
                                  model shown in the parameter-map view.
        parameter (str): Parameter of the primary model to map.
        x (int): Voxel coordinate along axis 0, in [3, nx - 3).
        y (int): Voxel coordinate along axis 1, in [3, ny - 3).
        width (int): Figure width in pixels.
        height (int): Figure height in pixels.
    """
    models: tuple
    parameter: str
    x: int
    y: int
    width: int = DEFAULT_FIGURE_SIZE[0]
    height: int = DEFAULT_FIGURE_SIZE[1]

    @property
    def primary_model(self) -> str:
        return self.models[0]

    @property
    def voxel(self) -> tuple[int, int]:
        return self.x, self.y

    @classmethod
    def default(cls, dataset, registry) -> "SelectionState":
        """
        Middle voxel, every dataset model in canonical order, last parameter
        of the first model and the default figure size.

        Raises:
            OutOfRangeError: If the image is too small to leave room for the crosshair.
            UnknownModelError: If the dataset holds none of the registry models.
        """
        models = tuple(m for m in registry.canonical_order if m in dataset.models)
        if not models:
            raise UnknownModelError(", ".join(dataset.models) or "<none>")
        nx, ny = dataset.spatial_shape
        return cls(
            models=models,
            parameter=registry.parameter_names(models[0])[-1],
            x=_middle(nx),
            y=_middle(ny),
        )

    # --- Whole-field replacements ---
    def with_models(self, models, registry) -> "SelectionState":
        """
        New state with a different model selection.

        The parameter is kept when the new primary model defines it and is
        otherwise reset to the primary model's last parameter.
        """
        models = tuple(models)
        if not models:
            raise UnknownModelError("<empty selection>")
        names = registry.parameter_names(models[0])
        parameter = self.parameter if self.parameter in names else names[-1]
        return replace(self, models=models, parameter=parameter)

    def with_parameter(self, parameter: str) -> "SelectionState":
        return replace(self, parameter=parameter)

    def with_voxel(self, x: int, y: int) -> "SelectionState":
        return replace(self, x=int(x), y=int(y))

    def with_figure_size(self, width: int, height: int) -> "SelectionState":
        return replace(self, width=int(width), height=int(height))

    def validate(self, dataset, registry) -> None:
        """
        Checks the selection against the dataset and registry.

        Raises:
            UnknownModelError: If a selected model is unknown to either side.
            UnknownParameterError: If the parameter is not one of the primary model's.
            OutOfRangeError: If the voxel is closer than 3 cells to an edge.
            ValueError: If the figure size is outside FIGURE_SIZE_RANGE.
        """
        if not self.models:
            raise UnknownModelError("<empty selection>")
        for model in self.models:
            registry.get(model)
            if model not in dataset.models:
                raise UnknownModelError(model)
        if self.parameter not in registry.parameter_names(self.primary_model):
            raise UnknownParameterError(self.primary_model, self.parameter)
        for name, value, dim in (("x", self.x, dataset.spatial_shape[0]),
                                 ("y", self.y, dataset.spatial_shape[1])):
            lo, hi = slider_bounds(dim)
            if not lo <= value < hi:
                raise OutOfRangeError(f"{name}={value} is outside the selectable range [{lo}, {hi}).")
        lo, hi = FIGURE_SIZE_RANGE
        if not (lo <= self.width <= hi and lo <= self.height <= hi):
            raise ValueError(
                f"Figure size must be within {lo}-{hi} pixels, got {self.width}x{self.height}."
            )


def _middle(dim: int) -> int:
    lo, hi = slider_bounds(dim)
    if lo >= hi:
        raise OutOfRangeError(f"Axis of length {dim} leaves no selectable voxels.")
    return min(max(dim // 2, lo), hi - 1)
