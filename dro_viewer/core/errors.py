"""
Exception types raised by the DRO viewer core.

Load-time errors (`DatasetLoadError`, `ShapeMismatchError`) abort dataset
construction. Render-time errors (`EmptyDistributionError`,
`ModelEvaluationError`) are scoped to a single view or model so the caller
can keep drawing everything else. Lookup errors (`OutOfRangeError`,
`UnknownModelError`, `UnknownParameterError`) mean a caller passed a value
that a valid selection can never produce.
"""


class DROViewerError(Exception):
    """Base class for all errors raised by the viewer core."""


class DatasetLoadError(DROViewerError, ValueError):
    """The source file or arrays cannot form a consistent dataset."""


class ShapeMismatchError(DatasetLoadError):
    """Arrays that must share dimensions do not."""


class OutOfRangeError(DROViewerError, IndexError):
    """Voxel coordinates fall outside the image grid."""


class UnknownModelError(DROViewerError, LookupError):
    """A model name is not present in the dataset or registry."""

    def __init__(self, model_name: str):
        super().__init__(f"Unknown model: '{model_name}'")
        self.model_name = model_name


class UnknownParameterError(DROViewerError, LookupError):
    """A parameter name is not defined for the given model."""

    def __init__(self, model_name: str, parameter_name: str):
        super().__init__(f"Model '{model_name}' has no parameter '{parameter_name}'")
        self.model_name = model_name
        self.parameter_name = parameter_name


class EmptyDistributionError(DROViewerError, ValueError):
    """A map holds no finite values to derive colour bounds from."""


class ModelEvaluationError(DROViewerError, RuntimeError):
    """A model evaluator failed to produce a curve for one voxel."""

    def __init__(self, model_name: str, message: str):
        super().__init__(f"{model_name}: {message}")
        self.model_name = model_name
