"""Interactive viewer for comparing pharmacokinetic model fits on a Digital Reference Object."""

__version__ = "0.1.0"
