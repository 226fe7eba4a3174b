import numpy as np

"""
Population-averaged Arterial Input Function (AIF) used to build synthetic
Digital Reference Objects.
"""

PARKER_DEFAULTS = {"D_scaler": 1.0, "A1": 0.809, "m1": 0.171, "A2": 0.330, "m2": 2.05}
"""Bi-exponential Parker parameters; time in minutes, A1/A2 in mM*min, m1/m2 in min^-1."""


def parker_aif(time_points: np.ndarray, D_scaler: float = 1.0, A1: float = 0.809, m1: float = 0.171,
               A2: float = 0.330, m2: float = 2.05, t_arrival: float = 0.0) -> np.ndarray:
    """
    Bi-exponential Parker-style AIF.
    Cp(t) = D_scaler * (A1 * exp(-m1 * (t - t_arrival)) + A2 * exp(-m2 * (t - t_arrival))) for t >= t_arrival,
    and 0 before the bolus arrives.

    Args:
        time_points (np.ndarray): Time points in minutes.
        D_scaler (float, optional): Overall scaling factor. Defaults to 1.0.
        A1, m1, A2, m2 (float, optional): Amplitudes and decay rates of the two exponentials.
        t_arrival (float, optional): Bolus arrival time in minutes. Defaults to 0.0.

    Returns:
        np.ndarray: AIF concentration values at the given time points.

    Raises:
        TypeError: If time_points is not a NumPy array.
        ValueError: If any of the AIF parameters are negative.
    """
    if not isinstance(time_points, np.ndarray):
        raise TypeError("time_points must be a NumPy array.")
    if D_scaler < 0 or A1 < 0 or A2 < 0 or m1 < 0 or m2 < 0 or t_arrival < 0:
        raise ValueError("AIF parameters must be non-negative.")

    elapsed = time_points - t_arrival
    after_arrival = elapsed >= 0
    elapsed = np.maximum(elapsed, 0)
    curve = D_scaler * (A1 * np.exp(-m1 * elapsed) + A2 * np.exp(-m2 * elapsed))
    return np.where(after_arrival, curve, 0.0)
