from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.integrate import solve_ivp
from scipy.interpolate import interp1d

from .errors import UnknownModelError

"""
This module implements the pharmacokinetic (PK) models compared on the
Digital Reference Object and the registry that maps model names to them.

1.  **Model Evaluators** (forward models only, no fitting):
    *   Standard Tofts model (`tofts`)
    *   Extended Tofts model (`extendedtofts`)
    *   Compartmental tissue uptake model, CTUM (`uptake`)
    *   Two-compartment exchange model, 2CXM (`exchange`), solved via ODE integration

    Every evaluator has the same calling contract:
    ``evaluate(time, aif, parameters) -> np.ndarray`` where `parameters` is a
    dict keyed by the model's parameter names. Non-physical parameters raise
    `ValueError`.

2.  **Model Registry**:
    *   `ModelSpec` pairs a model name with its ordered parameter names and evaluator.
    *   `ModelRegistry` is a closed, ordered collection of specs. Its order is
        the canonical model order used for stacking and tie-breaking.

The convolution-based models assume a uniformly sampled time grid.
"""

# --- Helper for 2CXM ODE System ---
def _ode_system_2cxm(t: float, y: list[float], Fp: float, PS: float, vp: float, ve: float,
                     Cp_aif_interp_func: callable) -> list[float]:
    """
    Right-hand side of the 2CXM ODE system.

    Args:
        t (float): Current time point for the ODE solver.
        y (list[float]): Current concentrations [C_p_tis, C_e_tis].
        Fp (float): Plasma flow.
        PS (float): Permeability-surface area product.
        vp (float): Fractional plasma volume (> 0).
        ve (float): Fractional EES volume (> 0).
        Cp_aif_interp_func (callable): Interpolated AIF, Cp_aif(t).

    Returns:
        list[float]: Derivatives [dC_p_tis/dt, dC_e_tis/dt].
    """
    C_p_tis, C_e_tis = y
    Cp_aif_val = Cp_aif_interp_func(t)

    dC_p_tis_dt = (Fp / vp) * (Cp_aif_val - C_p_tis) - (PS / vp) * (C_p_tis - C_e_tis)
    dC_e_tis_dt = (PS / ve) * (C_p_tis - C_e_tis)
    return [dC_p_tis_dt, dC_e_tis_dt]


def _time_step(time: np.ndarray) -> float:
    """Sampling interval of a uniform time grid."""
    if len(time) < 2:
        return 0.0
    dt = time[1] - time[0]
    if dt <= 0:
        raise ValueError("Time points must be sorted and strictly increasing.")
    return dt


def _convolve_with_aif(time: np.ndarray, aif: np.ndarray, impulse_response: np.ndarray) -> np.ndarray:
    """
    Causal discrete convolution of the AIF with a tissue impulse response.

    Both arrays are sampled on `time`; the result is scaled by the time step
    to approximate the convolution integral.
    """
    dt = _time_step(time)
    return np.convolve(aif, impulse_response, mode='full')[:len(time)] * dt


def _require_non_negative(**params: float) -> None:
    for name, value in params.items():
        if not np.isfinite(value) or value < 0:
            raise ValueError(f"Parameter {name} must be finite and non-negative, got {value}.")


# --- Model Definitions ---
def tofts_model(time: np.ndarray, aif: np.ndarray, parameters: dict) -> np.ndarray:
    """
    Standard Tofts model.
    Ct(t) = vp * Ca(t) + Kt * integral[Ca(tau) * exp(-kep * (t - tau))] dtau,  kep = Kt / ve

    `vp` is optional and defaults to 0 (the classic two-parameter form).

    Args:
        time (np.ndarray): Time points (minutes).
        aif (np.ndarray): AIF sampled on `time`.
        parameters (dict): Must contain "Kt" and "ve"; may contain "vp".

    Returns:
        np.ndarray: Predicted tissue concentration on `time`.

    Raises:
        ValueError: If Kt, ve or vp are negative/non-finite, or ve is zero.
    """
    Kt = parameters["Kt"]
    ve = parameters["ve"]
    vp = parameters.get("vp", 0.0)
    _require_non_negative(Kt=Kt, ve=ve, vp=vp)
    if ve == 0:
        raise ValueError("Parameter ve must be positive.")
    return _tofts_curve(time, aif, Kt, Kt / ve, vp)


def extended_tofts_model(time: np.ndarray, aif: np.ndarray, parameters: dict) -> np.ndarray:
    """
    Extended Tofts model.
    Ct(t) = vp * Ca(t) + Kt * integral[Ca(tau) * exp(-kep * (t - tau))] dtau

    Uses the stored `kep` when it is finite, otherwise derives it as Kt / ve.

    Raises:
        ValueError: If parameters are negative/non-finite or kep cannot be derived.
    """
    Kt = parameters["Kt"]
    vp = parameters["vp"]
    kep = parameters.get("kep", np.nan)
    if not np.isfinite(kep):
        ve = parameters["ve"]
        _require_non_negative(ve=ve)
        if ve == 0:
            raise ValueError("Parameter ve must be positive when kep is not given.")
        kep = Kt / ve
    _require_non_negative(Kt=Kt, vp=vp, kep=kep)
    return _tofts_curve(time, aif, Kt, kep, vp)


def _tofts_curve(time: np.ndarray, aif: np.ndarray, Kt: float, kep: float, vp: float) -> np.ndarray:
    exp_decay_kernel = np.exp(-kep * (time - time[0]))
    return vp * aif + Kt * _convolve_with_aif(time, aif, exp_decay_kernel)


def uptake_model(time: np.ndarray, aif: np.ndarray, parameters: dict) -> np.ndarray:
    """
    Compartmental tissue uptake model (CTUM).

    The impulse response is R(t) = Fp * [exp(-t/Tp) + E * (1 - exp(-t/Tp))]
    with extraction fraction E = PS / (Fp + PS) and plasma transit time
    Tp = vp / (Fp + PS).

    Args:
        time (np.ndarray): Time points (minutes).
        aif (np.ndarray): AIF sampled on `time`.
        parameters (dict): Must contain "Fp", "PS" and "vp".

    Raises:
        ValueError: If parameters are negative/non-finite or Fp + PS or vp is zero.
    """
    Fp, PS, vp = parameters["Fp"], parameters["PS"], parameters["vp"]
    _require_non_negative(Fp=Fp, PS=PS, vp=vp)
    total_flow = Fp + PS
    if total_flow == 0 or vp == 0:
        raise ValueError("CTUM requires Fp + PS > 0 and vp > 0.")
    E = PS / total_flow
    Tp = vp / total_flow

    plasma_washout = np.exp(-(time - time[0]) / Tp)
    impulse_response = Fp * (plasma_washout + E * (1.0 - plasma_washout))
    return _convolve_with_aif(time, aif, impulse_response)


def exchange_model(time: np.ndarray, aif: np.ndarray, parameters: dict) -> np.ndarray:
    """
    Two-compartment exchange model (2CXM) solved with an ODE integrator.

    The model output is Ct(t) = vp * C_p_tis(t) + ve * C_e_tis(t). Only
    Fp, PS, vp and ve drive the solution; stored derived quantities
    (T, Te, Tp) are ignored.

    Raises:
        ValueError: If parameters are negative/non-finite or a volume is zero.
        RuntimeError: If the ODE solver does not succeed.
    """
    Fp, PS, vp, ve = parameters["Fp"], parameters["PS"], parameters["vp"], parameters["ve"]
    _require_non_negative(Fp=Fp, PS=PS, vp=vp, ve=ve)
    if vp == 0 or ve == 0:
        raise ValueError("2CXM requires vp > 0 and ve > 0.")
    if len(time) < 2:
        return np.zeros_like(time, dtype=float)

    Cp_aif_interp_func = interp1d(time, aif, kind='linear', bounds_error=False, fill_value=0.0)
    sol = solve_ivp(
        fun=_ode_system_2cxm,
        t_span=[time[0], time[-1]],
        y0=[0.0, 0.0],
        t_eval=time,
        args=(Fp, PS, vp, ve, Cp_aif_interp_func),
        method='RK45',
        max_step=_time_step(time),  # do not step over a sharp AIF bolus
    )
    if sol.status != 0:
        raise RuntimeError(f"2CXM ODE solver failed: {sol.message}")
    return vp * sol.y[0, :] + ve * sol.y[1, :]


def residual_sum_of_squares(observed: np.ndarray, fitted: np.ndarray) -> float:
    """Sum of squared differences; NaN if either curve has non-finite values."""
    residuals = np.asarray(observed, dtype=float) - np.asarray(fitted, dtype=float)
    if not np.all(np.isfinite(residuals)):
        return np.nan
    return float(np.sum(residuals ** 2))


# --- Registry ---
@dataclass(frozen=True)
class ModelSpec:
    """
    Shape and evaluator of one pharmacokinetic model.

    Attributes:
        name (str): Model identifier as stored in the dataset (e.g. "tofts").
        parameter_names (tuple[str, ...]): Ordered, non-empty parameter names.
        evaluate (Callable): ``evaluate(time, aif, parameters) -> np.ndarray``.
        description (str): Human readable model name.
    """
    name: str
    parameter_names: tuple
    evaluate: Callable
    description: str = ""

    def __post_init__(self):
        if not self.parameter_names:
            raise ValueError(f"Model '{self.name}' must declare at least one parameter.")
        object.__setattr__(self, "parameter_names", tuple(self.parameter_names))


DRO_MODELS = (
    ModelSpec("exchange", ("Fp", "PS", "ve", "vp", "T", "Te", "Tp"), exchange_model,
              "Two compartment exchange model (2CXM)"),
    ModelSpec("extendedtofts", ("Kt", "ve", "vp", "kep"), extended_tofts_model,
              "Extended Tofts model"),
    ModelSpec("uptake", ("Fp", "PS", "vp"), uptake_model,
              "Compartmental tissue uptake model (CTUM)"),
    ModelSpec("tofts", ("Kt", "ve", "vp"), tofts_model,
              "Standard Tofts model"),
)
"""The four models fitted on the DRO, in canonical order."""


class ModelRegistry:
    """
    Closed, ordered mapping from model name to `ModelSpec`.

    The registration order is the canonical model order: it fixes the stacking
    order of the best-model map and resolves RSS ties in favour of the
    earlier model.
    """

    def __init__(self, specs=DRO_MODELS):
        self._specs = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate model name in registry: '{spec.name}'")
            self._specs[spec.name] = spec

    @classmethod
    def default(cls) -> "ModelRegistry":
        return cls(DRO_MODELS)

    @property
    def canonical_order(self) -> tuple[str, ...]:
        return tuple(self._specs)

    def get(self, name: str) -> ModelSpec:
        """
        Raises:
            UnknownModelError: If `name` is not registered.
        """
        try:
            return self._specs[name]
        except KeyError:
            raise UnknownModelError(name) from None

    def parameter_names(self, name: str) -> tuple[str, ...]:
        return self.get(name).parameter_names

    def __contains__(self, name) -> bool:
        return name in self._specs

    def __iter__(self):
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)
