"""
Backend runtime selector for GateLearn.

- Single import point for array backend (`xp`) and core runtime flags.
- Toggle CPU (NumPy) / GPU (CuPy).
- Centralized dtype, seed and display defaults:
    >>> import GateLearn.core.backend.backend as backend
    >>> xp = backend.xp
    >>> DTYPE = backend.DTYPE

Layers read `xp` and `DTYPE` when their module is imported; switch the
backend before importing model code.
"""

from __future__ import annotations

import numpy as _np
from GateLearn.core.backend.config import CONFIG


# ---------------------------
# Optional GPU backend (CuPy)
# ---------------------------
try:
    import cupy as _cp
    _CUPY_AVAILABLE = True
except ImportError:
    _cp = None
    _CUPY_AVAILABLE = False


# ---------------------------
# Public runtime state (globals)
# ---------------------------
xp = _np                       # current array module (NumPy or CuPy)
USING = "cpu"                  # "cpu" | "gpu"
SEED = CONFIG["seed"]

# Gradients are checked against finite differences, so float64 is the default
DTYPE = _np.float64

# Default for the `display` argument of layers, losses and containers
DISPLAY = bool(CONFIG["display"])

_DTYPES = {"float32": _np.float32, "float64": _np.float64}


# ===========================
# Introspection / utilities
# ===========================
def gpu_available() -> bool:
    """Return True if CuPy is importable."""
    return _CUPY_AVAILABLE


def is_gpu() -> bool:
    """Return True if current backend is GPU (CuPy)."""
    return USING == "gpu"


def device_name() -> str:
    """Human-readable device name."""
    if is_gpu():
        return f"GPU:{_cp.cuda.Device().id} (CuPy)"
    return "CPU (NumPy)"


def get_device() -> str:
    """Return current device string: 'cpu' or 'gpu'."""
    return USING


def to_numpy(array):
    """Return `array` as a NumPy array, copying from the device if needed."""
    if is_gpu() and isinstance(array, _cp.ndarray):
        return _cp.asnumpy(array)
    return _np.asarray(array)


# ===========================
# Backend switching
# ===========================
def use_gpu():
    """
    Switch backend to GPU (CuPy).
    Raises ImportError if CuPy is not available.
    """
    global xp, USING
    if not _CUPY_AVAILABLE:
        raise ImportError("CuPy is not installed. Run `pip install cupy` to use GPU.")
    xp = _cp
    USING = "gpu"
    _cp.random.seed(SEED)
    if DISPLAY:
        print(f"[GateLearn] Using {device_name()}")


def use_cpu():
    """Switch backend to CPU (NumPy)."""
    global xp, USING
    xp = _np
    USING = "cpu"
    _np.random.seed(SEED)


def _auto_select_device():
    device = CONFIG["device"].lower()
    if device == "gpu" and _CUPY_AVAILABLE:
        use_gpu()
    else:
        use_cpu()


def _set_default_dtype():
    global DTYPE
    dtype_str = CONFIG["dtype"]
    if dtype_str not in _DTYPES:
        raise ValueError(f"Unsupported dtype '{dtype_str}'. Use one of: {list(_DTYPES.keys())}")
    DTYPE = _DTYPES[dtype_str]


_set_default_dtype()
_auto_select_device()


# ===========================
# Runtime configuration
# ===========================
def set_seed(seed: int):
    """Set RNG seed for both NumPy and CuPy (if present)."""
    global SEED
    SEED = int(seed)
    _np.random.seed(SEED)
    if _CUPY_AVAILABLE:
        _cp.random.seed(SEED)


def set_dtype(dtype: str = "float64"):
    """Set master DTYPE to float32 or float64."""
    global DTYPE
    if dtype not in _DTYPES:
        raise ValueError("dtype must be 'float32' or 'float64'")
    DTYPE = _DTYPES[dtype]


def set_display(display: bool = True):
    """Set the default `display` value used by newly constructed objects."""
    global DISPLAY
    DISPLAY = bool(display)
