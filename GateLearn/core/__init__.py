from .stateful import Stateful
from .parameter import Parameter
from .exceptions import GateLearnError
from .exceptions import DimensionMismatch
from .exceptions import CacheMismatch
from .exceptions import InvalidActivationName
from .exceptions import InvalidScalingMethod

from .backend.backend import gpu_available
from .backend.backend import is_gpu
from .backend.backend import device_name
from .backend.backend import get_device
from .backend.backend import use_gpu
from .backend.backend import use_cpu
from .backend.backend import set_seed
from .backend.backend import set_dtype
from .backend.backend import set_display

__all__ = [
    "Stateful",
    "Parameter",
    "GateLearnError",
    "DimensionMismatch",
    "CacheMismatch",
    "InvalidActivationName",
    "InvalidScalingMethod",
    "gpu_available",
    "is_gpu",
    "device_name",
    "get_device",
    "use_gpu",
    "use_cpu",
    "set_seed",
    "set_dtype",
    "set_display"
]
