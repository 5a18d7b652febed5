from .baseloss import BaseLoss

from .mean_squared_error import MeanSquaredError
from .sum_squared_error import SumSquaredError
from .roc_area_error import RocAreaError

__all__ = [
    "BaseLoss",
    "MeanSquaredError",
    "SumSquaredError",
    "RocAreaError"
]
