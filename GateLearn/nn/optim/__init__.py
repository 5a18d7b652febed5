from . import optimizers

from .optimizers import BaseOptimizer
from .optimizers import SGD

__all__ = [
    "optimizers",
    "BaseOptimizer",
    "SGD"
]
