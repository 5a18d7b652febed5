from .base_optimizer import BaseOptimizer

from .sgd import SGD

__all__ = [
    "BaseOptimizer",
    "SGD"
]
