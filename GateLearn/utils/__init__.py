from . import loggers

from .gradient_check import relative_error
from .gradient_check import numerical_gradient
from .gradient_check import numerical_jacobian
from .gradient_check import gradient_check

__all__ = [
    "loggers",
    "relative_error",
    "numerical_gradient",
    "numerical_jacobian",
    "gradient_check"
]
