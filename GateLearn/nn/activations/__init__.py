from .activations import ACTIVATIONS
from .activations import check_activation_name
from .activations import get_activation
from .activations import calculate
from .activations import calculate_derivatives
from .activations import calculate_second_derivatives
from .activations import write_activation_expression
from .activations import threshold
from .activations import symmetric_threshold
from .activations import logistic
from .activations import hyperbolic_tangent
from .activations import linear
from .activations import rectified_linear
from .activations import exponential_linear
from .activations import scaled_exponential_linear
from .activations import soft_plus
from .activations import soft_sign
from .activations import hard_sigmoid

__all__ = [
    "ACTIVATIONS",
    "check_activation_name",
    "get_activation",
    "calculate",
    "calculate_derivatives",
    "calculate_second_derivatives",
    "write_activation_expression",
    "threshold",
    "symmetric_threshold",
    "logistic",
    "hyperbolic_tangent",
    "linear",
    "rectified_linear",
    "exponential_linear",
    "scaled_exponential_linear",
    "soft_plus",
    "soft_sign",
    "hard_sigmoid"
]
