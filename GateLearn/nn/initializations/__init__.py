from .initializations import He
from .initializations import Glorot
from .initializations import LeCun
from .initializations import Orthogonal
from .initializations import Uniform
from .initializations import get_initialization
from .initializations import initialize_weights

__all__ = [
    "He",
    "Glorot",
    "LeCun",
    "Orthogonal",
    "Uniform",
    "get_initialization",
    "initialize_weights"
]
