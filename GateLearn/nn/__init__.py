from . import activations
from . import initializations
from . import layers
from . import loss
from . import optim

from .multilayer_perceptron import MultilayerPerceptron

__all__ = [
    "MultilayerPerceptron",
    "activations",
    "initializations",
    "layers",
    "loss",
    "optim"
]
