from .registry import LAYER_TYPES
from .registry import register_delta_transform
from .registry import calculate_hidden_delta
from .base_layer import BaseLayer
from .base_layer import ForwardCache
from .base_layer import Gradients

from .perceptron import PerceptronLayer
from .probabilistic import ProbabilisticLayer
from .scaling import NO_LIMIT
from .scaling import Descriptives
from .scaling import ScalingLayer
from .scaling import UnscalingLayer
from .lstmcell import gate_combination
from .lstmcell import LSTMCell
from .lstm import LongShortTermMemoryLayer
from .lstm import LSTMForwardCache

__all__ = [
    "LAYER_TYPES",
    "register_delta_transform",
    "calculate_hidden_delta",
    "BaseLayer",
    "ForwardCache",
    "Gradients",
    "PerceptronLayer",
    "ProbabilisticLayer",
    "NO_LIMIT",
    "Descriptives",
    "ScalingLayer",
    "UnscalingLayer",
    "gate_combination",
    "LSTMCell",
    "LongShortTermMemoryLayer",
    "LSTMForwardCache"
]
