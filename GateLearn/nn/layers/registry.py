"""
Layer kinds and their delta transforms.

Every layer carries a `layer_type` tag from LAYER_TYPES. When errors flow
backwards through a network, the delta with respect to a layer's outputs is
turned into the delta with respect to its inputs (the outputs of the layer
before it) by the transform registered for the layer's tag:

    @register_delta_transform("Perceptron")
    def perceptron_hidden_delta(layer, outputs_delta, cache):
        ...

New layer kinds register a transform instead of adding branches to the
layers that precede them.
"""

import GateLearn.core.backend.backend as backend

LAYER_TYPES = (
    "Scaling",
    "Perceptron",
    "Probabilistic",
    "LongShortTermMemory",
    "Unscaling",
)

DELTA_TRANSFORMS = {}


def register_delta_transform(layer_type):
    if layer_type not in LAYER_TYPES:
        raise ValueError(f"Unknown layer type '{layer_type}'. Available: {list(LAYER_TYPES)}")

    def decorator(fn):
        DELTA_TRANSFORMS[layer_type] = fn
        return fn
    return decorator


def calculate_hidden_delta(layer, outputs_delta, cache):
    """
    Delta with respect to the inputs of `layer`, given the delta of its outputs.

    The cache is checked against `layer` and `outputs_delta` but not consumed.
    """
    outputs_delta = backend.xp.asarray(outputs_delta, dtype=backend.DTYPE)
    cache.check(layer, outputs_delta)
    transform = DELTA_TRANSFORMS.get(layer.layer_type)
    if transform is None:
        raise ValueError(f"No delta transform registered for layer type '{layer.layer_type}'")
    return transform(layer, outputs_delta, cache)
