class GateLearnError(ValueError):
    """Base exception for shape, cache and configuration errors raised by GateLearn."""


class DimensionMismatch(GateLearnError):
    """
    Raised when an input width, batch size or timestep count disagrees with
    the configured layer shape.
    """


class CacheMismatch(GateLearnError):
    """
    Raised when a backward pass receives a forward cache that does not
    correspond to the supplied delta, to the layer, or to its current
    parameters.
    """


class InvalidActivationName(GateLearnError):
    """Raised when an activation function name is not recognized."""


class InvalidScalingMethod(GateLearnError):
    """Raised when a scaling or unscaling method name is not recognized."""
