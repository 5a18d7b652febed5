import numpy as np

import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import DimensionMismatch, InvalidScalingMethod
from GateLearn.nn.layers.base_layer import BaseLayer, ForwardCache, format_number
from GateLearn.nn.layers.registry import register_delta_transform

xp = backend.xp

# Marks a bound that was never set
NO_LIMIT = np.inf

SCALING_METHODS = ("NoScaling", "MinimumMaximum", "MeanStandardDeviation",
                   "StandardDeviation", "Logarithmic")
UNSCALING_METHODS = ("NoUnscaling", "MinimumMaximum", "MeanStandardDeviation",
                     "StandardDeviation", "Logarithmic")


class Descriptives:
    """
    Summary statistics of one variable.

    Defaults describe a variable already in [-1, 1] with zero mean and unit
    standard deviation, so a layer built from them is close to the identity.
    """
    def __init__(self, minimum=-1.0, maximum=1.0, mean=0.0, standard_deviation=1.0):
        self.minimum = float(minimum)
        self.maximum = float(maximum)
        self.mean = float(mean)
        self.standard_deviation = float(standard_deviation)

    def __repr__(self):
        return (f"Descriptives(minimum={self.minimum}, maximum={self.maximum}, "
                f"mean={self.mean}, standard_deviation={self.standard_deviation})")

    def __eq__(self, other):
        if not isinstance(other, Descriptives):
            return NotImplemented
        return self.to_list() == other.to_list()

    def to_list(self):
        return [self.minimum, self.maximum, self.mean, self.standard_deviation]

    @classmethod
    def from_list(cls, values):
        if len(values) != 4:
            raise DimensionMismatch(
                f"Descriptives need 4 values (minimum, maximum, mean, standard_deviation), got {len(values)}"
            )
        return cls(*values)


class ScalingForwardCache(ForwardCache):
    def __init__(self, layer, inputs, outputs, derivatives):
        super().__init__(layer, inputs, outputs)
        self.derivatives = derivatives


class _DescriptivesLayer(BaseLayer):
    """
    Elementwise layer driven by one Descriptives per variable.

    Has no trainable parameters; inputs_number always equals neurons_number.
    """
    METHODS = ()
    NONE_METHOD = None

    def __init__(self, neurons_number=0, method="MinimumMaximum", display=None):
        super().__init__(display=display)
        self.method = self._check_method(method)
        self.set(neurons_number)

    def extra_repr(self):
        return f"n={self.get_neurons_number()}, method={self.method}"

    def _check_method(self, method):
        if method not in self.METHODS:
            raise InvalidScalingMethod(
                f"Unknown method '{method}' for {self.__class__.__name__}. Available: {list(self.METHODS)}"
            )
        return method

    # -------------------------------
    # Architecture
    # -------------------------------
    def set(self, neurons_number=0):
        if isinstance(neurons_number, (list, tuple)):
            self.set_descriptives(neurons_number)
            return
        if neurons_number < 0:
            raise ValueError("neurons_number must be non-negative")
        self.descriptives = [Descriptives() for _ in range(neurons_number)]
        self._config_version += 1

    def get_inputs_number(self):
        return len(self.descriptives)

    def get_neurons_number(self):
        return len(self.descriptives)

    def set_inputs_number(self, inputs_number):
        self.set(inputs_number)

    def set_neurons_number(self, neurons_number):
        self.set(neurons_number)

    def set_method(self, method):
        self.method = self._check_method(method)
        self._config_version += 1

    def write_method(self):
        return self.method

    # -------------------------------
    # Descriptives
    # -------------------------------
    def get_descriptives(self):
        return list(self.descriptives)

    def set_descriptives(self, descriptives):
        self.descriptives = [d if isinstance(d, Descriptives) else Descriptives.from_list(d)
                             for d in descriptives]
        self._config_version += 1

    def get_descriptives_matrix(self):
        """Descriptives as rows of (minimum, maximum, mean, standard_deviation)."""
        if not self.descriptives:
            return np.zeros((0, 4))
        return np.array([d.to_list() for d in self.descriptives], dtype=float)

    def set_descriptives_matrix(self, matrix):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[1] != 4:
            raise DimensionMismatch(f"Descriptives matrix must have shape (n, 4), got {matrix.shape}")
        self.set_descriptives([Descriptives.from_list(row) for row in matrix])

    def set_item_descriptives(self, index, descriptives):
        self.descriptives[index] = descriptives
        self._config_version += 1

    def get_minimums(self):
        return self.get_descriptives_matrix()[:, 0]

    def get_maximums(self):
        return self.get_descriptives_matrix()[:, 1]

    def get_means(self):
        return self.get_descriptives_matrix()[:, 2]

    def get_standard_deviations(self):
        return self.get_descriptives_matrix()[:, 3]

    def set_minimum(self, index, value):
        self.descriptives[index].minimum = float(value)
        self._config_version += 1

    def set_maximum(self, index, value):
        self.descriptives[index].maximum = float(value)
        self._config_version += 1

    def set_mean(self, index, value):
        self.descriptives[index].mean = float(value)
        self._config_version += 1

    def set_standard_deviation(self, index, value):
        self.descriptives[index].standard_deviation = float(value)
        self._config_version += 1

    def _columns(self):
        matrix = xp.asarray(self.get_descriptives_matrix(), dtype=backend.DTYPE)
        return matrix[:, 0], matrix[:, 1], matrix[:, 2], matrix[:, 3]

    # -------------------------------
    # Propagation
    # -------------------------------
    def transform(self, inputs):
        """Returns (outputs, derivatives), elementwise."""
        raise NotImplementedError

    def forward(self, inputs):
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        self._check_inputs_width(inputs)
        if self.method == self.NONE_METHOD:
            outputs, derivatives = inputs.copy(), xp.ones_like(inputs)
        else:
            outputs, derivatives = self.transform(inputs)
        return outputs, ScalingForwardCache(self, inputs, outputs, derivatives)

    def calculate_second_derivatives(self, inputs):
        """Elementwise second derivatives of `transform`."""
        return xp.zeros_like(inputs)

    def calculate_input_derivatives(self, inputs):
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        outputs, cache = self.forward(inputs)
        n = self.get_neurons_number()

        derivatives = cache.derivatives.reshape(-1, n)
        if self.method == self.NONE_METHOD:
            second = xp.zeros_like(derivatives)
        else:
            second = self.calculate_second_derivatives(inputs).reshape(-1, n)
        # Clipped outputs are constant
        second = xp.where(derivatives == 0, 0.0, second)

        index = xp.arange(n)
        jacobian = xp.zeros((derivatives.shape[0], n, n), dtype=backend.DTYPE)
        jacobian[:, index, index] = derivatives
        hessian = xp.zeros((derivatives.shape[0], n, n, n), dtype=backend.DTYPE)
        hessian[:, index, index, index] = second
        return outputs.reshape(-1, n), jacobian, hessian

    # -------------------------------
    # Serialization
    # -------------------------------
    def get_config(self):
        return {
            "neurons_number": self.get_neurons_number(),
            "method": self.method,
            "descriptives": self.get_descriptives_matrix().tolist(),
        }

    def state_dict(self):
        out = super().state_dict()
        out.update(self.get_config())
        return out

    def load_state_dict(self, state):
        super().load_state_dict(state)
        if "method" in state:
            self.set_method(state["method"])
        if "descriptives" in state:
            self.set_descriptives([Descriptives.from_list(row) for row in state["descriptives"]])
        elif state.get("neurons_number", self.get_neurons_number()) != self.get_neurons_number():
            self.set(state["neurons_number"])


class ScalingLayer(_DescriptivesLayer):
    """
    Scales raw inputs before they enter the network.

    Methods:
        - "NoScaling": y = x
        - "MinimumMaximum": y = 2*(x - min)/(max - min) - 1
        - "MeanStandardDeviation": y = (x - mean)/std
        - "StandardDeviation": y = x/std
        - "Logarithmic": y = log(x)

    Variables with a zero range (or zero standard deviation) pass through
    unchanged.
    """
    layer_type = "Scaling"
    METHODS = SCALING_METHODS
    NONE_METHOD = "NoScaling"

    def __init__(self, neurons_number=0, method="MinimumMaximum", display=None):
        super().__init__(neurons_number, method, display)

    def set_scaling_method(self, method):
        self.set_method(method)

    def transform(self, inputs):
        minimums, maximums, means, deviations = self._columns()

        if self.method == "MinimumMaximum":
            span = maximums - minimums
            valid = span > 0
            slope = xp.where(valid, 2 / xp.where(valid, span, 1), 1)
            outputs = xp.where(valid, slope * (inputs - minimums) - 1, inputs)
            derivatives = xp.broadcast_to(slope, inputs.shape).copy()
        elif self.method in ("MeanStandardDeviation", "StandardDeviation"):
            valid = deviations > 0
            slope = xp.where(valid, 1 / xp.where(valid, deviations, 1), 1)
            centers = means if self.method == "MeanStandardDeviation" else xp.zeros_like(means)
            outputs = xp.where(valid, slope * (inputs - centers), inputs)
            derivatives = xp.broadcast_to(slope, inputs.shape).copy()
        else:
            if xp.any(inputs <= 0):
                raise ValueError("Logarithmic scaling requires strictly positive inputs")
            outputs = xp.log(inputs)
            derivatives = 1 / inputs

        if self.display and self.method != "Logarithmic" and not bool(xp.all(valid)):
            self._print("some variables have no spread and are left unscaled")
        return outputs, derivatives

    def calculate_second_derivatives(self, inputs):
        if self.method == "Logarithmic":
            return -1 / inputs ** 2
        return xp.zeros_like(inputs)

    def write_expression(self, inputs_names, outputs_names):
        lines = []
        for x, y, d in zip(inputs_names, outputs_names, self.descriptives):
            minimum, maximum = format_number(d.minimum), format_number(d.maximum)
            mean, deviation = format_number(d.mean), format_number(d.standard_deviation)

            if self.method == "MinimumMaximum":
                lines.append(f"{y} = 2*({x}-({minimum}))/({maximum}-({minimum}))-1;\n")
            elif self.method == "MeanStandardDeviation":
                lines.append(f"{y} = ({x}-({mean}))/({deviation});\n")
            elif self.method == "StandardDeviation":
                lines.append(f"{y} = {x}/({deviation});\n")
            elif self.method == "Logarithmic":
                lines.append(f"{y} = log({x});\n")
            else:
                lines.append(f"{y} = {x};\n")
        return "".join(lines)


class UnscalingLayer(_DescriptivesLayer):
    """
    Maps network outputs back to the original units of the targets.

    Methods:
        - "NoUnscaling": y = x
        - "MinimumMaximum": y = 0.5*(x + 1)*(max - min) + min
        - "MeanStandardDeviation": y = mean + std*x
        - "StandardDeviation": y = std*x
        - "Logarithmic": y = exp(x)

    Optional lower/upper bounds clip the outputs; NO_LIMIT leaves a side open.
    """
    layer_type = "Unscaling"
    METHODS = UNSCALING_METHODS
    NONE_METHOD = "NoUnscaling"

    def __init__(self, neurons_number=0, method="MinimumMaximum", display=None):
        super().__init__(neurons_number, method, display)

    def set(self, neurons_number=0):
        super().set(neurons_number)
        self.lower_bounds = np.full(self.get_neurons_number(), -NO_LIMIT)
        self.upper_bounds = np.full(self.get_neurons_number(), NO_LIMIT)

    def set_descriptives(self, descriptives):
        super().set_descriptives(descriptives)
        n = self.get_neurons_number()
        if getattr(self, "lower_bounds", None) is None or len(self.lower_bounds) != n:
            self.lower_bounds = np.full(n, -NO_LIMIT)
            self.upper_bounds = np.full(n, NO_LIMIT)

    def set_unscaling_method(self, method):
        self.set_method(method)

    def set_bounds(self, lower_bounds=None, upper_bounds=None):
        n = self.get_neurons_number()
        lower = np.full(n, -NO_LIMIT) if lower_bounds is None else np.asarray(lower_bounds, dtype=float)
        upper = np.full(n, NO_LIMIT) if upper_bounds is None else np.asarray(upper_bounds, dtype=float)
        if lower.shape != (n,) or upper.shape != (n,):
            raise DimensionMismatch(f"Bounds must have shape ({n},), got {lower.shape} and {upper.shape}")
        if np.any(lower > upper):
            raise ValueError("Lower bounds must not exceed upper bounds")
        self.lower_bounds, self.upper_bounds = lower, upper
        self._config_version += 1

    def is_bounded(self):
        return bool(np.any(np.isfinite(self.lower_bounds)) or np.any(np.isfinite(self.upper_bounds)))

    def transform(self, inputs):
        minimums, maximums, means, deviations = self._columns()

        if self.method == "MinimumMaximum":
            slope = 0.5 * (maximums - minimums)
            outputs = slope * (inputs + 1) + minimums
            derivatives = xp.broadcast_to(slope, inputs.shape).copy()
        elif self.method == "MeanStandardDeviation":
            outputs = means + deviations * inputs
            derivatives = xp.broadcast_to(deviations, inputs.shape).copy()
        elif self.method == "StandardDeviation":
            outputs = deviations * inputs
            derivatives = xp.broadcast_to(deviations, inputs.shape).copy()
        else:
            outputs = xp.exp(inputs)
            derivatives = outputs.copy()

        return outputs, derivatives

    def forward(self, inputs):
        outputs, cache = super().forward(inputs)
        if self.is_bounded():
            lower = xp.asarray(self.lower_bounds, dtype=backend.DTYPE)
            upper = xp.asarray(self.upper_bounds, dtype=backend.DTYPE)
            inside = (outputs >= lower) & (outputs <= upper)
            outputs = xp.clip(outputs, lower, upper)
            cache.derivatives = xp.where(inside, cache.derivatives, 0.0)
        return outputs, cache

    def calculate_second_derivatives(self, inputs):
        if self.method == "Logarithmic":
            return xp.exp(inputs)
        return xp.zeros_like(inputs)

    def write_expression(self, inputs_names, outputs_names):
        lines = []
        for j, (x, y, d) in enumerate(zip(inputs_names, outputs_names, self.descriptives)):
            minimum, maximum = format_number(d.minimum), format_number(d.maximum)
            mean, deviation = format_number(d.mean), format_number(d.standard_deviation)

            if self.method == "MinimumMaximum":
                lines.append(f"{y} = 0.5*({x}+1)*({maximum}-({minimum}))+({minimum});\n")
            elif self.method == "MeanStandardDeviation":
                lines.append(f"{y} = ({mean})+({deviation})*{x};\n")
            elif self.method == "StandardDeviation":
                lines.append(f"{y} = ({deviation})*{x};\n")
            elif self.method == "Logarithmic":
                lines.append(f"{y} = exp({x});\n")
            else:
                lines.append(f"{y} = {x};\n")

            if np.isfinite(self.lower_bounds[j]):
                lines.append(f"{y} = max({format_number(self.lower_bounds[j])}, {y});\n")
            if np.isfinite(self.upper_bounds[j]):
                lines.append(f"{y} = min({format_number(self.upper_bounds[j])}, {y});\n")
        return "".join(lines)

    def get_config(self):
        config = super().get_config()
        # json has no infinity; open bounds are stored as None
        config["lower_bounds"] = [float(b) if np.isfinite(b) else None for b in self.lower_bounds]
        config["upper_bounds"] = [float(b) if np.isfinite(b) else None for b in self.upper_bounds]
        return config

    def load_state_dict(self, state):
        super().load_state_dict(state)
        if "lower_bounds" in state and "upper_bounds" in state:
            self.set_bounds(
                [-NO_LIMIT if b is None else b for b in state["lower_bounds"]],
                [NO_LIMIT if b is None else b for b in state["upper_bounds"]],
            )


def _elementwise_hidden_delta(layer, outputs_delta, cache):
    return outputs_delta * cache.derivatives


register_delta_transform("Scaling")(_elementwise_hidden_delta)
register_delta_transform("Unscaling")(_elementwise_hidden_delta)
