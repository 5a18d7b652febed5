import weakref

import GateLearn.core.backend.backend as backend
from GateLearn.core import Stateful, Parameter
from GateLearn.core.exceptions import CacheMismatch, DimensionMismatch
from GateLearn.nn.layers.registry import LAYER_TYPES, calculate_hidden_delta

xp = backend.xp


class ForwardCache:
    """
    Values stored by a forward call for the matching backward call.

    A cache remembers which layer produced it, the layer's state version at
    that moment and the shape of the outputs. `check` validates all three
    against a backward call; `consume` also marks the cache as used.
    """
    def __init__(self, layer, inputs, outputs):
        self.owner = weakref.ref(layer)
        self.version = layer.state_version()
        self.inputs_shape = tuple(inputs.shape)
        self.outputs_shape = tuple(outputs.shape)
        self.consumed = False

    def check(self, layer, outputs_delta):
        if self.owner() is not layer:
            raise CacheMismatch(
                f"Cache was produced by another layer, not by {layer.__class__.__name__}"
            )
        if self.consumed:
            raise CacheMismatch("Cache has already been consumed by a backward call")
        if self.version != layer.state_version():
            raise CacheMismatch(
                f"{layer.__class__.__name__} parameters changed since the forward call that produced this cache"
            )
        if tuple(outputs_delta.shape) != self.outputs_shape:
            raise CacheMismatch(
                f"Outputs delta shape {tuple(outputs_delta.shape)} does not match "
                f"cached outputs shape {self.outputs_shape}"
            )

    def consume(self, layer, outputs_delta):
        self.check(layer, outputs_delta)
        self.consumed = True


class Gradients(Stateful):
    """
    Error gradient of a layer, one array per parameter, in parameter order.

    Arrays are reachable by key (`gradients["forget_weights"]`) or attribute
    (`gradients.forget_weights`).
    """
    def __init__(self, named_shapes):
        self._arrays = {name: xp.zeros(shape, dtype=backend.DTYPE) for name, shape in named_shapes}

    def __getitem__(self, name):
        return self._arrays[name]

    def __setitem__(self, name, value):
        if tuple(value.shape) != self._arrays[name].shape:
            raise DimensionMismatch(
                f"Gradient '{name}' has shape {self._arrays[name].shape}, got {tuple(value.shape)}"
            )
        self._arrays[name] = value

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._arrays[name]
        except KeyError:
            raise AttributeError(f"No gradient named '{name}'")

    def __contains__(self, name):
        return name in self._arrays

    def __iter__(self):
        return iter(self._arrays)

    def __len__(self):
        return len(self._arrays)

    def items(self):
        return self._arrays.items()

    def names(self):
        return list(self._arrays)

    def flatten(self):
        if not self._arrays:
            return xp.zeros(0, dtype=backend.DTYPE)
        return xp.concatenate([g.ravel() for g in self._arrays.values()])

    def state_dict(self):
        return {name: backend.to_numpy(g).tolist() for name, g in self._arrays.items()}


class BaseLayer(Stateful):
    """
    Common interface of all layer kinds.

    A layer maps `inputs` to `outputs` with `forward`, returning the outputs
    and a ForwardCache, and maps an outputs delta back with
    `backward(outputs_delta, cache)`, returning the inputs delta and the
    layer's Gradients. Parameters live in `Parameter` objects named in
    `_parameter_names`; their order defines the flat parameter vector.
    """
    layer_type = None

    def __init__(self, display=None):
        if self.layer_type not in LAYER_TYPES:
            raise ValueError(f"Unknown layer type '{self.layer_type}'")
        self.display = backend.DISPLAY if display is None else bool(display)
        self.layer_name = self.layer_type.lower()
        self._parameter_names = []
        self._config_version = 0

    def __call__(self, inputs):
        return self.calculate_outputs(inputs)

    def __repr__(self):
        class_name = self.__class__.__name__
        extra = self.extra_repr()
        if extra:
            return f"{class_name}({extra})"
        return f"{class_name}(in={self.get_inputs_number()}, out={self.get_neurons_number()}, params={self.count_parameters()})"

    def extra_repr(self) -> str:
        """
        Override in subclasses to provide custom layer-specific
        information for __repr__.
        """
        return ""

    def _print(self, message):
        if self.display:
            print(f"[GateLearn] {self.__class__.__name__}: {message}")

    def set_layer_name(self, name):
        self.layer_name = name

    def set_display(self, display):
        self.display = bool(display)

    # -------------------------------
    # Architecture
    # -------------------------------
    def get_inputs_number(self):
        raise NotImplementedError

    def get_neurons_number(self):
        raise NotImplementedError

    def is_empty(self):
        return self.get_neurons_number() == 0

    # -------------------------------
    # Parameter collection
    # -------------------------------
    def named_parameters(self, prefix: str = ""):
        return [(f"{prefix}{name}", getattr(self, name)) for name in self._parameter_names]

    def parameters(self):
        return [p for _, p in self.named_parameters()]

    def count_parameters(self) -> int:
        """Return the total number of trainable parameters in this layer."""
        return int(sum(p.size for p in self.parameters()))

    def get_parameters(self):
        """All parameters as one flat vector, in `_parameter_names` order."""
        params = self.parameters()
        if not params:
            return xp.zeros(0, dtype=backend.DTYPE)
        return xp.concatenate([p.data.ravel() for p in params])

    def set_parameters(self, vector, index=0):
        """Load parameters from `vector` starting at `index`."""
        vector = xp.asarray(vector, dtype=backend.DTYPE)
        if vector.size - index < self.count_parameters():
            raise DimensionMismatch(
                f"Parameter vector of size {vector.size} (from index {index}) is too short for "
                f"{self.count_parameters()} parameters"
            )
        position = index
        for p in self.parameters():
            p.assign(vector[position:position + p.size].reshape(p.shape))
            position += p.size

    def insert_gradient(self, gradients, index, vector):
        """Write the flattened `gradients` into `vector` starting at `index`."""
        flat = gradients.flatten()
        vector[index:index + flat.size] = flat

    def set_parameters_constant(self, value):
        for p in self.parameters():
            p.fill(value)

    def set_parameters_random(self, low=-1.0, high=1.0):
        from GateLearn.nn.initializations import Uniform
        for p in self.parameters():
            p.assign(Uniform(p.shape, low, high))

    def _new_gradients(self):
        return Gradients([(name, getattr(self, name).shape) for name in self._parameter_names])

    def _new_parameter(self, name, shape):
        param = Parameter(xp.zeros(shape, dtype=backend.DTYPE), name=name)
        setattr(self, name, param)
        if name not in self._parameter_names:
            self._parameter_names.append(name)
        return param

    def state_version(self):
        """Changes whenever a parameter or the layer configuration changes."""
        return (self._config_version,) + tuple(p.version for p in self.parameters())

    def freeze(self):
        """Freeze all parameters in this layer."""
        for p in self.parameters():
            p.frozen = True

    def unfreeze(self):
        """Unfreeze all parameters in this layer."""
        for p in self.parameters():
            p.frozen = False

    # -------------------------------
    # Propagation
    # -------------------------------
    def _check_inputs_width(self, inputs):
        if inputs.ndim == 0 or inputs.shape[-1] != self.get_inputs_number():
            raise DimensionMismatch(
                f"{self.__class__.__name__} expects {self.get_inputs_number()} input variables, "
                f"got inputs of shape {tuple(inputs.shape)}"
            )

    def forward(self, inputs):
        raise NotImplementedError

    def calculate_outputs(self, inputs):
        outputs, _ = self.forward(inputs)
        return outputs

    def calculate_input_derivatives(self, inputs):
        """
        Outputs with their first and second derivatives with respect to the
        inputs, row by row.

        Returns:
            tuple: (outputs (rows, neurons), jacobian (rows, neurons, inputs),
            hessian (rows, neurons, inputs, inputs)).
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} outputs do not depend on a single input row"
        )

    def calculate_error_gradient(self, outputs_delta, cache):
        """Gradients of the parameters, without consuming the cache."""
        outputs_delta = xp.asarray(outputs_delta, dtype=backend.DTYPE)
        cache.check(self, outputs_delta)
        return self._calculate_error_gradient(outputs_delta, cache)

    def _calculate_error_gradient(self, outputs_delta, cache):
        return self._new_gradients()

    def calculate_hidden_delta(self, outputs_delta, cache):
        """Delta with respect to the inputs, without consuming the cache."""
        return calculate_hidden_delta(self, outputs_delta, cache)

    def backward(self, outputs_delta, cache):
        outputs_delta = xp.asarray(outputs_delta, dtype=backend.DTYPE)
        gradients = self.calculate_error_gradient(outputs_delta, cache)
        inputs_delta = self.calculate_hidden_delta(outputs_delta, cache)
        cache.consume(self, outputs_delta)
        return inputs_delta, gradients

    # -------------------------------
    # Serialization / expressions
    # -------------------------------
    def state_dict(self):
        out = {"_type": self.__class__.__name__, "layer_name": self.layer_name}
        for name, p in self.named_parameters():
            out[name] = p.state_dict()
        return out

    def load_state_dict(self, state):
        if "layer_name" in state:
            self.layer_name = state["layer_name"]
        for name, p in self.named_parameters():
            if name in state:
                p.load_state_dict(state[name])

    @classmethod
    def from_config(cls, cfg):
        """
        Build a layer from the output of `get_config`.

        The configuration carries no parameter values, so trainable
        parameters are freshly initialized.
        """
        layer = cls()
        layer.load_state_dict(cfg)
        return layer

    def write_expression(self, inputs_names, outputs_names):
        raise NotImplementedError


def format_number(value):
    """Compact textual form of a number for symbolic expressions."""
    return f"{float(value):g}"
