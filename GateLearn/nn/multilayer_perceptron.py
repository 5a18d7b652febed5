import GateLearn.core.backend.backend as backend
from GateLearn.core import Stateful
from GateLearn.core.exceptions import DimensionMismatch
from GateLearn.nn.layers import (BaseLayer, PerceptronLayer, ProbabilisticLayer, ScalingLayer,
                                 UnscalingLayer, LongShortTermMemoryLayer)
from GateLearn.utils.gradient_check import numerical_jacobian

xp = backend.xp

LAYER_CLASSES = {
    cls.__name__: cls
    for cls in (PerceptronLayer, ProbabilisticLayer, ScalingLayer, UnscalingLayer, LongShortTermMemoryLayer)
}


class MultilayerPerceptron(Stateful):
    """
    Chain of layers trained as one network.

    Outputs of each layer feed the next; deltas flow back in reverse through
    each layer's `backward`. The container only relies on the layer interface
    (`forward`, `backward`, flat parameter access), never on layer internals.

    Example:
        network = MultilayerPerceptron(
            ScalingLayer(2),
            LongShortTermMemoryLayer(2, 4, timesteps=3),
            PerceptronLayer(4, 1, activation="Linear"),
            UnscalingLayer(1),
        )
        outputs, caches = network.forward(inputs)
        inputs_delta, gradients = network.backward(outputs_delta, caches)
    """
    def __init__(self, *layers, display=None):
        self.display = backend.DISPLAY if display is None else bool(display)
        self._layers = []
        for layer in layers:
            self.add_layer(layer)

    def __repr__(self):
        lines = [f"  ({i}): {layer!r}" for i, layer in enumerate(self._layers)]
        return "MultilayerPerceptron(\n" + "\n".join(lines) + "\n)"

    def __getitem__(self, idx):
        return self._layers[idx]

    def __len__(self):
        return len(self._layers)

    def __call__(self, inputs):
        return self.calculate_outputs(inputs)

    def _print(self, message):
        if self.display:
            print(f"[GateLearn] MultilayerPerceptron: {message}")

    # -------------------------------
    # Architecture
    # -------------------------------
    def add_layer(self, layer: BaseLayer):
        """Append a layer; its inputs must match the outputs of the last layer."""
        if not isinstance(layer, BaseLayer):
            raise TypeError(f"Expected a layer, got {type(layer).__name__}")
        if self._layers:
            previous = self._layers[-1]
            if (not previous.is_empty() and layer.get_inputs_number()
                    and previous.get_neurons_number() != layer.get_inputs_number()):
                raise DimensionMismatch(
                    f"{layer.__class__.__name__} takes {layer.get_inputs_number()} inputs but "
                    f"{previous.__class__.__name__} gives {previous.get_neurons_number()} outputs"
                )
        self._layers.append(layer)

    def get_layers(self):
        return list(self._layers)

    def get_layers_number(self):
        return len(self._layers)

    def get_inputs_number(self):
        return self._layers[0].get_inputs_number() if self._layers else 0

    def get_outputs_number(self):
        return self._layers[-1].get_neurons_number() if self._layers else 0

    def get_architecture(self):
        if not self._layers:
            return []
        return [self.get_inputs_number()] + [layer.get_neurons_number() for layer in self._layers]

    def write_layers_activation_function(self):
        return [getattr(layer, "activation_function", None) for layer in self._layers]

    def set_display(self, display):
        self.display = bool(display)
        for layer in self._layers:
            layer.set_display(display)

    # -------------------------------
    # Parameters
    # -------------------------------
    def named_parameters(self, prefix: str = ""):
        params = []
        for i, layer in enumerate(self._layers):
            params.extend(layer.named_parameters(prefix=f"{prefix}layer{i}."))
        return params

    def parameters(self):
        return [p for _, p in self.named_parameters()]

    def count_parameters(self):
        return sum(layer.count_parameters() for layer in self._layers)

    def get_layers_parameters_numbers(self):
        return [layer.count_parameters() for layer in self._layers]

    def get_parameters(self):
        if not self._layers:
            return xp.zeros(0, dtype=backend.DTYPE)
        return xp.concatenate([layer.get_parameters() for layer in self._layers])

    def set_parameters(self, vector):
        vector = xp.asarray(vector, dtype=backend.DTYPE)
        if vector.size != self.count_parameters():
            raise DimensionMismatch(
                f"Parameter vector has size {vector.size}, network has {self.count_parameters()} parameters"
            )
        index = 0
        for layer in self._layers:
            layer.set_parameters(vector, index)
            index += layer.count_parameters()

    def set_parameters_constant(self, value):
        for layer in self._layers:
            layer.set_parameters_constant(value)

    def set_parameters_random(self, low=-1.0, high=1.0):
        for layer in self._layers:
            layer.set_parameters_random(low, high)

    def flatten_gradients(self, gradients):
        """Concatenate per-layer Gradients into one vector, in parameter order."""
        vector = xp.zeros(self.count_parameters(), dtype=backend.DTYPE)
        index = 0
        for layer, layer_gradients in zip(self._layers, gradients):
            layer.insert_gradient(layer_gradients, index, vector)
            index += layer.count_parameters()
        return vector

    def named_gradients(self, gradients, prefix: str = ""):
        """Map the names of `named_parameters()` to the arrays of `gradients`."""
        out = {}
        for i, layer_gradients in enumerate(gradients):
            for name, grad in layer_gradients.items():
                out[f"{prefix}layer{i}.{name}"] = grad
        return out

    # -------------------------------
    # Propagation
    # -------------------------------
    def forward(self, inputs):
        """
        Returns:
            tuple: (outputs, caches), one cache per layer.
        """
        caches = []
        outputs = inputs
        for layer in self._layers:
            outputs, cache = layer.forward(outputs)
            caches.append(cache)
        return outputs, caches

    def calculate_outputs(self, inputs):
        outputs, _ = self.forward(inputs)
        return outputs

    def backward(self, outputs_delta, caches):
        """
        Returns:
            tuple: (inputs_delta, gradients) with one Gradients per layer.
        """
        if len(caches) != len(self._layers):
            raise DimensionMismatch(f"Expected {len(self._layers)} caches, got {len(caches)}")
        delta = outputs_delta
        gradients = [None] * len(self._layers)
        for i in reversed(range(len(self._layers))):
            delta, gradients[i] = self._layers[i].backward(delta, caches[i])
        return delta, gradients

    def calculate_error_gradient(self, inputs, targets, loss):
        """
        Error and its gradient with respect to the flat parameter vector.

        Returns:
            tuple: (error, gradient)
        """
        outputs, caches = self.forward(inputs)
        error, outputs_delta = loss.calculate_error_and_delta(outputs, targets)
        _, gradients = self.backward(outputs_delta, caches)
        return error, self.flatten_gradients(gradients)

    # -------------------------------
    # Jacobians and Hessians
    # -------------------------------
    def calculate_jacobian(self, inputs):
        """
        Derivatives of the outputs with respect to the inputs.

        Returns an array of shape `inputs.shape[:-1] + (outputs_number, inputs_number)`.
        Entry `[..., k, i]` is the derivative of output `k`, summed over all
        output rows, with respect to input `i` of that row. For networks whose
        rows are independent (no recurrent layer) this is the per-sample
        Jacobian.
        """
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        columns = []
        for k in range(self.get_outputs_number()):
            outputs, caches = self.forward(inputs)
            outputs_delta = xp.zeros_like(outputs)
            outputs_delta[..., k] = 1.0
            inputs_delta, _ = self.backward(outputs_delta, caches)
            columns.append(inputs_delta)
        return xp.stack(columns, axis=-2)

    def calculate_parameters_jacobian(self, inputs):
        """
        Derivatives of every output with respect to every parameter.

        Returns:
            ndarray: (rows, outputs_number, parameters_number), where rows are
            the output rows in C order.
        """
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        outputs = self.calculate_outputs(inputs)
        rows = outputs.size // max(outputs.shape[-1], 1)

        jacobian = xp.zeros((rows, self.get_outputs_number(), self.count_parameters()), dtype=backend.DTYPE)
        for r in range(rows):
            for k in range(self.get_outputs_number()):
                outputs, caches = self.forward(inputs)
                outputs_delta = xp.zeros_like(outputs).reshape(-1, self.get_outputs_number())
                outputs_delta[r, k] = 1.0
                _, gradients = self.backward(outputs_delta.reshape(outputs.shape), caches)
                jacobian[r, k] = self.flatten_gradients(gradients)
        return jacobian

    def calculate_hessian_form(self, inputs):
        """
        Second derivatives of every output with respect to the inputs.

        Each layer contributes its own first and second input derivatives,
        which are chained forward through the network:

            J = J_layer @ J
            H_k = J^T H_layer_k J + sum_a J_layer[k, a] H_a

        Only layers whose outputs depend on a single input row take part, so a
        network holding a recurrent layer raises NotImplementedError.

        Returns:
            ndarray: (rows, outputs_number, inputs_number, inputs_number), where
            entry `[r, k]` is the Hessian of output `k` of row `r`.
        """
        n_in = self.get_inputs_number()
        outputs = xp.asarray(inputs, dtype=backend.DTYPE).reshape(-1, n_in)
        rows = outputs.shape[0]

        jacobian = xp.broadcast_to(xp.eye(n_in, dtype=backend.DTYPE), (rows, n_in, n_in)).copy()
        hessian = xp.zeros((rows, n_in, n_in, n_in), dtype=backend.DTYPE)
        for layer in self._layers:
            outputs, layer_jacobian, layer_hessian = layer.calculate_input_derivatives(outputs)
            hessian = (xp.einsum("rai,rkab,rbj->rkij", jacobian, layer_hessian, jacobian)
                       + xp.einsum("rka,raij->rkij", layer_jacobian, hessian))
            jacobian = xp.einsum("rka,rai->rki", layer_jacobian, jacobian)
        return hessian

    def calculate_error_hessian(self, inputs, targets, loss, epsilon=1e-5):
        """
        Hessian of the error with respect to the parameters.

        Each column is the central difference of the analytic gradient; the
        result is symmetrized. Parameters are restored afterwards.
        """
        parameters = self.get_parameters()

        def gradient(vector):
            self.set_parameters(vector)
            return self.calculate_error_gradient(inputs, targets, loss)[1]

        try:
            hessian = numerical_jacobian(gradient, parameters, epsilon)
        finally:
            self.set_parameters(parameters)
        return 0.5 * (hessian + hessian.T)

    def calculate_hessian_approximation(self, inputs, scale=2.0):
        """
        Gauss-Newton approximation `scale * J^T J` of the Hessian.

        `J` is the parameters Jacobian with one row per (output row, output).
        The default scale matches the sum squared error.
        """
        jacobian = self.calculate_parameters_jacobian(inputs).reshape(-1, self.count_parameters())
        return scale * (jacobian.T @ jacobian)

    # -------------------------------
    # Expression
    # -------------------------------
    def write_expression(self, inputs_names=None, outputs_names=None):
        if inputs_names is None:
            inputs_names = [f"x_{i}" for i in range(self.get_inputs_number())]
        if outputs_names is None:
            outputs_names = [f"y_{j}" for j in range(self.get_outputs_number())]
        if len(inputs_names) != self.get_inputs_number() or len(outputs_names) != self.get_outputs_number():
            raise DimensionMismatch(
                f"Expected {self.get_inputs_number()} inputs names and {self.get_outputs_number()} "
                f"outputs names, got {len(inputs_names)} and {len(outputs_names)}"
            )

        expression = []
        names = list(inputs_names)
        for i, layer in enumerate(self._layers):
            if i == len(self._layers) - 1:
                layer_outputs = list(outputs_names)
            else:
                layer_outputs = [f"{layer.layer_name}_output_{i}_{j}" for j in range(layer.get_neurons_number())]
            expression.append(layer.write_expression(names, layer_outputs))
            names = layer_outputs
        return "".join(expression)

    # -------------------------------
    # Serialization
    # -------------------------------
    def state_dict(self):
        out = {"_type": self.__class__.__name__, "num_layers": len(self._layers)}
        for i, layer in enumerate(self._layers):
            out[str(i)] = layer.state_dict()
        return out

    def load_state_dict(self, state):
        """
        Load a document written by `state_dict`.

        An empty network builds its layers from the document first.
        """
        if not self._layers:
            for i in range(state.get("num_layers", 0)):
                layer_type = state[str(i)]["_type"]
                if layer_type not in LAYER_CLASSES:
                    raise ValueError(f"Unknown layer class '{layer_type}'. Available: {list(LAYER_CLASSES)}")
                self._layers.append(LAYER_CLASSES[layer_type](display=self.display))
        elif state.get("num_layers", len(self._layers)) != len(self._layers):
            raise DimensionMismatch(
                f"Document holds {state['num_layers']} layers, network has {len(self._layers)}"
            )

        for i, layer in enumerate(self._layers):
            key = str(i)
            if key in state:
                layer.load_state_dict(state[key])
        self._print(f"loaded {len(self._layers)} layers")
