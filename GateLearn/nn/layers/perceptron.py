import GateLearn.core.backend.backend as backend
from GateLearn.nn.activations import activations
from GateLearn.nn.layers.base_layer import BaseLayer, ForwardCache, format_number
from GateLearn.nn.layers.registry import register_delta_transform

xp = backend.xp


class PerceptronForwardCache(ForwardCache):
    def __init__(self, layer, inputs, outputs, flat_inputs, combinations, activations_derivatives):
        super().__init__(layer, inputs, outputs)
        self.flat_inputs = flat_inputs
        self.combinations = combinations
        self.activations_derivatives = activations_derivatives


class PerceptronLayer(BaseLayer):
    """
    Fully connected layer of perceptrons.

    Computes `activation(inputs @ synaptic_weights + biases)`. Inputs may carry
    any number of leading axes (e.g. `(batch, timesteps, inputs)` coming out of
    an LSTM layer); the last axis holds the input variables.

    Args:
        inputs_number (int): Number of input variables.
        neurons_number (int): Number of perceptrons.
        activation (str, optional): Activation function name.
            Defaults to "HyperbolicTangent".
        w_init (str, optional): Weight initialization scheme. Defaults to "auto".
        display (bool, optional): Print messages. Defaults to the backend setting.
    """
    layer_type = "Perceptron"

    def __init__(self, inputs_number=0, neurons_number=0, activation="HyperbolicTangent",
                 w_init="auto", display=None):
        super().__init__(display=display)
        self.activation_function = activations.check_activation_name(activation)
        self.w_init = w_init
        self.set(inputs_number, neurons_number)

    def extra_repr(self):
        return (f"in={self.get_inputs_number()}, out={self.get_neurons_number()}, "
                f"activation={self.activation_function}")

    # -------------------------------
    # Architecture
    # -------------------------------
    def set(self, inputs_number=0, neurons_number=0):
        if inputs_number < 0 or neurons_number < 0:
            raise ValueError("inputs_number and neurons_number must be non-negative")
        self._new_parameter("biases", (neurons_number,))
        self._new_parameter("synaptic_weights", (inputs_number, neurons_number))
        self._config_version += 1
        if inputs_number and neurons_number:
            self.set_synaptic_weights_glorot()

    def get_inputs_number(self):
        return self.synaptic_weights.shape[0]

    def get_neurons_number(self):
        return self.synaptic_weights.shape[1]

    def set_inputs_number(self, inputs_number):
        self.set(inputs_number, self.get_neurons_number())

    def set_neurons_number(self, neurons_number):
        self.set(self.get_inputs_number(), neurons_number)

    # -------------------------------
    # Parameters
    # -------------------------------
    def get_biases(self):
        return self.biases.data.copy()

    def get_synaptic_weights(self):
        return self.synaptic_weights.data.copy()

    def set_biases(self, biases):
        self.biases.assign(biases)

    def set_synaptic_weights(self, synaptic_weights):
        self.synaptic_weights.assign(synaptic_weights)

    def initialize_biases(self, value):
        self.biases.fill(value)

    def initialize_synaptic_weights(self, value):
        self.synaptic_weights.fill(value)

    def set_synaptic_weights_glorot(self):
        from GateLearn.nn.initializations import initialize_weights
        self.synaptic_weights.assign(
            initialize_weights(self.synaptic_weights.shape, self.w_init, self.activation_function)
        )

    # -------------------------------
    # Activation function
    # -------------------------------
    def set_activation_function(self, name):
        self.activation_function = activations.check_activation_name(name)
        self._config_version += 1

    def write_activation_function(self):
        return self.activation_function

    # -------------------------------
    # Forward
    # -------------------------------
    def calculate_combinations(self, inputs):
        return inputs @ self.synaptic_weights.data + self.biases.data

    def calculate_activations_derivatives(self, combinations):
        return activations.calculate_derivatives(combinations, self.activation_function)

    def calculate_activations_second_derivatives(self, combinations):
        return activations.calculate_second_derivatives(combinations, self.activation_function)

    def forward(self, inputs):
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        self._check_inputs_width(inputs)

        flat_inputs = inputs.reshape(-1, self.get_inputs_number())
        combinations = self.calculate_combinations(flat_inputs)
        outputs, derivatives = self.calculate_activations_derivatives(combinations)

        outputs = outputs.reshape(inputs.shape[:-1] + (self.get_neurons_number(),))
        cache = PerceptronForwardCache(self, inputs, outputs, flat_inputs, combinations, derivatives)
        return outputs, cache

    def _flat_combinations(self, inputs):
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        self._check_inputs_width(inputs)
        return self.calculate_combinations(inputs.reshape(-1, self.get_inputs_number()))

    def calculate_input_derivatives(self, inputs):
        combinations = self._flat_combinations(inputs)
        outputs, d1, d2 = self.calculate_activations_second_derivatives(combinations)

        # weights[k, i] is the weight from input i to neuron k
        weights = self.synaptic_weights.data.T
        jacobian = d1[:, :, None] * weights[None]
        hessian = d2[:, :, None, None] * (weights[:, :, None] * weights[:, None, :])[None]
        return outputs, jacobian, hessian

    # -------------------------------
    # Backward
    # -------------------------------
    def _combinations_delta(self, outputs_delta, cache):
        return outputs_delta.reshape(-1, self.get_neurons_number()) * cache.activations_derivatives

    def _calculate_error_gradient(self, outputs_delta, cache):
        combinations_delta = self._combinations_delta(outputs_delta, cache)

        gradients = self._new_gradients()
        gradients["biases"] = combinations_delta.sum(axis=0)
        gradients["synaptic_weights"] = cache.flat_inputs.T @ combinations_delta
        return gradients

    # -------------------------------
    # Expression
    # -------------------------------
    def write_expression(self, inputs_names, outputs_names):
        function = activations.write_activation_expression(self.activation_function)
        biases = backend.to_numpy(self.biases.data)
        weights = backend.to_numpy(self.synaptic_weights.data)

        lines = []
        for j in range(self.get_neurons_number()):
            terms = [format_number(biases[j])]
            for i in range(self.get_inputs_number()):
                terms.append(f"({inputs_names[i]}*{format_number(weights[i, j])})")
            lines.append(f"{outputs_names[j]} = {function}({' + '.join(terms)});\n")
        return "".join(lines)

    # -------------------------------
    # Serialization
    # -------------------------------
    def get_config(self):
        return {
            "inputs_number": self.get_inputs_number(),
            "neurons_number": self.get_neurons_number(),
            "activation_function": self.activation_function,
            "w_init": self.w_init,
        }

    def state_dict(self):
        out = super().state_dict()
        out.update(self.get_config())
        return out

    def load_state_dict(self, state):
        if "w_init" in state:
            self.w_init = state["w_init"]
        if "activation_function" in state:
            self.set_activation_function(state["activation_function"])
        inputs_number = state.get("inputs_number", self.get_inputs_number())
        neurons_number = state.get("neurons_number", self.get_neurons_number())
        if (inputs_number, neurons_number) != (self.get_inputs_number(), self.get_neurons_number()):
            self.set(inputs_number, neurons_number)
        super().load_state_dict(state)


@register_delta_transform("Perceptron")
def perceptron_hidden_delta(layer, outputs_delta, cache):
    combinations_delta = layer._combinations_delta(outputs_delta, cache)
    inputs_delta = combinations_delta @ layer.synaptic_weights.data.T
    return inputs_delta.reshape(cache.inputs_shape)
