import GateLearn.core.backend.backend as backend
from GateLearn.nn.activations import activations
from GateLearn.nn.layers.perceptron import PerceptronLayer, PerceptronForwardCache
from GateLearn.nn.layers.registry import register_delta_transform

xp = backend.xp

PROBABILISTIC_METHODS = ("Softmax", "Logistic")


def softmax(x, axis=-1):
    """Softmax along `axis`, shifted by the maximum for stability."""
    exp_shifted = xp.exp(x - xp.max(x, axis=axis, keepdims=True))
    return exp_shifted / xp.sum(exp_shifted, axis=axis, keepdims=True)


class ProbabilisticLayer(PerceptronLayer):
    """
    Output layer producing probabilities.

    Same combinations as a PerceptronLayer; the activation is either a softmax
    over the neurons ("Softmax") or an independent logistic per neuron
    ("Logistic"). With a single neuron, "Softmax" would be constant, so the
    logistic is used instead.

    Args:
        inputs_number (int): Number of input variables.
        neurons_number (int): Number of outputs (classes).
        method (str, optional): "Softmax" or "Logistic". Defaults to "Softmax".
        display (bool, optional): Print messages. Defaults to the backend setting.
    """
    layer_type = "Probabilistic"

    def __init__(self, inputs_number=0, neurons_number=0, method="Softmax", display=None):
        self.probabilistic_method = self._check_method(method)
        super().__init__(inputs_number, neurons_number, activation="Logistic",
                         w_init="glorot", display=display)

    @staticmethod
    def _check_method(method):
        if method not in PROBABILISTIC_METHODS:
            raise ValueError(
                f"Unknown probabilistic method '{method}'. Available: {list(PROBABILISTIC_METHODS)}"
            )
        return method

    def extra_repr(self):
        return (f"in={self.get_inputs_number()}, out={self.get_neurons_number()}, "
                f"method={self.probabilistic_method}")

    def set_probabilistic_method(self, method):
        self.probabilistic_method = self._check_method(method)
        self._config_version += 1

    def write_probabilistic_method(self):
        return self.probabilistic_method

    def _uses_softmax(self):
        return self.probabilistic_method == "Softmax" and self.get_neurons_number() > 1

    def forward(self, inputs):
        if not self._uses_softmax():
            return super().forward(inputs)

        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        self._check_inputs_width(inputs)

        flat_inputs = inputs.reshape(-1, self.get_inputs_number())
        combinations = self.calculate_combinations(flat_inputs)
        probabilities = softmax(combinations)

        outputs = probabilities.reshape(inputs.shape[:-1] + (self.get_neurons_number(),))
        # For softmax the cache keeps the probabilities; the Jacobian is built from them
        cache = PerceptronForwardCache(self, inputs, outputs, flat_inputs, combinations, probabilities)
        return outputs, cache

    def calculate_input_derivatives(self, inputs):
        if not self._uses_softmax():
            return super().calculate_input_derivatives(inputs)

        p = softmax(self._flat_combinations(inputs))
        n = self.get_neurons_number()

        # dp_k/dc_a = p_k (delta_ka - p_a)
        shifted = xp.eye(n, dtype=backend.DTYPE)[None] - p[:, None, :]
        combinations_jacobian = p[:, :, None] * shifted
        # d2p_k/dc_a dc_b = p_k ((delta_ka - p_a)(delta_kb - p_b) - p_a (delta_ab - p_b))
        combinations_hessian = p[:, :, None, None] * (
            shifted[:, :, :, None] * shifted[:, :, None, :] - combinations_jacobian[:, None, :, :]
        )

        weights = self.synaptic_weights.data
        jacobian = xp.einsum("rka,ia->rki", combinations_jacobian, weights)
        hessian = xp.einsum("rkab,ia,jb->rkij", combinations_hessian, weights, weights)
        return p, jacobian, hessian

    def _combinations_delta(self, outputs_delta, cache):
        outputs_delta = outputs_delta.reshape(-1, self.get_neurons_number())
        if not self._uses_softmax():
            return outputs_delta * cache.activations_derivatives

        # J^T v for J = diag(p) - p p^T
        p = cache.activations_derivatives
        return p * (outputs_delta - xp.sum(outputs_delta * p, axis=1, keepdims=True))

    def write_expression(self, inputs_names, outputs_names):
        if not self._uses_softmax():
            return super().write_expression(inputs_names, outputs_names)

        biases = backend.to_numpy(self.biases.data)
        weights = backend.to_numpy(self.synaptic_weights.data)
        combinations_names = [f"combination_{j}" for j in range(self.get_neurons_number())]

        lines = []
        for j, name in enumerate(combinations_names):
            terms = [f"{float(biases[j]):g}"]
            for i in range(self.get_inputs_number()):
                terms.append(f"({inputs_names[i]}*{float(weights[i, j]):g})")
            lines.append(f"{name} = {' + '.join(terms)};\n")

        denominator = " + ".join(f"exp({name})" for name in combinations_names)
        for name, output in zip(combinations_names, outputs_names):
            lines.append(f"{output} = exp({name})/({denominator});\n")
        return "".join(lines)

    def get_config(self):
        config = super().get_config()
        config["probabilistic_method"] = self.probabilistic_method
        return config

    def load_state_dict(self, state):
        if "probabilistic_method" in state:
            self.set_probabilistic_method(state["probabilistic_method"])
        super().load_state_dict(state)


@register_delta_transform("Probabilistic")
def probabilistic_hidden_delta(layer, outputs_delta, cache):
    combinations_delta = layer._combinations_delta(outputs_delta, cache)
    inputs_delta = combinations_delta @ layer.synaptic_weights.data.T
    return inputs_delta.reshape(cache.inputs_shape)
