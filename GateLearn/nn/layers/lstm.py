import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import DimensionMismatch
from GateLearn.nn.activations import activations
from GateLearn.nn.layers.base_layer import BaseLayer, ForwardCache, format_number
from GateLearn.nn.layers.lstmcell import GATES, LSTMCell
from GateLearn.nn.layers.registry import register_delta_transform

xp = backend.xp

PARAMETER_GROUPS = ("biases", "weights", "recurrent_weights")


class LSTMForwardCache(ForwardCache):
    """
    Forward pass record of a LongShortTermMemoryLayer.

    `steps[t]` is the LSTMStepCache of timestep t, each holding the
    (batch, ...) arrays of that timestep.
    """
    def __init__(self, layer, inputs, outputs, steps, batch_size):
        super().__init__(layer, inputs, outputs)
        self.steps = steps
        self.batch_size = batch_size
        self.timesteps = len(steps)
        self.input_layout = "sequences" if inputs.ndim == 3 else "rows"


class LongShortTermMemoryLayer(BaseLayer):
    """
    Long Short-Term Memory layer.

    Processes windows of `timesteps` consecutive inputs, starting every
    window from the initial hidden and cell states, and returns the hidden
    state of every timestep.

    Inputs may be given as sequences `(batch, timesteps, inputs_number)` or as
    rows `(samples, inputs_number)`, where each run of `timesteps` consecutive
    rows is one sequence. Outputs follow the same layout with
    `neurons_number` columns.

    The gradient is computed by back-propagation through time in
    `backward(outputs_delta, cache)`, where `cache` is the value returned by
    the matching `forward` call.

    Args:
        inputs_number (int): Number of input variables.
        neurons_number (int): Number of LSTM units.
        timesteps (int, optional): Sequence length. Defaults to 1.
        activation (str, optional): Activation of the state gate and the cell
            state. Defaults to "HyperbolicTangent".
        recurrent_activation (str, optional): Activation of the forget, input
            and output gates. Defaults to "HardSigmoid".
        w_init (str, optional): Initialization of the input weights. Defaults to "glorot".
        display (bool, optional): Print messages. Defaults to the backend setting.
    """
    layer_type = "LongShortTermMemory"

    def __init__(self, inputs_number=0, neurons_number=0, timesteps=1,
                 activation="HyperbolicTangent", recurrent_activation="HardSigmoid",
                 w_init="glorot", display=None):
        super().__init__(display=display)
        self.activation_function = activations.check_activation_name(activation)
        self.recurrent_activation_function = activations.check_activation_name(recurrent_activation)
        self.w_init = w_init
        self.initial_hidden_state = 0.0
        self.initial_cell_state = 0.0
        self.set_timesteps(timesteps)
        self.set(inputs_number, neurons_number)

    def extra_repr(self):
        return (f"in={self.get_inputs_number()}, out={self.get_neurons_number()}, "
                f"timesteps={self.timesteps}, activation={self.activation_function}, "
                f"recurrent_activation={self.recurrent_activation_function}")

    # -------------------------------
    # Architecture
    # -------------------------------
    def set(self, inputs_number=0, neurons_number=0):
        if inputs_number < 0 or neurons_number < 0:
            raise ValueError("inputs_number and neurons_number must be non-negative")

        self._parameter_names = []
        for gate in GATES:
            self._new_parameter(f"{gate}_biases", (neurons_number,))
        for gate in GATES:
            self._new_parameter(f"{gate}_weights", (inputs_number, neurons_number))
        for gate in GATES:
            self._new_parameter(f"{gate}_recurrent_weights", (neurons_number, neurons_number))
        self._config_version += 1

        if inputs_number and neurons_number:
            self.set_synaptic_weights_glorot()

    def get_inputs_number(self):
        return self.forget_weights.shape[0]

    def get_neurons_number(self):
        return self.forget_weights.shape[1]

    def set_inputs_number(self, inputs_number):
        self.set(inputs_number, self.get_neurons_number())

    def set_neurons_number(self, neurons_number):
        self.set(self.get_inputs_number(), neurons_number)

    def set_timesteps(self, timesteps):
        if not isinstance(timesteps, int) or timesteps < 1:
            raise ValueError(f"timesteps must be a positive integer, got {timesteps!r}")
        self.timesteps = timesteps
        self._config_version += 1

    def get_timesteps(self):
        return self.timesteps

    # -------------------------------
    # Activation functions
    # -------------------------------
    def set_activation_function(self, name):
        self.activation_function = activations.check_activation_name(name)
        self._config_version += 1

    def set_recurrent_activation_function(self, name):
        self.recurrent_activation_function = activations.check_activation_name(name)
        self._config_version += 1

    def write_activation_function(self):
        return self.activation_function

    def write_recurrent_activation_function(self):
        return self.recurrent_activation_function

    # -------------------------------
    # Parameters
    # -------------------------------
    def _gate_parameter(self, gate, group):
        if gate not in GATES:
            raise ValueError(f"Unknown gate '{gate}'. Available: {list(GATES)}")
        return getattr(self, f"{gate}_{group}")

    def get_biases(self, gate):
        return self._gate_parameter(gate, "biases").data.copy()

    def get_weights(self, gate):
        return self._gate_parameter(gate, "weights").data.copy()

    def get_recurrent_weights(self, gate):
        return self._gate_parameter(gate, "recurrent_weights").data.copy()

    def set_biases(self, gate, biases):
        self._gate_parameter(gate, "biases").assign(biases)

    def set_weights(self, gate, weights):
        self._gate_parameter(gate, "weights").assign(weights)

    def set_recurrent_weights(self, gate, recurrent_weights):
        self._gate_parameter(gate, "recurrent_weights").assign(recurrent_weights)

    def initialize_biases(self, value, gate=None):
        for g in (GATES if gate is None else (gate,)):
            self._gate_parameter(g, "biases").fill(value)

    def initialize_weights(self, value, gate=None):
        for g in (GATES if gate is None else (gate,)):
            self._gate_parameter(g, "weights").fill(value)

    def initialize_recurrent_weights(self, value, gate=None):
        for g in (GATES if gate is None else (gate,)):
            self._gate_parameter(g, "recurrent_weights").fill(value)

    def initialize_hidden_states(self, value):
        self.initial_hidden_state = float(value)
        self._config_version += 1

    def initialize_cell_states(self, value):
        self.initial_cell_state = float(value)
        self._config_version += 1

    def set_synaptic_weights_glorot(self):
        """Glorot input weights, orthogonal recurrent weights, zero biases."""
        from GateLearn.nn.initializations import Orthogonal, initialize_weights

        n_in, n = self.get_inputs_number(), self.get_neurons_number()
        for gate in GATES:
            activation = self.activation_function if gate == "state" else self.recurrent_activation_function
            self._gate_parameter(gate, "weights").assign(initialize_weights((n_in, n), self.w_init, activation))
            self._gate_parameter(gate, "recurrent_weights").assign(Orthogonal((n, n)))
            self._gate_parameter(gate, "biases").fill(0.0)

    def _cell(self):
        return LSTMCell(
            weights={g: self._gate_parameter(g, "weights").data for g in GATES},
            recurrent_weights={g: self._gate_parameter(g, "recurrent_weights").data for g in GATES},
            biases={g: self._gate_parameter(g, "biases").data for g in GATES},
            activation_function=self.activation_function,
            recurrent_activation_function=self.recurrent_activation_function,
        )

    # -------------------------------
    # Forward
    # -------------------------------
    def _as_sequences(self, inputs):
        """Reshape `inputs` to (batch, timesteps, inputs_number), validating the layout."""
        n_in = self.get_inputs_number()
        if inputs.ndim == 3:
            if inputs.shape[2] != n_in:
                raise DimensionMismatch(
                    f"LSTM expects {n_in} input variables, got inputs of shape {tuple(inputs.shape)}"
                )
            if inputs.shape[1] != self.timesteps:
                raise DimensionMismatch(
                    f"LSTM expects {self.timesteps} timesteps, got inputs of shape {tuple(inputs.shape)}"
                )
            return inputs
        if inputs.ndim == 2:
            if inputs.shape[1] != n_in:
                raise DimensionMismatch(
                    f"LSTM expects {n_in} input variables, got inputs of shape {tuple(inputs.shape)}"
                )
            if inputs.shape[0] % self.timesteps != 0:
                raise DimensionMismatch(
                    f"Number of samples ({inputs.shape[0]}) is not a multiple of timesteps ({self.timesteps})"
                )
            return inputs.reshape(-1, self.timesteps, n_in)
        raise DimensionMismatch(
            f"LSTM inputs must be 2-D (samples, inputs) or 3-D (batch, timesteps, inputs), "
            f"got shape {tuple(inputs.shape)}"
        )

    def forward(self, inputs):
        inputs = xp.asarray(inputs, dtype=backend.DTYPE)
        sequences = self._as_sequences(inputs)
        batch_size = sequences.shape[0]
        n = self.get_neurons_number()

        cell = self._cell()
        h = xp.full((batch_size, n), self.initial_hidden_state, dtype=backend.DTYPE)
        c = xp.full((batch_size, n), self.initial_cell_state, dtype=backend.DTYPE)

        hidden_states = xp.zeros((batch_size, self.timesteps, n), dtype=backend.DTYPE)
        steps = []
        for t in range(self.timesteps):
            h, c, entry = cell.step(sequences[:, t, :], h, c)
            hidden_states[:, t, :] = h
            steps.append(entry)

        outputs = hidden_states.reshape(inputs.shape[:-1] + (n,))
        return outputs, LSTMForwardCache(self, inputs, outputs, steps, batch_size)

    # -------------------------------
    # Back-propagation through time
    # -------------------------------
    def _back_propagate_through_time(self, outputs_delta, cache):
        n = self.get_neurons_number()
        deltas = outputs_delta.reshape(cache.batch_size, cache.timesteps, n)

        cell = self._cell()
        gradients = self._new_gradients()
        inputs_delta = xp.zeros((cache.batch_size, cache.timesteps, self.get_inputs_number()),
                                dtype=backend.DTYPE)

        hidden_delta_next = xp.zeros((cache.batch_size, n), dtype=backend.DTYPE)
        cell_delta_next = xp.zeros((cache.batch_size, n), dtype=backend.DTYPE)

        for t in reversed(range(cache.timesteps)):
            entry = cache.steps[t]
            hidden_delta = deltas[:, t, :] + hidden_delta_next

            errors, inputs_delta[:, t, :], hidden_delta_next, cell_delta_next = cell.step_backward(
                entry, hidden_delta, cell_delta_next
            )

            for gate in GATES:
                e = errors[gate]
                gradients[f"{gate}_biases"] += e.sum(axis=0)
                gradients[f"{gate}_weights"] += entry.inputs.T @ e
                gradients[f"{gate}_recurrent_weights"] += entry.previous_hidden.T @ e

        return inputs_delta.reshape(cache.inputs_shape), gradients

    def _calculate_error_gradient(self, outputs_delta, cache):
        return self._back_propagate_through_time(outputs_delta, cache)[1]

    def backward(self, outputs_delta, cache):
        outputs_delta = xp.asarray(outputs_delta, dtype=backend.DTYPE)
        cache.check(self, outputs_delta)
        inputs_delta, gradients = self._back_propagate_through_time(outputs_delta, cache)
        cache.consume(self, outputs_delta)
        return inputs_delta, gradients

    # -------------------------------
    # Expression
    # -------------------------------
    def write_recurrent_activation_function_expression(self):
        return activations.write_activation_expression(self.recurrent_activation_function)

    def write_activation_function_expression(self):
        return activations.write_activation_expression(self.activation_function)

    def write_expression(self, inputs_names, outputs_names):
        """
        One timestep of the layer as text.

        `hidden_state_j` and `cell_state_j` on the right-hand side refer to the
        values of the previous timestep.
        """
        n_in, n = self.get_inputs_number(), self.get_neurons_number()
        lines = []

        for gate in GATES:
            function = (self.write_activation_function_expression() if gate == "state"
                        else self.write_recurrent_activation_function_expression())
            biases = backend.to_numpy(self._gate_parameter(gate, "biases").data)
            weights = backend.to_numpy(self._gate_parameter(gate, "weights").data)
            recurrent = backend.to_numpy(self._gate_parameter(gate, "recurrent_weights").data)

            for j in range(n):
                terms = [format_number(biases[j])]
                terms += [f"({inputs_names[i]}*{format_number(weights[i, j])})" for i in range(n_in)]
                terms += [f"(hidden_state_{k}*{format_number(recurrent[k, j])})" for k in range(n)]
                lines.append(f"{gate}_gate_{j} = {function}({' + '.join(terms)});\n")

        function = self.write_activation_function_expression()
        for j in range(n):
            lines.append(f"cell_state_{j} = forget_gate_{j}*cell_state_{j} + input_gate_{j}*state_gate_{j};\n")
        for j in range(n):
            lines.append(f"hidden_state_{j} = output_gate_{j}*{function}(cell_state_{j});\n")
        for j in range(n):
            lines.append(f"{outputs_names[j]} = hidden_state_{j};\n")
        return "".join(lines)

    # -------------------------------
    # Serialization
    # -------------------------------
    def get_config(self):
        return {
            "inputs_number": self.get_inputs_number(),
            "neurons_number": self.get_neurons_number(),
            "timesteps": self.timesteps,
            "activation_function": self.activation_function,
            "recurrent_activation_function": self.recurrent_activation_function,
            "w_init": self.w_init,
            "initial_hidden_state": self.initial_hidden_state,
            "initial_cell_state": self.initial_cell_state,
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
        if "recurrent_activation_function" in state:
            self.set_recurrent_activation_function(state["recurrent_activation_function"])
        inputs_number = state.get("inputs_number", self.get_inputs_number())
        neurons_number = state.get("neurons_number", self.get_neurons_number())
        if (inputs_number, neurons_number) != (self.get_inputs_number(), self.get_neurons_number()):
            self.set(inputs_number, neurons_number)
        if "timesteps" in state:
            self.set_timesteps(state["timesteps"])
        if "initial_hidden_state" in state:
            self.initialize_hidden_states(state["initial_hidden_state"])
        if "initial_cell_state" in state:
            self.initialize_cell_states(state["initial_cell_state"])
        super().load_state_dict(state)


@register_delta_transform("LongShortTermMemory")
def lstm_hidden_delta(layer, outputs_delta, cache):
    return layer._back_propagate_through_time(outputs_delta, cache)[0]
