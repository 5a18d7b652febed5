import GateLearn.core.backend.backend as backend
from GateLearn.nn.activations import activations

xp = backend.xp

GATES = ("forget", "input", "state", "output")


def gate_combination(inputs, previous_hidden, weights, recurrent_weights, biases):
    """
    Pre-activation of one LSTM gate.

    Args:
        inputs: (batch, inputs_number) inputs at the current timestep.
        previous_hidden: (batch, neurons_number) hidden state of the previous timestep.
        weights: (inputs_number, neurons_number).
        recurrent_weights: (neurons_number, neurons_number).
        biases: (neurons_number,).

    Returns:
        (batch, neurons_number) combinations.
    """
    return inputs @ weights + previous_hidden @ recurrent_weights + biases


class LSTMStepCache:
    """Everything one timestep leaves behind for back-propagation through time."""
    def __init__(self, inputs, previous_hidden, previous_cell, combinations,
                 gates, gates_derivatives, cell_state, cell_activation,
                 cell_activation_derivative, hidden_state):
        self.inputs = inputs
        self.previous_hidden = previous_hidden
        self.previous_cell = previous_cell
        self.combinations = combinations
        self.gates = gates
        self.gates_derivatives = gates_derivatives
        self.cell_state = cell_state
        self.cell_activation = cell_activation
        self.cell_activation_derivative = cell_activation_derivative
        self.hidden_state = hidden_state


class LSTMCell:
    """
    One timestep of the LSTM recursion.

        f_t = recurrent_activation(x_t @ Wf + h_{t-1} @ Uf + bf)
        i_t = recurrent_activation(x_t @ Wi + h_{t-1} @ Ui + bi)
        s_t = activation(x_t @ Ws + h_{t-1} @ Us + bs)
        o_t = recurrent_activation(x_t @ Wo + h_{t-1} @ Uo + bo)
        c_t = f_t * c_{t-1} + i_t * s_t
        h_t = o_t * activation(c_t)

    The cell holds references to the parameter arrays of its layer and is
    rebuilt for every forward call, so it never outlives a parameter change.

    Args:
        weights (dict): gate -> (inputs_number, neurons_number) array.
        recurrent_weights (dict): gate -> (neurons_number, neurons_number) array.
        biases (dict): gate -> (neurons_number,) array.
        activation_function (str): Activation of the state gate and the cell state.
        recurrent_activation_function (str): Activation of the forget, input and output gates.
    """
    def __init__(self, weights, recurrent_weights, biases,
                 activation_function="HyperbolicTangent",
                 recurrent_activation_function="HardSigmoid"):
        self.weights = weights
        self.recurrent_weights = recurrent_weights
        self.biases = biases
        self.activation_function = activation_function
        self.recurrent_activation_function = recurrent_activation_function

    def _gate_activation(self, gate):
        if gate == "state":
            return self.activation_function
        return self.recurrent_activation_function

    def step(self, x_t, h_prev, c_prev):
        """
        Advance one timestep.

        Returns:
            tuple: (h_t, c_t, LSTMStepCache)
        """
        combinations, gates, derivatives = {}, {}, {}
        for gate in GATES:
            combinations[gate] = gate_combination(
                x_t, h_prev, self.weights[gate], self.recurrent_weights[gate], self.biases[gate]
            )
            gates[gate], derivatives[gate] = activations.calculate_derivatives(
                combinations[gate], self._gate_activation(gate)
            )

        c_t = gates["forget"] * c_prev + gates["input"] * gates["state"]
        c_act, c_act_derivative = activations.calculate_derivatives(c_t, self.activation_function)
        h_t = gates["output"] * c_act

        entry = LSTMStepCache(x_t, h_prev, c_prev, combinations, gates, derivatives,
                              c_t, c_act, c_act_derivative, h_t)
        return h_t, c_t, entry

    def step_backward(self, entry, hidden_delta, next_cell_delta):
        """
        Back-propagate one timestep.

        Args:
            entry (LSTMStepCache): Cache of the timestep.
            hidden_delta: Total delta of h_t (external plus recurrent from t+1).
            next_cell_delta: Cell delta flowing back from t+1, already scaled by f_{t+1}.

        Returns:
            tuple: (gate errors dict, inputs delta, previous hidden delta, previous cell delta)
        """
        gates = entry.gates
        d = entry.gates_derivatives

        cell_delta = hidden_delta * gates["output"] * entry.cell_activation_derivative + next_cell_delta

        errors = {
            "forget": cell_delta * entry.previous_cell * d["forget"],
            "input": cell_delta * gates["state"] * d["input"],
            "state": cell_delta * gates["input"] * d["state"],
            "output": hidden_delta * entry.cell_activation * d["output"],
        }

        inputs_delta = sum(errors[g] @ self.weights[g].T for g in GATES)
        previous_hidden_delta = sum(errors[g] @ self.recurrent_weights[g].T for g in GATES)
        previous_cell_delta = cell_delta * gates["forget"]
        return errors, inputs_delta, previous_hidden_delta, previous_cell_delta
