import GateLearn.core.backend.backend as backend
from GateLearn.core.exceptions import InvalidActivationName

xp = backend.xp

SELU_SCALE = 1.0507009873554805
SELU_ALPHA = 1.6732632423543772

HARD_SIGMOID_SLOPE = 0.2
HARD_SIGMOID_OFFSET = 0.5


# -----------------------------
# Helpers
# -----------------------------
def _stable_logistic(x):
    e = xp.exp(-xp.abs(x))
    return xp.where(x >= 0, 1 / (1 + e), e / (1 + e))

def _negative_exp(x):
    """exp(x) evaluated only where x <= 0 (positive entries map to 1)."""
    return xp.exp(xp.minimum(x, 0))


# -----------------------------
# Activations
#
# Every function takes an array of combinations and returns
# (activations, derivatives, second_derivatives) of the same shape.
# -----------------------------
def threshold(x):
    """
    Threshold activation.

    1 where x >= 0, 0 elsewhere. The derivative is taken as zero everywhere,
    the step at zero is ignored.
    """
    a = xp.where(x >= 0, 1.0, 0.0).astype(backend.DTYPE)
    zeros = xp.zeros_like(a)
    return a, zeros, zeros

def symmetric_threshold(x):
    """
    Symmetric threshold activation.

    1 where x >= 0, -1 elsewhere. Zero derivative.
    """
    a = xp.where(x >= 0, 1.0, -1.0).astype(backend.DTYPE)
    zeros = xp.zeros_like(a)
    return a, zeros, zeros

def logistic(x):
    """
    Logistic (sigmoid) activation: 1 / (1 + exp(-x)).

    Derivative a(1 - a); second derivative a(1 - a)(1 - 2a).
    """
    a = _stable_logistic(x)
    da = a * (1 - a)
    return a, da, da * (1 - 2 * a)

def hyperbolic_tangent(x):
    """
    Hyperbolic tangent activation.

    Derivative 1 - a^2; second derivative -2a(1 - a^2).
    """
    a = xp.tanh(x)
    da = 1 - a * a
    return a, da, -2 * a * da

def linear(x):
    """Identity activation."""
    a = xp.array(x, dtype=backend.DTYPE, copy=True)
    return a, xp.ones_like(a), xp.zeros_like(a)

def rectified_linear(x):
    """
    ReLU activation: max(0, x).

    Derivative 1 where x > 0, else 0.
    """
    a = xp.maximum(x, 0).astype(backend.DTYPE)
    da = xp.where(x > 0, 1.0, 0.0).astype(backend.DTYPE)
    return a, da, xp.zeros_like(a)

def exponential_linear(x):
    """
    ELU activation.

    x if x > 0 else exp(x) - 1.
    """
    e = _negative_exp(x)
    positive = x > 0
    a = xp.where(positive, x, e - 1)
    da = xp.where(positive, 1.0, e)
    d2a = xp.where(positive, 0.0, e)
    return a, da, d2a

def scaled_exponential_linear(x):
    """
    SELU activation.

    scale * x if x > 0 else scale * alpha * (exp(x) - 1), with the standard
    self-normalizing constants.
    """
    e = _negative_exp(x)
    positive = x > 0
    a = SELU_SCALE * xp.where(positive, x, SELU_ALPHA * (e - 1))
    da = xp.where(positive, SELU_SCALE, SELU_SCALE * SELU_ALPHA * e)
    d2a = xp.where(positive, 0.0, SELU_SCALE * SELU_ALPHA * e)
    return a, da, d2a

def soft_plus(x):
    """
    Softplus activation: log(1 + exp(x)).

    Its derivative is the logistic function.
    """
    a = xp.log1p(xp.exp(-xp.abs(x))) + xp.maximum(x, 0)
    s = _stable_logistic(x)
    return a, s, s * (1 - s)

def soft_sign(x):
    """Softsign activation: x / (1 + |x|)."""
    d = 1 + xp.abs(x)
    a = x / d
    return a, 1 / (d * d), -2 * xp.sign(x) / (d * d * d)

def hard_sigmoid(x):
    """
    Hard sigmoid activation: 0.2x + 0.5 clipped to [0, 1].

    Derivative 0.2 inside the linear region (-2.5, 2.5), 0 outside.
    """
    z = HARD_SIGMOID_SLOPE * x + HARD_SIGMOID_OFFSET
    a = xp.clip(z, 0, 1)
    da = xp.where((z > 0) & (z < 1), HARD_SIGMOID_SLOPE, 0.0)
    return a, da, xp.zeros_like(a)


ACTIVATIONS = {
    "Threshold": threshold,
    "SymmetricThreshold": symmetric_threshold,
    "Logistic": logistic,
    "HyperbolicTangent": hyperbolic_tangent,
    "Linear": linear,
    "RectifiedLinear": rectified_linear,
    "ExponentialLinear": exponential_linear,
    "ScaledExponentialLinear": scaled_exponential_linear,
    "SoftPlus": soft_plus,
    "SoftSign": soft_sign,
    "HardSigmoid": hard_sigmoid,
}

ALIASES = {
    "threshold": "Threshold",
    "symmetric_threshold": "SymmetricThreshold",
    "logistic": "Logistic",
    "sigmoid": "Logistic",
    "tanh": "HyperbolicTangent",
    "linear": "Linear",
    "relu": "RectifiedLinear",
    "elu": "ExponentialLinear",
    "selu": "ScaledExponentialLinear",
    "softplus": "SoftPlus",
    "softsign": "SoftSign",
    "hard_sigmoid": "HardSigmoid",
}

# Function names used when a layer is written as a symbolic expression
EXPRESSIONS = {
    "Threshold": "threshold",
    "SymmetricThreshold": "symmetric_threshold",
    "Logistic": "logistic",
    "HyperbolicTangent": "tanh",
    "Linear": "",
    "RectifiedLinear": "ReLU",
    "ExponentialLinear": "ELU",
    "ScaledExponentialLinear": "SELU",
    "SoftPlus": "soft_plus",
    "SoftSign": "soft_sign",
    "HardSigmoid": "hard_sigmoid",
}


def check_activation_name(name):
    """
    Return the canonical activation name for `name`.

    Accepts the canonical names (e.g. "HyperbolicTangent") and the short
    aliases (e.g. "tanh"). Raises InvalidActivationName otherwise.
    """
    if isinstance(name, str):
        if name in ACTIVATIONS:
            return name
        if name in ALIASES:
            return ALIASES[name]
    raise InvalidActivationName(
        f"Unknown activation function '{name}'. Available: {list(ACTIVATIONS.keys())}"
    )

def get_activation(name):
    """Fetch an activation function by name."""
    return ACTIVATIONS[check_activation_name(name)]

def calculate(x, name):
    """Activations of `x`."""
    return get_activation(name)(x)[0]

def calculate_derivatives(x, name):
    """Activations and first derivatives of `x`, computed in one pass."""
    a, da, _ = get_activation(name)(x)
    return a, da

def calculate_second_derivatives(x, name):
    """Activations, first and second derivatives of `x`."""
    return get_activation(name)(x)

def write_activation_expression(name):
    """Function name used for `name` in symbolic expressions ("" for Linear)."""
    return EXPRESSIONS[check_activation_name(name)]
