import GateLearn.core.backend.backend as backend

xp = backend.xp

def calculate_fan_in_and_fan_out(shape):
    """
    Compute fan_in and fan_out from a given weight shape.
    Weights are stored as (inputs, neurons).
    """
    if len(shape) == 2:
        fan_in, fan_out = shape[0], shape[1]
    else:
        # fallback: treat as scalar
        fan_in = fan_out = 1
    return fan_in, fan_out

def He(shape, uniform=False):
    fan_in, _ = calculate_fan_in_and_fan_out(shape)
    if uniform:
        limit = xp.sqrt(6.0 / fan_in)
        return xp.random.uniform(-limit, limit, shape).astype(backend.DTYPE)
    else:
        return xp.random.randn(*shape).astype(backend.DTYPE) * xp.sqrt(2.0 / fan_in)

def Glorot(shape, uniform=True):
    fan_in, fan_out = calculate_fan_in_and_fan_out(shape)
    if uniform:
        limit = xp.sqrt(6.0 / (fan_in + fan_out))
        return xp.random.uniform(-limit, limit, shape).astype(backend.DTYPE)
    else:
        return xp.random.randn(*shape).astype(backend.DTYPE) * xp.sqrt(2.0 / (fan_in + fan_out))

def LeCun(shape, uniform=False):
    fan_in, _ = calculate_fan_in_and_fan_out(shape)
    if uniform:
        limit = xp.sqrt(3.0 / fan_in)
        return xp.random.uniform(-limit, limit, shape).astype(backend.DTYPE)
    else:
        return xp.random.randn(*shape).astype(backend.DTYPE) * xp.sqrt(1.0 / fan_in)

def Orthogonal(shape, gain=1.0):
    """
    Orthogonal initialization.
    - gain=1.0 for tanh
    - gain=sqrt(2) for ReLU
    """
    if len(shape) < 2:
        raise ValueError("Orthogonal initializer requires at least 2D shape")

    rows, cols = shape[0], shape[1]
    a = xp.random.randn(max(rows, cols), min(rows, cols)).astype(backend.DTYPE)

    # QR decomposition
    q, r = xp.linalg.qr(a)

    # Make Q uniform (fix sign)
    q *= xp.sign(xp.diag(r))

    if rows < cols:
        q = q.T
    return q[:rows, :cols] * gain

def Uniform(shape, low=-1.0, high=1.0):
    """Uniform random values in [low, high]."""
    return xp.random.uniform(low, high, shape).astype(backend.DTYPE)

INITIALIZATION = {
    "he": He,
    "glorot": Glorot,
    "lecun": LeCun,
    "orthogonal": Orthogonal,
    "uniform": Uniform,
}

ALIASES = {
    "xavier": Glorot,
    "he_uniform": lambda shape: He(shape, uniform=True),
    "glorot_normal": lambda shape: Glorot(shape, uniform=False),
    "lecun_uniform": lambda shape: LeCun(shape, uniform=True),
}

ALL_INITIALIZATIONS = {**INITIALIZATION, **ALIASES}

AUTO_INIT_MAP = {
    "Threshold": "glorot",
    "SymmetricThreshold": "glorot",
    "Logistic": "glorot",
    "HyperbolicTangent": "glorot",
    "Linear": "glorot",
    "RectifiedLinear": "he",
    "ExponentialLinear": "he",
    "ScaledExponentialLinear": "lecun",
    "SoftPlus": "glorot",
    "SoftSign": "glorot",
    "HardSigmoid": "glorot",
}

def get_initialization(name_or_fn, activation: str = None):
    """
    Return an initialization function.
    - If `name_or_fn` is callable, return it directly.
    - If it's "auto", choose based on activation.
    - If it's a string, resolve it against initializers + aliases.
    """
    from GateLearn.nn.activations import check_activation_name

    if callable(name_or_fn):
        return name_or_fn

    if isinstance(name_or_fn, str):
        name_or_fn = name_or_fn.lower()

        if name_or_fn == "auto":
            if activation is None:
                raise ValueError(
                    "'auto' initialization requires the layer's activation function "
                    "to be specified."
                )
            name_or_fn = AUTO_INIT_MAP[check_activation_name(activation)]

        if name_or_fn not in ALL_INITIALIZATIONS:
            raise ValueError(
                f"Unsupported weight initialization '{name_or_fn}'. "
                f"Available: {list(INITIALIZATION.keys())}, "
                f"Aliases: {list(ALIASES.keys())}, "
                f"'auto' (with activation)"
            )
        return ALL_INITIALIZATIONS[name_or_fn]

    raise TypeError("Weight initialization must be a string or a callable")

def initialize_weights(shape, w_init="auto", activation=None):
    """
    Initialize a weight matrix of `shape` with the chosen scheme.

    Args:
        shape (tuple): (inputs, neurons).
        w_init (str or callable): Initializer name, function, or "auto".
        activation (str): Activation name, required for "auto".

    Returns:
        ndarray: Initialized weights.
    """
    init_fn = get_initialization(w_init, activation)
    return init_fn(shape)
