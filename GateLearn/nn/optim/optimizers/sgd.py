from GateLearn.nn.optim.optimizers.base_optimizer import BaseOptimizer


class SGD(BaseOptimizer):
    """Plain gradient descent: param <- param - learning_rate * grad."""
    def __init__(self, learning_rate=0.01):
        super().__init__(learning_rate)

    def step(self, named_parameters, gradients):
        for param, grad in self._iter_params(named_parameters, gradients):
            param.update(-self.learning_rate * grad)
        self.t += 1
