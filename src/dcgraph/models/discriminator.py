# File location: jax-dcgraph/src/dcgraph/models/discriminator.py

"""
DCGAN discriminator graph: two strided convolutions and a dense logit.
"""

import numpy as np

from ..config import DROPOUT_RATE, IMAGE_SIZE, LEAKY_RELU_ALPHA, NUM_CHANNELS
from ..core import ops
from ..core.context import BuildContext
from ..core.graph import Tensor
from ..core.variables import create_parameter, schedule_initializer
from ..nn import functional as F

KERNEL_SIZE = 5
FLAT_FEATURES = (IMAGE_SIZE // 4) ** 2 * 128


class Discriminator:
    """Discriminator parameters plus a ``build`` producing one raw logit per example."""

    def __init__(self, ctx: BuildContext):
        self.conv1_weights = self._weights(ctx, 'conv1_weights', (KERNEL_SIZE, KERNEL_SIZE, NUM_CHANNELS, 64))
        self.conv1_biases = self._biases(ctx, 'conv1_biases', 64)

        self.conv2_weights = self._weights(ctx, 'conv2_weights', (KERNEL_SIZE, KERNEL_SIZE, 64, 128))
        self.conv2_biases = self._biases(ctx, 'conv2_biases', 128)

        self.fc1_weights = self._weights(ctx, 'fc1_weights', (FLAT_FEATURES, 1))
        self.fc1_biases = self._biases(ctx, 'fc1_biases', 1)
        ctx.log_status('discriminator parameters')

    @staticmethod
    def _weights(ctx, name, shape):
        weights = create_parameter(ctx, shape, trainable=True, name=name)
        schedule_initializer(ctx, weights, F.glorot_uniform(ctx, shape))
        return weights

    @staticmethod
    def _biases(ctx, name, size):
        biases = create_parameter(ctx, (size,), trainable=True, name=name)
        schedule_initializer(ctx, biases, np.zeros((size,), np.float32))
        return biases

    @property
    def parameters(self):
        return [self.conv1_weights, self.conv1_biases, self.conv2_weights,
                self.conv2_biases, self.fc1_weights, self.fc1_biases]

    def build(self, ctx: BuildContext, inputs: Tensor, batch_size: int) -> Tensor:
        """Emit the discriminator forward graph for NHWC ``inputs``.

        Returns:
            Logits of shape (batch_size, 1); no sigmoid is applied
        """
        conv2d_1 = ops.conv2d(ctx, inputs, self.conv1_weights, (1, 2, 2, 1), 'SAME')
        relu_1 = F.leaky_relu(ctx, ops.bias_add(ctx, conv2d_1, self.conv1_biases), LEAKY_RELU_ALPHA)
        dropout_1 = F.dropout(ctx, relu_1, DROPOUT_RATE)
        ctx.log_status('discriminator stage 1')

        conv2d_2 = ops.conv2d(ctx, dropout_1, self.conv2_weights, (1, 2, 2, 1), 'SAME')
        relu_2 = F.leaky_relu(ctx, ops.bias_add(ctx, conv2d_2, self.conv2_biases), LEAKY_RELU_ALPHA)
        dropout_2 = F.dropout(ctx, relu_2, DROPOUT_RATE)
        ctx.log_status('discriminator stage 2')

        reshape1 = ops.reshape(ctx, dropout_2, (batch_size, FLAT_FEATURES))
        output = ops.bias_add(ctx, ops.matmul(ctx, reshape1, self.fc1_weights), self.fc1_biases,
                              name='discriminator')
        ctx.log_status('discriminator output')
        return output
