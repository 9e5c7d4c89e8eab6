# File location: jax-dcgraph/src/dcgraph/models/generator.py

"""
DCGAN generator graph.

Maps latent noise to images through a dense projection and three
transposed convolutions: (7, 7, 256) -> (7, 7, 128) -> (14, 14, 64) ->
(IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS). No output activation is applied.
"""

import logging
import numpy as np
from typing import Union

from ..config import (BATCH_NORM_EPSILON, DENSE_INIT_STDDEV, GENERATOR_BASE_DEPTH,
                      IMAGE_SIZE, LEAKY_RELU_ALPHA, NOISE_DIM, NUM_CHANNELS, UNITS)
from ..core import ops
from ..core.context import BuildContext
from ..core.graph import Tensor
from ..core.variables import create_parameter, schedule_initializer
from ..nn import functional as F
from ..nn.batch_norm import BatchNormalization, FusedBatchNorm, Mode

logger = logging.getLogger(__name__)

KERNEL_SIZE = 5


class Generator:
    """Generator parameters plus a ``build`` that emits the forward graph.

    All parameters are created once here; every ``build`` call reuses them.
    """

    def __init__(self, ctx: BuildContext):
        self.w1 = create_parameter(ctx, (NOISE_DIM, UNITS), trainable=True, name='weight')
        random_value = ops.random_normal(ctx, (NOISE_DIM, UNITS))
        schedule_initializer(ctx, self.w1, ops.multiply(ctx, random_value, DENSE_INIT_STDDEV))
        ctx.log_status('generator dense weight')

        # Transposed-convolution kernels are HWIO with I = output depth
        self.filter = self._filter(ctx, 'filter', 128, GENERATOR_BASE_DEPTH)
        self.filter2 = self._filter(ctx, 'filter2', 64, 128)
        self.filter3 = self._filter(ctx, 'filter3', NUM_CHANNELS, 64)

        self.batchnorm = BatchNormalization(ctx, (UNITS,))
        self.batchnorm1 = FusedBatchNorm(ctx, (128,))
        self.batchnorm2 = FusedBatchNorm(ctx, (64,))

    @staticmethod
    def _filter(ctx: BuildContext, name: str, out_depth: int, in_depth: int):
        shape = (KERNEL_SIZE, KERNEL_SIZE, out_depth, in_depth)
        kernel = create_parameter(ctx, shape, trainable=True, name=name)
        schedule_initializer(ctx, kernel, F.glorot_uniform(ctx, shape))
        ctx.log_status(f'generator {name}')
        return kernel

    @property
    def parameters(self):
        return [self.w1, self.filter, self.filter2, self.filter3,
                *self.batchnorm.parameters, *self.batchnorm1.parameters, *self.batchnorm2.parameters]

    def build(self, ctx: BuildContext, batch_size: int, training: Union[bool, Mode] = True) -> Tensor:
        """Emit the generator forward graph.

        Args:
            ctx: Build context
            batch_size: Number of samples drawn
            training: Batch-norm mode; training registers EMA update ops

        Returns:
            Handle of shape (batch_size, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS)
        """
        mode = Mode.of(training)
        side = IMAGE_SIZE // 4

        noise = ops.random_normal(ctx, (batch_size, NOISE_DIM), np.float32)
        dense = ops.matmul(ctx, noise, self.w1)
        ctx.log_status('generator dense')

        batchnorm = self.batchnorm.build(ctx, dense, (0,), BATCH_NORM_EPSILON, mode)
        leakyrelu = F.leaky_relu(ctx, batchnorm, LEAKY_RELU_ALPHA)
        reshape1 = ops.reshape(ctx, leakyrelu, (batch_size, side, side, GENERATOR_BASE_DEPTH))
        ctx.log_status('generator projection')

        deconv1 = F.conv2d_transpose(ctx, (batch_size, side, side, 128), self.filter, reshape1,
                                     (1, 1, 1, 1), 'SAME')
        batchnorm1 = self.batchnorm1.build(ctx, deconv1, BATCH_NORM_EPSILON, mode)
        leakyrelu1 = F.leaky_relu(ctx, batchnorm1, LEAKY_RELU_ALPHA)
        ctx.log_status('generator stage 1')

        deconv2 = F.conv2d_transpose(ctx, (batch_size, side * 2, side * 2, 64), self.filter2, leakyrelu1,
                                     (1, 2, 2, 1), 'SAME')
        batchnorm2 = self.batchnorm2.build(ctx, deconv2, BATCH_NORM_EPSILON, mode)
        leakyrelu2 = F.leaky_relu(ctx, batchnorm2, LEAKY_RELU_ALPHA)
        ctx.log_status('generator stage 2')

        output = F.conv2d_transpose(ctx, (batch_size, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS), self.filter3,
                                    leakyrelu2, (1, 2, 2, 1), 'SAME', name='generator')
        ctx.log_status('generator output')
        logger.debug("Built generator output %s (mode=%s)", output, mode.value)
        return output
