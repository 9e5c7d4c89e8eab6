# File location: jax-dcgraph/src/dcgraph/nn/batch_norm.py

"""
Batch normalization modules with moving-average state.

Both variants own four parameters (moving mean, moving variance, gamma,
beta) created once in the constructor. ``build`` has two modes:

- training: normalize with batch statistics and register one EMA update op
  per moving statistic in ``ctx.update_ops``
- inference: normalize with the stored moving statistics, no updates

The moving statistics are only ever written through those update ops.
"""

import enum
import numpy as np
from typing import Sequence, Union

from ..config import BATCH_NORM_EPSILON, MOMENTUM
from ..core import ops
from ..core.context import BuildContext
from ..core.graph import Tensor
from ..core.variables import assign_sub, create_parameter, schedule_initializer
from . import functional as F


class Mode(enum.Enum):
    TRAINING = 'training'
    INFERENCE = 'inference'

    @classmethod
    def of(cls, training: Union[bool, 'Mode']) -> 'Mode':
        """Map a boolean training flag (or a Mode) to a Mode."""
        if isinstance(training, cls):
            return training
        if not isinstance(training, (bool, np.bool_)):
            raise ValueError(f"Expected a bool or Mode, got {training!r}")
        return cls.TRAINING if training else cls.INFERENCE


class _MovingStatistics:
    """Owns the four batch-norm parameters and the EMA update rule."""

    _prefix = ''

    def __init__(self,
                 ctx: BuildContext,
                 shape: Sequence[int],
                 momentum: float = MOMENTUM):
        self.shape = tuple(int(d) for d in shape)
        self.momentum = momentum

        self.moving_mean = create_parameter(ctx, self.shape, name='moving_mean')
        schedule_initializer(ctx, self.moving_mean, np.zeros(self.shape, np.float32))

        self.moving_variance = create_parameter(ctx, self.shape, name='moving_variance')
        schedule_initializer(ctx, self.moving_variance, np.zeros(self.shape, np.float32))

        self.gamma = create_parameter(ctx, self.shape, trainable=True, name=f'{self._prefix}gamma')
        schedule_initializer(ctx, self.gamma, np.ones(self.shape, np.float32))

        self.beta = create_parameter(ctx, self.shape, trainable=True, name=f'{self._prefix}beta')
        schedule_initializer(ctx, self.beta, np.zeros(self.shape, np.float32))
        ctx.log_status(f'{type(self).__name__} parameters')

    @property
    def parameters(self):
        return [self.moving_mean, self.moving_variance, self.gamma, self.beta]

    def _schedule_moving_average(self, ctx: BuildContext, batch_mean: Tensor, batch_variance: Tensor):
        # moving <- moving - (moving - batch) * (1 - momentum)
        decay = ops.constant(ctx, 1.0 - self.momentum, dtype=np.float32)

        delta_mean = ops.multiply(ctx, ops.subtract(ctx, self.moving_mean, batch_mean), decay)
        assign_sub(ctx, self.moving_mean, delta_mean, name=f'{self._prefix}update_moving_mean')

        delta_variance = ops.multiply(ctx, ops.subtract(ctx, self.moving_variance, batch_variance), decay)
        assign_sub(ctx, self.moving_variance, delta_variance, name=f'{self._prefix}update_moving_variance')
        ctx.log_status(f'{type(self).__name__} update ops')


class BatchNormalization(_MovingStatistics):
    """Batch normalization composed from :func:`moments` and the affine formula."""

    def build(self,
              ctx: BuildContext,
              x: Tensor,
              axes: Sequence[int] = (0,),
              variance_epsilon=BATCH_NORM_EPSILON,
              training: Union[bool, Mode] = True) -> Tensor:
        if Mode.of(training) is Mode.TRAINING:
            return self.build_training(ctx, x, axes, variance_epsilon)
        return self.build_inference(ctx, x, variance_epsilon)

    def build_training(self, ctx: BuildContext, x: Tensor, axes: Sequence[int], variance_epsilon) -> Tensor:
        mean, variance = F.moments(ctx, x, axes, keep_dims=False)
        self._schedule_moving_average(ctx, mean, variance)
        return F.batch_normalization(ctx, x, mean, variance, self.beta, self.gamma, variance_epsilon)

    def build_inference(self, ctx: BuildContext, x: Tensor, variance_epsilon) -> Tensor:
        return F.batch_normalization(
            ctx, x, self.moving_mean, self.moving_variance, self.beta, self.gamma, variance_epsilon
        )


class FusedBatchNorm(_MovingStatistics):
    """Batch normalization over all but the channel axis of NHWC input.

    Batch statistics come from the combined ``fused_batch_norm`` primitive
    instead of separate reductions.
    """

    _prefix = 'fused_'

    def build(self,
              ctx: BuildContext,
              x: Tensor,
              variance_epsilon: float = BATCH_NORM_EPSILON,
              training: Union[bool, Mode] = True) -> Tensor:
        if Mode.of(training) is Mode.TRAINING:
            return self.build_training(ctx, x, variance_epsilon)
        return self.build_inference(ctx, x, variance_epsilon)

    def build_training(self, ctx: BuildContext, x: Tensor, variance_epsilon: float) -> Tensor:
        empty = ops.constant(ctx, np.zeros((0,), np.float32))
        y, batch_mean, batch_variance = ops.fused_batch_norm(
            ctx, x, self.gamma, self.beta, empty, empty,
            epsilon=variance_epsilon, is_training=True
        )
        self._schedule_moving_average(ctx, batch_mean, batch_variance)
        return y

    def build_inference(self, ctx: BuildContext, x: Tensor, variance_epsilon: float) -> Tensor:
        y, _, _ = ops.fused_batch_norm(
            ctx, x, self.gamma, self.beta, self.moving_mean, self.moving_variance,
            epsilon=variance_epsilon, is_training=False
        )
        return y
