# File location: jax-dcgraph/src/dcgraph/nn/functional.py

"""
Stateless numeric building blocks composed from primitive operations.

Each function appends a small subgraph to the context and returns its
output handle(s). None of them owns parameters.
"""

import math
import numpy as np
from typing import NamedTuple, Optional, Sequence, Tuple

from ..config import LEAKY_RELU_ALPHA
from ..core import ops
from ..core.context import BuildContext, GraphConstructionError
from ..core.graph import Tensor


class Moments(NamedTuple):
    mean: Tensor
    variance: Tensor


def moments(ctx: BuildContext,
            x: Tensor,
            axes: Sequence[int],
            keep_dims: bool = False) -> Moments:
    """Mean and variance of ``x`` over ``axes``.

    The variance is measured against a gradient-blocked copy of the mean,
    so differentiation treats the mean as a constant there.

    Args:
        ctx: Build context
        x: Input handle
        axes: Axes to reduce
        keep_dims: Keep reduced axes with size 1

    Returns:
        Moments(mean, variance)
    """
    axes = tuple(axes)
    mean = ops.reduce_mean(ctx, x, axes, keepdims=True)
    shift = ops.stop_gradient(ctx, mean)
    squared = ops.squared_difference(ctx, x, shift)
    variance = ops.reduce_mean(ctx, squared, axes, keepdims=True)

    if keep_dims:
        return Moments(mean, variance)
    return Moments(ops.squeeze(ctx, mean, axes), ops.squeeze(ctx, variance, axes))


def compute_fans(shape: Sequence[int]) -> Tuple[float, float]:
    """Fan-in and fan-out of a rank-2 weight or rank-4 HWIO kernel shape."""
    shape = tuple(shape)
    if len(shape) == 2:
        return float(shape[0]), float(shape[1])
    if len(shape) == 4:
        receptive_field = float(shape[0] * shape[1])
        return receptive_field * shape[2], receptive_field * shape[3]
    raise ValueError(f"Fans are only defined for rank 2 or 4 shapes, got {shape}")


def glorot_limit(shape: Sequence[int]) -> float:
    """Bound of the Glorot uniform distribution for ``shape``."""
    fan_in, fan_out = compute_fans(shape)
    scale = 1.0 / max(1.0, (fan_in + fan_out) / 2.0)
    return math.sqrt(3.0 * scale)


def glorot_uniform(ctx: BuildContext,
                   shape: Sequence[int],
                   name: Optional[str] = None) -> Tensor:
    """Float32 samples from U[-limit, limit], ``limit = sqrt(3 / max(1, (fan_in + fan_out) / 2))``.

    Only rank 2 and rank 4 shapes are supported; other ranks record an
    error in the context status and return the raw [0, 1) sample, unscaled.
    """
    shape = tuple(int(d) for d in shape)
    try:
        limit = glorot_limit(shape)
    except ValueError as e:
        ctx.record_error(GraphConstructionError(f"glorot_uniform: {e}"))
        return ops.random_uniform(ctx, shape, np.float32, name=name)

    random_value = ops.random_uniform(ctx, shape, np.float32)
    minval, maxval = -limit, limit
    scaled = ops.multiply(ctx, random_value, maxval - minval)
    return ops.add(ctx, scaled, minval, name=name)


def dropout(ctx: BuildContext, x: Tensor, rate: float, name: Optional[str] = None) -> Tensor:
    """Inverted dropout.

    Keeps each element with probability ``1 - rate`` and scales kept elements
    by ``1 / (1 - rate)``. ``rate`` must lie in [0, 1); it is not validated.
    """
    keep_prob = 1.0 - rate
    random_value = ops.random_uniform_like(ctx, x)
    random_tensor = ops.add(ctx, random_value, keep_prob)
    binary_tensor = ops.floor(ctx, random_tensor)
    scaled = ops.divide(ctx, x, keep_prob)
    return ops.multiply(ctx, scaled, binary_tensor, name=name)


def sigmoid_cross_entropy_with_logits(ctx: BuildContext,
                                      labels: Tensor,
                                      logits: Tensor,
                                      name: Optional[str] = None) -> Tensor:
    """Elementwise logistic loss, stable for large |logits|.

    Computes ``max(x, 0) - x * z + log1p(exp(-|x|))`` which equals
    ``-z * log(sigmoid(x)) - (1 - z) * log(1 - sigmoid(x))``.
    """
    zeros = ops.zeros_like(ctx, logits)
    cond = ops.greater_equal(ctx, logits, zeros)
    relu_logits = ops.select(ctx, cond, logits, zeros)
    neg_abs_logits = ops.select(ctx, cond, ops.negate(ctx, logits), logits)

    linear = ops.subtract(ctx, relu_logits, ops.multiply(ctx, logits, labels))
    softplus = ops.log1p(ctx, ops.exp(ctx, neg_abs_logits))
    return ops.add(ctx, linear, softplus, name=name)


def leaky_relu(ctx: BuildContext,
               x: Tensor,
               alpha: float = LEAKY_RELU_ALPHA,
               name: Optional[str] = None) -> Tensor:
    """``max(x, 0) + alpha * min(x, 0)``."""
    positive = ops.maximum(ctx, x, 0.0)
    negative = ops.multiply(ctx, ops.minimum(ctx, x, 0.0), alpha)
    return ops.add(ctx, positive, negative, name=name)


def batch_normalization(ctx: BuildContext,
                        x: Tensor,
                        mean: Tensor,
                        variance: Tensor,
                        offset: Tensor,
                        scale: Tensor,
                        variance_epsilon,
                        name: Optional[str] = None) -> Tensor:
    """Affine normalization ``x * inv + (offset - mean * inv)``, ``inv = scale / sqrt(variance + eps)``.

    Both factors are cast to float32 before they meet ``x``.
    """
    inv = ops.multiply(ctx, ops.rsqrt(ctx, ops.add(ctx, variance, variance_epsilon)), scale)
    scaled = ops.multiply(ctx, x, ops.cast(ctx, inv, np.float32))
    shift = ops.subtract(ctx, offset, ops.multiply(ctx, mean, inv))
    return ops.add(ctx, scaled, ops.cast(ctx, shift, np.float32), name=name)


def conv2d_transpose(ctx: BuildContext,
                     output_shape: Sequence[int],
                     filters: Tensor,
                     inputs: Tensor,
                     strides: Sequence[int],
                     padding: str = 'SAME',
                     name: Optional[str] = None) -> Tensor:
    """Transposed convolution as the input gradient of a forward convolution.

    Args:
        output_shape: NHWC shape of the result
        filters: HWIO kernel where I is the output depth and O the input depth
        inputs: Upstream tensor playing the role of the output gradient
        strides: TF-style ``[1, sh, sw, 1]``
        padding: 'SAME' or 'VALID'
    """
    return ops.conv2d_backprop_input(ctx, output_shape, filters, inputs, strides, padding, name=name)
