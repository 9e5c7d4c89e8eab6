# File location: jax-dcgraph/src/dcgraph/core/ops.py

"""
Engine-level primitive operations.

Every primitive is a JAX kernel registered under a name, plus a builder
function ``op(ctx, *inputs, **attrs)`` that appends the corresponding node
to the context's graph and returns its output handle(s). Builders accept
Python scalars, lists and NumPy arrays wherever a handle is expected and
turn them into constants of a matching dtype.
"""

import jax
import jax.numpy as jnp
import jax.random as jr
import numpy as np
from jax import lax
from typing import Any, Optional, Sequence, Tuple, Union

from .context import BuildContext, GraphConstructionError
from .graph import Tensor
from .registry import register_op

TensorLike = Union[Tensor, float, int, Sequence, np.ndarray]

_PADDINGS = ('SAME', 'VALID')


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------

@register_op('constant')
def _constant_kernel(*, value, dtype):
    return jnp.asarray(value, dtype=dtype)


@register_op('placeholder', stateful=True)
def _placeholder_kernel(*, shape, dtype):
    return jnp.zeros(shape, dtype)


@register_op('variable', stateful=True)
def _variable_kernel(*, shape, dtype):
    return jnp.zeros(shape, dtype)


@register_op('assign', stateful=True)
def _assign_kernel(ref, value):
    if ref.shape != value.shape:
        raise ValueError(f"Cannot assign shape {value.shape} to variable of shape {ref.shape}")
    return value.astype(ref.dtype)


@register_op('assign_sub', stateful=True)
def _assign_sub_kernel(ref, delta):
    result = ref - delta
    if result.shape != ref.shape:
        raise ValueError(f"Update of shape {delta.shape} does not fit variable of shape {ref.shape}")
    return result.astype(ref.dtype)


@register_op('add')
def _add_kernel(x, y):
    return jnp.add(x, y)


@register_op('subtract')
def _subtract_kernel(x, y):
    return jnp.subtract(x, y)


@register_op('multiply')
def _multiply_kernel(x, y):
    return jnp.multiply(x, y)


@register_op('divide')
def _divide_kernel(x, y):
    return jnp.divide(x, y)


@register_op('maximum')
def _maximum_kernel(x, y):
    return jnp.maximum(x, y)


@register_op('minimum')
def _minimum_kernel(x, y):
    return jnp.minimum(x, y)


@register_op('squared_difference')
def _squared_difference_kernel(x, y):
    return jnp.square(x - y)


@register_op('greater_equal')
def _greater_equal_kernel(x, y):
    return jnp.greater_equal(x, y)


@register_op('select')
def _select_kernel(cond, x, y):
    return jnp.where(cond, x, y)


@register_op('negate')
def _negate_kernel(x):
    return jnp.negative(x)


@register_op('floor')
def _floor_kernel(x):
    return jnp.floor(x)


@register_op('exp')
def _exp_kernel(x):
    return jnp.exp(x)


@register_op('log1p')
def _log1p_kernel(x):
    return jnp.log1p(x)


@register_op('rsqrt')
def _rsqrt_kernel(x):
    return lax.rsqrt(x)


@register_op('cast')
def _cast_kernel(x, *, dtype):
    return x.astype(dtype)


@register_op('zeros_like')
def _zeros_like_kernel(x):
    return jnp.zeros_like(x)


@register_op('ones_like')
def _ones_like_kernel(x):
    return jnp.ones_like(x)


@register_op('stop_gradient')
def _stop_gradient_kernel(x):
    return lax.stop_gradient(x)


@register_op('reshape')
def _reshape_kernel(x, *, new_shape):
    return jnp.reshape(x, new_shape)


@register_op('squeeze')
def _squeeze_kernel(x, *, axis):
    return jnp.squeeze(x, axis=axis)


@register_op('reduce_mean')
def _reduce_mean_kernel(x, *, axis, keepdims):
    return jnp.mean(x, axis=axis, keepdims=keepdims)


@register_op('matmul')
def _matmul_kernel(a, b):
    if a.ndim != 2 or b.ndim != 2:
        raise ValueError(f"matmul expects 2D operands, got {a.shape} and {b.shape}")
    return jnp.matmul(a, b)


@register_op('bias_add')
def _bias_add_kernel(x, bias):
    if bias.ndim != 1 or x.ndim < 2 or bias.shape[0] != x.shape[-1]:
        raise ValueError(f"Bias of shape {bias.shape} does not match last dimension of {x.shape}")
    return x + bias


def _check_conv_attrs(strides, padding):
    if len(strides) != 4 or strides[0] != 1 or strides[3] != 1:
        raise ValueError(f"Strides must be [1, sh, sw, 1], got {list(strides)}")
    if padding not in _PADDINGS:
        raise ValueError(f"Unknown padding {padding!r}, expected one of {_PADDINGS}")


@register_op('conv2d')
def _conv2d_kernel(x, filters, *, strides, padding):
    _check_conv_attrs(strides, padding)
    return lax.conv_general_dilated(
        x,
        filters,
        window_strides=tuple(strides[1:3]),
        padding=padding,
        dimension_numbers=('NHWC', 'HWIO', 'NHWC')
    )


@register_op('conv2d_backprop_input')
def _conv2d_backprop_input_kernel(filters, out_backprop, *, input_sizes, strides, padding):
    # Input gradient of the forward convolution, evaluated at out_backprop
    def forward(inputs):
        return _conv2d_kernel(inputs, filters, strides=strides, padding=padding)

    zeros = jnp.zeros(input_sizes, out_backprop.dtype)
    out, pullback = jax.vjp(forward, zeros)
    if out.shape != out_backprop.shape:
        raise ValueError(
            f"Convolution of input {tuple(input_sizes)} yields {out.shape}, "
            f"but out_backprop has shape {out_backprop.shape}"
        )
    return pullback(out_backprop)[0]


@register_op('fused_batch_norm', num_outputs=3)
def _fused_batch_norm_kernel(x, scale, offset, mean, variance, *, epsilon, is_training):
    if x.ndim != 4:
        raise ValueError(f"fused_batch_norm expects NHWC input, got shape {x.shape}")
    channels = (x.shape[-1],)
    if scale.shape != channels or offset.shape != channels:
        raise ValueError(
            f"scale {scale.shape} and offset {offset.shape} must have shape {channels}"
        )

    if not is_training:
        if mean.shape != channels or variance.shape != channels:
            raise ValueError(
                f"mean {mean.shape} and variance {variance.shape} must have shape {channels}"
            )
        inv = lax.rsqrt(variance + epsilon) * scale
        return x * inv + (offset - mean * inv), mean, variance

    # Normalize with the population variance, report the Bessel-corrected one
    n = x.shape[0] * x.shape[1] * x.shape[2]
    batch_mean = jnp.mean(x, axis=(0, 1, 2))
    batch_variance = jnp.var(x, axis=(0, 1, 2))
    inv = lax.rsqrt(batch_variance + epsilon) * scale
    y = x * inv + (offset - batch_mean * inv)
    return y, batch_mean, batch_variance * (n / max(n - 1, 1))


@register_op('random_uniform', random=True)
def _random_uniform_kernel(key, *, shape, dtype):
    return jr.uniform(key, shape, dtype)


@register_op('random_uniform_like', random=True)
def _random_uniform_like_kernel(key, x):
    return jr.uniform(key, x.shape, x.dtype)


@register_op('random_normal', random=True)
def _random_normal_kernel(key, *, shape, dtype):
    return jr.normal(key, shape, dtype)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _canonical_dtype(value: np.ndarray) -> np.ndarray:
    # Python floats/ints default to 32-bit like the rest of the graph
    if value.dtype == np.float64:
        return value.astype(np.float32)
    if value.dtype == np.int64:
        return value.astype(np.int32)
    return value


def constant(ctx: BuildContext,
             value: Any,
             dtype: Optional[Any] = None,
             name: Optional[str] = None) -> Tensor:
    """Embed a fixed value in the graph."""
    if dtype is None:
        array = _canonical_dtype(np.asarray(value))
    else:
        array = np.asarray(value, dtype=dtype)
    node = ctx.add_node('constant', attrs={'value': array, 'dtype': array.dtype}, name=name)
    return node.outputs[0]


def convert_to_tensor(ctx: BuildContext,
                      value: TensorLike,
                      dtype: Optional[Any] = None) -> Tensor:
    """Return ``value`` if it is a handle, else a new constant."""
    if isinstance(value, Tensor):
        nodes = ctx.graph.nodes
        if value.node.id >= len(nodes) or nodes[value.node.id] is not value.node:
            ctx.record_error(GraphConstructionError(
                f"Tensor {value.name} does not belong to graph '{ctx.graph.name}'"
            ))
        return value
    return constant(ctx, value, dtype=dtype)


def _convert_pair(ctx: BuildContext, x: TensorLike, y: TensorLike) -> Tuple[Tensor, Tensor]:
    if isinstance(x, Tensor) and not isinstance(y, Tensor):
        return convert_to_tensor(ctx, x), convert_to_tensor(ctx, y, dtype=x.dtype)
    if isinstance(y, Tensor) and not isinstance(x, Tensor):
        return convert_to_tensor(ctx, x, dtype=y.dtype), convert_to_tensor(ctx, y)
    return convert_to_tensor(ctx, x), convert_to_tensor(ctx, y)


def _unary(ctx, op, x, name=None, **attrs) -> Tensor:
    x = convert_to_tensor(ctx, x)
    return ctx.add_node(op, [x], attrs, name).outputs[0]


def _binary(ctx, op, x, y, name=None) -> Tensor:
    x, y = _convert_pair(ctx, x, y)
    return ctx.add_node(op, [x, y], None, name).outputs[0]


def placeholder(ctx: BuildContext,
                shape: Optional[Sequence[Optional[int]]],
                dtype: Any = np.float32,
                name: Optional[str] = None) -> Tensor:
    """Input slot whose value is fed at execution time."""
    if shape is not None:
        shape = tuple(None if d is None else int(d) for d in shape)
    node = ctx.add_node('placeholder', attrs={'shape': shape, 'dtype': np.dtype(dtype)}, name=name)
    return node.outputs[0]


def variable(ctx: BuildContext,
             shape: Optional[Sequence[Optional[int]]],
             dtype: Any = np.float32,
             name: Optional[str] = None) -> Tensor:
    """Persistent storage slot. Reading the handle yields its current value."""
    if shape is not None:
        shape = tuple(None if d is None else int(d) for d in shape)
    node = ctx.add_node('variable', attrs={'shape': shape, 'dtype': np.dtype(dtype)}, name=name)
    return node.outputs[0]


def _check_ref(ctx: BuildContext, ref: Tensor, op: str):
    if not isinstance(ref, Tensor) or ref.op != 'variable':
        ctx.record_error(GraphConstructionError(f"{op} target must be a variable, got {ref!r}"))


def assign(ctx: BuildContext, ref: Tensor, value: TensorLike, name: Optional[str] = None) -> Tensor:
    """Write ``value`` into variable ``ref``. Not registered anywhere."""
    _check_ref(ctx, ref, 'assign')
    value = convert_to_tensor(ctx, value, dtype=ref.dtype)
    return ctx.add_node('assign', [ref, value], None, name).outputs[0]


def assign_sub(ctx: BuildContext, ref: Tensor, delta: TensorLike, name: Optional[str] = None) -> Tensor:
    """Write ``ref - delta`` into variable ``ref``. Not registered anywhere."""
    _check_ref(ctx, ref, 'assign_sub')
    delta = convert_to_tensor(ctx, delta, dtype=ref.dtype)
    return ctx.add_node('assign_sub', [ref, delta], None, name).outputs[0]


def add(ctx, x, y, name=None):
    return _binary(ctx, 'add', x, y, name)


def subtract(ctx, x, y, name=None):
    return _binary(ctx, 'subtract', x, y, name)


def multiply(ctx, x, y, name=None):
    return _binary(ctx, 'multiply', x, y, name)


def divide(ctx, x, y, name=None):
    return _binary(ctx, 'divide', x, y, name)


def maximum(ctx, x, y, name=None):
    return _binary(ctx, 'maximum', x, y, name)


def minimum(ctx, x, y, name=None):
    return _binary(ctx, 'minimum', x, y, name)


def squared_difference(ctx, x, y, name=None):
    return _binary(ctx, 'squared_difference', x, y, name)


def greater_equal(ctx, x, y, name=None):
    return _binary(ctx, 'greater_equal', x, y, name)


def select(ctx: BuildContext, cond: Tensor, x: TensorLike, y: TensorLike, name=None) -> Tensor:
    """Elementwise ``x`` where ``cond`` holds, else ``y``."""
    x, y = _convert_pair(ctx, x, y)
    cond = convert_to_tensor(ctx, cond)
    return ctx.add_node('select', [cond, x, y], None, name).outputs[0]


def negate(ctx, x, name=None):
    return _unary(ctx, 'negate', x, name)


def floor(ctx, x, name=None):
    return _unary(ctx, 'floor', x, name)


def exp(ctx, x, name=None):
    return _unary(ctx, 'exp', x, name)


def log1p(ctx, x, name=None):
    return _unary(ctx, 'log1p', x, name)


def rsqrt(ctx, x, name=None):
    return _unary(ctx, 'rsqrt', x, name)


def cast(ctx, x, dtype, name=None):
    return _unary(ctx, 'cast', x, name, dtype=np.dtype(dtype))


def zeros_like(ctx, x, name=None):
    return _unary(ctx, 'zeros_like', x, name)


def ones_like(ctx, x, name=None):
    return _unary(ctx, 'ones_like', x, name)


def stop_gradient(ctx, x, name=None):
    return _unary(ctx, 'stop_gradient', x, name)


def reshape(ctx: BuildContext, x: TensorLike, shape: Sequence[int], name=None) -> Tensor:
    return _unary(ctx, 'reshape', x, name, new_shape=tuple(int(d) for d in shape))


def squeeze(ctx: BuildContext, x: TensorLike, axis: Sequence[int], name=None) -> Tensor:
    return _unary(ctx, 'squeeze', x, name, axis=tuple(int(a) for a in axis))


def reduce_mean(ctx: BuildContext,
                x: TensorLike,
                axis: Optional[Sequence[int]] = None,
                keepdims: bool = False,
                name=None) -> Tensor:
    """Mean over ``axis`` (all axes when None)."""
    if axis is not None:
        axis = tuple(int(a) for a in axis)
    return _unary(ctx, 'reduce_mean', x, name, axis=axis, keepdims=bool(keepdims))


def matmul(ctx, a, b, name=None):
    return _binary(ctx, 'matmul', a, b, name)


def bias_add(ctx, x, bias, name=None):
    return _binary(ctx, 'bias_add', x, bias, name)


def conv2d(ctx: BuildContext,
           x: Tensor,
           filters: Tensor,
           strides: Sequence[int],
           padding: str,
           name: Optional[str] = None) -> Tensor:
    """2D convolution, NHWC input and HWIO filters, TF-style 4-element strides."""
    x, filters = _convert_pair(ctx, x, filters)
    attrs = {'strides': tuple(int(s) for s in strides), 'padding': padding}
    return ctx.add_node('conv2d', [x, filters], attrs, name).outputs[0]


def conv2d_backprop_input(ctx: BuildContext,
                          input_sizes: Sequence[int],
                          filters: Tensor,
                          out_backprop: Tensor,
                          strides: Sequence[int],
                          padding: str,
                          name: Optional[str] = None) -> Tensor:
    """Gradient of :func:`conv2d` with respect to an input of ``input_sizes``."""
    filters, out_backprop = _convert_pair(ctx, filters, out_backprop)
    attrs = {
        'input_sizes': tuple(int(d) for d in input_sizes),
        'strides': tuple(int(s) for s in strides),
        'padding': padding,
    }
    return ctx.add_node('conv2d_backprop_input', [filters, out_backprop], attrs, name).outputs[0]


def fused_batch_norm(ctx: BuildContext,
                     x: Tensor,
                     scale: Tensor,
                     offset: Tensor,
                     mean: TensorLike,
                     variance: TensorLike,
                     epsilon: float = 1e-4,
                     is_training: bool = True,
                     name: Optional[str] = None) -> Tuple[Tensor, Tensor, Tensor]:
    """Combined normalization over all but the channel axis.

    Returns:
        Tuple of (y, batch_mean, batch_variance). ``y`` is normalized with the
        population variance while ``batch_variance`` is the sample (n - 1)
        variance over N, H and W. When ``is_training`` is False the statistics
        outputs echo ``mean`` and ``variance``.
    """
    inputs = [convert_to_tensor(ctx, t, dtype=np.float32) for t in (x, scale, offset, mean, variance)]
    attrs = {'epsilon': float(epsilon), 'is_training': bool(is_training)}
    return ctx.add_node('fused_batch_norm', inputs, attrs, name).outputs


def random_uniform(ctx: BuildContext,
                   shape: Sequence[int],
                   dtype: Any = np.float32,
                   name: Optional[str] = None) -> Tensor:
    """Samples from [0, 1)."""
    attrs = {'shape': tuple(int(d) for d in shape), 'dtype': np.dtype(dtype)}
    return ctx.add_node('random_uniform', (), attrs, name).outputs[0]


def random_uniform_like(ctx: BuildContext, x: Tensor, name: Optional[str] = None) -> Tensor:
    """Samples from [0, 1) with the runtime shape and dtype of ``x``."""
    return _unary(ctx, 'random_uniform_like', x, name)


def random_normal(ctx: BuildContext,
                  shape: Sequence[int],
                  dtype: Any = np.float32,
                  name: Optional[str] = None) -> Tensor:
    attrs = {'shape': tuple(int(d) for d in shape), 'dtype': np.dtype(dtype)}
    return ctx.add_node('random_normal', (), attrs, name).outputs[0]
