# File location: jax-dcgraph/src/dcgraph/core/variables.py

"""
Parameter binding and assignment primitives.

Creating a parameter and giving it a value are two explicit steps:
:func:`create_parameter` allocates the persistent slot (and optionally
registers it as trainable), :func:`schedule_initializer` registers the write
that an external initializer runs later. Nothing executes at build time.
"""

import numpy as np
from typing import Any, Optional, Sequence

from . import ops
from .context import BuildContext
from .graph import Tensor


class Parameter(Tensor):
    """Handle to a persistent, named tensor slot.

    Compares equal to (and hashes like) the variable node's output handle,
    so it can be passed anywhere a :class:`Tensor` is accepted.
    """

    __slots__ = ('trainable',)

    def __init__(self, handle: Tensor, trainable: bool):
        super().__init__(handle.node, handle.index, handle.shape, handle.dtype)
        self.trainable = trainable

    def __repr__(self):
        return (f"<Parameter '{self.node.name}' shape={self.shape} "
                f"dtype={self.dtype.name} trainable={self.trainable}>")


def create_parameter(ctx: BuildContext,
                     shape: Optional[Sequence[Optional[int]]],
                     dtype: Any = np.float32,
                     trainable: bool = False,
                     name: Optional[str] = None) -> Parameter:
    """Allocate a persistent slot.

    Args:
        ctx: Build context
        shape: Slot shape; ``None`` entries (or ``None`` itself) leave
            dimensions (or the rank) unspecified
        dtype: Element type
        trainable: Register the parameter in ``ctx.trainable_variables``
        name: Node name

    Returns:
        Parameter handle, readable and assignable
    """
    parameter = Parameter(ops.variable(ctx, shape, dtype, name=name or 'Variable'), trainable)
    if trainable:
        ctx.register_trainable(parameter, parameter.shape)
    return parameter


def assign(ctx: BuildContext, target: Tensor, value: Any, name: Optional[str] = None) -> Tensor:
    """Build a write of ``value`` into ``target`` and register it as an init op."""
    op = ops.assign(ctx, target, value, name=name)
    ctx.register_assign(op)
    return op


def schedule_initializer(ctx: BuildContext, parameter: Parameter, initial_value: Any) -> Tensor:
    """Second phase of parameter creation: register the write of its initial value."""
    name = parameter.node.name
    scope = ctx.scope
    if scope and name.startswith(scope + '/'):
        # unique_name prefixes the active scope again
        name = name[len(scope) + 1:]
    return assign(ctx, parameter, initial_value, name=f"{name}/Assign")


def assign_sub(ctx: BuildContext, target: Tensor, delta: Any, name: Optional[str] = None) -> Tensor:
    """Build ``target -= delta`` and register it as a per-step update op."""
    op = ops.assign_sub(ctx, target, delta, name=name)
    ctx.register_update(op)
    return op
