# File location: jax-dcgraph/src/dcgraph/core/registry.py

"""
Registry of primitive operations.

Each primitive is described by a JAX kernel. The same kernel serves two
purposes: ``jax.eval_shape`` runs it abstractly to infer declared output
shapes during graph construction, and the executor runs it concretely.
"""

from typing import Callable, Dict, NamedTuple, Optional


class OpDef(NamedTuple):
    """Static description of a primitive.

    Attributes:
        name: Primitive name stored on graph nodes
        kernel: JAX function ``kernel(*inputs, **attrs)``; random primitives
            receive a PRNG key as the first positional argument
        num_outputs: Number of output handles the node produces
        random: Whether the kernel consumes a PRNG key
        stateful: Whether the executor must special-case the node
            (variables, placeholders, assignments)
    """
    name: str
    kernel: Optional[Callable]
    num_outputs: int = 1
    random: bool = False
    stateful: bool = False


_REGISTRY: Dict[str, OpDef] = {}


def register_op(name: str,
                num_outputs: int = 1,
                random: bool = False,
                stateful: bool = False) -> Callable:
    """Decorator registering ``fn`` as the kernel of primitive ``name``."""
    def decorator(fn: Callable) -> Callable:
        if name in _REGISTRY:
            raise ValueError(f"Primitive already registered: {name}")
        _REGISTRY[name] = OpDef(name, fn, num_outputs, random, stateful)
        return fn
    return decorator


def get_op_def(name: str) -> OpDef:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown primitive: {name}") from None


def registered_ops():
    return sorted(_REGISTRY)
