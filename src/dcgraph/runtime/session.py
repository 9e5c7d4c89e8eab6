# File location: jax-dcgraph/src/dcgraph/runtime/session.py

"""
Reference executor for constructed graphs.

The graph-construction layer never runs anything itself. This module
evaluates a graph with the same JAX kernels that were used for shape
inference, which makes graphs testable end to end.

:func:`evaluate` is a pure function (variables in, outputs and updated
variables out) and can be wrapped in ``jax.jit`` or ``jax.grad``.
:class:`Session` adds persistent variable storage and a key stream.
"""

import functools
import jax
import jax.numpy as jnp
import jax.random as jr
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from ..core.context import BuildContext
from ..core.graph import Graph, Node, Tensor
from ..core.registry import get_op_def

Fetches = Union[Tensor, Sequence[Tensor], Mapping[str, Tensor]]


class ExecutionError(Exception):
    """The graph could not be evaluated (uninitialized variable, missing feed, ...)."""


class PRNGSequence:
    """Infinite stream of independent PRNG keys, one per ``run``."""

    def __init__(self, seed: Union[int, jax.Array]):
        if isinstance(seed, int):
            self._key = jr.PRNGKey(seed)
        else:
            self._key = seed

    def __iter__(self) -> Iterator[jax.Array]:
        return self

    def __next__(self) -> jax.Array:
        self._key, subkey = jr.split(self._key)
        return subkey


def _required_nodes(fetches: Sequence[Tensor]) -> Set[int]:
    needed: Set[int] = set()
    stack = [t.node for t in fetches]
    while stack:
        node = stack.pop()
        if node.id in needed:
            continue
        needed.add(node.id)
        inputs = node.inputs
        if node.op in ('assign', 'assign_sub'):
            # The target slot is written, not read
            inputs = inputs[1:]
        stack.extend(t.node for t in inputs)
    return needed


def _run_node(node: Node,
              args: List[jax.Array],
              variables: Dict[str, jax.Array],
              feeds: Mapping[Tensor, jax.Array],
              key: jax.Array) -> Tuple[jax.Array, ...]:
    op = node.op

    if op == 'variable':
        if node.name not in variables:
            raise ExecutionError(f"Attempting to use uninitialized variable '{node.name}'")
        return (variables[node.name],)

    if op == 'placeholder':
        handle = node.outputs[0]
        if handle not in feeds:
            raise ExecutionError(f"No value fed for placeholder '{node.name}'")
        return (feeds[handle],)

    op_def = get_op_def(op)
    kernel = functools.partial(op_def.kernel, **node.attrs)

    if op in ('assign', 'assign_sub'):
        target = node.inputs[0].node.name
        if op == 'assign_sub' and target not in variables:
            raise ExecutionError(f"Attempting to update uninitialized variable '{target}'")
        value = args[1]
        current = variables.get(target, value)
        new_value = kernel(current, value)
        variables[target] = new_value
        return (new_value,)

    if op_def.random:
        out = kernel(jr.fold_in(key, node.id), *args)
    else:
        out = kernel(*args)
    return tuple(out) if isinstance(out, (tuple, list)) else (out,)


def evaluate(graph: Graph,
             fetches: Sequence[Tensor],
             variables: Mapping[str, jax.Array],
             feeds: Optional[Mapping[Tensor, jax.Array]] = None,
             key: Optional[jax.Array] = None) -> Tuple[List[jax.Array], Dict[str, jax.Array]]:
    """Evaluate ``fetches`` and everything they depend on.

    Nodes run in construction order. A variable node is created before any
    assignment that targets it, so reads see the value the variable had
    when the run started; assignments apply to the latest stored value.

    Args:
        graph: Graph the fetches belong to
        fetches: Handles to compute
        variables: Current variable values keyed by node name
        feeds: Placeholder values keyed by handle
        key: PRNG key; random nodes fold in their node id

    Returns:
        Tuple of (fetched values, updated variables)
    """
    feeds = feeds or {}
    if key is None:
        key = jr.PRNGKey(0)

    needed = _required_nodes(fetches)
    variables = dict(variables)
    values: Dict[Tuple[int, int], jax.Array] = {}

    for node in graph.nodes:
        if node.id not in needed:
            continue
        args = [values.get((t.node.id, t.index)) for t in node.inputs]
        outputs = _run_node(node, args, variables, feeds, key)
        for i, value in enumerate(outputs):
            values[(node.id, i)] = value

    return [values[(t.node.id, t.index)] for t in fetches], variables


def _flatten_fetches(fetches: Fetches) -> Tuple[List[Tensor], Callable[[List[Any]], Any]]:
    if isinstance(fetches, Tensor):
        return [fetches], lambda outs: outs[0]
    if isinstance(fetches, Mapping):
        keys = list(fetches)
        return [fetches[k] for k in keys], lambda outs: dict(zip(keys, outs))
    fetches = list(fetches)
    return fetches, list


def _compatible(declared, actual) -> bool:
    if declared is None:
        return True
    if len(declared) != len(actual):
        return False
    return all(d is None or d == a for d, a in zip(declared, actual))


class Session:
    """Stateful runner holding variable storage for one build context.

    Example:
        sess = Session(ctx, seed=0)
        sess.initialize()
        images = sess.run(generator_output)
        sess.run(ctx.update_ops)
    """

    def __init__(self, context: BuildContext, seed: Union[int, jax.Array] = 0):
        self.context = context
        self.variables: Dict[str, jax.Array] = {}
        self._rng = PRNGSequence(seed)

    def initialize(self) -> 'Session':
        """Run every registered initializer once, in registration order."""
        self.run(self.context.init_ops)
        return self

    def read(self, parameter: Tensor) -> jax.Array:
        """Current stored value of a parameter."""
        try:
            return self.variables[parameter.node.name]
        except KeyError:
            raise ExecutionError(f"Variable '{parameter.node.name}' is uninitialized") from None

    def run(self, fetches: Fetches, feed_dict: Optional[Mapping[Any, Any]] = None):
        """Evaluate ``fetches`` (a handle, a sequence, or a dict of handles).

        Assignments reached by the run commit their writes to the session.
        """
        status = self.context.status
        if not status.ok:
            raise ExecutionError(f"Refusing to run a graph that failed to build: {status.error}") from status.error

        flat, unflatten = _flatten_fetches(fetches)
        feeds = self._prepare_feeds(feed_dict or {})
        outputs, self.variables = evaluate(
            self.context.graph, flat, self.variables, feeds, next(self._rng)
        )
        return unflatten(outputs)

    def _resolve(self, key: Any) -> Tensor:
        if isinstance(key, Tensor):
            return key
        name, _, index = str(key).partition(':')
        try:
            node = self.context.graph.get_node(name)
        except KeyError:
            raise ExecutionError(f"Unknown feed target '{key}'") from None
        return node.outputs[int(index or 0)]

    def _prepare_feeds(self, feed_dict: Mapping[Any, Any]) -> Dict[Tensor, jax.Array]:
        feeds = {}
        for key, value in feed_dict.items():
            handle = self._resolve(key)
            array = jnp.asarray(value, dtype=handle.dtype)
            if not _compatible(handle.shape, array.shape):
                raise ExecutionError(
                    f"Cannot feed value of shape {array.shape} for '{handle.name}' "
                    f"with declared shape {handle.shape}"
                )
            feeds[handle] = array
        return feeds
