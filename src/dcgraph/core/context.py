# File location: jax-dcgraph/src/dcgraph/core/context.py

"""
Build context: aggregated construction status plus parameter/update registries.

Every primitive builder receives the context explicitly and appends its node
through :meth:`BuildContext.add_node`. Construction never raises on shape
errors; the first failure is stored in the context's :class:`Status` and the
caller checks it once after the whole graph has been built.
"""

import contextlib
import functools
import logging
import jax
import numpy as np
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .graph import Graph, Node, Shape, Tensor, is_fully_defined
from .registry import OpDef, get_op_def

logger = logging.getLogger(__name__)

# Kernel failures jax raises while tracing on abstract shapes
_INFERENCE_ERRORS = (TypeError, ValueError, IndexError)


class GraphConstructionError(Exception):
    """A primitive could not be added to the graph."""


class Status:
    """Cumulative construction status. Holds the first error, never resets."""

    def __init__(self):
        self._error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self._error is None

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def update(self, error: Exception) -> bool:
        """Record ``error`` if no error has been recorded yet.

        Returns:
            True if ``error`` became the recorded error
        """
        if self._error is not None:
            return False
        self._error = error
        return True

    def raise_if_error(self):
        if self._error is not None:
            raise GraphConstructionError(str(self._error)) from self._error

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return "Status(OK)" if self.ok else f"Status(error={self._error!r})"


class BuildContext:
    """Shared state threaded through every constructor and ``build`` call.

    Attributes:
        graph: Graph receiving the nodes
        status: Aggregated construction status
        trainable_variables: ``(parameter, shape)`` pairs in creation order
        init_ops: Assignments that initialize parameters
        update_ops: Side-effecting assignments run once per training step

    A context is not thread-safe; independent subgraphs built concurrently
    must each use their own context.
    """

    def __init__(self, name: str = 'graph'):
        self.graph = Graph(name)
        self.status = Status()
        self.trainable_variables: List[Tuple[Tensor, Shape]] = []
        self.init_ops: List[Tensor] = []
        self.update_ops: List[Tensor] = []
        self._scopes: List[str] = []

    # Registries never drop entries and never deduplicate.

    def register_trainable(self, parameter: Tensor, shape: Shape):
        self.trainable_variables.append((parameter, None if shape is None else tuple(shape)))

    def register_assign(self, op: Tensor):
        self.init_ops.append(op)

    def register_update(self, op: Tensor):
        self.update_ops.append(op)

    @property
    def trainable_parameters(self) -> List[Tensor]:
        return [p for p, _ in self.trainable_variables]

    @contextlib.contextmanager
    def name_scope(self, prefix: str) -> Iterator[str]:
        """Prefix the names of nodes created inside the block with ``prefix/``."""
        self._scopes.append(prefix)
        try:
            yield '/'.join(self._scopes)
        finally:
            self._scopes.pop()

    @property
    def scope(self) -> str:
        """Current ``a/b`` name prefix, empty outside any scope."""
        return '/'.join(self._scopes)

    def unique_name(self, name: str) -> str:
        full = '/'.join(self._scopes + [name])
        return self.graph.unique_name(full)

    def record_error(self, error: Exception):
        """Aggregate ``error`` into the status; only the first one is kept."""
        if self.status.update(error):
            logger.warning("Graph construction failed: %s", error)
        else:
            logger.debug("Ignoring subsequent construction error: %s", error)

    def log_status(self, stage: str):
        logger.debug("Node building status after %s: %s", stage, self.status)

    def add_node(self,
                 op: str,
                 inputs: Sequence[Tensor] = (),
                 attrs: Optional[Dict[str, Any]] = None,
                 name: Optional[str] = None) -> Node:
        """Append a primitive node and infer the shapes of its outputs.

        Args:
            op: Registered primitive name
            inputs: Input handles, all from this context's graph
            attrs: Static attributes passed to the kernel as keywords
            name: Optional node name (made unique, scoped)

        Returns:
            The new node. Its outputs have ``shape=None`` when inference
            failed or an input shape was unknown.
        """
        op_def = get_op_def(op)
        node = self.graph.create_node(op, self.unique_name(name or op), inputs, attrs)

        try:
            specs = self._infer_outputs(op_def, node)
        except _INFERENCE_ERRORS as e:
            self.record_error(GraphConstructionError(f"{node.name} ({op}): {e}"))
            specs = [(None, _fallback_dtype(node))] * op_def.num_outputs

        node.outputs = tuple(
            Tensor(node, i, shape, dtype) for i, (shape, dtype) in enumerate(specs)
        )
        return node

    def _infer_outputs(self, op_def: OpDef, node: Node) -> List[Tuple[Shape, Any]]:
        if any(not is_fully_defined(t.shape) for t in node.inputs):
            return [(None, _fallback_dtype(node))] * op_def.num_outputs

        shape_attr = node.attrs.get('shape', ())
        if shape_attr is None or not is_fully_defined(shape_attr):
            # Partially specified slot (general variable/placeholder form)
            return [(shape_attr, node.attrs['dtype'])]

        fn = functools.partial(op_def.kernel, **node.attrs)
        args = [jax.ShapeDtypeStruct(t.shape, t.dtype) for t in node.inputs]
        if op_def.random:
            args.insert(0, jax.random.PRNGKey(0))
        out = jax.eval_shape(fn, *args)
        outs = out if isinstance(out, (tuple, list)) else (out,)
        return [(tuple(o.shape), o.dtype) for o in outs]


def _fallback_dtype(node: Node):
    if 'dtype' in node.attrs:
        return node.attrs['dtype']
    if node.inputs:
        return node.inputs[-1].dtype
    return np.float32
