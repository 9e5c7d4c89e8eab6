# File location: jax-dcgraph/src/dcgraph/core/graph.py

"""
Graph intermediate representation: nodes and symbolic tensor handles.

A graph is an append-only list of nodes. Node ids are assigned in
construction order, and since a node can only consume handles that were
already returned, that order is always a valid topological order.
"""

import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Tuple


Shape = Optional[Tuple[Optional[int], ...]]


def is_fully_defined(shape: Shape) -> bool:
    """True when the rank and every dimension of ``shape`` are known."""
    return shape is not None and all(d is not None for d in shape)


class Tensor:
    """Symbolic handle to one output of a graph node.

    Handles carry the declared shape and dtype computed at construction
    time. They hold no data; evaluation is the job of an executor.
    """

    __slots__ = ('node', 'index', 'shape', 'dtype')

    def __init__(self, node: 'Node', index: int, shape: Shape, dtype: Any):
        self.node = node
        self.index = index
        self.shape = None if shape is None else tuple(shape)
        self.dtype = np.dtype(dtype)

    @property
    def op(self) -> str:
        return self.node.op

    @property
    def name(self) -> str:
        return f"{self.node.name}:{self.index}"

    @property
    def ndim(self) -> Optional[int]:
        return None if self.shape is None else len(self.shape)

    def __eq__(self, other):
        if not isinstance(other, Tensor):
            return NotImplemented
        return self.node is other.node and self.index == other.index

    def __hash__(self):
        return hash((self.node.id, self.index))

    def __repr__(self):
        return f"<Tensor '{self.name}' shape={self.shape} dtype={self.dtype.name}>"


class Node:
    """A single primitive operation in the graph."""

    def __init__(self,
                 node_id: int,
                 op: str,
                 name: str,
                 inputs: Sequence[Tensor],
                 attrs: Optional[Dict[str, Any]] = None):
        self.id = node_id
        self.op = op
        self.name = name
        self.inputs = tuple(inputs)
        self.attrs = dict(attrs or {})
        self.outputs: Tuple[Tensor, ...] = ()

    def __repr__(self):
        return f"<Node {self.id} '{self.name}' op={self.op}>"


class Graph:
    """Append-only container of nodes with unique names."""

    def __init__(self, name: str = 'graph'):
        self.name = name
        self.nodes: List[Node] = []
        self._name_counts: Dict[str, int] = {}
        self._by_name: Dict[str, Node] = {}

    def unique_name(self, base: str) -> str:
        """Return ``base`` or ``base_N`` so that no two nodes share a name."""
        if base not in self._by_name and base not in self._name_counts:
            self._name_counts[base] = 0
            return base
        count = self._name_counts.get(base, 0)
        while True:
            count += 1
            candidate = f"{base}_{count}"
            if candidate not in self._by_name:
                self._name_counts[base] = count
                return candidate

    def create_node(self,
                    op: str,
                    name: str,
                    inputs: Sequence[Tensor],
                    attrs: Optional[Dict[str, Any]] = None) -> Node:
        node = Node(len(self.nodes), op, name, inputs, attrs)
        self.nodes.append(node)
        self._by_name[name] = node
        return node

    def get_node(self, name: str) -> Node:
        return self._by_name[name]

    def nodes_by_op(self, op: str) -> List[Node]:
        return [n for n in self.nodes if n.op == op]

    def __len__(self):
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)
