# File location: jax-dcgraph/src/dcgraph/core/__init__.py

"""
Core graph-construction machinery.

This module provides the pieces every builder depends on:
- Graph IR: nodes and symbolic tensor handles
- Build context with aggregated status and parameter/update registries
- Engine-level primitive operations backed by JAX kernels
- Parameter binding and assignment
"""

from . import ops
from .graph import *
from .registry import *
from .context import *
from .variables import *

__all__ = [
    # graph.py
    "Graph",
    "Node",
    "Tensor",
    "is_fully_defined",

    # registry.py
    "OpDef",
    "get_op_def",
    "register_op",
    "registered_ops",

    # context.py
    "BuildContext",
    "GraphConstructionError",
    "Status",

    # variables.py
    "Parameter",
    "create_parameter",
    "assign",
    "assign_sub",
    "schedule_initializer",

    # primitive builders
    "ops",
]
