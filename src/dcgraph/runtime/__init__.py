# File location: jax-dcgraph/src/dcgraph/runtime/__init__.py

"""
Reference JAX executor for constructed graphs.
"""

from .session import *

__all__ = [
    # session.py
    "ExecutionError",
    "PRNGSequence",
    "Session",
    "evaluate",
]
