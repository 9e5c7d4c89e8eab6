# File location: jax-dcgraph/src/dcgraph/training/__init__.py

"""
Training-side graph fragments.

Only loss formulas are built here; gradients and optimization belong to
whatever executes the graph.
"""

from .losses import *

__all__ = [
    # losses.py
    "discriminator_loss",
    "generator_loss",
]
