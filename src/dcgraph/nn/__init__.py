# File location: jax-dcgraph/src/dcgraph/nn/__init__.py

"""
Neural-network building blocks expressed as graph fragments.

This module provides:
- Stateless numeric primitives (moments, initializers, dropout, losses)
- Batch normalization modules with training/inference modes
"""

from .functional import *
from .batch_norm import *

__all__ = [
    # functional.py
    "Moments",
    "moments",
    "compute_fans",
    "glorot_limit",
    "glorot_uniform",
    "dropout",
    "sigmoid_cross_entropy_with_logits",
    "leaky_relu",
    "batch_normalization",
    "conv2d_transpose",

    # batch_norm.py
    "Mode",
    "BatchNormalization",
    "FusedBatchNorm",
]
