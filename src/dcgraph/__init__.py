# File location: jax-dcgraph/src/dcgraph/__init__.py

"""
JAX-DCGraph: symbolic graph construction for DCGAN networks

Builds generator and discriminator forward graphs, batch-norm moving-average
updates and adversarial loss formulas as a DAG of primitive operations,
without executing them.
"""

__version__ = "0.1.0"

# Core imports for easy access
from . import config
from . import core
from . import nn
from . import models
from . import training
from . import runtime

from .core import BuildContext, GraphConstructionError, Parameter, Status, Tensor
from .models import Discriminator, Generator
from .runtime import ExecutionError, Session

__all__ = [
    "__version__",
    "config",
    "core",
    "nn",
    "models",
    "training",
    "runtime",
    "BuildContext",
    "GraphConstructionError",
    "Parameter",
    "Status",
    "Tensor",
    "Generator",
    "Discriminator",
    "ExecutionError",
    "Session",
]
