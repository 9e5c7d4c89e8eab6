# File location: jax-dcgraph/src/dcgraph/models/__init__.py

"""
DCGAN network assemblies.

Each network allocates its parameters once in the constructor and emits a
forward graph on every ``build`` call, sharing those parameters.
"""

from .generator import *
from .discriminator import *

__all__ = [
    # generator.py
    "Generator",

    # discriminator.py
    "Discriminator",
]
