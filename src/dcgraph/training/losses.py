# File location: jax-dcgraph/src/dcgraph/training/losses.py

"""
Adversarial loss subgraphs built on the stable sigmoid cross-entropy.
"""

from typing import Optional

from ..core import ops
from ..core.context import BuildContext
from ..core.graph import Tensor
from ..nn.functional import sigmoid_cross_entropy_with_logits


def discriminator_loss(ctx: BuildContext,
                       real_output: Tensor,
                       fake_output: Tensor,
                       name: Optional[str] = 'discriminator_loss') -> Tensor:
    """Mean cross-entropy of real logits against ones plus fake logits against zeros.

    Args:
        ctx: Build context
        real_output: Discriminator logits on real images
        fake_output: Discriminator logits on generated images

    Returns:
        Scalar loss handle
    """
    real_loss = ops.reduce_mean(
        ctx, sigmoid_cross_entropy_with_logits(ctx, ops.ones_like(ctx, real_output), real_output)
    )
    fake_loss = ops.reduce_mean(
        ctx, sigmoid_cross_entropy_with_logits(ctx, ops.zeros_like(ctx, fake_output), fake_output)
    )
    return ops.add(ctx, real_loss, fake_loss, name=name)


def generator_loss(ctx: BuildContext,
                   fake_output: Tensor,
                   name: Optional[str] = 'generator_loss') -> Tensor:
    """Mean cross-entropy of fake logits against ones."""
    loss = sigmoid_cross_entropy_with_logits(ctx, ops.ones_like(ctx, fake_output), fake_output)
    return ops.reduce_mean(ctx, loss, name=name)
