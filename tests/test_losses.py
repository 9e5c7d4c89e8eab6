# tests/test_losses.py

import math

import jax.numpy as jnp
import numpy as np

from dcgraph.core import BuildContext, ops
from dcgraph.runtime import Session
from dcgraph.training import discriminator_loss, generator_loss


class TestAdversarialLosses:
    """Test the discriminator and generator loss subgraphs."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.real = ops.placeholder(self.ctx, (4, 1), name='real')
        self.fake = ops.placeholder(self.ctx, (4, 1), name='fake')

    def test_scalar_outputs(self):
        """Both losses are scalars."""
        d_loss = discriminator_loss(self.ctx, self.real, self.fake)
        g_loss = generator_loss(self.ctx, self.fake)
        assert d_loss.shape == ()
        assert g_loss.shape == ()
        assert d_loss.node.name == 'discriminator_loss'
        assert g_loss.node.name == 'generator_loss'

    def test_zero_logits(self):
        """Logits of zero cost log(2) per term."""
        d_loss = discriminator_loss(self.ctx, self.real, self.fake)
        g_loss = generator_loss(self.ctx, self.fake)
        zeros = np.zeros((4, 1), np.float32)
        d, g = Session(self.ctx).run([d_loss, g_loss], {self.real: zeros, self.fake: zeros})
        assert jnp.allclose(d, 2 * math.log(2.0), atol=1e-6)
        assert jnp.allclose(g, math.log(2.0), atol=1e-6)

    def test_confident_discriminator(self):
        """A confident, correct discriminator has near-zero loss and a large generator loss."""
        d_loss = discriminator_loss(self.ctx, self.real, self.fake)
        g_loss = generator_loss(self.ctx, self.fake)
        feeds = {'real': np.full((4, 1), 40.0), 'fake': np.full((4, 1), -40.0)}
        d, g = Session(self.ctx).run([d_loss, g_loss], feeds)
        assert jnp.isfinite(d) and jnp.isfinite(g)
        assert d < 1e-6
        assert jnp.allclose(g, 40.0, atol=1e-4)
