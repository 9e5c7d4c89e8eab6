# tests/test_models.py

import jax.numpy as jnp
import numpy as np

from dcgraph.config import IMAGE_SIZE, NOISE_DIM, NUM_CHANNELS, UNITS
from dcgraph.core import BuildContext, ops
from dcgraph.models import Discriminator, Generator
from dcgraph.runtime import Session


class TestGenerator:
    """Test generator construction and forward graph."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.gen = Generator(self.ctx)

    def test_parameters(self):
        """Dense weight, three filters and three batch norms, created once."""
        assert self.gen.w1.shape == (NOISE_DIM, UNITS)
        assert self.gen.filter.shape == (5, 5, 128, 256)
        assert self.gen.filter2.shape == (5, 5, 64, 128)
        assert self.gen.filter3.shape == (5, 5, NUM_CHANNELS, 64)
        # w1, 3 filters, gamma/beta for 3 batch norms
        assert len(self.ctx.trainable_variables) == 10
        assert len(self.ctx.init_ops) == 4 + 3 * 4
        assert self.ctx.update_ops == []

    def test_training_output_shape(self):
        """build(4, training) yields (4, 28, 28, NUM_CHANNELS)."""
        out = self.gen.build(self.ctx, batch_size=4, training=True)
        assert self.ctx.status.ok
        assert out.shape == (4, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS)
        assert out.node.name == 'generator'
        assert out.dtype == np.float32

    def test_training_registers_updates(self):
        """Three batch norms, two updates each."""
        self.gen.build(self.ctx, batch_size=4, training=True)
        assert len(self.ctx.update_ops) == 6

    def test_inference_registers_nothing(self):
        """Inference builds leave the update set untouched."""
        out = self.gen.build(self.ctx, batch_size=2, training=False)
        assert out.shape == (2, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS)
        assert self.ctx.update_ops == []

    def test_intermediate_shapes(self):
        """Spatial size grows 7 -> 7 -> 14 -> 28 while depth shrinks."""
        self.gen.build(self.ctx, batch_size=3, training=True)
        deconvs = self.ctx.graph.nodes_by_op('conv2d_backprop_input')
        assert [d.outputs[0].shape for d in deconvs] == [
            (3, 7, 7, 128), (3, 14, 14, 64), (3, 28, 28, NUM_CHANNELS)
        ]

    def test_parameter_sharing(self):
        """Repeated builds read the same parameter objects; no new variables appear."""
        num_variables = len(self.ctx.graph.nodes_by_op('variable'))
        self.gen.build(self.ctx, batch_size=4, training=True)
        self.gen.build(self.ctx, batch_size=8, training=False)
        assert len(self.ctx.graph.nodes_by_op('variable')) == num_variables

        deconvs = self.ctx.graph.nodes_by_op('conv2d_backprop_input')
        assert len(deconvs) == 6
        filters = [self.gen.filter, self.gen.filter2, self.gen.filter3]
        for i, kernel in enumerate(filters):
            assert deconvs[i].inputs[0] is kernel
            assert deconvs[i + 3].inputs[0] is kernel

        matmuls = self.ctx.graph.nodes_by_op('matmul')
        assert all(m.inputs[1] is self.gen.w1 for m in matmuls)

    def test_executes(self):
        """The training graph runs and produces finite images."""
        out = self.gen.build(self.ctx, batch_size=2, training=True)
        sess = Session(self.ctx, seed=0).initialize()
        images = sess.run(out)
        assert images.shape == (2, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS)
        assert jnp.all(jnp.isfinite(images))

        sess.run(self.ctx.update_ops)
        moving_mean = sess.read(self.gen.batchnorm.moving_mean)
        assert not jnp.allclose(moving_mean, 0.0)


class TestDiscriminator:
    """Test discriminator construction and forward graph."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.disc = Discriminator(self.ctx)

    def test_parameters(self):
        """Two convolution weight/bias pairs and one dense pair."""
        assert self.disc.conv1_weights.shape == (5, 5, NUM_CHANNELS, 64)
        assert self.disc.conv2_weights.shape == (5, 5, 64, 128)
        assert self.disc.fc1_weights.shape == ((IMAGE_SIZE // 4) ** 2 * 128, 1)
        assert self.disc.fc1_biases.shape == (1,)
        assert len(self.ctx.trainable_variables) == 6
        assert len(self.ctx.init_ops) == 6

    def test_output_shape(self):
        """A (4, 28, 28, C) input gives (4, 1) logits."""
        images = ops.placeholder(self.ctx, (4, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS))
        logits = self.disc.build(self.ctx, images, batch_size=4)
        assert self.ctx.status.ok
        assert logits.shape == (4, 1)
        assert logits.node.name == 'discriminator'
        assert self.ctx.update_ops == []

    def test_wrong_batch_size_is_reported(self):
        """A batch size that disagrees with the input fails at the flatten step."""
        images = ops.placeholder(self.ctx, (4, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS))
        self.disc.build(self.ctx, images, batch_size=3)
        assert not self.ctx.status.ok

    def test_executes(self):
        """Logits are finite for random images."""
        images = ops.placeholder(self.ctx, (2, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS), name='images')
        logits = self.disc.build(self.ctx, images, batch_size=2)
        sess = Session(self.ctx).initialize()
        data = np.random.RandomState(0).rand(2, IMAGE_SIZE, IMAGE_SIZE, NUM_CHANNELS)
        out = sess.run(logits, {'images': data})
        assert out.shape == (2, 1)
        assert jnp.all(jnp.isfinite(out))

    def test_initial_biases_are_zero(self):
        """Biases start at zero."""
        sess = Session(self.ctx).initialize()
        assert jnp.array_equal(sess.read(self.disc.conv1_biases), jnp.zeros(64))
        assert jnp.array_equal(sess.read(self.disc.fc1_biases), jnp.zeros(1))


class TestEndToEnd:
    """Test generator and discriminator wired together."""

    def test_generator_into_discriminator(self):
        """Discriminating generated images gives one logit per sample."""
        ctx = BuildContext()
        gen = Generator(ctx)
        disc = Discriminator(ctx)

        images = gen.build(ctx, batch_size=4, training=True)
        logits = disc.build(ctx, images, batch_size=4)
        assert ctx.status.ok
        assert logits.shape == (4, 1)
        assert len(ctx.trainable_variables) == 16
