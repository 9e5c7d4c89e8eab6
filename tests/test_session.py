# tests/test_session.py

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from dcgraph.core import BuildContext, create_parameter, ops, schedule_initializer
from dcgraph.core import assign_sub
from dcgraph.runtime import ExecutionError, PRNGSequence, Session, evaluate


class TestSessionRun:
    """Test fetching values from a session."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.x = ops.placeholder(self.ctx, (3,), name='x')
        self.y = ops.add(self.ctx, ops.multiply(self.ctx, self.x, 2.0), 1.0)

    def test_arithmetic(self):
        """Constants fold into elementwise arithmetic."""
        ctx = BuildContext()
        a = ops.constant(ctx, [1.0, 2.0, 3.0])
        b = ops.subtract(ctx, ops.exp(ctx, ops.constant(ctx, [0.0, 0.0, 0.0])), a)
        out = Session(ctx).run(b)
        assert jnp.allclose(out, jnp.array([0.0, -1.0, -2.0]))

    def test_feed_by_handle_and_name(self):
        """Placeholders accept feeds keyed by handle, name or name:index."""
        sess = Session(self.ctx)
        expected = jnp.array([3.0, 5.0, 7.0])
        assert jnp.allclose(sess.run(self.y, {self.x: [1.0, 2.0, 3.0]}), expected)
        assert jnp.allclose(sess.run(self.y, {'x': [1.0, 2.0, 3.0]}), expected)
        assert jnp.allclose(sess.run(self.y, {'x:0': [1.0, 2.0, 3.0]}), expected)

    def test_fetch_structures(self):
        """A list fetch returns a list, a dict fetch a dict."""
        sess = Session(self.ctx)
        feeds = {self.x: np.zeros(3)}
        values = sess.run([self.x, self.y], feeds)
        assert isinstance(values, list) and len(values) == 2
        named = sess.run({'input': self.x, 'output': self.y}, feeds)
        assert set(named) == {'input', 'output'}
        assert jnp.allclose(named['output'], jnp.ones(3))

    def test_missing_feed(self):
        """An unfed placeholder is an execution error."""
        with pytest.raises(ExecutionError, match="placeholder 'x'"):
            Session(self.ctx).run(self.y)

    def test_bad_feed_shape(self):
        """Feeds must match the declared shape."""
        with pytest.raises(ExecutionError, match="shape"):
            Session(self.ctx).run(self.y, {self.x: np.zeros(4)})

    def test_unknown_feed_name(self):
        """Feeding a name that is not in the graph fails."""
        with pytest.raises(ExecutionError, match="Unknown feed target"):
            Session(self.ctx).run(self.y, {'nope': np.zeros(3)})

    def test_partial_shape_feed(self):
        """Unknown dimensions accept any size."""
        ctx = BuildContext()
        x = ops.placeholder(ctx, (None, 2), name='x')
        assert x.shape == (None, 2)
        y = ops.multiply(ctx, x, 3.0)
        assert y.shape is None
        out = Session(ctx).run(y, {'x': np.ones((5, 2))})
        assert out.shape == (5, 2)

    def test_refuses_failed_build(self):
        """A context with a recorded error cannot be run."""
        ops.matmul(self.ctx, self.x, self.x)
        assert not self.ctx.status.ok
        with pytest.raises(ExecutionError, match="failed to build"):
            Session(self.ctx).run(self.y, {self.x: np.zeros(3)})


class TestSessionVariables:
    """Test variable storage, initialization and updates."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.w = create_parameter(self.ctx, (2,), trainable=True, name='w')
        schedule_initializer(self.ctx, self.w, [4.0, 8.0])
        self.update = assign_sub(self.ctx, self.w, ops.multiply(self.ctx, self.w, 0.5))

    def test_uninitialized_read(self):
        """Reading a variable before initialization fails."""
        sess = Session(self.ctx)
        with pytest.raises(ExecutionError, match="uninitialized"):
            sess.run(self.w)
        with pytest.raises(ExecutionError, match="uninitialized"):
            sess.read(self.w)

    def test_initialize(self):
        """initialize runs every registered initializer."""
        sess = Session(self.ctx).initialize()
        assert jnp.allclose(sess.read(self.w), jnp.array([4.0, 8.0]))
        assert jnp.allclose(sess.run(self.w), jnp.array([4.0, 8.0]))

    def test_assign_sub_commits(self):
        """Each run of an update op is persisted in the session."""
        sess = Session(self.ctx).initialize()
        assert jnp.allclose(sess.run(self.update), jnp.array([2.0, 4.0]))
        sess.run(self.update)
        assert jnp.allclose(sess.read(self.w), jnp.array([1.0, 2.0]))

    def test_sessions_are_independent(self):
        """Two sessions over one context hold separate storage."""
        first = Session(self.ctx).initialize()
        second = Session(self.ctx).initialize()
        first.run(self.update)
        assert jnp.allclose(second.read(self.w), jnp.array([4.0, 8.0]))


class TestRandomness:
    """Test key handling for random nodes."""

    def test_prng_sequence(self):
        """Successive keys differ; equal seeds repeat."""
        a, b = PRNGSequence(0), PRNGSequence(0)
        k1, k2 = next(a), next(a)
        assert not jnp.array_equal(k1, k2)
        assert jnp.array_equal(k1, next(b))

    def test_runs_draw_fresh_samples(self):
        """Each run uses a new key; seeded sessions reproduce each other."""
        ctx = BuildContext()
        r = ops.random_normal(ctx, (16,))
        sess = Session(ctx, seed=3)
        first, second = sess.run(r), sess.run(r)
        assert not jnp.allclose(first, second)
        assert jnp.allclose(first, Session(ctx, seed=3).run(r))

    def test_nodes_are_independent(self):
        """Two random nodes in one run produce different samples."""
        ctx = BuildContext()
        r1 = ops.random_uniform(ctx, (16,))
        r2 = ops.random_uniform(ctx, (16,))
        a, b = Session(ctx).run([r1, r2])
        assert not jnp.allclose(a, b)
        assert jnp.all((a >= 0.0) & (a < 1.0))


class TestEvaluate:
    """Test the pure evaluation function under JAX transformations."""

    def setup_method(self):
        self.ctx = BuildContext()
        self.x = create_parameter(self.ctx, (4,), trainable=True, name='x')
        product = ops.multiply(self.ctx, self.x, ops.stop_gradient(self.ctx, self.x))
        self.loss = ops.reduce_mean(self.ctx, product)
        self.values = {'x': jnp.array([1.0, -2.0, 3.0, 0.5])}

    def loss_fn(self, variables):
        (loss,), _ = evaluate(self.ctx.graph, [self.loss], variables)
        return loss

    def test_pure(self):
        """evaluate does not mutate the variables it is given."""
        update = assign_sub(self.ctx, self.x, 1.0)
        _, new_vars = evaluate(self.ctx.graph, [update], self.values)
        assert jnp.allclose(self.values['x'], jnp.array([1.0, -2.0, 3.0, 0.5]))
        assert jnp.allclose(new_vars['x'], jnp.array([0.0, -3.0, 2.0, -0.5]))

    def test_grad_respects_stop_gradient(self):
        """Only the unblocked factor contributes: d/dx mean(x * sg(x)) = x / n."""
        grads = jax.grad(self.loss_fn)(self.values)
        assert jnp.allclose(grads['x'], self.values['x'] / 4.0)

    def test_jit(self):
        """evaluate traces under jit."""
        expected = jnp.mean(self.values['x'] ** 2)
        assert jnp.allclose(jax.jit(self.loss_fn)(self.values), expected)
