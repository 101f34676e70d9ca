"""
Tests for Coordinate Proposals and the Metropolis Update

Checks each proposal's locality and Hastings ratio, forced rejection of
non-finite proposals, and that a full coordinate sweep targets the right
distribution.

Run with: pytest tests/test_proposals.py -v
"""

import numpy as np
import jax
import jax.numpy as jnp
import jax.random
import pytest
from scipy import stats as scipy_stats

from jmcmc.block_specs import ProposalType
from jmcmc.proposals import rand_walk_proposal, mala_proposal, log_normal_proposal
from jmcmc.mcmc.sampling import PROPOSAL_REGISTRY, metropolis_coordinate_step, update_block


def _operand(current, index=1, scale=0.5, grad_fn=None, seed=0):
    current = jnp.asarray(current, dtype=jnp.float64)
    if grad_fn is None:
        grad_fn = lambda block: jnp.zeros((), dtype=block.dtype)
    return (jax.random.PRNGKey(seed), current, index, jnp.asarray(scale, dtype=jnp.float64), grad_fn)


def _standard_normal_log_post(block):
    return -0.5 * jnp.sum(block ** 2), ()


# ============================================================================
# PROPOSAL FUNCTIONS
# ============================================================================

class TestRandWalk:

    def test_moves_only_selected_coordinate(self):
        current = [0.5, -1.0, 2.0]
        proposal, ratio, new_key = rand_walk_proposal(_operand(current, index=1))
        assert proposal.shape == (3,)
        np.testing.assert_array_equal(proposal[jnp.array([0, 2])], [0.5, 2.0])
        assert float(proposal[1]) != -1.0
        assert float(ratio) == 0.0

    def test_key_advances(self):
        operand = _operand([0.0, 0.0])
        _, _, new_key = rand_walk_proposal(operand)
        assert not np.array_equal(np.asarray(new_key), np.asarray(operand[0]))

    def test_step_distribution(self):
        keys = jax.random.split(jax.random.PRNGKey(3), 5000)
        current = jnp.array([1.0, 2.0])

        def propose(key):
            proposal, _, _ = rand_walk_proposal((key, current, 0, jnp.asarray(0.3), None))
            return proposal[0]

        steps = np.asarray(jax.vmap(propose)(keys)) - 1.0
        assert abs(steps.mean()) < 0.02
        np.testing.assert_allclose(steps.std(), 0.3, rtol=0.05)


class TestMala:

    def test_zero_gradient_matches_random_walk(self):
        operand = _operand([0.3, -0.7], index=0)
        mala, mala_ratio, _ = mala_proposal(operand)
        walk, _, _ = rand_walk_proposal(operand)
        np.testing.assert_allclose(mala, walk, rtol=1e-12)
        np.testing.assert_allclose(mala_ratio, 0.0, atol=1e-12)

    def test_hastings_ratio(self):
        # Target N(0, 1) in every coordinate: d/dx_i log p = -x_i
        index, scale = 1, 0.8
        grad_fn = lambda block: -block[index]
        current = jnp.array([0.2, 1.5])
        proposal, ratio, _ = mala_proposal(_operand(current, index=index, scale=scale, grad_fn=grad_fn))

        x, y = 1.5, float(proposal[1])
        half_var = 0.5 * scale ** 2
        forward = scipy_stats.norm(loc=x - half_var * x, scale=scale).logpdf(y)
        reverse = scipy_stats.norm(loc=y - half_var * y, scale=scale).logpdf(x)
        np.testing.assert_allclose(ratio, reverse - forward, rtol=1e-10)
        assert float(proposal[0]) == 0.2


class TestLogNormal:

    def test_stays_positive(self):
        keys = jax.random.split(jax.random.PRNGKey(5), 2000)
        current = jnp.array([0.05, 1.0])

        def propose(key):
            proposal, _, _ = log_normal_proposal((key, current, 0, jnp.asarray(2.0), None))
            return proposal[0]

        assert np.all(np.asarray(jax.vmap(propose)(keys)) > 0)

    def test_mean_preserving(self):
        keys = jax.random.split(jax.random.PRNGKey(6), 20000)
        current = jnp.array([2.0])

        def propose(key):
            proposal, _, _ = log_normal_proposal((key, current, 0, jnp.asarray(0.3), None))
            return proposal[0]

        np.testing.assert_allclose(np.asarray(jax.vmap(propose)(keys)).mean(), 2.0, rtol=0.01)

    def test_hastings_ratio(self):
        scale = 0.4
        proposal, ratio, _ = log_normal_proposal(_operand([1.3, 0.6], index=1, scale=scale))
        x, y = 0.6, float(proposal[1])
        shift = 0.5 * scale ** 2
        forward = scipy_stats.lognorm(s=scale, scale=np.exp(np.log(x) - shift)).logpdf(y)
        reverse = scipy_stats.lognorm(s=scale, scale=np.exp(np.log(y) - shift)).logpdf(x)
        np.testing.assert_allclose(ratio, reverse - forward, rtol=1e-10)
        assert float(proposal[0]) == 1.3


def test_registry_covers_every_proposal_type():
    assert set(PROPOSAL_REGISTRY) == {int(t) for t in ProposalType}


# ============================================================================
# METROPOLIS UPDATES
# ============================================================================

class TestMetropolisStep:

    def test_non_finite_log_posterior_is_rejected(self):
        block = jnp.array([0.0, 1.0])

        def log_post_fn(values):
            lp = jnp.where(jnp.all(values == block), 0.0, jnp.nan)
            return lp, (values * 2.0,)

        for seed in range(5):
            new_block, lp, aux, accepted, _ = metropolis_coordinate_step(
                jax.random.PRNGKey(seed), block, 0, jnp.asarray(1.0), jnp.asarray(0.0),
                (block * 2.0,), log_post_fn, rand_walk_proposal
            )
            assert not bool(accepted)
            np.testing.assert_array_equal(new_block, block)
            np.testing.assert_array_equal(aux[0], block * 2.0)
            assert float(lp) == 0.0

    def test_improvement_is_always_accepted(self):
        block = jnp.array([0.0])

        def log_post_fn(values):
            # Any move away from the current point raises the density
            return jnp.sum(jnp.abs(values)), ()

        _, lp, _, accepted, _ = metropolis_coordinate_step(
            jax.random.PRNGKey(0), block, 0, jnp.asarray(1.0), jnp.asarray(0.0),
            (), log_post_fn, rand_walk_proposal
        )
        assert bool(accepted)
        assert float(lp) > 0.0

    def test_aux_committed_with_acceptance(self):
        block = jnp.array([0.0, 0.0])

        def log_post_fn(values):
            return jnp.sum(jnp.abs(values)), (values + 10.0,)

        new_block, _, aux, accepted, _ = metropolis_coordinate_step(
            jax.random.PRNGKey(1), block, 1, jnp.asarray(1.0), jnp.asarray(0.0),
            (block + 10.0,), log_post_fn, rand_walk_proposal
        )
        assert bool(accepted)
        np.testing.assert_allclose(aux[0], new_block + 10.0)


@pytest.mark.parametrize("proposal_type", [ProposalType.RAND_WALK, ProposalType.MALA])
def test_update_block_targets_standard_normal(proposal_type, make_settings_row):
    """Long sweep on N(0, I): moments within Monte Carlo error, 0/1 indicators."""
    n_iter = 6000
    settings = make_settings_row(target_accept=0.45 if proposal_type == ProposalType.RAND_WALK else 0.574,
                                 init_scale=1.0)

    def body(it, carry):
        block, scales, lp, key, draws, acc = carry
        block, scales, lp, _, accepts, key = update_block(
            key, block, scales, lp, (), _standard_normal_log_post,
            int(proposal_type), settings, it
        )
        return block, scales, lp, key, draws.at[it].set(block), acc.at[it].set(accepts)

    @jax.jit
    def run(key):
        block = jnp.array([3.0, -3.0])
        lp, _ = _standard_normal_log_post(block)
        carry = (block, jnp.ones(2), lp, key, jnp.zeros((n_iter, 2)), jnp.zeros((n_iter, 2)))
        return jax.lax.fori_loop(0, n_iter, body, carry)

    _, scales, _, _, draws, acc = run(jax.random.PRNGKey(11))
    draws = np.asarray(draws)[1000:]
    acc = np.asarray(acc)

    assert set(np.unique(acc)) <= {0.0, 1.0}
    assert np.all(np.asarray(scales) > 0)
    np.testing.assert_allclose(draws.mean(axis=0), 0.0, atol=0.15)
    np.testing.assert_allclose(draws.var(axis=0), 1.0, atol=0.2)


def test_update_block_log_normal_gamma_target(make_settings_row):
    """Log-normal sweep on a Gamma(3, 1) target stays positive and finds its mean."""
    n_iter = 6000
    settings = make_settings_row(init_scale=0.5)

    def log_post_fn(block):
        return jnp.sum(2.0 * jnp.log(block) - block), ()

    def body(it, carry):
        block, scales, lp, key, draws = carry
        block, scales, lp, _, _, key = update_block(
            key, block, scales, lp, (), log_post_fn, int(ProposalType.LOG_NORMAL), settings, it
        )
        return block, scales, lp, key, draws.at[it].set(block[0])

    @jax.jit
    def run(key):
        block = jnp.array([1.0])
        lp, _ = log_post_fn(block)
        return jax.lax.fori_loop(0, n_iter, body, (block, jnp.full(1, 0.5), lp, key, jnp.zeros(n_iter)))

    draws = np.asarray(run(jax.random.PRNGKey(4))[4])[1000:]
    assert np.all(draws > 0)
    np.testing.assert_allclose(draws.mean(), 3.0, rtol=0.1)
