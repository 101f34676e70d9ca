"""
MCMC Sampling Functions.

Core sampling functions for the joint-model sampler:
- metropolis_coordinate_step: Metropolis-Hastings step for one coordinate of a block
- update_block: Metropolis-within-Gibbs sweep over all coordinates of a block
- regression_log_post: Log posterior of the survival submodel plus coefficient priors
- update_regression_block: Sweep over bs_gammas, gammas or alphas
- gibbs_tau_bs_gammas: Closed-form Gamma draw of the bs_gammas prior precision
"""

import jax
import jax.numpy as jnp
import jax.random as random
from functools import partial

from ..block_specs import ProposalType
from ..proposals import rand_walk_proposal, mala_proposal, log_normal_proposal
from ..adaptation import robbins_monro
from ..priors import log_prior
from ..survival import log_density_surv
from .types import update_linear_predictors


# Map from ProposalType enum value to proposal function
PROPOSAL_REGISTRY = {
    int(ProposalType.RAND_WALK): rand_walk_proposal,
    int(ProposalType.MALA): mala_proposal,
    int(ProposalType.LOG_NORMAL): log_normal_proposal,
}


def metropolis_coordinate_step(key, block, index, scale, lp_current, aux_current,
                               log_post_fn, proposal_fn):
    """
    Perform one Metropolis-Hastings step on coordinate `index` of a block.

    Args:
        key: JAX random key
        block: Current block values (block_size,)
        index: Coordinate to update (traced int)
        scale: Proposal scale of that coordinate
        lp_current: Log posterior at the current block (the denominator)
        aux_current: Quantities cached with the current block (pytree)
        log_post_fn: Function(block) -> (log posterior, aux)
        proposal_fn: Proposal from PROPOSAL_REGISTRY

    Returns:
        next_block, next_lp, next_aux, accepted, new_key
    """
    # Derivative w.r.t. the updated coordinate only. Proposals other than
    # MALA never call it, so it is never traced for them.
    def coordinate_grad_fn(values):
        return jax.grad(lambda v: log_post_fn(v)[0])(values)[index]

    proposal, log_hastings_ratio, key = proposal_fn(
        (key, block, index, scale, coordinate_grad_fn)
    )

    lp_proposed, aux_proposed = log_post_fn(proposal)

    # Check if proposal contains NaN/Inf - if so, force rejection
    proposal_is_finite = jnp.all(jnp.isfinite(proposal))
    safe_lp_proposed = jnp.nan_to_num(lp_proposed, nan=-jnp.inf, posinf=-jnp.inf, neginf=-jnp.inf)

    raw_ratio = log_hastings_ratio + safe_lp_proposed - lp_current
    safe_ratio = jnp.where(proposal_is_finite & jnp.isfinite(raw_ratio), raw_ratio, -jnp.inf)

    new_key, accept_key = random.split(key)
    log_uniform = jnp.log(random.uniform(accept_key, shape=(), dtype=block.dtype))

    accepted = log_uniform < safe_ratio
    next_block = jnp.where(accepted, proposal, block)
    next_lp = jnp.where(accepted, safe_lp_proposed, lp_current)
    next_aux = jax.tree_util.tree_map(
        lambda proposed, current: jnp.where(accepted, proposed, current),
        aux_proposed, aux_current
    )
    return next_block, next_lp, next_aux, accepted, new_key


def update_block(key, block, scales, lp_current, aux_current, log_post_fn,
                 proposal_type, settings, iteration):
    """
    Update every coordinate of a block in turn (Metropolis-within-Gibbs).

    Coordinate i is proposed given the already-updated coordinates 0..i-1.
    After each accept/reject the scale of that coordinate is adapted.

    Args:
        key: JAX random key
        block: Current block values (block_size,), block_size >= 1
        scales: Per-coordinate proposal scales (block_size,)
        lp_current: Log posterior at the current state
        aux_current: Quantities cached with the current state
        log_post_fn: Function(block) -> (log posterior, aux)
        proposal_type: ProposalType value (static)
        settings: Settings row of this block (MAX_SETTINGS,)
        iteration: Current chain iteration

    Returns:
        block, scales, lp, aux, accepts (0/1 per coordinate), new_key
    """
    coordinate_step = partial(metropolis_coordinate_step,
                              log_post_fn=log_post_fn,
                              proposal_fn=PROPOSAL_REGISTRY[int(proposal_type)])

    def body(i, carry):
        block, scales, lp, aux, accepts, key = carry
        block, lp, aux, accepted, key = coordinate_step(key, block, i, scales[i], lp, aux)
        scales = scales.at[i].set(robbins_monro(scales[i], accepted, iteration, settings))
        accepts = accepts.at[i].set(accepted.astype(accepts.dtype))
        return block, scales, lp, aux, accepts, key

    accepts = jnp.zeros(block.shape[0], dtype=block.dtype)
    block, scales, lp, aux, accepts, key = jax.lax.fori_loop(
        0, block.shape[0], body,
        (block, scales, lp_current, aux_current, accepts, key)
    )
    return block, scales, lp, aux, accepts, key


def regression_log_prior(state, priors):
    """Sum of the three coefficient priors; bs_gammas scaled by tau_bs_gammas."""
    return (log_prior(state.bs_gammas, priors.mean_bs_gammas, priors.Tau_bs_gammas,
                      state.tau_bs_gammas)
            + log_prior(state.gammas, priors.mean_gammas, priors.Tau_gammas)
            + log_prior(state.alphas, priors.mean_alphas, priors.Tau_alphas))


def regression_log_post(state, predictors, data, priors):
    """Survival log-likelihood plus all coefficient priors."""
    return log_density_surv(predictors, data) + regression_log_prior(state, priors)


def update_regression_block(key, block_name, state, predictors, scales, lp_current,
                            data, priors, proposal_type, settings, iteration):
    """
    Update one regression block (bs_gammas, gammas or alphas).

    Each proposal recomputes the three linear predictors of the block; they
    are committed together with the value on acceptance only.

    Returns:
        state, predictors, scales, lp, accepts, new_key
    """
    def log_post_fn(values):
        proposed_state = state._replace(**{block_name: values})
        proposed_predictors = update_linear_predictors(block_name, values, predictors, data)
        lp = regression_log_post(proposed_state, proposed_predictors, data, priors)
        return lp, proposed_predictors

    block, scales, lp, predictors, accepts, key = update_block(
        key, getattr(state, block_name), scales, lp_current, predictors,
        log_post_fn, proposal_type, settings, iteration
    )
    return state._replace(**{block_name: block}), predictors, scales, lp, accepts, key


def gibbs_tau_bs_gammas(key, bs_gammas, priors):
    """
    Draw tau_bs_gammas from its Gamma full conditional.

    tau | bs_gammas ~ Gamma(A + rank/2, B + 0.5 * z' Tau z), z = bs_gammas - mean
    (shape / rate parameterisation).

    Returns:
        tau: New precision scalar
        new_key: Updated random key
    """
    z = bs_gammas - priors.mean_bs_gammas
    post_B = priors.B_tau_bs_gammas + 0.5 * (z @ priors.Tau_bs_gammas @ z)

    new_key, gamma_key = random.split(key)
    tau = random.gamma(gamma_key, priors.post_A_tau_bs_gammas, dtype=bs_gammas.dtype) / post_B
    return tau, new_key
