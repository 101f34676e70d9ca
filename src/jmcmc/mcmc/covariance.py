"""
Random-Effects Covariance Update.

D = diag(sds) R diag(sds), R = L'L, with L the upper Cholesky factor of the
correlation matrix. Two Metropolis-within-Gibbs sweeps per iteration:

- sds: log-normal proposals (stay positive), half-t prior on each component
- L: proposals on the free strictly-upper entries (column-major), LKJ prior

Each sweep has its own running denominator, computed at its start. Both
log full conditionals share the multivariate normal density of the random
effects b under the current D.
"""

import jax.numpy as jnp

from ..linalg import corr_chol_from_free, reconstruct_correlation, is_valid_correlation
from ..priors import log_dmvnrm_chol, log_dht, log_lkj_chol
from .sampling import update_block


def log_density_b(b, sds, L):
    """Sum over subjects of log N(b_i; 0, D), with chol(D) = L * sds."""
    return jnp.sum(log_dmvnrm_chol(b, L * sds[None, :]))


def log_post_sds(sds, L_free, b, priors):
    """
    Log full conditional of the standard deviations.

    Returns:
        (log posterior, ()) - there is nothing to cache with sds
    """
    L = corr_chol_from_free(L_free, sds.shape[0])
    lp = log_density_b(b, sds, L) + jnp.sum(log_dht(sds, priors.sds_sigma, priors.sds_df))
    return lp, ()


def log_post_L(L_free, sds, b, priors):
    """
    Log full conditional of the correlation Cholesky factor.

    A free vector whose reconstructed R is not a valid correlation matrix
    has log posterior -inf, so its proposal is rejected.
    """
    L = corr_chol_from_free(L_free, sds.shape[0])
    lp = log_density_b(b, sds, L) + log_lkj_chol(L, priors.eta_LKJ)
    valid = is_valid_correlation(reconstruct_correlation(L))
    return jnp.where(valid, lp, -jnp.inf), ()


def update_covariance(key, state, scales, data, priors, proposal_types, settings, iteration):
    """
    Update sds, then L (when there is more than one random effect).

    Args:
        key: JAX random key
        state: ChainState
        scales: Scales
        data: ModelArrays (uses the random effects b)
        priors: PriorArrays
        proposal_types: (sds proposal, L proposal), ProposalType values (static)
        settings: (sds settings row, L settings row)
        iteration: Current chain iteration

    Returns:
        state, scales, accepts_sds, accepts_L, new_key
    """
    sds_proposal, L_proposal = proposal_types
    sds_settings, L_settings = settings

    def sds_log_post(values):
        return log_post_sds(values, state.L, data.b, priors)

    lp_sds, _ = sds_log_post(state.sds)
    sds, sds_scales, _, _, accepts_sds, key = update_block(
        key, state.sds, scales.sds, lp_sds, (), sds_log_post,
        sds_proposal, sds_settings, iteration
    )
    state = state._replace(sds=sds)
    scales = scales._replace(sds=sds_scales)

    accepts_L = jnp.zeros(state.L.shape[0], dtype=state.L.dtype)
    if state.L.shape[0] > 0:
        def L_log_post(values):
            return log_post_L(values, state.sds, data.b, priors)

        lp_L, _ = L_log_post(state.L)
        L_free, L_scales, _, _, accepts_L, key = update_block(
            key, state.L, scales.L, lp_L, (), L_log_post,
            L_proposal, L_settings, iteration
        )
        state = state._replace(L=L_free)
        scales = scales._replace(L=L_scales)

    return state, scales, accepts_sds, accepts_L, key
