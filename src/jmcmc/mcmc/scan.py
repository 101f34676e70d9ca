"""
MCMC Iteration Body.

One iteration of the sampler, in a fixed order:

    1. recompute the log-posterior denominator from the cached predictors
    2. bs_gammas (Metropolis-within-Gibbs)
    3. tau_bs_gammas (Gibbs draw)
    4. gammas, when the model has baseline covariates
    5. alphas, when the model has association terms
    6. random-effects covariance: sds, then L

Later steps see the state left by earlier ones. Blocks of size 0 are
skipped at trace time; their trace columns stay empty.
"""

import jax.numpy as jnp

from ..block_specs import BLOCK_INDEX
from ..priors import log_prior
from .types import MCMCCarry
from .sampling import regression_log_post, update_regression_block, gibbs_tau_bs_gammas
from .covariance import update_covariance


def _write_row(traces, name, it, row):
    return traces._replace(**{name: getattr(traces, name).at[it].set(row)})


def _regression_step(block_name, key, state, predictors, scales, traces, lp,
                     data, priors, settings, run_params, it):
    """Update one regression block and record its row."""
    b = BLOCK_INDEX[block_name]
    state, predictors, block_scales, lp, accepts, key = update_regression_block(
        key, block_name, state, predictors, getattr(scales, block_name), lp,
        data, priors, run_params.PROPOSAL_TYPES[b], settings[b], it
    )
    scales = scales._replace(**{block_name: block_scales})
    traces = _write_row(traces, block_name, it, getattr(state, block_name))
    traces = _write_row(traces, 'acc_' + block_name, it, accepts)
    return key, state, predictors, scales, traces, lp


def mcmc_iteration(carry: MCMCCarry, data, priors, settings, run_params) -> MCMCCarry:
    """
    Run one full iteration and record it in row `iteration` of the traces.

    Args:
        carry: MCMCCarry of one chain
        data: ModelArrays
        priors: PriorArrays
        settings: Settings matrix (n_blocks, MAX_SETTINGS), rows in BLOCK_ORDER
        run_params: RunParams (static)

    Returns:
        Updated MCMCCarry with iteration + 1
    """
    state, predictors, scales, traces, key, it = carry
    common = dict(data=data, priors=priors, settings=settings, run_params=run_params, it=it)

    lp = regression_log_post(state, predictors, data, priors)

    key, state, predictors, scales, traces, lp = _regression_step(
        'bs_gammas', key, state, predictors, scales, traces, lp, **common)

    tau_old = state.tau_bs_gammas
    tau_new, key = gibbs_tau_bs_gammas(key, state.bs_gammas, priors)
    # Shift the denominator by the change of the bs_gammas prior term
    lp = lp + (log_prior(state.bs_gammas, priors.mean_bs_gammas, priors.Tau_bs_gammas, tau_new)
               - log_prior(state.bs_gammas, priors.mean_bs_gammas, priors.Tau_bs_gammas, tau_old))
    state = state._replace(tau_bs_gammas=tau_new)
    traces = _write_row(traces, 'tau_bs_gammas', it, jnp.reshape(tau_new, (1,)))

    if state.gammas.shape[0] > 0:
        key, state, predictors, scales, traces, lp = _regression_step(
            'gammas', key, state, predictors, scales, traces, lp, **common)
        traces = _write_row(traces, 'W_bar_gammas', it, data.W_bar @ state.gammas)

    if state.alphas.shape[0] > 0:
        key, state, predictors, scales, traces, lp = _regression_step(
            'alphas', key, state, predictors, scales, traces, lp, **common)

    s, l = BLOCK_INDEX['sds'], BLOCK_INDEX['L']
    state, scales, accepts_sds, accepts_L, key = update_covariance(
        key, state, scales, data, priors,
        (run_params.PROPOSAL_TYPES[s], run_params.PROPOSAL_TYPES[l]),
        (settings[s], settings[l]), it
    )
    traces = _write_row(traces, 'sds', it, state.sds)
    traces = _write_row(traces, 'acc_sds', it, accepts_sds)
    if state.L.shape[0] > 0:
        traces = _write_row(traces, 'L', it, state.L)
        traces = _write_row(traces, 'acc_L', it, accepts_L)

    return MCMCCarry(state, predictors, scales, traces, key, it + 1)
