"""
MCMC Backend - Independent multi-chain runs.

run_mcmc_chains() runs several independent copies of the single-chain
sampler in one compiled kernel, vectorised over chains with jax.vmap.
Each chain owns its state, adaptive scales, trace buffers and random key;
nothing is shared between chains except the read-only data and priors.
"""

from typing import Any, Dict, Optional

from .config import gen_rng_keys, initialize_chains_carry
from .compile import compile_mcmc_kernel
from .single_run import _prepare_run, _run_mcmc_iterations, _finalize

import logging
logger = logging.getLogger('jmcmc')


def run_mcmc_chains(
    model_data: Dict[str, Any],
    model_info: Optional[Dict[str, Any]],
    initial_values: Dict[str, Any],
    priors: Dict[str, Any],
    control: Dict[str, Any],
    n_chains: int = 4,
) -> Dict[str, Any]:
    """
    Run n_chains independent chains from the same initial values.

    Chain keys are split from the master key of control['rng_seed'].

    Returns:
        Results dict as from run_mcmc, with a leading chain axis on every
        array in 'mcmc' and 'acc_rate': (n_chains, n_iter - n_burnin, dim)
    """
    if not isinstance(n_chains, int) or n_chains < 1:
        raise ValueError(f"n_chains must be an integer >= 1, got {n_chains!r}")

    user_config, runtime_ctx = _prepare_run(model_data, model_info, initial_values, priors, control)
    user_config['n_chains'] = n_chains
    logger.info(f"  Running {n_chains} independent chains")

    # Split keys even for one chain so that the chain axis is always present
    keys = gen_rng_keys(user_config['rng_seed'], n_chains=max(n_chains, 2))[:n_chains]
    initial_carry = initialize_chains_carry(runtime_ctx, keys)
    run_params = runtime_ctx['run_params']

    chunk_fn, compile_time = compile_mcmc_kernel(
        initial_carry, runtime_ctx['data'], runtime_ctx['priors'],
        runtime_ctx['settings'], run_params, n_chains=n_chains,
    )

    final_carry, wall_time = _run_mcmc_iterations(
        chunk_fn, initial_carry, run_params.N_ITER, run_params.CHUNK_SIZE
    )

    return _finalize(final_carry, user_config, runtime_ctx, compile_time, wall_time,
                     iteration_axis=1)
