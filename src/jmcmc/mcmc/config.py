"""
MCMC Configuration and Initialization.

This module handles setting up a run (the INITIALIZING phase):
- clean_control: Fill control defaults, accept the MALA alias
- configure_precision: Switch JAX between 32- and 64-bit arithmetic
- gen_rng_keys: Generate JAX random keys
- configure_mcmc_system: Main configuration entry point
- initialize_carry: Initial MCMCCarry of one chain

Configuration is split into two parts:
- user_config: Serializable config (plain Python values)
- runtime_ctx: JAX-dependent objects that exist only during execution

All control keys use lowercase with underscores (e.g., 'n_iter', 'rng_seed').
"""

import jax
import jax.numpy as jnp
import jax.random as random
from typing import Any, Dict, Tuple

from ..block_specs import BLOCK_ORDER, build_block_specs
from ..settings import build_settings_matrix
from ..adaptation import create_init_scale
from ..error_handling import validate_control
from ..model_input import ModelInput
from .types import MCMCCarry, RunParams, Scales, Traces, compute_linear_predictors
from .compile import DEFAULT_CHUNK_SIZE

import logging
logger = logging.getLogger('jmcmc')


def clean_control(control: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cleans the control dict and sets defaults.
    All control keys use lowercase with underscores; 'MALA' is accepted as 'mala'.
    """
    control = dict(control)
    if 'MALA' in control:
        control.setdefault('mala', control.pop('MALA'))

    # Define Defaults
    control.setdefault('mala', False)
    control.setdefault('rng_seed', 42)
    control.setdefault('use_double', True)
    control.setdefault('chunk_size', DEFAULT_CHUNK_SIZE)
    control.setdefault('block_settings', {})

    return control


def configure_precision(use_double: bool):
    """Configure JAX precision; returns the float dtype of the run."""
    jax.config.update("jax_enable_x64", bool(use_double))
    return jnp.float64 if use_double else jnp.float32


def gen_rng_keys(rng_seed: int, n_chains: int = 1):
    """Generate JAX random keys from seed.

    Returns:
        One PRNGKey when n_chains == 1, else (n_chains,) stacked keys
    """
    master_key = random.PRNGKey(rng_seed)
    if n_chains == 1:
        return master_key
    return random.split(master_key, n_chains)


def configure_mcmc_system(
    control: Dict[str, Any],
    model_input: ModelInput,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Configure the sampler from control settings and a validated model input.

    Args:
        control: Raw control dict (validated here)
        model_input: ModelInput from build_model_input

    Returns:
        user_config: Clean control values plus block sizes
        runtime_ctx: Dict with dtype, device arrays, block specs, settings, run_params
    """
    control = clean_control(control)
    validate_control(control)

    sizes = model_input.block_sizes
    block_specs = build_block_specs(
        sizes,
        mala=control['mala'],
        block_settings=control['block_settings'],
        labels=model_input.block_labels(),
    )

    user_config = {
        'n_iter': int(control['n_iter']),
        'n_burnin': int(control['n_burnin']),
        'mala': bool(control['mala']),
        'rng_seed': int(control['rng_seed']),
        'use_double': bool(control['use_double']),
        'chunk_size': int(control['chunk_size']),
        'block_settings': control['block_settings'],
        'block_sizes': sizes,
    }

    float_dtype = configure_precision(user_config['use_double'])

    run_params = RunParams(
        N_ITER=user_config['n_iter'],
        N_BURNIN=user_config['n_burnin'],
        CHUNK_SIZE=min(user_config['chunk_size'], user_config['n_iter']),
        PROPOSAL_TYPES=tuple(int(spec.proposal_type) for spec in block_specs),
    )

    runtime_ctx = {
        'float_dtype': float_dtype,
        'data': model_input.to_model_arrays(float_dtype),
        'priors': model_input.to_prior_arrays(float_dtype),
        'initial_state': model_input.to_chain_state(float_dtype),
        'block_specs': block_specs,
        'settings': build_settings_matrix(block_specs).astype(float_dtype),
        'run_params': run_params,
    }

    for spec in block_specs:
        if spec.is_empty:
            logger.info(f"  Block {spec.name}: empty, skipped")
        else:
            logger.info(f"  Block {spec.name}: {spec.size} coordinate(s), {spec.proposal_type} proposal")

    return user_config, runtime_ctx


def initialize_carry(runtime_ctx: Dict[str, Any], key) -> MCMCCarry:
    """
    Build the initial carry of one chain.

    Trace buffers are allocated for all n_iter rows and filled in place;
    the burn-in prefix is dropped when the run is finalized.
    """
    state = runtime_ctx['initial_state']
    data = runtime_ctx['data']
    settings = runtime_ctx['settings']
    dtype = runtime_ctx['float_dtype']
    n_iter = runtime_ctx['run_params'].N_ITER

    scales = Scales(**{
        name: create_init_scale(getattr(state, name).shape[0], settings[b], dtype=dtype)
        for b, name in enumerate(BLOCK_ORDER)
    })

    def buffer(n_cols):
        return jnp.zeros((n_iter, n_cols), dtype=dtype)

    sizes = {name: getattr(state, name).shape[0] for name in BLOCK_ORDER}
    traces = Traces(
        bs_gammas=buffer(sizes['bs_gammas']),
        tau_bs_gammas=buffer(1),
        gammas=buffer(sizes['gammas']),
        W_bar_gammas=jnp.zeros(n_iter, dtype=dtype),
        alphas=buffer(sizes['alphas']),
        sds=buffer(sizes['sds']),
        L=buffer(sizes['L']),
        acc_bs_gammas=buffer(sizes['bs_gammas']),
        acc_gammas=buffer(sizes['gammas']),
        acc_alphas=buffer(sizes['alphas']),
        acc_sds=buffer(sizes['sds']),
        acc_L=buffer(sizes['L']),
    )

    return MCMCCarry(
        state=state,
        predictors=compute_linear_predictors(state, data),
        scales=scales,
        traces=traces,
        key=key,
        iteration=jnp.asarray(0, dtype=jnp.int32),
    )


def initialize_chains_carry(runtime_ctx: Dict[str, Any], keys) -> MCMCCarry:
    """Initial carry of several chains, stacked along a leading axis."""
    carry = initialize_carry(runtime_ctx, keys[0])
    n_chains = keys.shape[0]
    stacked = jax.tree_util.tree_map(
        lambda x: jnp.broadcast_to(x, (n_chains,) + jnp.shape(x)), carry
    )
    return stacked._replace(key=keys)
