"""
MCMC Single Run - Single-chain sampling engine.

This module provides run_mcmc() and its helper functions. A run moves
through three phases:

    INITIALIZING  validate control and model input, build device arrays,
                  allocate trace buffers, compile the kernel
    ITERATING     run iterations 0 .. n_iter-1 in compiled chunks
    FINALIZED     trim traces to rows [n_burnin, n_iter) and assemble the
                  output bundle

A fatal problem aborts the run during INITIALIZING; no partial results are
returned. For several independent chains, see backend.run_mcmc_chains().

Helper functions:
- _prepare_run: INITIALIZING phase shared with the multi-chain backend
- _run_mcmc_iterations: Execute the main sampling loop
- _transfer_to_host: Move traces from device to host
- _build_results: Trim traces and assemble the output bundle
"""

import time
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import jax
import numpy as np

from .config import clean_control, configure_mcmc_system, gen_rng_keys, initialize_carry
from .compile import compile_mcmc_kernel
from .diagnostics import compute_acceptance_rates, print_acceptance_summary
from ..block_specs import BLOCK_ORDER
from ..error_handling import validate_control, diagnose_sampler_issues, print_diagnostics
from ..model_input import build_model_input

import logging
logger = logging.getLogger('jmcmc')

# Public API for this module
__all__ = [
    'run_mcmc',
    'RunPhase',
]


class RunPhase(Enum):
    INITIALIZING = 'initializing'
    ITERATING = 'iterating'
    FINALIZED = 'finalized'


# Names of the draw traces in the output bundle, in output order
_DRAW_TRACES = ('bs_gammas', 'tau_bs_gammas', 'gammas', 'W_bar_gammas', 'alphas', 'sds', 'L')


# =============================================================================
# RUN HELPER FUNCTIONS
# =============================================================================

def _prepare_run(
    model_data: Dict[str, Any],
    model_info: Optional[Dict[str, Any]],
    initial_values: Dict[str, Any],
    priors: Dict[str, Any],
    control: Dict[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Validate all inputs and configure the run.

    Raises:
        ValueError: For any structural or configuration problem
    """
    logger.info(f"[{RunPhase.INITIALIZING.name}] Validating control and model input...")
    validate_control(clean_control(control))
    model_input = build_model_input(model_data, model_info, initial_values, priors)
    user_config, runtime_ctx = configure_mcmc_system(control, model_input)
    runtime_ctx['model_input'] = model_input
    logger.info(f"  {model_input.data.n_subjects} subjects, "
                f"n_iter={user_config['n_iter']}, n_burnin={user_config['n_burnin']}, "
                f"MALA={'on' if user_config['mala'] else 'off'}")
    return user_config, runtime_ctx


def _run_mcmc_iterations(chunk_fn, initial_carry, n_iter: int, chunk_size: int) -> Tuple[Any, float]:
    """
    Execute the main MCMC sampling loop.

    Args:
        chunk_fn: Compiled kernel, chunk_fn(carry, n_steps) -> carry
        initial_carry: Initial carry state
        n_iter: Total iterations to run
        chunk_size: Iterations per kernel call

    Returns:
        final_carry: Final carry state after all iterations (arrays still on device)
        wall_time: Total wall clock time for sampling
    """
    logger.info(f"[{RunPhase.ITERATING.name}] Running {n_iter} iterations...")

    start_run_time = time.perf_counter()
    current_carry = initial_carry
    num_chunks = (n_iter + chunk_size - 1) // chunk_size

    for i in range(num_chunks):
        n_steps = min(chunk_size, n_iter - i * chunk_size)
        current_carry = chunk_fn(current_carry, n_steps)
        if i % max(1, num_chunks // 10) == 0:
            logger.info(f"  Chunk {i+1}/{num_chunks}...")

    jax.block_until_ready(current_carry)
    wall_time = time.perf_counter() - start_run_time

    logger.info(f"  Total Wall Time: {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)")
    return current_carry, wall_time


def _transfer_to_host(final_carry) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray]]:
    """Transfer trace buffers and final scales from device to host."""
    logger.info("Transferring traces to Host...")
    traces = jax.device_get(final_carry.traces)
    scales = jax.device_get(final_carry.scales)
    return ({name: np.asarray(value) for name, value in traces._asdict().items()},
            {name: np.asarray(value) for name, value in scales._asdict().items()})


def _build_results(
    host_traces: Dict[str, np.ndarray],
    final_scales: Dict[str, np.ndarray],
    user_config: Dict[str, Any],
    compile_time: float,
    wall_time: float,
    iteration_axis: int = 0,
) -> Dict[str, Any]:
    """
    Trim traces to [n_burnin, n_iter) and build the output bundle.

    Args:
        host_traces: Trace arrays keyed by Traces field name
        final_scales: Adaptive scales at the end of the run
        user_config: User configuration
        compile_time: Kernel compilation time
        wall_time: Total sampling wall time
        iteration_axis: Axis of the iteration dimension (1 with a chain axis)

    Returns:
        Results dict with 'mcmc', 'acc_rate' and 'diagnostics'
    """
    n_burnin = user_config['n_burnin']
    keep = (slice(None),) * iteration_axis + (slice(n_burnin, None),)

    def trim(name):
        return np.ascontiguousarray(host_traces[name][keep])

    mcmc = {name: trim(name) for name in _DRAW_TRACES}
    if user_config['block_sizes']['gammas'] == 0:
        del mcmc['W_bar_gammas']

    acc_rate = {name: trim('acc_' + name) for name in BLOCK_ORDER}

    diagnostics = {
        'compile_time': compile_time,
        'wall_time': wall_time,
        'n_iter': user_config['n_iter'],
        'n_burnin': user_config['n_burnin'],
        'n_kept': user_config['n_iter'] - n_burnin,
        'final_scales': final_scales,
    }

    return {
        'mcmc': mcmc,
        'acc_rate': acc_rate,
        'diagnostics': diagnostics,
        'control': user_config,
    }


def _finalize(final_carry, user_config, runtime_ctx, compile_time, wall_time,
              iteration_axis=0) -> Dict[str, Any]:
    """FINALIZED phase: host transfer, trimming, summaries and diagnostics."""
    logger.info(f"[{RunPhase.FINALIZED.name}] Assembling output...")
    host_traces, final_scales = _transfer_to_host(final_carry)
    results = _build_results(host_traces, final_scales, user_config,
                             compile_time, wall_time, iteration_axis)

    acceptance_rates = compute_acceptance_rates(results['acc_rate'])
    print_acceptance_summary(runtime_ctx['block_specs'], acceptance_rates)

    logger.info("--- Post-Run Diagnostics ---")
    issues = diagnose_sampler_issues(results)
    print_diagnostics(issues)
    results['diagnostics']['acceptance_rates'] = acceptance_rates
    results['diagnostics']['issues'] = issues['issues']
    results['diagnostics']['warnings'] = issues['warnings']
    return results


# =============================================================================
# SINGLE-RUN SAMPLING FUNCTION
# =============================================================================

def run_mcmc(
    model_data: Dict[str, Any],
    model_info: Optional[Dict[str, Any]],
    initial_values: Dict[str, Any],
    priors: Dict[str, Any],
    control: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Run one chain of the joint-model sampler.

    Args:
        model_data: Design matrices, quadrature weights, 1-based index sets
        model_info: Functional forms per outcome (FunForms_cpp, FunForms_ind), may be None
        initial_values: bs_gammas, gammas, alphas, tau_bs_gammas, b, D, betas
        priors: Prior means/precisions, tau hyperparameters, sds and LKJ priors
        control: n_iter, n_burnin and optional mala, rng_seed, use_double,
                 chunk_size, block_settings

    Returns:
        results: Dict containing:
            - mcmc: Retained draws per block, (n_iter - n_burnin, dim) arrays.
              W_bar_gammas is present only when the model has gammas.
            - acc_rate: 0/1 acceptance indicators per block and coordinate
            - diagnostics: Timing, final adaptive scales, acceptance rates
            - control: Cleaned control values

    Raises:
        ValueError: If the control settings or the model input are invalid
    """
    user_config, runtime_ctx = _prepare_run(model_data, model_info, initial_values, priors, control)

    key = gen_rng_keys(user_config['rng_seed'])
    initial_carry = initialize_carry(runtime_ctx, key)
    run_params = runtime_ctx['run_params']

    chunk_fn, compile_time = compile_mcmc_kernel(
        initial_carry, runtime_ctx['data'], runtime_ctx['priors'],
        runtime_ctx['settings'], run_params,
    )

    final_carry, wall_time = _run_mcmc_iterations(
        chunk_fn, initial_carry, run_params.N_ITER, run_params.CHUNK_SIZE
    )

    return _finalize(final_carry, user_config, runtime_ctx, compile_time, wall_time)
