"""
MCMC Kernel Compilation and Caching.

This module handles JAX compilation of the MCMC kernel:
- _run_mcmc_chunk: Module-level chunk runner for cache-stable tracing
- _run_mcmc_chunk_chains: Same runner vectorised over independent chains
- _compute_cache_key: In-memory cache key for compiled kernels
- compile_mcmc_kernel: AOT compilation with in-memory caching

The kernel runs a dynamic number of iterations, so one compiled function
serves every chunk of a run including a shorter final chunk.
"""

import time
from functools import partial
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp

from .types import RunParams
from .scan import mcmc_iteration

import logging
logger = logging.getLogger('jmcmc')


# --- CONSTANTS ---
DEFAULT_CHUNK_SIZE = 100

# --- COMPILED FUNCTION CACHE ---
# Cache compiled MCMC kernels by configuration (in-memory, within session)
_COMPILED_KERNEL_CACHE = {}


def _run_mcmc_chunk(carry, n_steps, data, priors, settings, run_params):
    """
    Module-level MCMC chunk runner for cache-stable tracing.

    Data, priors and settings are explicit (traced) arguments, not closures,
    so a cached kernel can be reused with new values of the same shapes.

    Args:
        carry: MCMCCarry of one chain
        n_steps: Number of iterations to run (traced int)
        data: ModelArrays pytree
        priors: PriorArrays
        settings: Settings matrix
        run_params: RunParams (static)

    Returns:
        Carry after n_steps iterations
    """
    body = partial(mcmc_iteration, data=data, priors=priors, settings=settings,
                   run_params=run_params)
    return jax.lax.fori_loop(0, n_steps, lambda i, c: body(c), carry)


def _run_mcmc_chunk_chains(carry, n_steps, data, priors, settings, run_params):
    """Run a chunk for every chain; carry has a leading chain axis."""
    return jax.vmap(
        lambda c: _run_mcmc_chunk(c, n_steps, data, priors, settings, run_params)
    )(carry)


def _compute_cache_key(carry, data, priors, run_params: RunParams,
                       n_chains: Optional[int]) -> Tuple:
    """
    Compute a cache key for the compiled MCMC kernel.

    The key captures everything that affects the compiled function:
    - Number of chains (None for a single chain)
    - Tree structure of carry, data and priors (includes static flags)
    - Shapes and dtypes of every array (not values)
    - RunParams values
    """
    def signature(tree):
        leaves, treedef = jax.tree_util.tree_flatten(tree)
        return str(treedef), tuple((jnp.shape(x), str(jnp.result_type(x))) for x in leaves)

    return (
        n_chains,
        signature(carry),
        signature(data),
        signature(priors),
        run_params,
    )


def get_compiled_kernel_cache():
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def compile_mcmc_kernel(
    initial_carry,
    data,
    priors,
    settings,
    run_params: RunParams,
    n_chains: Optional[int] = None,
) -> Tuple[Callable[[Any, int], Any], float]:
    """
    Compile the MCMC kernel, using cache if available.

    Args:
        initial_carry: Initial MCMCCarry (leading chain axis when n_chains is set)
        data: ModelArrays
        priors: PriorArrays
        settings: Settings matrix
        run_params: RunParams with run configuration
        n_chains: Number of vectorised chains, or None for a single chain

    Returns:
        Tuple of (chunk_fn, compile_time); chunk_fn(carry, n_steps) -> carry
    """
    cache_key = _compute_cache_key(initial_carry, data, priors, run_params, n_chains)
    compiled_fn = _COMPILED_KERNEL_CACHE.get(cache_key)
    compile_time = 0.0

    if compiled_fn is not None:
        logger.info("Using cached kernel (in-memory)")
    else:
        runner = _run_mcmc_chunk if n_chains is None else _run_mcmc_chunk_chains
        run_chunk_jit = jax.jit(runner, static_argnames=('run_params',))

        print("Compiling kernel... ", end="", flush=True)
        compile_start = time.perf_counter()

        # AOT compilation with explicit arguments
        compiled_fn = run_chunk_jit.lower(
            initial_carry, jnp.asarray(run_params.CHUNK_SIZE, dtype=jnp.int32),
            data, priors, settings, run_params=run_params
        ).compile()

        compile_time = time.perf_counter() - compile_start
        print(f"Done ({compile_time:.4f}s)")

        _COMPILED_KERNEL_CACHE[cache_key] = compiled_fn
        logger.info(f"Kernel cached ({'1 chain' if n_chains is None else f'{n_chains} chains'})")

    # Bind the current data; it does not change during a run
    def chunk_fn(carry, n_steps):
        return compiled_fn(carry, jnp.asarray(n_steps, dtype=jnp.int32), data, priors, settings)

    return chunk_fn, compile_time
