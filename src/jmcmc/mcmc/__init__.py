"""
MCMC Subpackage - Core sampling implementation of the joint model.

This package contains the core MCMC sampling logic:
- backend: Independent multi-chain runs (run_mcmc_chains)
- single_run: Single-chain engine (run_mcmc) and helpers
- compile: Kernel compilation and caching
- config: Configuration and initialization
- diagnostics: Acceptance summaries and covariance draw checks
- sampling: Coordinate-wise Metropolis updates and the tau Gibbs step
- covariance: Updates of the random-effects standard deviations and correlations
- scan: One full sweep over the blocks
- types: Core data structures (ModelArrays, MCMCCarry, RunParams)
"""

# Import types first (needed by other modules)
from .types import ModelArrays, PriorArrays, ChainState, MCMCCarry, RunParams

# Import main entry points
from .single_run import run_mcmc
from .backend import run_mcmc_chains

# Import commonly used functions
from .config import configure_mcmc_system, initialize_carry, initialize_chains_carry
from .diagnostics import compute_acceptance_rates, print_acceptance_summary, check_covariance_draws
from .compile import compile_mcmc_kernel, get_compiled_kernel_cache

__all__ = [
    # Main entry points
    'run_mcmc',
    'run_mcmc_chains',
    # Types
    'ModelArrays',
    'PriorArrays',
    'ChainState',
    'MCMCCarry',
    'RunParams',
    # Config
    'configure_mcmc_system',
    'initialize_carry',
    'initialize_chains_carry',
    # Diagnostics
    'compute_acceptance_rates',
    'print_acceptance_summary',
    'check_covariance_draws',
    # Compile
    'compile_mcmc_kernel',
    'get_compiled_kernel_cache',
]
