"""
jmcmc - Adaptive Metropolis-within-Gibbs sampler for joint models of
longitudinal and time-to-event data

Public API:
    Sampling:
        run_mcmc - Run one chain and return trimmed draws and acceptance indicators
        run_mcmc_chains - Run independent chains vectorised over a chain axis

    Model Input:
        build_model_input - Validate the raw input dicts into a typed ModelInput
        ModelInput - Frozen dataclass holding data, model info, initial values, priors

    Block Specifications:
        BlockSpec - Dataclass for parameter block configuration
        ProposalType - Enum for proposal types (RAND_WALK, MALA, LOG_NORMAL)
        BLOCK_ORDER - Update order of the Metropolis blocks

    Settings:
        SettingSlot - IntEnum for adaptation setting indices (TARGET_ACCEPT, INIT_SCALE, etc.)

    Diagnostics:
        compute_acceptance_rates - Per-coordinate acceptance rates of a run
        check_covariance_draws - Validity of every retained (sds, L) draw
        diagnose_sampler_issues - Scan a run's output for common problems

    Simulation:
        simulate_joint_data - Simulated inputs in the sampler's input format

Example:
    from jmcmc import run_mcmc, simulate_joint_data

    inputs = simulate_joint_data(n_subjects=100, seed=1)
    results = run_mcmc(**inputs, control={'n_iter': 3000, 'n_burnin': 1000})
    results['mcmc']['alphas'].mean(axis=0)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

# Import mcmc subpackage to register the ModelArrays pytree
from . import mcmc as _mcmc  # noqa: F401

from .block_specs import BlockSpec, ProposalType, BLOCK_ORDER, build_block_specs
from .settings import SettingSlot
from .model_input import ModelInput, build_model_input
from .error_handling import diagnose_sampler_issues, print_diagnostics
from .synthetic import simulate_joint_data

# Main MCMC entry points
from .mcmc import (
    run_mcmc,
    run_mcmc_chains,
    compute_acceptance_rates,
    check_covariance_draws,
)
