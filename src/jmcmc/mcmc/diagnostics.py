"""
MCMC Diagnostics.

- compute_acceptance_rates: Per-coordinate acceptance rates from 0/1 traces
- print_acceptance_summary: Log acceptance rate statistics per block
- check_covariance_draws: Reconstruction check of retained (sds, L) draws
"""

from typing import Dict, List

import jax
import jax.numpy as jnp
import numpy as np

from ..linalg import corr_chol_from_free, reconstruct_correlation, reconstruct_covariance, is_valid_correlation

import logging
logger = logging.getLogger('jmcmc')


def compute_acceptance_rates(acc_rate: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
    """
    Mean of each coordinate's acceptance indicators over retained iterations.

    Works for single-chain (n_keep, k) and multi-chain (n_chains, n_keep, k)
    indicator arrays; chains are pooled.
    """
    rates = {}
    for name, indicators in acc_rate.items():
        indicators = np.asarray(indicators)
        if indicators.shape[-1] == 0 or indicators.shape[-2] == 0:
            rates[name] = np.zeros(indicators.shape[-1])
            continue
        rates[name] = indicators.reshape(-1, indicators.shape[-1]).mean(axis=0)
    return rates


def print_acceptance_summary(block_specs: List, acceptance_rates: Dict[str, np.ndarray]) -> None:
    """
    Log summary statistics for MH acceptance rates.

    Args:
        block_specs: List of BlockSpec objects
        acceptance_rates: Per-coordinate rates keyed by block name
    """
    for spec in block_specs:
        if spec.is_empty:
            continue
        rates = acceptance_rates[spec.name]
        logger.info(f"--- {spec.name} acceptance ({spec.size} coordinates, {spec.proposal_type}) ---")
        logger.info(f"  Mean: {np.mean(rates):.1%}  Median: {np.median(rates):.1%}  "
                    f"Min: {np.min(rates):.1%}  Max: {np.max(rates):.1%}")

        # Warn about low acceptance rates
        low_rate_mask = rates < 0.10
        if np.any(low_rate_mask):
            low_count = int(np.sum(low_rate_mask))
            low_labels = [lbl for lbl, is_low in zip(spec.labels, low_rate_mask) if is_low]
            logger.warning(f"  WARNING: {low_count} coordinate(s) have acceptance rate < 10%")
            if low_count <= 10:
                logger.warning(f"    Low coordinates: {', '.join(low_labels)}")


def check_covariance_draws(sds_draws: np.ndarray, L_draws: np.ndarray, tol: float = 1e-8) -> Dict[str, np.ndarray]:
    """
    Check every retained (sds, L) draw.

    For each draw, R = L'L must be a valid correlation matrix and
    D = diag(sds) R diag(sds) must be symmetric and positive-definite.

    Args:
        sds_draws: (n_keep, q) standard deviations
        L_draws: (n_keep, q*(q-1)/2) free entries of L, column-major
        tol: Tolerance on unit diagonal and symmetry

    Returns:
        Dict with boolean (n_keep,) arrays 'valid_correlation' and
        'positive_definite', and the maximum unit-diagonal error of R
    """
    sds_draws = jnp.asarray(sds_draws)
    L_draws = jnp.asarray(L_draws)
    q = sds_draws.shape[1]

    def check_one(sds, free):
        L = corr_chol_from_free(free, q)
        R = reconstruct_correlation(L)
        D = reconstruct_covariance(sds, L)
        symmetric = jnp.all(jnp.abs(D - D.T) <= tol * jnp.maximum(jnp.max(jnp.abs(D)), 1.0))
        positive_definite = symmetric & jnp.all(jnp.isfinite(jnp.linalg.cholesky(D)))
        diag_error = jnp.max(jnp.abs(jnp.diag(R) - 1.0))
        return is_valid_correlation(R), positive_definite, diag_error

    valid, pd, diag_error = jax.vmap(check_one)(sds_draws, L_draws)
    return {
        'valid_correlation': np.asarray(valid),
        'positive_definite': np.asarray(pd),
        'max_diag_error': float(jnp.max(diag_error)) if diag_error.size else 0.0,
    }
