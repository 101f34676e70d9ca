"""
Error Handling and Validation Utilities for the Sampler

This module provides control validation and post-run diagnostic tools.
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('jmcmc')


# Acceptance rate below which a coordinate is reported as poorly mixing
LOW_ACCEPTANCE_RATE = 0.10

_KNOWN_CONTROL_KEYS = {'n_iter', 'n_burnin', 'mala', 'rng_seed', 'use_double',
                       'chunk_size', 'block_settings'}


def validate_control(control: Dict[str, Any]) -> None:
    """
    Validates that the sampler control settings are sensible.

    Args:
        control: Control dictionary (after clean_control)

    Raises:
        ValueError: If the control settings are invalid
    """
    errors = []

    for key in ('n_iter', 'n_burnin'):
        if key not in control:
            errors.append(f"Missing required control key: '{key}'")

    unknown = set(control) - _KNOWN_CONTROL_KEYS
    if unknown:
        errors.append(f"Unknown control keys: {sorted(unknown)}")

    n_iter = control.get('n_iter')
    if n_iter is not None:
        if not isinstance(n_iter, (int, np.integer)) or isinstance(n_iter, bool) or n_iter < 1:
            errors.append(f"n_iter must be an integer >= 1, got {n_iter!r}")
            n_iter = None

    n_burnin = control.get('n_burnin')
    if n_burnin is not None:
        if not isinstance(n_burnin, (int, np.integer)) or isinstance(n_burnin, bool) or n_burnin < 0:
            errors.append(f"n_burnin must be an integer >= 0, got {n_burnin!r}")
        elif n_iter is not None and n_burnin >= n_iter:
            errors.append(f"n_burnin must be < n_iter, got n_burnin={n_burnin}, n_iter={n_iter}")

    if 'mala' in control and not isinstance(control['mala'], (bool, np.bool_)):
        errors.append(f"mala must be True or False, got {control['mala']!r}")

    if 'use_double' in control and not isinstance(control['use_double'], (bool, np.bool_)):
        errors.append(f"use_double must be True or False, got {control['use_double']!r}")

    chunk_size = control.get('chunk_size', 1)
    if not isinstance(chunk_size, (int, np.integer)) or chunk_size < 1:
        errors.append(f"chunk_size must be an integer >= 1, got {chunk_size!r}")

    if not isinstance(control.get('block_settings', {}), dict):
        errors.append("block_settings must be a dict of per-block setting dicts")

    if errors:
        raise ValueError("Invalid MCMC control:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(results: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes sampler output to identify common issues.

    Args:
        results: Output bundle of run_mcmc (single chain or chains)

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = {
        'issues': [],
        'warnings': [],
        'info': []
    }

    # Check for NaN/Inf in draws
    for name, draws in results['mcmc'].items():
        if not np.all(np.isfinite(draws)):
            diagnostics['issues'].append(
                f"{name} draws contain NaN or Inf values - sampler became unstable"
            )

    # Coordinates that never moved or rarely moved
    for name, acc in results['acc_rate'].items():
        if acc.size == 0 or acc.shape[-2] == 0:
            continue
        rates = np.mean(acc, axis=-2).reshape(-1)
        never = int(np.sum(rates == 0.0))
        low = int(np.sum((rates > 0.0) & (rates < LOW_ACCEPTANCE_RATE)))
        if never:
            diagnostics['warnings'].append(
                f"{name}: {never} coordinate(s) never accepted a proposal"
            )
        if low:
            diagnostics['warnings'].append(
                f"{name}: {low} coordinate(s) have acceptance rate < {LOW_ACCEPTANCE_RATE:.0%}"
            )

    # Summary info
    n_keep = results['mcmc']['bs_gammas'].shape[-2]
    diagnostics['info'].append(f"Retained iterations: {n_keep}")
    n_params = sum(results['acc_rate'][name].shape[-1] for name in results['acc_rate'])
    diagnostics['info'].append(f"Number of sampled parameters: {n_params}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
