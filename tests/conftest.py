"""
Pytest configuration and shared fixtures for jmcmc tests.
"""

import jax
import jax.numpy as jnp
import pytest

# Tests compare against SciPy in double precision
jax.config.update("jax_enable_x64", True)

from jmcmc.settings import SettingSlot, MAX_SETTINGS, SETTING_DEFAULTS
from jmcmc.synthetic import simulate_joint_data


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def base_control():
    """Short run used by most integration tests."""
    return {'n_iter': 200, 'n_burnin': 100, 'rng_seed': 7}


@pytest.fixture(scope="session")
def joint_inputs():
    """Small simulated dataset with baseline covariates, events and right censoring."""
    return simulate_joint_data(n_subjects=15, seed=3)


@pytest.fixture
def make_settings_row():
    """
    Factory for a settings row as used by one block.

    Usage:
        def test_something(make_settings_row):
            settings = make_settings_row(target_accept=0.3)
    """
    def factory(**overrides):
        row = [SETTING_DEFAULTS[slot] for slot in SettingSlot]
        for name, value in overrides.items():
            row[SettingSlot[name.upper()]] = value
        assert len(row) == MAX_SETTINGS
        return jnp.array(row, dtype=jnp.float64)
    return factory


@pytest.fixture
def zero_grad_fn():
    """Gradient function for proposals that don't use gradients."""
    return lambda block: jnp.zeros((), dtype=block.dtype)
