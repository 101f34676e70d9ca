"""
Adaptive Metropolis Scale Control

Each coordinate of each block has its own proposal scale. After every
accept/reject outcome the log-scale moves toward the value that gives the
target acceptance probability:

    log s' = clip(log s + gain_t * (accepted - target), log s_min, log s_max)
    gain_t = adapt_rate / sqrt(t - adapt_start + 1)

The gain decreases with the iteration count (diminishing adaptation). No
adaptation happens before adapt_start.
"""

import jax.numpy as jnp

from .settings import SettingSlot


def robbins_monro(scale, accepted, iteration, settings):
    """
    One Robbins-Monro update of a proposal scale.

    Args:
        scale: Current positive scale (scalar)
        accepted: Accept indicator of the latest proposal (bool or 0/1)
        iteration: Current chain iteration (0-based)
        settings: Settings row of the block (MAX_SETTINGS,)

    Returns:
        Updated scale, always within [MIN_SCALE, MAX_SCALE] once adapting
    """
    scale = jnp.asarray(scale)
    target = settings[SettingSlot.TARGET_ACCEPT]
    adapt_start = settings[SettingSlot.ADAPT_START]

    elapsed = jnp.maximum(iteration - adapt_start, 0.0)
    gain = settings[SettingSlot.ADAPT_RATE] / jnp.sqrt(elapsed + 1.0)

    log_scale = jnp.log(scale) + gain * (jnp.asarray(accepted, dtype=scale.dtype) - target)
    log_scale = jnp.clip(log_scale,
                         jnp.log(settings[SettingSlot.MIN_SCALE]),
                         jnp.log(settings[SettingSlot.MAX_SCALE]))

    return jnp.where(iteration >= adapt_start, jnp.exp(log_scale), scale)


def create_init_scale(n, settings, dtype=None):
    """Initial scales for a block of n coordinates."""
    return jnp.full((n,), settings[SettingSlot.INIT_SCALE], dtype=dtype)
