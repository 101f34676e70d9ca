"""
Adaptation settings configuration.

This module defines the canonical ordering of per-block adaptation settings
and provides utilities to build a settings matrix from BlockSpecs.

Settings are stored in a JAX array of shape (n_blocks, MAX_SETTINGS) for
O(1) access inside the compiled kernel. Each block updater receives its row
of this matrix and reads settings by position using the SettingSlot enum.

To add a new setting:
1. Add it to SettingSlot enum
2. Add default value to SETTING_DEFAULTS
3. Use it in the updater: settings[SettingSlot.NEW_SETTING]
4. Specify per block via control['block_settings'] = {'bs_gammas': {'new_setting': value}}
"""

from enum import IntEnum
import numpy as np
import jax.numpy as jnp


class SettingSlot(IntEnum):
    """
    Canonical slot indices for adaptation settings.

    These map setting names to positions in the settings array.
    """
    TARGET_ACCEPT = 0   # Target acceptance probability for each coordinate
    INIT_SCALE = 1      # Starting proposal scale
    MIN_SCALE = 2       # Lower clip of the adapted scale
    MAX_SCALE = 3       # Upper clip of the adapted scale
    ADAPT_START = 4     # First iteration at which scales are adapted
    ADAPT_RATE = 5      # Gain multiplier of the Robbins-Monro step


# Default values for each setting
SETTING_DEFAULTS = {
    SettingSlot.TARGET_ACCEPT: 0.45,  # One-dimensional random-walk updates
    SettingSlot.INIT_SCALE: 0.1,
    SettingSlot.MIN_SCALE: 1e-4,
    SettingSlot.MAX_SCALE: 1e2,
    SettingSlot.ADAPT_START: 20.0,    # Stored as float for JAX compatibility
    SettingSlot.ADAPT_RATE: 1.0,
}

# Target acceptance for Langevin proposals (Roberts & Rosenthal, 1998)
MALA_TARGET_ACCEPT = 0.574

# Total number of settings (determines matrix width)
MAX_SETTINGS = len(SettingSlot)

KEY_TO_SLOT = {slot.name.lower(): slot for slot in SettingSlot}


def build_settings_matrix(specs):
    """
    Convert BlockSpec settings dicts into a JAX matrix.

    Args:
        specs: List of BlockSpec objects

    Returns:
        JAX array of shape (n_blocks, MAX_SETTINGS) containing all settings
    """
    n_blocks = len(specs)

    # Initialize with defaults
    matrix = np.zeros((n_blocks, MAX_SETTINGS), dtype=np.float64)
    for slot, default in SETTING_DEFAULTS.items():
        matrix[:, slot] = default

    for i, spec in enumerate(specs):
        matrix[i, SettingSlot.TARGET_ACCEPT] = spec.default_target_accept()
        for key, value in spec.settings.items():
            if key not in KEY_TO_SLOT:
                raise ValueError(
                    f"Unknown setting '{key}' for block '{spec.name}'. "
                    f"Available: {sorted(KEY_TO_SLOT)}"
                )
            matrix[i, KEY_TO_SLOT[key]] = float(value)

    return jnp.asarray(matrix)
