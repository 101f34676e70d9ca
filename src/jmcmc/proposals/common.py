"""
Common utilities for proposal distributions.

Functions:
    unpack_operand: Unpack the 5-element operand tuple into a named struct
    draw_standard_normal: Split the key and draw one N(0, 1) variate
    normal_logpdf: Univariate normal log-density
    log_normal_logpdf: Univariate log-normal log-density
"""

from collections import namedtuple

import jax.numpy as jnp
import jax.random as random
import jax.scipy.stats as stats


# Named tuple for unpacked operand fields
Operand = namedtuple('Operand', [
    'key', 'current_block', 'index', 'scale', 'grad_fn',
])


def unpack_operand(operand):
    """
    Unpack the 5-element operand tuple into a named struct.

    Every proposal receives the same (key, current_block, index, scale,
    grad_fn) tuple. This helper avoids repeating the destructuring line in
    each proposal.
    """
    return Operand(*operand)


def draw_standard_normal(key, dtype):
    """
    Draw z ~ N(0, 1).

    Returns:
        z: Scalar normal variate
        new_key: Key to carry forward
    """
    new_key, proposal_key = random.split(key)
    z = random.normal(proposal_key, shape=(), dtype=dtype)
    return z, new_key


def normal_logpdf(x, mean, sd):
    """Log-density of N(mean, sd^2) at x."""
    return stats.norm.logpdf(x, loc=mean, scale=sd)


def log_normal_logpdf(x, log_mean, log_sd):
    """Log-density at x of exp(N(log_mean, log_sd^2))."""
    return stats.norm.logpdf(jnp.log(x), loc=log_mean, scale=log_sd) - jnp.log(x)
