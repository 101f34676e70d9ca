"""
Log-Normal Proposal for Positive Coordinates

Used for the random-effect standard deviations.

Proposal: log x_i' ~ N(log x_i - s^2/2, s^2)

The -s^2/2 shift makes E[x_i'] = x_i. The proposal is not symmetric; the
Hastings ratio is

    log q(x|x') - log q(x'|x)
      = logLN(x_i; log x_i' - s^2/2, s) - logLN(x_i'; log x_i - s^2/2, s)
"""

import jax.numpy as jnp

from .common import unpack_operand, draw_standard_normal, log_normal_logpdf


def log_normal_proposal(operand):
    """
    Multiplicative random walk on one positive coordinate.

    Args:
        operand: Tuple of (key, current_block, index, scale, grad_fn)
            grad_fn is ignored.

    Returns:
        proposal: Proposed block values (coordinate index stays > 0)
        log_hastings_ratio: Log-normal Hastings correction
        new_key: Updated random key
    """
    op = unpack_operand(operand)
    z, new_key = draw_standard_normal(op.key, op.current_block.dtype)

    shift = 0.5 * op.scale ** 2
    current = op.current_block[op.index]

    log_mu_current = jnp.log(current) - shift
    proposed = jnp.exp(log_mu_current + op.scale * z)
    proposal = op.current_block.at[op.index].set(proposed)

    log_mu_proposed = jnp.log(proposed) - shift
    log_hastings_ratio = (log_normal_logpdf(current, log_mu_proposed, op.scale)
                          - log_normal_logpdf(proposed, log_mu_current, op.scale))

    return proposal, log_hastings_ratio, new_key
