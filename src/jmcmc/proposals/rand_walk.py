"""
Random Walk Proposal for Coordinate-wise MCMC

Proposal: x_i' ~ N(x_i, s^2), all other coordinates unchanged
where s is the adaptive scale of coordinate i.

Hastings ratio: 0 (symmetric proposal, q(x'|x) = q(x|x'))
"""

from .common import unpack_operand, draw_standard_normal


def rand_walk_proposal(operand):
    """
    Symmetric Gaussian random walk on one coordinate.

    Args:
        operand: Tuple of (key, current_block, index, scale, grad_fn)
            key: JAX random key
            current_block: Current block values (block_size,)
            index: Coordinate to move (traced int)
            scale: Proposal standard deviation of that coordinate
            grad_fn: Gradient function (UNUSED - ignored)

    Returns:
        proposal: Proposed block values
        log_hastings_ratio: 0.0 (symmetric proposal)
        new_key: Updated random key
    """
    op = unpack_operand(operand)
    z, new_key = draw_standard_normal(op.key, op.current_block.dtype)

    current = op.current_block[op.index]
    proposal = op.current_block.at[op.index].set(current + op.scale * z)

    # Symmetric proposal: q(x'|x) = q(x|x'), so log ratio = 0
    log_hastings_ratio = 0.0

    return proposal, log_hastings_ratio, new_key
