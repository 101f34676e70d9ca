"""
MALA (Metropolis-Adjusted Langevin Algorithm) Coordinate Proposal

Gradient-based proposal that uses the derivative of the log full
conditional to bias the move toward higher density.

Proposal: x_i' = x_i + (s^2/2) * g(x) + s * z,   z ~ N(0, 1)
where:
    - s is the adaptive scale of coordinate i
    - g(x) is d/dx_i log p(x | rest)

The proposal distribution is q(x'|x) = N(x_i + (s^2/2) g(x), s^2), which is
not symmetric, so the Hastings ratio uses the drift at both ends.
"""

from .common import unpack_operand, draw_standard_normal, normal_logpdf


def mala_proposal(operand):
    """
    Langevin proposal on one coordinate.

    Args:
        operand: Tuple of (key, current_block, index, scale, grad_fn)
            key: JAX random key
            current_block: Current block values (block_size,)
            index: Coordinate to move (traced int)
            scale: Proposal standard deviation s
            grad_fn: Function(block) -> d/dx_i log p at that block

    Returns:
        proposal: Proposed block values
        log_hastings_ratio: log q(x|x') - log q(x'|x)
        new_key: Updated random key
    """
    op = unpack_operand(operand)
    z, new_key = draw_standard_normal(op.key, op.current_block.dtype)

    half_var = 0.5 * op.scale ** 2
    current = op.current_block[op.index]

    # Forward: x' given x
    mean_forward = current + half_var * op.grad_fn(op.current_block)
    proposed = mean_forward + op.scale * z
    proposal = op.current_block.at[op.index].set(proposed)

    # Reverse: x given x'
    mean_reverse = proposed + half_var * op.grad_fn(proposal)

    log_hastings_ratio = (normal_logpdf(current, mean_reverse, op.scale)
                          - normal_logpdf(proposed, mean_forward, op.scale))

    return proposal, log_hastings_ratio, new_key
