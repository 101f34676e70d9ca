"""
Proposal Distributions for Coordinate-wise Metropolis-Hastings

Every block is updated one coordinate at a time (Metropolis-within-Gibbs).
A proposal function moves coordinate `index` of the current block and
leaves all other coordinates untouched.

Each proposal function computes its own Hastings ratio - there's no separate
symmetric/asymmetric handling needed in the sampler.

All proposal functions accept a single operand tuple:
    (key, current_block, index, scale, grad_fn)

and return:
    (proposal, log_hastings_ratio, new_key)

grad_fn maps a full block vector to the derivative of the log full
conditional with respect to coordinate `index`. Only MALA evaluates it.

To add a new proposal:
1. Add enum value to ProposalType in block_specs.py
2. Create new file in proposals/ directory with proposal function
3. Add to PROPOSAL_REGISTRY in mcmc/sampling.py
4. Export from this __init__.py
"""

from .rand_walk import rand_walk_proposal
from .mala import mala_proposal
from .log_normal import log_normal_proposal

__all__ = [
    'rand_walk_proposal',
    'mala_proposal',
    'log_normal_proposal',
]
