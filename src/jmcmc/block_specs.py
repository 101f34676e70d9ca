"""
Block Specification System

Each parameter block of the joint model (bs_gammas, gammas, alphas, sds, L)
is described by a BlockSpec: its size, the proposal used for its
coordinate-wise Metropolis updates, adaptation setting overrides, and
labels for reporting.

Blocks are always updated in BLOCK_ORDER, which is also the row order of
the settings matrix. A block of size 0 (e.g. gammas without baseline
covariates, or L for a single random effect) is kept in the list so that
indices stay fixed, and is skipped by the sampler.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from .settings import SettingSlot, SETTING_DEFAULTS, MALA_TARGET_ACCEPT


BLOCK_ORDER = ('bs_gammas', 'gammas', 'alphas', 'sds', 'L')
BLOCK_INDEX = {name: i for i, name in enumerate(BLOCK_ORDER)}


# ============================================================================
# PROPOSAL TYPE ENUMERATION
# ============================================================================

class ProposalType(IntEnum):
    """
    Enumeration of coordinate proposal distributions.

    All proposal implementations live in the proposals/ package.
    """
    RAND_WALK = 0   # x_i' ~ N(x_i, s^2)
    MALA = 1        # x_i' ~ N(x_i + s^2/2 * d/dx_i log p(x), s^2)
    LOG_NORMAL = 2  # log x_i' ~ N(log x_i - s^2/2, s^2), for positive parameters

    def __str__(self):
        return self.name.replace('_', ' ').title()


# ============================================================================
# BLOCK SPECIFICATION
# ============================================================================

@dataclass
class BlockSpec:
    """
    Specification for a single parameter block.

    Fields:
        name: Block name, one of BLOCK_ORDER
        size: Number of coordinates (0 means the block is skipped)
        proposal_type: Coordinate proposal used by the Metropolis updates
        settings: Adaptation overrides keyed by lower-case SettingSlot name
        labels: One label per coordinate (defaults to name[i])
    """
    name: str
    size: int
    proposal_type: ProposalType = ProposalType.RAND_WALK
    settings: Dict[str, Any] = field(default_factory=dict)
    labels: Optional[List[str]] = None

    def __post_init__(self):
        if self.name not in BLOCK_INDEX:
            raise ValueError(f"Unknown block '{self.name}', expected one of {BLOCK_ORDER}")
        if self.size < 0:
            raise ValueError(f"Block size must be >= 0, got {self.size}")
        if isinstance(self.proposal_type, int):
            object.__setattr__(self, 'proposal_type', ProposalType(self.proposal_type))
        if self.labels is None:
            self.labels = [f"{self.name}[{i}]" for i in range(self.size)]
        elif len(self.labels) != self.size:
            raise ValueError(
                f"Block '{self.name}' has {self.size} coordinates but {len(self.labels)} labels"
            )

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def default_target_accept(self) -> float:
        if self.proposal_type == ProposalType.MALA:
            return MALA_TARGET_ACCEPT
        return SETTING_DEFAULTS[SettingSlot.TARGET_ACCEPT]


def build_block_specs(sizes: Dict[str, int], mala: bool = False,
                      block_settings: Optional[Dict[str, Dict[str, Any]]] = None,
                      labels: Optional[Dict[str, List[str]]] = None) -> List[BlockSpec]:
    """
    Build the BlockSpec list for a joint model.

    Args:
        sizes: Coordinates per block, keyed by block name
        mala: Use MALA for the regression blocks and L; sds always use
              the log-normal proposal to stay positive
        block_settings: Per-block adaptation overrides
        labels: Optional per-block coordinate labels

    Returns:
        List of BlockSpec in BLOCK_ORDER
    """
    block_settings = block_settings or {}
    labels = labels or {}

    unknown = set(block_settings) - set(BLOCK_ORDER)
    if unknown:
        raise ValueError(f"block_settings has unknown blocks: {sorted(unknown)}")

    gradient_type = ProposalType.MALA if mala else ProposalType.RAND_WALK
    specs = []
    for name in BLOCK_ORDER:
        proposal_type = ProposalType.LOG_NORMAL if name == 'sds' else gradient_type
        specs.append(BlockSpec(
            name=name,
            size=int(sizes[name]),
            proposal_type=proposal_type,
            settings=dict(block_settings.get(name, {})),
            labels=labels.get(name),
        ))
    return specs
