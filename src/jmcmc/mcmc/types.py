"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampler:
- ModelArrays: Device copy of the model data (registered JAX pytree)
- PriorArrays: Device copy of the prior hyperparameters
- ChainState: Current value of every parameter block
- LinearPredictors: Cached design-matrix x parameter products
- Scales / Traces: Adaptive proposal scales and per-iteration trace buffers
- MCMCCarry: Everything carried from one iteration to the next
- RunParams: Immutable run parameters for JAX static arguments
- compute_linear_predictors / update_linear_predictors: Predictor caches
"""

from dataclasses import dataclass
from typing import NamedTuple, Tuple

import jax
import jax.numpy as jnp


@dataclass(frozen=True)
class ModelArrays:
    """
    Model data on device, 0-based indices.

    Registered as a JAX pytree: arrays are traced children, the subject count
    and the censoring flags are static auxiliary data so that branches on
    them are resolved at trace time.

    Row sets:
        _H rows: quadrature rows of the cumulative hazard, grouped by id_H
        _h rows: event-time rows, one per subject listed in id_h
        _H2 rows: quadrature rows of the interval-censoring integral, grouped by id_H2
    """
    # Quadrature log-weights and subject grouping
    log_Pwk: jnp.ndarray             # (n_H,)
    log_Pwk2: jnp.ndarray            # (n_H2,)
    id_H: jnp.ndarray                # (n_H,) subject of each _H row
    id_H_fast: jnp.ndarray           # (n_subjects,) last _H row of each subject
    id_h: jnp.ndarray                # (n_h,) subject of each _h row
    id_H2: jnp.ndarray               # (n_H2,) subject of each _H2 row

    # Censoring index sets (subjects)
    which_right_event: jnp.ndarray
    which_event: jnp.ndarray
    which_left: jnp.ndarray
    which_interval: jnp.ndarray

    # Design matrices
    W0_H: jnp.ndarray
    W0_h: jnp.ndarray
    W0_H2: jnp.ndarray
    W_H: jnp.ndarray
    W_h: jnp.ndarray
    W_H2: jnp.ndarray
    W_bar: jnp.ndarray               # (n_gammas,)
    Wlong_H: jnp.ndarray
    Wlong_h: jnp.ndarray
    Wlong_H2: jnp.ndarray

    # Random effects, column-bound across outcomes (n_subjects, q)
    b: jnp.ndarray

    # Static metadata
    n_subjects: int
    any_event: bool
    any_left: bool
    any_interval: bool


_MODEL_ARRAY_FIELDS = (
    'log_Pwk', 'log_Pwk2', 'id_H', 'id_H_fast', 'id_h', 'id_H2',
    'which_right_event', 'which_event', 'which_left', 'which_interval',
    'W0_H', 'W0_h', 'W0_H2', 'W_H', 'W_h', 'W_H2', 'W_bar',
    'Wlong_H', 'Wlong_h', 'Wlong_H2', 'b',
)
_MODEL_STATIC_FIELDS = ('n_subjects', 'any_event', 'any_left', 'any_interval')


def _model_arrays_flatten(ma):
    """Flatten ModelArrays for JAX pytree."""
    children = tuple(getattr(ma, name) for name in _MODEL_ARRAY_FIELDS)
    aux_data = tuple(getattr(ma, name) for name in _MODEL_STATIC_FIELDS)
    return children, aux_data


def _model_arrays_unflatten(aux_data, children):
    """Unflatten ModelArrays from JAX pytree."""
    fields = dict(zip(_MODEL_ARRAY_FIELDS, children))
    fields.update(zip(_MODEL_STATIC_FIELDS, aux_data))
    return ModelArrays(**fields)


# Register ModelArrays as a JAX pytree
jax.tree_util.register_pytree_node(
    ModelArrays,
    _model_arrays_flatten,
    _model_arrays_unflatten
)


class PriorArrays(NamedTuple):
    """Prior hyperparameters on device."""
    mean_bs_gammas: jnp.ndarray
    Tau_bs_gammas: jnp.ndarray
    mean_gammas: jnp.ndarray
    Tau_gammas: jnp.ndarray
    mean_alphas: jnp.ndarray
    Tau_alphas: jnp.ndarray
    post_A_tau_bs_gammas: jnp.ndarray   # A + rank(Tau_bs_gammas) / 2
    B_tau_bs_gammas: jnp.ndarray
    sds_df: jnp.ndarray
    sds_sigma: jnp.ndarray              # (q,)
    eta_LKJ: jnp.ndarray


class ChainState(NamedTuple):
    """
    Current parameter values of one chain.

    Field names of the Metropolis blocks match BLOCK_ORDER. L holds the
    free strictly-upper entries of the correlation Cholesky factor in
    column-major order.
    """
    bs_gammas: jnp.ndarray
    gammas: jnp.ndarray
    alphas: jnp.ndarray
    sds: jnp.ndarray
    L: jnp.ndarray
    tau_bs_gammas: jnp.ndarray


class LinearPredictors(NamedTuple):
    """Cached products of each design matrix with its parameter block."""
    W0H_bs_gammas: jnp.ndarray
    W0h_bs_gammas: jnp.ndarray
    W0H2_bs_gammas: jnp.ndarray
    WH_gammas: jnp.ndarray
    Wh_gammas: jnp.ndarray
    WH2_gammas: jnp.ndarray
    WlongH_alphas: jnp.ndarray
    Wlongh_alphas: jnp.ndarray
    WlongH2_alphas: jnp.ndarray


class Scales(NamedTuple):
    """Per-coordinate adaptive proposal scales, one vector per block."""
    bs_gammas: jnp.ndarray
    gammas: jnp.ndarray
    alphas: jnp.ndarray
    sds: jnp.ndarray
    L: jnp.ndarray


class Traces(NamedTuple):
    """
    Trace buffers with one row per iteration (n_iter rows).

    acc_* hold the 0/1 acceptance indicator of every coordinate update.
    """
    bs_gammas: jnp.ndarray
    tau_bs_gammas: jnp.ndarray      # (n_iter, 1)
    gammas: jnp.ndarray
    W_bar_gammas: jnp.ndarray       # (n_iter,)
    alphas: jnp.ndarray
    sds: jnp.ndarray
    L: jnp.ndarray
    acc_bs_gammas: jnp.ndarray
    acc_gammas: jnp.ndarray
    acc_alphas: jnp.ndarray
    acc_sds: jnp.ndarray
    acc_L: jnp.ndarray


class MCMCCarry(NamedTuple):
    """State carried across iterations of the compiled kernel."""
    state: ChainState
    predictors: LinearPredictors
    scales: Scales
    traces: Traces
    key: jnp.ndarray
    iteration: jnp.ndarray


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters for JAX static argument compatibility.

    PROPOSAL_TYPES holds the ProposalType value of each block in
    BLOCK_ORDER; changing it requires a new kernel.
    """
    N_ITER: int
    N_BURNIN: int
    CHUNK_SIZE: int
    PROPOSAL_TYPES: Tuple[int, ...]


# Which cached predictors depend on which block, and through which design matrix
PREDICTOR_DESIGNS = {
    'bs_gammas': (('W0H_bs_gammas', 'W0_H'), ('W0h_bs_gammas', 'W0_h'), ('W0H2_bs_gammas', 'W0_H2')),
    'gammas': (('WH_gammas', 'W_H'), ('Wh_gammas', 'W_h'), ('WH2_gammas', 'W_H2')),
    'alphas': (('WlongH_alphas', 'Wlong_H'), ('Wlongh_alphas', 'Wlong_h'), ('WlongH2_alphas', 'Wlong_H2')),
}


def update_linear_predictors(block_name: str, values, predictors: LinearPredictors,
                             data: ModelArrays) -> LinearPredictors:
    """Recompute the three predictors that depend on one regression block."""
    return predictors._replace(**{
        field: getattr(data, design) @ values
        for field, design in PREDICTOR_DESIGNS[block_name]
    })


def compute_linear_predictors(state: ChainState, data: ModelArrays) -> LinearPredictors:
    """
    Compute all cached predictors from scratch.

    Empty blocks (e.g. no baseline covariates) give zero predictors, since
    a product over zero columns is zero.
    """
    dtype = data.W0_H.dtype
    predictors = LinearPredictors(*(jnp.zeros(0, dtype=dtype) for _ in LinearPredictors._fields))
    for block_name in PREDICTOR_DESIGNS:
        predictors = update_linear_predictors(block_name, getattr(state, block_name),
                                              predictors, data)
    return predictors
