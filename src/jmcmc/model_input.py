"""
Typed Model Input

The sampler receives five plain dicts from the data-preparation step:
model_data, model_info, initial_values, priors and control. This module
turns the first four into frozen dataclasses, validated once:

    build_model_input(model_data, model_info, initial_values, priors) -> ModelInput

Index vectors arrive 1-based and are stored 0-based. Per-outcome
collections (Wlong_*, b, X_*, Z_*, U_*) are kept as tuples of matrices;
the Wlong_* and b collections are column-bound for the sampler.

Every problem found is collected and reported in a single ValueError, so a
caller can fix all of them in one pass.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import jax.numpy as jnp

from .linalg import cbind, chol_upper, cov2cor, create_fast_ind, free_from_corr_chol, upper_part_indices
from .mcmc.types import ModelArrays, PriorArrays, ChainState

import logging
logger = logging.getLogger('jmcmc')


# Relative tolerance for symmetry and positive semi-definiteness checks
SYMMETRY_TOL = 1e-8
PSD_TOL = 1e-10

_DESIGN_CONTEXTS = ('H', 'h', 'H2')
_RAGGED_COLLECTIONS = ('X', 'Z', 'U')


# ============================================================================
# DATACLASSES
# ============================================================================

@dataclass(frozen=True)
class ModelData:
    """Design matrices, quadrature weights and index sets (0-based)."""
    n_subjects: int
    which_event: np.ndarray
    which_right: np.ndarray
    which_left: np.ndarray
    which_interval: np.ndarray
    id_H: np.ndarray
    id_h: np.ndarray
    id_H2: np.ndarray
    id_H_fast: np.ndarray
    log_Pwk: np.ndarray
    log_Pwk2: np.ndarray
    W0_H: np.ndarray
    W0_h: np.ndarray
    W0_H2: np.ndarray
    W_H: np.ndarray
    W_h: np.ndarray
    W_H2: np.ndarray
    W_bar: np.ndarray
    Wlong_H: Tuple[np.ndarray, ...]
    Wlong_h: Tuple[np.ndarray, ...]
    Wlong_H2: Tuple[np.ndarray, ...]
    ragged: Dict[str, Tuple[np.ndarray, ...]]
    any_gammas: bool

    @property
    def which_right_event(self) -> np.ndarray:
        return np.concatenate([self.which_event, self.which_right])

    @property
    def any_event(self) -> bool:
        return self.which_event.size > 0

    @property
    def any_left(self) -> bool:
        return self.which_left.size > 0

    @property
    def any_interval(self) -> bool:
        return self.which_interval.size > 0


@dataclass(frozen=True)
class ModelInfo:
    """Functional forms per longitudinal outcome (0-based)."""
    FunForms_cpp: Tuple[np.ndarray, ...]
    FunForms_ind: Tuple[np.ndarray, ...]


@dataclass(frozen=True)
class InitialValues:
    bs_gammas: np.ndarray
    gammas: np.ndarray
    alphas: np.ndarray
    tau_bs_gammas: float
    b: Tuple[np.ndarray, ...]
    D: np.ndarray
    betas: Tuple[np.ndarray, ...]

    @property
    def b_mat(self) -> np.ndarray:
        return cbind(self.b)

    @property
    def sds(self) -> np.ndarray:
        return np.sqrt(np.diag(self.D))

    @property
    def L(self) -> np.ndarray:
        """Upper Cholesky factor of the correlation matrix of D."""
        return np.linalg.cholesky(cov2cor(self.D)).T


@dataclass(frozen=True)
class Priors:
    mean_bs_gammas: np.ndarray
    Tau_bs_gammas: np.ndarray
    mean_gammas: np.ndarray
    Tau_gammas: np.ndarray
    mean_alphas: np.ndarray
    Tau_alphas: np.ndarray
    A_tau_bs_gammas: float
    B_tau_bs_gammas: float
    rank_Tau_bs_gammas: int
    prior_D_sds_df: float
    prior_D_sds_sigma: np.ndarray
    prior_D_L_etaLKJ: float


@dataclass(frozen=True)
class ModelInput:
    """Validated inputs of one sampler run."""
    data: ModelData
    info: ModelInfo
    initial_values: InitialValues
    priors: Priors

    @property
    def block_sizes(self) -> Dict[str, int]:
        q = self.initial_values.D.shape[0]
        return {
            'bs_gammas': self.initial_values.bs_gammas.size,
            'gammas': self.initial_values.gammas.size,
            'alphas': self.initial_values.alphas.size,
            'sds': q,
            'L': q * (q - 1) // 2,
        }

    def block_labels(self) -> Dict[str, List[str]]:
        """Coordinate labels per block, used in acceptance summaries."""
        q = self.initial_values.D.shape[0]
        rows, cols = upper_part_indices(q)
        return {
            'alphas': alpha_labels(self.data.Wlong_H, self.info),
            'sds': [f"sds[{k}]" for k in range(q)],
            'L': [f"L[{r},{c}]" for r, c in zip(rows, cols)],
        }

    def to_model_arrays(self, float_dtype=jnp.float64) -> ModelArrays:
        d = self.data
        as_float = lambda x: jnp.asarray(x, dtype=float_dtype)
        as_int = lambda x: jnp.asarray(x, dtype=jnp.int32)
        return ModelArrays(
            log_Pwk=as_float(d.log_Pwk),
            log_Pwk2=as_float(d.log_Pwk2),
            id_H=as_int(d.id_H),
            id_H_fast=as_int(d.id_H_fast),
            id_h=as_int(d.id_h),
            id_H2=as_int(d.id_H2),
            which_right_event=as_int(d.which_right_event),
            which_event=as_int(d.which_event),
            which_left=as_int(d.which_left),
            which_interval=as_int(d.which_interval),
            W0_H=as_float(d.W0_H),
            W0_h=as_float(d.W0_h),
            W0_H2=as_float(d.W0_H2),
            W_H=as_float(d.W_H),
            W_h=as_float(d.W_h),
            W_H2=as_float(d.W_H2),
            W_bar=as_float(d.W_bar),
            Wlong_H=as_float(cbind(d.Wlong_H, d.id_H.size)),
            Wlong_h=as_float(cbind(d.Wlong_h, d.id_h.size)),
            Wlong_H2=as_float(cbind(d.Wlong_H2, d.id_H2.size)),
            b=as_float(self.initial_values.b_mat),
            n_subjects=d.n_subjects,
            any_event=d.any_event,
            any_left=d.any_left,
            any_interval=d.any_interval,
        )

    def to_prior_arrays(self, float_dtype=jnp.float64) -> PriorArrays:
        p = self.priors
        as_float = lambda x: jnp.asarray(x, dtype=float_dtype)
        return PriorArrays(
            mean_bs_gammas=as_float(p.mean_bs_gammas),
            Tau_bs_gammas=as_float(p.Tau_bs_gammas),
            mean_gammas=as_float(p.mean_gammas),
            Tau_gammas=as_float(p.Tau_gammas),
            mean_alphas=as_float(p.mean_alphas),
            Tau_alphas=as_float(p.Tau_alphas),
            post_A_tau_bs_gammas=as_float(p.A_tau_bs_gammas + 0.5 * p.rank_Tau_bs_gammas),
            B_tau_bs_gammas=as_float(p.B_tau_bs_gammas),
            sds_df=as_float(p.prior_D_sds_df),
            sds_sigma=as_float(p.prior_D_sds_sigma),
            eta_LKJ=as_float(p.prior_D_L_etaLKJ),
        )

    def to_chain_state(self, float_dtype=jnp.float64) -> ChainState:
        iv = self.initial_values
        as_float = lambda x: jnp.asarray(x, dtype=float_dtype)
        L = chol_upper(as_float(cov2cor(iv.D)))
        return ChainState(
            bs_gammas=as_float(iv.bs_gammas),
            gammas=as_float(iv.gammas),
            alphas=as_float(iv.alphas),
            sds=as_float(iv.sds),
            L=free_from_corr_chol(L),
            tau_bs_gammas=as_float(iv.tau_bs_gammas),
        )


def alpha_labels(Wlong_H, info: ModelInfo) -> List[str]:
    """
    Label each association parameter by outcome and functional form.

    Column j of outcome k gets 'alphas[y{k}_f{form}]' when FunForms_ind
    lists it, else 'alphas[y{k}_{j}]' (1-based numbers in labels).
    """
    labels = []
    for k, W in enumerate(Wlong_H):
        forms = {}
        if k < len(info.FunForms_ind):
            forms = dict(zip(info.FunForms_ind[k].tolist(), info.FunForms_cpp[k].tolist()))
        for j in range(np.shape(W)[1]):
            if j in forms:
                labels.append(f"alphas[y{k + 1}_f{forms[j] + 1}]")
            else:
                labels.append(f"alphas[y{k + 1}_{j + 1}]")
    return labels


# ============================================================================
# CONVERSION HELPERS
# ============================================================================

class _Collector:
    """Accumulates validation errors while converting raw inputs."""

    def __init__(self):
        self.errors = []

    def add(self, message: str) -> None:
        self.errors.append(message)

    def raise_if_any(self, what: str) -> None:
        if self.errors:
            raise ValueError(f"Invalid {what}:\n  - " + "\n  - ".join(self.errors))

    def required(self, source: Dict[str, Any], key: str, where: str):
        if key not in source or source[key] is None:
            self.add(f"{where}: missing required key '{key}'")
            return None
        return source[key]

    def vector(self, value, name: str) -> np.ndarray:
        if value is None:
            return np.zeros(0)
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
        if not np.all(np.isfinite(arr)):
            self.add(f"{name} contains non-finite values")
        return arr

    def matrix(self, value, name: str, n_rows: int = 0) -> np.ndarray:
        if value is None:
            return np.zeros((n_rows, 0))
        arr = np.asarray(value, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1) if arr.size else np.zeros((0, 0))
        if arr.ndim != 2:
            self.add(f"{name} must be a matrix, got {arr.ndim} dimensions")
            return np.zeros((n_rows, 0))
        if not np.all(np.isfinite(arr)):
            self.add(f"{name} contains non-finite values")
        return arr

    def indices(self, value, name: str) -> np.ndarray:
        """1-based index vector -> 0-based int array."""
        if value is None:
            return np.zeros(0, dtype=np.int64)
        arr = np.asarray(value).reshape(-1)
        if arr.size == 0:
            return np.zeros(0, dtype=np.int64)
        if not np.all(np.isfinite(arr.astype(np.float64))) or np.any(arr != np.round(arr)):
            self.add(f"{name} must contain integers")
            return np.zeros(0, dtype=np.int64)
        arr = arr.astype(np.int64) - 1
        if np.any(arr < 0):
            self.add(f"{name} must be 1-based (found values < 1)")
        return arr

    def collection(self, value, name: str) -> Tuple[np.ndarray, ...]:
        if value is None:
            return ()
        if isinstance(value, np.ndarray):
            value = [value]
        return tuple(self.matrix(m, f"{name}[{k}]") for k, m in enumerate(value))

    def precision(self, value, name: str, size: int) -> np.ndarray:
        """Prior precision matrix: square, finite, symmetric, PSD, non-zero rank."""
        Tau = self.matrix(value, name)
        if size == 0:
            return np.zeros((0, 0))
        if Tau.shape != (size, size):
            self.add(f"{name} has shape {Tau.shape}, expected ({size}, {size})")
            return np.eye(size)
        if not np.all(np.isfinite(Tau)):
            return np.eye(size)
        scale = max(np.max(np.abs(Tau)), 1.0)
        if not np.allclose(Tau, Tau.T, atol=SYMMETRY_TOL * scale, rtol=0.0):
            self.add(f"{name} is not symmetric")
            return np.eye(size)
        eigenvalues = np.linalg.eigvalsh(Tau)
        if eigenvalues[0] < -PSD_TOL * scale:
            self.add(f"{name} is not positive semi-definite (min eigenvalue {eigenvalues[0]:.3g})")
        if np.linalg.matrix_rank(Tau) == 0:
            self.add(f"{name} has rank 0 (degenerate prior precision)")
        return Tau


def _check_rows(errors: _Collector, arr: np.ndarray, name: str, n_rows: int, index_name: str) -> None:
    if arr.shape[0] != n_rows:
        errors.add(f"{name} has {arr.shape[0]} rows but {index_name} has length {n_rows}")


def _check_cols(errors: _Collector, arr: np.ndarray, name: str, n_cols: int, param: str) -> None:
    if arr.ndim == 2 and arr.shape[1] != n_cols:
        errors.add(f"{name} has {arr.shape[1]} columns but {param} has length {n_cols}")


def _check_subject_set(errors: _Collector, idx: np.ndarray, name: str, n_subjects: int) -> None:
    if idx.size and (idx.min() < 0 or idx.max() >= n_subjects):
        errors.add(f"{name} has indices outside 1..{n_subjects}")
    if np.unique(idx).size != idx.size:
        errors.add(f"{name} contains duplicated subjects")


def _check_sorted_groups(errors: _Collector, ids: np.ndarray, name: str, n_subjects: int,
                         strict: bool) -> None:
    if ids.size == 0:
        return
    steps = np.diff(ids)
    if strict and np.any(steps <= 0):
        errors.add(f"{name} must be strictly increasing (duplicated or unsorted subjects)")
    elif not strict and np.any(steps < 0):
        errors.add(f"{name} must be sorted by subject")
    if ids.min() < 0 or ids.max() >= n_subjects:
        errors.add(f"{name} has subjects outside 1..{n_subjects}")


# ============================================================================
# BUILDERS
# ============================================================================

def _build_model_data(md: Dict[str, Any], errors: _Collector, n_gammas: int) -> ModelData:
    id_H = errors.indices(errors.required(md, 'id_H', 'model_data'), 'id_H')
    n_subjects = int(id_H.max()) + 1 if id_H.size else 0
    if id_H.size == 0:
        errors.add("id_H is empty")
    elif np.any(np.diff(id_H) < 0) or np.any(np.diff(id_H) > 1) or id_H[0] != 0:
        errors.add("id_H must be sorted and contiguous (every subject 1..n has quadrature rows)")

    which = {
        name: errors.indices(md.get(name), name)
        for name in ('which_event', 'which_right', 'which_left', 'which_interval')
    }
    for name, idx in which.items():
        _check_subject_set(errors, idx, name, n_subjects)
    all_censoring = np.concatenate(list(which.values()))
    if np.unique(all_censoring).size != all_censoring.size:
        errors.add("censoring index sets overlap (a subject is listed in more than one set)")

    id_h = errors.indices(md.get('id_h'), 'id_h')
    _check_sorted_groups(errors, id_h, 'id_h', n_subjects, strict=True)
    missing_h = np.setdiff1d(which['which_event'], id_h)
    if missing_h.size:
        errors.add(f"id_h has no event-time row for subjects {(missing_h + 1).tolist()}")

    W0_H = errors.matrix(errors.required(md, 'W0_H', 'model_data'), 'W0_H')
    n_bs = W0_H.shape[1]
    W0_h = errors.matrix(md.get('W0_h'), 'W0_h', id_h.size)
    W0_H2 = errors.matrix(md.get('W0_H2'), 'W0_H2')

    if 'id_H2' in md and md['id_H2'] is not None:
        id_H2 = errors.indices(md['id_H2'], 'id_H2')
    elif W0_H2.shape[0] == id_H.size:
        id_H2 = id_H.copy()
    else:
        id_H2 = np.zeros(W0_H2.shape[0], dtype=np.int64)
        if W0_H2.shape[0] > 0:
            errors.add("id_H2 is required when the _H2 matrices do not share the rows of id_H")
    _check_sorted_groups(errors, id_H2, 'id_H2', n_subjects, strict=False)
    missing_H2 = np.setdiff1d(which['which_interval'], id_H2)
    if missing_H2.size:
        errors.add(f"id_H2 has no quadrature rows for interval-censored subjects {(missing_H2 + 1).tolist()}")

    log_Pwk = errors.vector(errors.required(md, 'log_Pwk', 'model_data'), 'log_Pwk')
    log_Pwk2 = errors.vector(md.get('log_Pwk2'), 'log_Pwk2')
    if log_Pwk2.size == 0 and id_H2.size:
        log_Pwk2 = np.zeros(id_H2.size)
        if which['which_interval'].size:
            errors.add("log_Pwk2 is required when there are interval-censored subjects")

    row_sets = {'H': (id_H, 'id_H'), 'h': (id_h, 'id_h'), 'H2': (id_H2, 'id_H2')}
    _check_rows(errors, log_Pwk, 'log_Pwk', id_H.size, 'id_H')
    _check_rows(errors, log_Pwk2, 'log_Pwk2', id_H2.size, 'id_H2')

    W0 = {'H': W0_H, 'h': W0_h, 'H2': W0_H2}
    W, Wlong = {}, {}
    any_gammas = bool(md.get('any_gammas', n_gammas > 0))
    if any_gammas and n_gammas == 0:
        errors.add("any_gammas is true but initial gammas are empty")

    for ctx in _DESIGN_CONTEXTS:
        ids, id_name = row_sets[ctx]
        if W0[ctx].shape[1] == 0 and n_bs > 0:
            if ids.size:
                errors.add(f"W0_{ctx} is required when {id_name} is not empty")
            W0[ctx] = np.zeros((ids.size, n_bs))
        _check_rows(errors, W0[ctx], f'W0_{ctx}', ids.size, id_name)
        _check_cols(errors, W0[ctx], f'W0_{ctx}', n_bs, 'W0_H')

        if any_gammas:
            W[ctx] = errors.matrix(md.get(f'W_{ctx}'), f'W_{ctx}', ids.size)
            if W[ctx].shape[1] == 0 and n_gammas > 0:
                if ids.size:
                    errors.add(f"W_{ctx} is required when {id_name} is not empty")
                W[ctx] = np.zeros((ids.size, n_gammas))
            _check_rows(errors, W[ctx], f'W_{ctx}', ids.size, id_name)
            _check_cols(errors, W[ctx], f'W_{ctx}', n_gammas, 'gammas')
        else:
            W[ctx] = np.zeros((ids.size, 0))

        Wlong[ctx] = errors.collection(md.get(f'Wlong_{ctx}'), f'Wlong_{ctx}')
        for k, m in enumerate(Wlong[ctx]):
            _check_rows(errors, m, f'Wlong_{ctx}[{k}]', ids.size, id_name)

    n_outcomes = len(Wlong['H'])
    for ctx in ('h', 'H2'):
        if Wlong[ctx] and len(Wlong[ctx]) != n_outcomes:
            errors.add(f"Wlong_{ctx} has {len(Wlong[ctx])} outcomes but Wlong_H has {n_outcomes}")
        elif not Wlong[ctx]:
            if row_sets[ctx][0].size and any(m.shape[1] for m in Wlong['H']):
                errors.add(f"Wlong_{ctx} is required when {row_sets[ctx][1]} is not empty")
            Wlong[ctx] = tuple(np.zeros((row_sets[ctx][0].size, m.shape[1])) for m in Wlong['H'])
        else:
            for k, (m, ref) in enumerate(zip(Wlong[ctx], Wlong['H'])):
                if m.shape[1] != ref.shape[1]:
                    errors.add(f"Wlong_{ctx}[{k}] has {m.shape[1]} columns but Wlong_H[{k}] has {ref.shape[1]}")

    W_bar = np.zeros(0)
    if any_gammas:
        W_bar = errors.vector(errors.required(md, 'W_bar', 'model_data'), 'W_bar')
        if W_bar.size != n_gammas:
            errors.add(f"W_bar has {W_bar.size} entries but gammas has length {n_gammas}")

    ragged = {}
    for coll in _RAGGED_COLLECTIONS:
        for ctx in _DESIGN_CONTEXTS:
            key = f'{coll}_{ctx}'
            ragged[key] = errors.collection(md.get(key), key)
            ids, id_name = row_sets[ctx]
            for k, m in enumerate(ragged[key]):
                _check_rows(errors, m, f'{key}[{k}]', ids.size, id_name)

    return ModelData(
        n_subjects=n_subjects,
        which_event=which['which_event'],
        which_right=which['which_right'],
        which_left=which['which_left'],
        which_interval=which['which_interval'],
        id_H=id_H,
        id_h=id_h,
        id_H2=id_H2,
        id_H_fast=create_fast_ind(id_H),
        log_Pwk=log_Pwk,
        log_Pwk2=log_Pwk2,
        W0_H=W0['H'], W0_h=W0['h'], W0_H2=W0['H2'],
        W_H=W['H'], W_h=W['h'], W_H2=W['H2'],
        W_bar=W_bar,
        Wlong_H=Wlong['H'], Wlong_h=Wlong['h'], Wlong_H2=Wlong['H2'],
        ragged=ragged,
        any_gammas=any_gammas,
    )


def _build_model_info(mi: Optional[Dict[str, Any]], errors: _Collector,
                      Wlong_H: Tuple[np.ndarray, ...]) -> ModelInfo:
    mi = mi or {}
    cpp = tuple(errors.indices(v, f'FunForms_cpp[{k}]') for k, v in enumerate(mi.get('FunForms_cpp') or []))
    ind = tuple(errors.indices(v, f'FunForms_ind[{k}]') for k, v in enumerate(mi.get('FunForms_ind') or []))

    if len(cpp) != len(ind):
        errors.add(f"FunForms_cpp has {len(cpp)} outcomes but FunForms_ind has {len(ind)}")
    elif ind and len(ind) != len(Wlong_H):
        errors.add(f"FunForms_ind has {len(ind)} outcomes but Wlong_H has {len(Wlong_H)}")
    else:
        for k, (forms, cols) in enumerate(zip(cpp, ind)):
            if forms.size != cols.size:
                errors.add(f"FunForms_cpp[{k}] and FunForms_ind[{k}] differ in length")
            n_cols = Wlong_H[k].shape[1]
            if cols.size and cols.max() >= n_cols:
                errors.add(f"FunForms_ind[{k}] refers to column {cols.max() + 1} but Wlong_H[{k}] has {n_cols}")
    return ModelInfo(FunForms_cpp=cpp, FunForms_ind=ind)


def _build_initial_values(iv: Dict[str, Any], errors: _Collector, any_gammas: bool) -> InitialValues:
    bs_gammas = errors.vector(errors.required(iv, 'bs_gammas', 'initial_values'), 'bs_gammas')
    gammas = errors.vector(iv.get('gammas'), 'gammas')
    if not any_gammas:
        gammas = np.zeros(0)
    alphas = errors.vector(iv.get('alphas'), 'alphas')

    tau = iv.get('tau_bs_gammas', 1.0)
    tau = float(np.asarray(tau).reshape(-1)[0]) if np.size(tau) else float('nan')
    if not (np.isfinite(tau) and tau > 0):
        errors.add(f"tau_bs_gammas must be positive, got {tau}")

    b = errors.collection(errors.required(iv, 'b', 'initial_values'), 'b')
    D = errors.matrix(errors.required(iv, 'D', 'initial_values'), 'D')
    q = sum(m.shape[1] for m in b)
    if D.shape != (q, q):
        errors.add(f"D has shape {D.shape} but b has {q} columns in total")
    elif q == 0:
        errors.add("the model needs at least one random effect")
    elif np.all(np.isfinite(D)):
        try:
            np.linalg.cholesky(D)
            if not np.allclose(D, D.T, atol=SYMMETRY_TOL * max(np.max(np.abs(D)), 1.0), rtol=0.0):
                errors.add("D is not symmetric")
        except np.linalg.LinAlgError:
            errors.add("D is not positive-definite")
    if len({m.shape[0] for m in b}) > 1:
        errors.add("b matrices have different numbers of subjects")

    betas = tuple(np.asarray(v, dtype=np.float64).reshape(-1) for v in (iv.get('betas') or []))

    return InitialValues(bs_gammas=bs_gammas, gammas=gammas, alphas=alphas, tau_bs_gammas=tau,
                         b=b, D=D, betas=betas)


def _positive_scalar(errors: _Collector, source, key: str) -> float:
    value = source.get(key)
    if value is None:
        errors.add(f"priors: missing required key '{key}'")
        return 1.0
    value = float(np.asarray(value).reshape(-1)[0])
    if not (np.isfinite(value) and value > 0):
        errors.add(f"{key} must be positive, got {value}")
    return value


def _build_priors(pr: Dict[str, Any], errors: _Collector, iv: InitialValues) -> Priors:
    sizes = {'bs_gammas': iv.bs_gammas.size, 'gammas': iv.gammas.size, 'alphas': iv.alphas.size}
    means, Taus = {}, {}
    for name, size in sizes.items():
        required = size > 0
        mean = pr.get(f'mean_{name}')
        Tau = pr.get(f'Tau_{name}')
        if required and mean is None:
            errors.add(f"priors: missing required key 'mean_{name}'")
        if required and Tau is None:
            errors.add(f"priors: missing required key 'Tau_{name}'")
        means[name] = errors.vector(mean, f'mean_{name}') if (required and mean is not None) else np.zeros(size)
        if means[name].size != size:
            errors.add(f"mean_{name} has length {means[name].size}, expected {size}")
            means[name] = np.zeros(size)
        Taus[name] = errors.precision(Tau, f'Tau_{name}', size) if (required and Tau is not None) else np.eye(size)

    A = _positive_scalar(errors, pr, 'A_tau_bs_gammas')
    B = _positive_scalar(errors, pr, 'B_tau_bs_gammas')

    if pr.get('rank_Tau_bs_gammas') is not None:
        rank = int(pr['rank_Tau_bs_gammas'])
        if rank < 1 or rank > sizes['bs_gammas']:
            errors.add(f"rank_Tau_bs_gammas must be in 1..{sizes['bs_gammas']}, got {rank}")
    else:
        rank = int(np.linalg.matrix_rank(Taus['bs_gammas'])) if sizes['bs_gammas'] else 0

    df = _positive_scalar(errors, pr, 'prior_D_sds_df')
    eta = _positive_scalar(errors, pr, 'prior_D_L_etaLKJ')

    q = iv.D.shape[0] if iv.D.ndim == 2 else 0
    sigma = errors.vector(errors.required(pr, 'prior_D_sds_sigma', 'priors'), 'prior_D_sds_sigma')
    if sigma.size == 1:
        sigma = np.full(q, sigma[0])
    elif sigma.size != q:
        errors.add(f"prior_D_sds_sigma has length {sigma.size}, expected 1 or {q}")
        sigma = np.ones(q)
    if np.any(sigma <= 0):
        errors.add("prior_D_sds_sigma must be positive")

    return Priors(
        mean_bs_gammas=means['bs_gammas'], Tau_bs_gammas=Taus['bs_gammas'],
        mean_gammas=means['gammas'], Tau_gammas=Taus['gammas'],
        mean_alphas=means['alphas'], Tau_alphas=Taus['alphas'],
        A_tau_bs_gammas=A, B_tau_bs_gammas=B, rank_Tau_bs_gammas=rank,
        prior_D_sds_df=df, prior_D_sds_sigma=sigma, prior_D_L_etaLKJ=eta,
    )


def _cross_checks(errors: _Collector, data: ModelData, iv: InitialValues) -> None:
    """Checks that relate model data to parameter lengths."""
    _check_cols(errors, data.W0_H, 'W0_H', iv.bs_gammas.size, 'bs_gammas')
    n_long_cols = sum(m.shape[1] for m in data.Wlong_H)
    if n_long_cols != iv.alphas.size:
        errors.add(f"Wlong_H has {n_long_cols} columns in total but alphas has length {iv.alphas.size}")
    for m in iv.b:
        if m.shape[0] != data.n_subjects:
            errors.add(f"b has {m.shape[0]} rows but id_H has {data.n_subjects} subjects")
            break
    if iv.bs_gammas.size == 0:
        errors.add("bs_gammas must not be empty")


def build_model_input(model_data: Dict[str, Any],
                      model_info: Optional[Dict[str, Any]],
                      initial_values: Dict[str, Any],
                      priors: Dict[str, Any]) -> ModelInput:
    """
    Validate the raw input dicts and convert them to a ModelInput.

    Raises:
        ValueError: listing every problem found
    """
    errors = _Collector()

    iv = _build_initial_values(initial_values, errors,
                               any_gammas=bool(model_data.get('any_gammas', True)))
    data = _build_model_data(model_data, errors, iv.gammas.size)
    info = _build_model_info(model_info, errors, data.Wlong_H)
    prior = _build_priors(priors, errors, iv)
    _cross_checks(errors, data, iv)

    errors.raise_if_any("model input")

    if not data.any_event:
        logger.warning("No exactly observed events: the baseline hazard is informed by censoring only")

    return ModelInput(data=data, info=info, initial_values=iv, priors=prior)
