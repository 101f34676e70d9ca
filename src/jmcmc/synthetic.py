"""
Synthetic Joint-Model Inputs

Simulates small joint longitudinal / time-to-event datasets and returns
them in the format the data-preparation step hands to the sampler: plain
dicts of NumPy arrays with 1-based index vectors.

Model used for simulation:
    Longitudinal:  m_i(t) = (beta0 + b_i0) + (beta1 + b_i1) t
    Hazard:        log h_i(t) = B(t) bs_gammas + w_i gammas + alphas . (m_i(t), m_i'(t))

B(t) is a cubic B-spline basis on [0, t_max]. Cumulative hazards are
approximated with Gauss-Legendre quadrature over each subject's interval.

DO NOT use this module for real analyses. It exists for tests and examples.
"""

from typing import Any, Dict, Optional

import numpy as np
from scipy.interpolate import BSpline


# Gauss-Legendre nodes per quadrature interval
N_QUADRATURE = 7

# True parameters used to generate the data
TRUE_BETAS = np.array([1.0, -0.3])
TRUE_D = np.array([[0.50, 0.05],
                   [0.05, 0.10]])
TRUE_GAMMAS = np.array([0.5, -0.25])
TRUE_ALPHAS = np.array([0.3, 0.5])

_CENSORING_TYPES = ('event', 'right', 'left', 'interval')


# ============================================================================
# BASIS AND QUADRATURE
# ============================================================================

def bspline_basis(x, internal_knots, boundary, degree=3):
    """
    B-spline basis matrix with clamped boundary knots.

    Args:
        x: Evaluation points, clipped to the boundary interval
        internal_knots: Sorted interior knots
        boundary: (lower, upper) boundary knots
        degree: Spline degree (3 for cubic)

    Returns:
        (len(x), len(internal_knots) + degree + 1) basis matrix; rows sum to 1
    """
    x = np.clip(np.asarray(x, dtype=np.float64).reshape(-1), boundary[0], boundary[1])
    t = np.concatenate([np.repeat(boundary[0], degree + 1),
                        np.asarray(internal_knots, dtype=np.float64),
                        np.repeat(boundary[1], degree + 1)])
    n_basis = t.size - degree - 1
    if x.size == 0:
        return np.zeros((0, n_basis))
    return BSpline.design_matrix(x, t, degree).toarray()


def second_difference_penalty(n):
    """K = D2' D2 for the second-order difference matrix D2 (rank n - 2)."""
    D2 = np.diff(np.eye(n), n=2, axis=0)
    return D2.T @ D2


def quadrature_rows(lower, upper, n_nodes=N_QUADRATURE):
    """
    Gauss-Legendre nodes and log-weights on [lower_i, upper_i] per subject.

    Returns:
        nodes: (n, n_nodes) quadrature times
        log_weights: (n, n_nodes) log of the rescaled weights
    """
    z, w = np.polynomial.legendre.leggauss(n_nodes)
    lower = np.asarray(lower, dtype=np.float64)[:, None]
    upper = np.asarray(upper, dtype=np.float64)[:, None]
    half = 0.5 * (upper - lower)
    nodes = lower + half * (z[None, :] + 1.0)
    return nodes, np.log(half * w[None, :])


# ============================================================================
# SIMULATION
# ============================================================================

def _assign_censoring(rng, n_subjects, censoring):
    types = [name for name in _CENSORING_TYPES if censoring.get(name, 0) > 0]
    probs = np.array([censoring[name] for name in types], dtype=np.float64)
    status = np.asarray(rng.choice(types, size=n_subjects, p=probs / probs.sum()), dtype='<U8')
    # The baseline hazard needs at least one exactly observed event
    status[0] = 'event'
    return status


def simulate_joint_data(
    n_subjects: int = 50,
    seed: int = 0,
    any_gammas: bool = True,
    censoring: Optional[Dict[str, float]] = None,
    n_internal_knots: int = 3,
    flat_likelihood: bool = False,
) -> Dict[str, Dict[str, Any]]:
    """
    Simulate one joint-model dataset.

    Args:
        n_subjects: Number of subjects
        seed: NumPy seed
        any_gammas: Include two baseline covariates (group, standardised age)
        censoring: Probabilities of 'event', 'right', 'left' and 'interval'
                   observation types. Subject 1 is always an event.
        n_internal_knots: Interior knots of the baseline-hazard spline
        flat_likelihood: Zero every design matrix so that the survival
                         log-likelihood does not depend on the parameters

    Returns:
        Dict with 'model_data', 'model_info', 'initial_values' and 'priors'
    """
    if censoring is None:
        censoring = {'event': 0.6, 'right': 0.4}
    rng = np.random.default_rng(seed)
    n = n_subjects
    subjects = np.arange(n)

    # Random effects and baseline covariates
    b = rng.multivariate_normal(np.zeros(2), TRUE_D, size=n)
    if any_gammas:
        w = np.column_stack([rng.integers(0, 2, size=n), rng.standard_normal(n)]).astype(np.float64)
        eta = w @ TRUE_GAMMAS
    else:
        w = np.zeros((n, 0))
        eta = np.zeros(n)
    eta = eta + TRUE_ALPHAS[0] * (TRUE_BETAS[0] + b[:, 0])

    # Weibull event times with a proportional-hazards shift
    times = 5.0 * rng.weibull(1.5, size=n) * np.exp(-eta / 1.5)
    times = np.maximum(times, 0.05)
    status = _assign_censoring(rng, n, censoring)
    lower_interval = times * rng.uniform(0.3, 0.8, size=n)

    # _H rows run to the event/censoring time, or to the left end of the interval
    H_upper = np.where(status == 'interval', lower_interval, times)
    t_max = float(times.max())
    knots = np.quantile(times, np.linspace(0, 1, n_internal_knots + 2)[1:-1])

    def design(ids, t):
        """W0, W and the per-outcome Wlong matrices of rows (ids, t)."""
        W0 = bspline_basis(t, knots, (0.0, t_max))
        W = w[ids]
        value = (TRUE_BETAS[0] + b[ids, 0]) + (TRUE_BETAS[1] + b[ids, 1]) * t
        slope = TRUE_BETAS[1] + b[ids, 1]
        Wlong = np.column_stack([value, slope])
        if flat_likelihood:
            return np.zeros_like(W0), np.zeros_like(W), np.zeros_like(Wlong)
        return W0, W, Wlong

    nodes, log_w = quadrature_rows(np.zeros(n), H_upper)
    id_H = np.repeat(subjects, N_QUADRATURE)
    W0_H, W_H, Wlong_H = design(id_H, nodes.reshape(-1))

    which_event = np.flatnonzero(status == 'event')
    W0_h, W_h, Wlong_h = design(which_event, times[which_event])

    which_interval = np.flatnonzero(status == 'interval')
    nodes2, log_w2 = quadrature_rows(lower_interval[which_interval], times[which_interval])
    id_H2 = np.repeat(which_interval, N_QUADRATURE)
    W0_H2, W_H2, Wlong_H2 = design(id_H2, nodes2.reshape(-1))

    n_bs = W0_H.shape[1]

    model_data = {
        'id_H': id_H + 1,
        'id_h': which_event + 1,
        'id_H2': id_H2 + 1,
        'which_event': which_event + 1,
        'which_right': np.flatnonzero(status == 'right') + 1,
        'which_left': np.flatnonzero(status == 'left') + 1,
        'which_interval': which_interval + 1,
        'log_Pwk': log_w.reshape(-1),
        'log_Pwk2': log_w2.reshape(-1),
        'W0_H': W0_H, 'W0_h': W0_h, 'W0_H2': W0_H2,
        'Wlong_H': [Wlong_H], 'Wlong_h': [Wlong_h], 'Wlong_H2': [Wlong_H2],
        'any_gammas': any_gammas,
        'Time_right': times,
        'Time_left': lower_interval,
        'status': status,
    }
    if any_gammas:
        model_data.update({'W_H': W_H, 'W_h': W_h, 'W_H2': W_H2, 'W_bar': w.mean(axis=0)})

    model_info = {
        'FunForms_cpp': [np.array([1, 2])],
        'FunForms_ind': [np.array([1, 2])],
    }

    # Constant log-hazard at the crude event rate (B-spline rows sum to 1)
    crude_rate = max(which_event.size, 1) / times.sum()
    initial_values = {
        'bs_gammas': np.full(n_bs, np.log(crude_rate)),
        'gammas': np.zeros(w.shape[1]),
        'alphas': np.zeros(2),
        'tau_bs_gammas': 1.0,
        'b': [b],
        'D': TRUE_D.copy(),
        'betas': [TRUE_BETAS.copy()],
    }

    sds = np.sqrt(np.diag(TRUE_D))
    priors = {
        'mean_bs_gammas': np.zeros(n_bs),
        'Tau_bs_gammas': second_difference_penalty(n_bs) + 1e-6 * np.eye(n_bs),
        'rank_Tau_bs_gammas': n_bs - 2,
        'mean_gammas': np.zeros(w.shape[1]),
        'Tau_gammas': 0.01 * np.eye(w.shape[1]),
        'mean_alphas': np.zeros(2),
        'Tau_alphas': 0.01 * np.eye(2),
        'A_tau_bs_gammas': 1.0,
        'B_tau_bs_gammas': 0.005,
        'prior_D_sds_df': 3.0,
        'prior_D_sds_sigma': 10.0 * sds,
        'prior_D_L_etaLKJ': 3.0,
    }

    return {
        'model_data': model_data,
        'model_info': model_info,
        'initial_values': initial_values,
        'priors': priors,
    }
