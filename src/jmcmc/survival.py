"""
Survival Log-Density

Log-likelihood of the time-to-event submodel given the cached linear
predictors. Everything stays on the log scale; cumulative hazards are
quadrature sums of exp(linear predictor + log weight) over each subject's
block of rows.

Per subject i, with H_i the cumulative hazard over its _H rows and H2_i the
cumulative hazard over its _H2 rows:

    right-censored:     -H_i
    event:              -H_i + log h_i(T_i)
    left-censored:      log(1 - exp(-H_i))
    interval-censored:  -H_i + log(1 - exp(-H2_i))

For interval-censored subjects the _H rows integrate up to the left end of
the interval and the _H2 rows from the left end to the right end.
"""

import jax.numpy as jnp

from .linalg import group_sum, fast_group_sum


def log1mexp_neg(x):
    """log(1 - exp(-x)) for x > 0, computed as log(-expm1(-x))."""
    return jnp.log(-jnp.expm1(-x))


def cumulative_hazard(log_weights, *linear_predictors, group_ids, num_groups):
    """Per-subject quadrature sum of exp(log weight + sum of linear predictors)."""
    lambda_rows = log_weights + sum(linear_predictors)
    return group_sum(jnp.exp(lambda_rows), group_ids, num_groups)


def cumulative_hazard_fast(log_weights, *linear_predictors, fast_ind):
    """cumulative_hazard for row sets where every subject owns a contiguous block."""
    lambda_rows = log_weights + sum(linear_predictors)
    return fast_group_sum(jnp.exp(lambda_rows), fast_ind)


def log_density_surv(predictors, data):
    """
    Total log-likelihood of the survival submodel.

    Args:
        predictors: LinearPredictors with the nine cached products
                    (W0*_bs_gammas, W*_gammas, Wlong*_alphas for H, h, H2)
        data: ModelArrays with quadrature log-weights, subject indices,
              censoring index sets and the static flags any_event,
              any_left, any_interval

    Returns:
        Scalar log-likelihood (may be -inf or NaN for pathological
        parameter values; callers treat non-finite values as rejection)
    """
    n = data.n_subjects

    # id_H covers every subject in order, so the fast index applies
    H = cumulative_hazard_fast(
        data.log_Pwk,
        predictors.W0H_bs_gammas, predictors.WH_gammas, predictors.WlongH_alphas,
        fast_ind=data.id_H_fast,
    )

    log_lik = jnp.zeros(n, dtype=H.dtype)
    log_lik = log_lik.at[data.which_right_event].set(-H[data.which_right_event])

    if data.any_event:
        lambda_h = predictors.W0h_bs_gammas + predictors.Wh_gammas + predictors.Wlongh_alphas
        log_h = group_sum(lambda_h, data.id_h, n)
        log_lik = log_lik.at[data.which_event].add(log_h[data.which_event])

    if data.any_left:
        log_lik = log_lik.at[data.which_left].set(log1mexp_neg(H[data.which_left]))

    if data.any_interval:
        H2 = cumulative_hazard(
            data.log_Pwk2,
            predictors.W0H2_bs_gammas, predictors.WH2_gammas, predictors.WlongH2_alphas,
            group_ids=data.id_H2, num_groups=n,
        )
        which = data.which_interval
        log_lik = log_lik.at[which].set(-H[which] + log1mexp_neg(H2[which]))

    return jnp.sum(log_lik)
