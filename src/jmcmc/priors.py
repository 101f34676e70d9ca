"""
Prior and Random-Effects Log-Densities

- log_prior: Multivariate normal quadratic form for a coefficient block
- log_dmvnrm_chol: Multivariate normal log-density of rows, given an upper Cholesky factor
- log_dht: Half Student-t log-density (random-effect standard deviations)
- log_lkj_chol: LKJ log-density expressed on the Cholesky factor of a correlation matrix

All functions are pure and traceable by JAX.
"""

import jax.numpy as jnp
import jax.scipy.linalg
import jax.scipy.stats as stats
from numpyro import distributions as dist


def log_prior(x, mean, Tau, tau=1.0):
    """
    Log-density of N(mean, (tau * Tau)^-1) up to its normalising constant.

    Only the quadratic form is returned; the constants cancel in every
    Metropolis ratio and do not enter the Gibbs step for tau.

    Args:
        x: Coefficient vector (p,)
        mean: Prior mean (p,)
        Tau: Prior precision matrix (p, p)
        tau: Precision scalar (tau_bs_gammas for bs_gammas, 1.0 otherwise)

    Returns:
        Scalar -0.5 * tau * (x - mean)' Tau (x - mean); 0.0 when p == 0
    """
    z = x - mean
    return -0.5 * tau * (z @ Tau @ z)


def log_dmvnrm_chol(x, U):
    """
    Row-wise log-density of N(0, U'U).

    Args:
        x: (n, q) matrix, one observation per row
        U: (q, q) upper Cholesky factor of the covariance matrix

    Returns:
        (n,) log-densities
    """
    q = U.shape[0]
    # Solve U' y_i = x_i for every row at once
    y = jax.scipy.linalg.solve_triangular(U, x.T, trans=1, lower=False)
    quad = jnp.sum(y ** 2, axis=0)
    log_det_half = jnp.sum(jnp.log(jnp.diag(U)))
    return -0.5 * q * jnp.log(2.0 * jnp.pi) - log_det_half - 0.5 * quad


def log_dht(x, sigma, df):
    """
    Half Student-t log-density with scale sigma and df degrees of freedom.

    Non-positive x has zero density (-inf).
    """
    log_dens = jnp.log(2.0) + stats.t.logpdf(x / sigma, df) - jnp.log(sigma)
    return jnp.where(x > 0, log_dens, -jnp.inf)


def log_lkj_chol(L, eta):
    """
    LKJ(eta) log-density of a correlation matrix, on its upper Cholesky factor.

    Evaluated by numpyro's LKJCholesky on the lower factor L'. Up to its
    normalising constant this is sum over i >= 1 of
    (q - i - 1 + 2*eta - 2) * log(L[i, i]), with 0-based i.
    """
    q = L.shape[0]
    if q < 2:
        return jnp.zeros((), dtype=L.dtype)
    concentration = jnp.asarray(eta, dtype=L.dtype)
    return dist.LKJCholesky(q, concentration=concentration).log_prob(L.T)
