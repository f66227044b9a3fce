"""
Rate regression, optimal sample allocation and MSE splitting
"""
import numpy as np
from mimc.errors import InsufficientDataForRegression

GUARD = np.finfo(float).tiny
# Floor of variances and costs in denominators

MIN_BIAS_RATE = 0.5
# Smallest mean decay rate used when extrapolating the bias

DEFAULT_SPLITTING = 0.5


def fit_rate(levels, values):
    """
    Fit log2|values| = c - rate * levels by least squares.
    :param levels: coordinates along one direction
    :param values: statistic at those coordinates
    :return: rate, c
    """
    levels = np.asarray(levels, dtype=float)
    values = np.abs(np.asarray(values, dtype=float))
    mask = np.isfinite(values) & (values > 0)
    if len(np.unique(levels[mask])) < 2:
        raise InsufficientDataForRegression("At least two distinct levels with non-zero values are required")

    X = np.column_stack((np.ones(np.count_nonzero(mask)), levels[mask]))
    params, res, rank, sing_vals = np.linalg.lstsq(X, np.log2(values[mask]), rcond=None)
    return -params[1], params[0]


def fit_multivariate_rates(indices, values):
    """
    Fit log2|values| = c - sum_k rate_k * index_k over all given indices
    :param indices: list of Index
    :param values: statistic at the indices
    :return: np.ndarray of rates, c
    """
    values = np.abs(np.asarray(values, dtype=float))
    mask = np.isfinite(values) & (values > 0)
    coords = np.array([index for index, ok in zip(indices, mask) if ok], dtype=float)
    if len(coords) == 0:
        raise InsufficientDataForRegression("No index with a non-zero value")

    X = np.column_stack((np.ones(len(coords)), coords))
    if len(coords) < X.shape[1] or np.linalg.matrix_rank(X) < X.shape[1]:
        raise InsufficientDataForRegression("Indices do not determine all {} rates".format(X.shape[1] - 1))

    params, res, rank, sing_vals = np.linalg.lstsq(X, np.log2(values[mask]), rcond=None)
    return -params[1:], params[0]


def optimal_allocation(variances, costs, target_variance):
    """
    Number of samples minimizing the total cost sum_i N_i W_i subject to sum_i V_i / N_i = target_variance,
    N_i = sqrt(V_i / W_i) * sum_j sqrt(V_j W_j) / target_variance.
    :param variances: per sample variances V_i, shape (L,) or (L, n_qoi)
    :param costs: cost of one sample W_i, shape (L,)
    :param target_variance: float
    :return: np.ndarray of (real) numbers of samples, same shape as variances
    """
    if target_variance <= 0:
        raise ValueError("Target variance must be positive, got {}".format(target_variance))
    variances = np.maximum(np.asarray(variances, dtype=float), 0)
    costs = np.maximum(np.asarray(costs, dtype=float), GUARD)
    if variances.ndim == 2:
        costs = costs[:, None]

    sqrt_var_cost = np.sqrt(variances * costs)
    total = np.sum(sqrt_var_cost, axis=0)
    return np.sqrt(variances / costs) * total / target_variance


def splitting(bias, tol, min_splitting, max_splitting, do_mse_splitting=True):
    """
    Fraction theta of tol^2 given to the statistical error, the rest is left to the squared bias
    :param bias: float, bias estimate
    :param tol: float
    :return: float in [min_splitting, max_splitting]
    """
    if do_mse_splitting:
        theta = 1 - bias ** 2 / tol ** 2
    else:
        theta = DEFAULT_SPLITTING
    return float(np.clip(theta, min_splitting, max_splitting))


def geometric_tail_factor(rate):
    """
    sum_{l >= 1} 2^(-rate l), ratio of the truncation error to the last mean difference
    """
    if np.isnan(rate):
        rate = MIN_BIAS_RATE
    rate = max(rate, MIN_BIAS_RATE)
    return 1 / (2 ** rate - 1)
