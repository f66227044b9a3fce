import numpy as np
import pytest
import mimc.statistics as st
from mimc.index import Index
from mimc.errors import InsufficientDataForRegression


def test_fit_rate():
    levels = np.array([1, 2, 3, 4])
    rate, c = st.fit_rate(levels, 2 ** (1.5 - 2 * levels))
    assert np.isclose(rate, 2)
    assert np.isclose(c, 1.5)

    # Sign does not matter, zeros are ignored
    rate, c = st.fit_rate([1, 2, 3], [-0.5, 0.25, 0])
    assert np.isclose(rate, 1)

    with pytest.raises(InsufficientDataForRegression):
        st.fit_rate([1], [0.5])
    with pytest.raises(InsufficientDataForRegression):
        st.fit_rate([1, 2], [0.5, 0])
    with pytest.raises(InsufficientDataForRegression):
        st.fit_rate([], [])


def test_fit_multivariate_rates():
    indices = [Index(1, 0), Index(0, 1), Index(1, 1), Index(2, 0), Index(0, 2)]
    values = [2 ** (0.5 - 1 * i - 3 * j) for i, j in indices]
    rates, c = st.fit_multivariate_rates(indices, values)
    assert np.allclose(rates, [1, 3])
    assert np.isclose(c, 0.5)

    with pytest.raises(InsufficientDataForRegression):
        st.fit_multivariate_rates([Index(1, 0), Index(2, 0)], [0.5, 0.25])


def test_optimal_allocation():
    variances = np.array([1.0, 0.25, 0.0625])
    costs = np.array([1.0, 2.0, 4.0])
    target = 1e-3
    n_opt = st.optimal_allocation(variances, costs, target)

    # Variance constraint is met
    assert np.isclose(np.sum(variances / n_opt), target)
    # Closed form for geometric sequences
    assert np.allclose(n_opt[1:] / n_opt[:-1], np.sqrt(0.25 / 2))

    # Brute force on two indices: N_1 follows from the constraint
    n_opt = st.optimal_allocation(variances[:2], costs[:2], target)
    optimal_cost = np.sum(n_opt * costs[:2])
    n_0 = np.linspace(variances[0] / target * 1.001, 10 * n_opt[0], 200000)
    n_1 = variances[1] / (target - variances[0] / n_0)
    brute_force_cost = np.min(n_0 * costs[0] + n_1 * costs[1])
    assert optimal_cost <= brute_force_cost * (1 + 1e-9)
    assert np.isclose(optimal_cost, brute_force_cost, rtol=1e-4)


def test_optimal_allocation_qoi():
    variances = np.array([[1.0, 4.0], [0.25, 1.0]])
    costs = np.array([1.0, 2.0])
    n_opt = st.optimal_allocation(variances, costs, 1e-2)
    assert n_opt.shape == (2, 2)
    assert np.allclose(n_opt[:, 0], st.optimal_allocation(variances[:, 0], costs, 1e-2))

    # Zero variances need no samples
    assert np.all(st.optimal_allocation([0, 0], [1, 2], 1e-2) == 0)

    with pytest.raises(ValueError):
        st.optimal_allocation(variances, costs, 0)


def test_splitting():
    assert st.splitting(0, 0.1, 0.5, 0.99) == 0.99
    assert st.splitting(0.1, 0.1, 0.5, 0.99) == 0.5
    assert np.isclose(st.splitting(0.05, 0.1, 0.5, 0.99), 0.75)
    assert st.splitting(0.0, 0.1, 0.5, 0.99, do_mse_splitting=False) == 0.5
    assert st.splitting(0.0, 0.1, 0.6, 0.99, do_mse_splitting=False) == 0.6


def test_geometric_tail_factor():
    assert np.isclose(st.geometric_tail_factor(1), 1)
    assert np.isclose(st.geometric_tail_factor(2), 1 / 3)
    # Rate is bounded from below
    assert np.isclose(st.geometric_tail_factor(0.1), 1 / (np.sqrt(2) - 1))
    assert np.isclose(st.geometric_tail_factor(-1), 1 / (np.sqrt(2) - 1))
