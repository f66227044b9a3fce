import numpy as np
from abc import ABC, abstractmethod
from scipy.stats import qmc
import mimc.statistics as st


def transform(distributions, points):
    """
    Map points of the unit cube to the random inputs of the sampling function
    :param distributions: list of frozen scipy.stats distributions, one for each column
    :param points: np.ndarray, shape (n, len(distributions)), values in [0, 1)
    :return: np.ndarray, shape (n, len(distributions))
    """
    eps = np.finfo(float).eps
    points = np.clip(points, eps, 1 - eps)
    return np.column_stack([distr.ppf(points[:, k]) for k, distr in enumerate(distributions)])


def sobol_generator(ndims, seed):
    """
    Default point generator, Owen scrambled Sobol' sequence
    """
    return qmc.Sobol(d=ndims, scramble=True, seed=seed)


class SampleMethod(ABC):
    """
    How points are drawn at an index and how the variance at that index is estimated
    """

    valid_keys = ()
    # Estimator options recognized by the sample method

    default_warm_up_samples = 20
    supports_regression = True
    min_warm_up_samples = 2
    # Fewest samples per index with a variance estimate

    def __init__(self):
        self._options = None

    def configure(self, options):
        """
        Bind estimator options, called once by the Estimator on its own copy of the method
        :param options: mimc.options.EstimatorOptions
        """
        self._options = options

    def nb_of_shifts(self, index):
        return 1

    @abstractmethod
    def estimate_variance(self, accumulators):
        """
        Variance of the estimate of the mean difference at one index
        :param accumulators: list of mimc.internals.SampleAccumulator, one for each shift
        :return: np.ndarray, shape (nb_of_qoi,)
        """

    @abstractmethod
    def required_samples(self, index, current_count, n_opt=None):
        """
        Number of samples (points per shift) the index should have after the next allocation step
        :param index: Index
        :param current_count: int, samples taken so far
        :param n_opt: float, optimal number of samples if known
        :return: int, never less than current_count
        """

    @abstractmethod
    def allocate(self, estimator, tol):
        """
        Additional samples needed to reach the statistical error budget of the tolerance
        :param estimator: mimc.estimator.Estimator
        :param tol: float
        :return: Dict[Index, int], empty if no samples are needed
        """

    def __repr__(self):
        return "{}()".format(self.__class__.__name__)


class MC(SampleMethod):
    """
    Plain Monte Carlo sampling
    """

    def estimate_variance(self, accumulators):
        acc = accumulators[0]
        if acc.count == 0:
            return np.zeros(acc.nb_of_qoi)
        return acc.var / acc.count

    def required_samples(self, index, current_count, n_opt=None):
        if n_opt is None or not np.isfinite(n_opt):
            return current_count
        return max(current_count, int(np.ceil(n_opt)))

    def allocate(self, estimator, tol):
        keys = estimator.keys()
        target_variance = estimator.splitting(tol) * tol ** 2
        variances = np.array([estimator.var_diff(index) for index in keys])
        costs = np.array([estimator.cost(index) for index in keys])

        # Worst case over the quantities of interest
        n_opt = np.max(st.optimal_allocation(variances, costs, target_variance), axis=1)

        n_new = {}
        for index, n in zip(keys, n_opt):
            current = estimator.nb_of_samples(index)
            required = max(self.required_samples(index, current, n), self.min_warm_up_samples)
            if required > current and estimator.index_set.is_multigrid:
                required = self.geometric_samples(current, required)
            if required > current:
                n_new[index] = required - current
        return n_new

    def geometric_samples(self, current_count, required):
        """
        Smallest count of the sequence current_count * sample_mul_factor^k reaching 'required'
        """
        n = current_count
        while n < required:
            n = max(n + 1, int(np.ceil(n * self._options.sample_mul_factor)))
        return n


class QMC(SampleMethod):
    """
    Randomized quasi-Monte Carlo, the variance is estimated from independent shifts of a low-discrepancy point set
    """

    valid_keys = ('nb_of_shifts', 'point_generator')
    default_warm_up_samples = 1
    min_warm_up_samples = 1
    supports_regression = False

    def nb_of_shifts(self, index):
        nb_of_shifts = self._options.nb_of_shifts
        if callable(nb_of_shifts):
            return int(nb_of_shifts(index))
        return int(nb_of_shifts)

    def point_generator(self, ndims, seed):
        """
        :param ndims: int, number of random inputs
        :param seed: int
        :return: scipy.stats.qmc.QMCEngine
        """
        return self._options.point_generator(ndims, seed)

    def estimate_variance(self, accumulators):
        shift_means = np.array([acc.mean for acc in accumulators])
        if len(shift_means) < 2 or accumulators[0].count == 0:
            return np.zeros(accumulators[0].nb_of_qoi)
        return np.var(shift_means, axis=0, ddof=1) / len(shift_means)

    def required_samples(self, index, current_count, n_opt=None):
        return max(current_count + 1, int(np.ceil(current_count * self._options.sample_mul_factor)))

    def allocate(self, estimator, tol):
        target_variance = estimator.splitting(tol) * tol ** 2
        if np.max(estimator.varest()) <= target_variance:
            return {}

        # Refine the index with the largest variance per unit of work spent there
        keys = estimator.keys()
        ratios = [np.max(estimator.varest(index)) / max(estimator.total_work(index), st.GUARD) for index in keys]
        index = keys[int(np.argmax(ratios))]
        current = estimator.nb_of_samples(index)
        return {index: self.required_samples(index, current) - current}
