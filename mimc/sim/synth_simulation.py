import numpy as np
import scipy.stats as stats
from mimc.index import Index, as_index


class SynthSampleFunction:
    """
    Artificial sampling function with known statistics. The difference at index i is
        dQ_i = E_i + sqrt(V_i) * x_0,
        E_i = amplitude * 2^(-alpha . i) (mu at the root),  V_i = sigma^2 * 2^(-beta . i),
    its cost is 2^(gamma . i). Differences vanish for indices with sum larger than 'cutoff'.
    """

    def __init__(self, ndims=1, alpha=1.0, beta=2.0, gamma=1.0, mu=0.0, amplitude=1.0, sigma=1.0, cutoff=None,
                 nb_of_qoi=1, fail_index=None, report_cost=False):
        """
        :param ndims: int, dimension of the indices
        :param alpha: rate of the mean differences, scalar or one for each direction
        :param beta: rate of the variances of differences
        :param gamma: rate of the cost
        :param mu: mean at the root index
        :param amplitude: scale of the mean differences
        :param sigma: standard deviation at the root index
        :param cutoff: int, indices with sum of coordinates larger than cutoff have zero difference
        :param nb_of_qoi: int, the i-th quantity of interest is (i + 1) times the first one
        :param fail_index: Index at which the sampling raises
        :param report_cost: bool, return (value, diff, cost) instead of (value, diff)
        """
        self.ndims = ndims
        self.alpha = np.broadcast_to(np.asarray(alpha, dtype=float), (ndims,)).copy()
        self.beta = np.broadcast_to(np.asarray(beta, dtype=float), (ndims,)).copy()
        self.gamma = np.broadcast_to(np.asarray(gamma, dtype=float), (ndims,)).copy()
        self.mu = mu
        self.amplitude = amplitude
        self.sigma = sigma
        self.cutoff = cutoff
        self.nb_of_qoi = nb_of_qoi
        self.fail_index = None if fail_index is None else as_index(fail_index)
        self.report_cost = report_cost

    @property
    def distributions(self):
        """
        Random inputs the function expects
        """
        return [stats.norm()]

    def _active(self, index):
        return self.cutoff is None or sum(index) <= self.cutoff

    def _scale(self):
        return np.arange(1, self.nb_of_qoi + 1, dtype=float)

    def mean_diff(self, index):
        """
        Exact mean of the difference
        """
        index = as_index(index)
        if not self._active(index):
            return np.zeros(self.nb_of_qoi)
        if index.is_zero():
            return self.mu * self._scale()
        return self.amplitude * 2 ** -np.dot(self.alpha, index) * self._scale()

    def var_diff(self, index):
        """
        Exact variance of the difference
        """
        index = as_index(index)
        if not self._active(index):
            return np.zeros(self.nb_of_qoi)
        return self.sigma ** 2 * 2 ** -np.dot(self.beta, index) * self._scale() ** 2

    def mean_value(self, index):
        """
        Exact mean of the value, sum of mean differences over all indices dominated by the index
        """
        index = as_index(index)
        total = np.zeros(self.nb_of_qoi)
        for coords in np.ndindex(*[c + 1 for c in index]):
            total += self.mean_diff(Index(coords))
        return total

    def exact_mean(self, index_set):
        """
        Expected value of the estimator restricted to the indices
        """
        return np.sum([self.mean_diff(index) for index in index_set], axis=0)

    def cost(self, index):
        return float(2 ** np.dot(self.gamma, as_index(index)))

    def __call__(self, index, x):
        """
        Calculate sample
        :param index: Index
        :param x: np.ndarray, realization of the random inputs
        :return: (value, diff) or (value, diff, cost)
        """
        index = as_index(index)
        if self.fail_index is not None and index == self.fail_index:
            raise Exception("Sample failed at index {}".format(index))

        diff = self.mean_diff(index) + np.sqrt(self.var_diff(index)) * x[0]
        value = self.mean_value(index) + self.sigma * self._scale() * x[0]
        if self.nb_of_qoi == 1:
            diff, value = float(diff[0]), float(value[0])

        if self.report_cost:
            return value, diff, self.cost(index)
        return value, diff
