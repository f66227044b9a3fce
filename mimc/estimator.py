import os
import copy
from collections.abc import Iterable
import time
import logging
import numpy as np
import mimc.statistics as st
from mimc.index import Index, as_index
from mimc.index_set import IndexSet, SL, AD
from mimc.sample_method import SampleMethod, transform
from mimc.internals import EstimatorInternals, SampleAccumulator
from mimc.options import parse_options
from mimc.sample_task import SampleTask
from mimc.sampling_pool import OneProcessPool
from mimc.history import History
from mimc.tool.hdf5 import HistoryHDF
from mimc.errors import ConfigurationError, SamplingFailure, InsufficientDataForRegression, IndexSetExhausted

logger = logging.getLogger(__name__)


class Estimator:
    """
    Multilevel / multi-index (quasi-)Monte Carlo estimator of the expected value of a quantity of interest.

    Samples are requested from 'sample_function(index, x)', where 'x' holds one realization of the random
    inputs given by 'distributions'. The function returns the value of the quantity of interest at the index,
    optionally together with the difference to the coarser indices and the cost of the sample:
        value | (value, difference) | (value, difference, cost)

    Usage:
        estimator = Estimator(ML(), MC(), sample_function, [scipy.stats.norm()], max_index_set_param=6)
        history = estimator.run(1e-3)
        history["mean"]
    """

    def __init__(self, index_set, sample_method, sample_function, distributions, **kwargs):
        """
        :param index_set: mimc.index_set.IndexSet instance (SL, ML, TD, FT, HC, AD, U or MG of one of them)
        :param sample_method: mimc.sample_method.SampleMethod instance (MC or QMC)
        :param sample_function: callable, (Index, np.ndarray) -> value | (value, diff) | (value, diff, cost)
        :param distributions: frozen scipy.stats distribution or a list of them, one for each random input
        :param kwargs: estimator options, see mimc.options.EstimatorOptions
        """
        if not isinstance(index_set, IndexSet):
            raise ConfigurationError("Expected an index set, got {!r}".format(index_set))
        if not isinstance(sample_method, SampleMethod):
            raise ConfigurationError("Expected a sample method, got {!r}".format(sample_method))
        if not callable(sample_function):
            raise ConfigurationError("Sample function must be callable")
        if hasattr(distributions, 'ppf'):
            distributions = [distributions]
        if not isinstance(distributions, Iterable):
            raise ConfigurationError("Expected a distribution or a list of distributions, got {!r}".format(
                distributions))
        distributions = list(distributions)
        if len(distributions) == 0 or not all(hasattr(distr, 'ppf') for distr in distributions):
            raise ConfigurationError("Expected a non-empty list of distributions with 'ppf' method")

        self._options = parse_options(index_set, sample_method, kwargs)
        self._index_set = index_set
        self._sample_method = copy.copy(sample_method)
        self._sample_method.configure(self._options)
        self._sample_function = sample_function
        self._distributions = distributions

        self._rng = np.random.default_rng(self._options.seed)
        self._sampling_pool = self._options.sampling_pool
        if self._sampling_pool is None:
            self._sampling_pool = OneProcessPool()

        self._internals = EstimatorInternals(index_set, self._sample_method, self._options, self._rng,
                                             len(distributions))

        self._search_space_indices = set()
        if self._options.max_search_space is not None:
            self._search_space_indices = self._options.max_search_space.get_index_set(
                self._options.max_index_set_param)

        self.history = History()

    @property
    def index_set(self):
        return self._index_set

    @property
    def sample_method(self):
        return self._sample_method

    @property
    def options(self):
        return self._options

    @property
    def internals(self):
        return self._internals

    @property
    def ndims(self):
        return self._index_set.ndims

    @property
    def nb_of_qoi(self):
        return self._options.nb_of_qoi

    @property
    def nb_of_uncertainties(self):
        return len(self._distributions)

    def __repr__(self):
        return "Estimator({!r}, {!r}, nb_of_qoi={})".format(self._index_set, self._sample_method, self.nb_of_qoi)

    ##################
    #   Estimation   #
    ##################

    def run(self, tol):
        """
        Estimate the expected value with root mean square error 'tol'. With 'continuate' option
        the estimator runs through a sequence of decreasing tolerances ending at 'tol'.
        :param tol: float, requested root mean square error
        :return: History, one record for each tolerance
        """
        if not tol > 0:
            raise ValueError("Tolerance must be positive, got {}".format(tol))

        self.clear()
        self.history = History()
        for tolerance in self._tolerances(tol):
            if not self._options.continuate:
                self.clear()

            start = time.time()
            try:
                converged = self._run_tolerance(tolerance)
            except IndexSetExhausted as e:
                logger.warning("Tolerance {:.5e} not reached: {}".format(tolerance, e))
                converged = False

            self.history.record(self, tolerance, time.time() - start, converged)
            self._log("Tolerance {:.5e} finished, converged: {}, mean: {}, rmse: {}".format(
                tolerance, converged, self.mean(), self.rmse()))

            if self._options.save:
                self._save_history()

        return self.history

    def clear(self):
        """
        Empty the index set, collected samples are kept
        """
        self._internals.clear()

    def _tolerances(self, tol):
        if not self._options.continuate:
            return [tol]
        n = self._options.nb_of_tols
        factor = self._options.continuation_mul_factor
        return [tol * factor ** (n - 1 - k) for k in range(n)]

    def _run_tolerance(self, tol):
        if self._index_set.is_adaptive:
            return self._run_adaptive(tol)
        if self._index_set.is_unbiased:
            return self._run_unbiased(tol)
        return self._run_bounded(tol)

    def _run_bounded(self, tol):
        size_param = self._internals.index_set_size
        while True:
            size = size_param.current
            new_indices = [index for index in self._index_set.sorted_index_set(size)
                           if index not in self._internals.current_index_set]
            self._add_indices(new_indices, tol)
            self._allocate(tol)
            self._log_iteration(tol)

            if self._is_converged(tol):
                return True
            if size >= self._options.max_index_set_param:
                raise IndexSetExhausted("Maximal index set parameter {} reached".format(
                    self._options.max_index_set_param))
            size_param.set(size + 1)

    def _run_adaptive(self, tol):
        ad = self._internals.index_set_internals
        new_indices = [index for index in sorted(ad.active_set | ad.old_set)
                       if index not in self._internals.current_index_set]
        self._add_indices(new_indices, tol)
        while True:
            self._allocate(tol)
            self._log_iteration(tol)

            if self._is_converged(tol):
                return True
            self._grow_adaptive_set(tol)

    def _run_unbiased(self, tol):
        u = self._internals.index_set_internals
        indices = u.max_search_space.sorted_index_set(self._options.max_index_set_param)
        self._add_indices(indices, tol)

        probabilities = np.array([np.sqrt(np.max((self.var_diff(index) + self.mean_diff(index) ** 2)
                                                 / max(self.cost(index), st.GUARD)))
                                  for index in indices])
        if not np.sum(probabilities) > 0:
            probabilities = np.ones(len(indices))
        probabilities = probabilities / np.sum(probabilities)
        u.probabilities = dict(zip(indices, probabilities))

        target_variance = self.splitting(tol) * tol ** 2
        while True:
            count = min(acc.count for acc in u.accumulator)
            if count >= u.min_draws and np.max(self.varest()) <= target_variance:
                break

            if count < u.min_draws:
                required = self._options.nb_of_warm_up_samples
            else:
                n_opt = count * np.max(self.varest()) / target_variance
                required = self._sample_method.required_samples(None, count, n_opt)
            n_draws = max(1, required - count)
            self._log("Unbiased estimator: {} new draws per shift, {} so far".format(n_draws, count))

            for shift, accumulator in enumerate(u.accumulator):
                draws = np.bincount(self._rng.choice(len(indices), size=n_draws, p=probabilities),
                                    minlength=len(indices))
                n_new = {index: int(n) for index, n in zip(indices, draws) if n > 0}
                tasks, diffs = self._sample_many(n_new, shift)
                weights = np.array([1 / u.probabilities[task.index] for task in tasks])
                accumulator.append(diffs * weights[:, None])

        self._log_iteration(tol)
        return True

    def _grow_adaptive_set(self, tol):
        """
        Expand the active index with maximal profit
        :raises IndexSetExhausted: if an index outside of the search space would be needed
        """
        ad = self._internals.index_set_internals
        active = sorted(ad.active_set)
        if not active:
            raise IndexSetExhausted("No active index left")

        profits = np.array([self.profit(index) for index in active])
        candidates = [index for index, profit in zip(active, profits) if profit == np.max(profits)]
        best = candidates[0] if self._options.profit_tie_break == "smallest" else candidates[-1]
        profit = float(np.max(profits))

        old_set = ad.old_set | {best}
        new_indices = [index for index in best.successors()
                       if index not in ad.active_set and index not in old_set and AD.admissible(index, old_set)]
        for index in new_indices:
            if not self._in_bounds(index):
                raise IndexSetExhausted("Index {} is out of the search space {!r}".format(
                    index, self._options.max_search_space))

        ad.remove_from_active_set(best)
        ad.add_to_old_set(best)
        for index in new_indices:
            ad.add_to_active_set(index)
        ad.logbook.append((best, profit))
        self._log("Index {} expanded with profit {:.5e}, new indices {}".format(best, profit, new_indices))

        self._add_indices(new_indices, tol)
        # Snapshot is outdated once the set reaches a new size or one of its indices is expanded
        new_size = self._internals.index_set_size.set(max(sum(index) for index in ad.max_index_set))
        if new_size or best in ad.boundary:
            ad.update_boundary()

    def _in_bounds(self, index):
        if index not in self._search_space_indices:
            return False
        return self._options.max_level is None or max(index) <= self._options.max_level

    def _is_converged(self, tol):
        if self._index_set.is_adaptive:
            if not self._internals.index_set_internals.old_set:
                return False
        elif not self._index_set.is_unbiased:
            if self._internals.index_set_size.current < min(2, self._options.max_index_set_param):
                return False
        return np.max(self.mse()) <= tol ** 2

    def _allocate(self, tol):
        """
        Take samples until the statistical error fits into its part of the tolerance
        """
        while True:
            n_new = self._sample_method.allocate(self, tol)
            if not n_new:
                return
            logger.debug("Allocation for tolerance {:.5e}: {}".format(tol, n_new))
            self._sample_many(n_new)

    def _add_indices(self, indices, tol):
        """
        Add indices to the current index set and take the warm up samples there
        :param indices: list of Index
        :param tol: float
        """
        n_new = {}
        for index in sorted(indices):
            required = self._nb_of_warm_up_samples(index, tol)
            current = self.nb_of_samples(index)
            if required > current:
                n_new[index] = required - current
        self._internals.current_index_set.update(indices)
        if n_new:
            logger.debug("Warm up samples: {}".format(n_new))
            self._sample_many(n_new)

    def _nb_of_warm_up_samples(self, index, tol):
        """
        Number of warm up samples, with regression the optimal number of samples is predicted
        from the rates and from the statistics at a predecessor
        """
        n_warm_up = self._options.nb_of_warm_up_samples
        if index.is_zero() or self._index_set.is_unbiased or not self._options.do_regression \
                or not self._sample_method.supports_regression:
            return n_warm_up

        for k in range(self.ndims):
            if index[k] == 0:
                continue
            predecessor = index - Index.unit(self.ndims, k)
            if self.nb_of_samples(predecessor) < 2:
                continue
            try:
                beta = self._fit_rate(lambda i: np.max(self.var_diff(i)), k)
                gamma = -self._fit_rate(self.cost, k)
            except InsufficientDataForRegression:
                continue

            keys = [key for key in self.keys() if key != index]
            variances = [np.max(self.var_diff(key)) for key in keys] + [np.max(self.var_diff(predecessor)) * 2 ** -beta]
            costs = [self.cost(key) for key in keys] + [self.cost(predecessor) * 2 ** gamma]
            n_opt = st.optimal_allocation(variances, costs, self.splitting(tol) * tol ** 2)[-1]
            if not np.isfinite(n_opt):
                continue
            return max(2, min(n_warm_up, int(np.ceil(n_opt))))
        return n_warm_up

    ##################
    #    Sampling    #
    ##################

    def sample_batch(self, index, n, shift=None):
        """
        Generate sample tasks at an index
        :param index: Index
        :param n: int, number of points (per shift)
        :param shift: int, only the given shift, all shifts if None
        :return: list of SampleTask
        """
        index = as_index(index)
        shifts = range(self._sample_method.nb_of_shifts(index)) if shift is None else [shift]
        tasks = []
        for s in shifts:
            x = transform(self._distributions, self._internals.points(index, s, n))
            tasks.extend(SampleTask(index, row, s) for row in x)
        return tasks

    def sample(self, index, n):
        """
        Take n samples (per shift) at the index
        :param index: Index or int
        :param n: int
        :return: None
        """
        self._sample_many({as_index(index): int(n)})

    def _sample_many(self, n_new, shift=None):
        """
        Evaluate and store samples
        :param n_new: Dict[Index, int], number of new samples (per shift) for each index
        :param shift: int, only the given shift, all shifts if None
        :return: list of SampleTask, np.ndarray of differences in task order
        """
        tasks = []
        for index in sorted(n_new):
            tasks.extend(self.sample_batch(index, n_new[index], shift))
        if not tasks:
            return tasks, np.empty((0, self.nb_of_qoi))

        results = self._sampling_pool.evaluate(self._sample_function, tasks)
        return tasks, self._store(tasks, results)

    def _store(self, tasks, results):
        """
        Merge results of a batch into the accumulators, grouped by index and shift
        """
        groups = {}
        all_diffs = []
        for task, result in zip(tasks, results):
            value, diff, cost = self._parse_result(task.index, result.result)
            if self._options.cost_model is not None:
                work = self._options.cost_model(task.index)
            elif cost is not None:
                work = cost
            else:
                work = result.running_time

            group = groups.setdefault((task.index, task.shift), ([], [], [0.0], [0.0]))
            group[0].append(value)
            group[1].append(diff)
            group[2][0] += work
            group[3][0] += result.running_time
            all_diffs.append(diff)

        for (index, shift), (values, diffs, work, running_time) in sorted(groups.items()):
            self._internals.arena[index].append(shift, np.array(values), np.array(diffs), work[0], running_time[0])
        return np.array(all_diffs)

    def _parse_result(self, index, result):
        """
        :return: value, difference, cost (None if not reported)
        """
        cost = None
        if isinstance(result, tuple):
            if len(result) == 1:
                value, = result
                diff = value
            elif len(result) == 2:
                value, diff = result
            elif len(result) == 3:
                value, diff, cost = result
            else:
                raise SamplingFailure(index, "Expected value, (value, diff) or (value, diff, cost), "
                                             "got tuple of length {}".format(len(result)))
        else:
            value = diff = result

        value = np.atleast_1d(np.asarray(value, dtype=float)).ravel()
        diff = np.atleast_1d(np.asarray(diff, dtype=float)).ravel()
        if len(value) != self.nb_of_qoi or len(diff) != self.nb_of_qoi:
            raise SamplingFailure(index, "Expected {} quantities of interest, got {} values and {} differences".format(
                self.nb_of_qoi, len(value), len(diff)))
        if not (np.all(np.isfinite(value)) and np.all(np.isfinite(diff))):
            raise SamplingFailure(index, "Sample result is not finite: {}, {}".format(value, diff))
        if cost is not None:
            cost = float(cost)
            if not np.isfinite(cost) or cost < 0:
                raise SamplingFailure(index, "Sample cost must be finite and non-negative, got {}".format(cost))
        return value, diff, cost

    ##################
    #   Statistics   #
    ##################

    def keys(self):
        """
        Sorted current index set
        """
        return sorted(self._internals.current_index_set)

    def all_keys(self):
        """
        Sorted indices with samples, including those not in the current index set
        """
        return self._internals.arena.sampled_keys()

    def _data(self, index):
        return self._internals.arena[as_index(index)]

    def nb_of_samples(self, index=None):
        """
        :param index: Index, if None number of samples at all keys
        :return: int, number of samples (per shift) or np.ndarray for all keys
        """
        if index is None:
            return np.array([self.nb_of_samples(key) for key in self.keys()], dtype=int)
        return self._data(index).nb_of_samples

    def _merged(self, index, diff=True):
        data = self._data(index)
        return SampleAccumulator.merged(data.samples_diff if diff else data.samples)

    def mean_diff(self, index):
        return self._merged(index).mean

    def var_diff(self, index):
        """
        Variance of one sample of the difference at the index
        """
        return self._merged(index).var

    def mean_value(self, index):
        return self._merged(index, diff=False).mean

    def var_value(self, index):
        return self._merged(index, diff=False).var

    def varest(self, index=None):
        """
        Variance of the estimator
        :param index: Index, variance of the mean difference at this index only
        :return: np.ndarray, shape (nb_of_qoi,)
        """
        if index is not None:
            data = self._data(index)
            if data.nb_of_samples == 0:
                return np.zeros(self.nb_of_qoi)
            return self._sample_method.estimate_variance(data.samples_diff)

        if self._index_set.is_unbiased:
            return self._sample_method.estimate_variance(self._internals.index_set_internals.accumulator)

        return np.sum([self.varest(key) for key in self.keys()], axis=0) + np.zeros(self.nb_of_qoi)

    def mean(self):
        """
        Estimate of the expected value
        :return: np.ndarray, shape (nb_of_qoi,)
        """
        if self._index_set.is_unbiased:
            return np.mean([acc.mean for acc in self._internals.index_set_internals.accumulator], axis=0)
        return np.sum([self.mean_diff(key) for key in self.keys()], axis=0) + np.zeros(self.nb_of_qoi)

    def var(self):
        """
        Variance of the quantity of interest, estimated at the root index
        """
        return self.var_value(Index.zero(self.ndims))

    def bias(self):
        """
        Estimate of the truncation error of the index set
        :return: np.ndarray, shape (nb_of_qoi,)
        """
        if self._index_set.is_unbiased or isinstance(self._index_set, SL):
            return np.zeros(self.nb_of_qoi)

        if self._index_set.is_adaptive:
            return self._boundary_sum(sorted(self._internals.index_set_internals.boundary))

        boundary = sorted(self._index_set.boundary(self._internals.index_set_size.current))
        alpha = np.min(self.alpha())
        return self._boundary_sum(boundary) * st.geometric_tail_factor(alpha)

    def _boundary_sum(self, boundary):
        boundary = [index for index in boundary if self.nb_of_samples(index) > 0]
        if not boundary:
            return np.zeros(self.nb_of_qoi)
        means = np.array([self.mean_diff(index) for index in boundary])

        if self._options.conservative_bias_estimate:
            try:
                fitted = self._fitted_means(boundary)
            except InsufficientDataForRegression:
                pass
            else:
                return np.sum(np.maximum(np.abs(means), fitted[:, None]), axis=0)
        return np.abs(np.sum(means, axis=0))

    def _fitted_means(self, indices):
        """
        Mean differences at the indices extrapolated from a fit over all sampled indices but the root
        """
        keys = [key for key in self.all_keys() if not key.is_zero() and self.nb_of_samples(key) >= 2]
        values = [np.max(np.abs(self.mean_diff(key))) for key in keys]
        rates, c = st.fit_multivariate_rates(keys, values)
        return np.array([2 ** (c - np.dot(rates, index)) for index in indices])

    def mse(self):
        return self.bias() ** 2 + self.varest()

    def rmse(self):
        return np.sqrt(self.mse())

    def splitting(self, tol):
        """
        Fraction of tol^2 for the variance of the estimator
        """
        return st.splitting(np.max(self.bias()), tol, self._options.min_splitting, self._options.max_splitting,
                            self._options.do_mse_splitting)

    def cost(self, index):
        """
        Work of one sample at the index, given by the cost model if available
        """
        index = as_index(index)
        if self._options.cost_model is not None:
            return float(self._options.cost_model(index))
        data = self._data(index)
        if data.nb_of_evaluations == 0:
            return 0.0
        return data.total_work / data.nb_of_evaluations

    def time(self, index):
        """
        Total time spent sampling at the index
        """
        return self._data(index).total_time

    def total_work(self, index):
        return self._data(index).total_work

    def profit(self, index):
        """
        Profit of an adaptive index, |E| / sqrt(V W), worst over quantities of interest
        """
        work = np.abs(self.var_diff(index)) * self.cost(index)
        return float(np.max(np.abs(self.mean_diff(index)) / np.sqrt(np.maximum(work, st.GUARD))))

    def _fit_rate(self, statistic, k):
        """
        Rate of decay of a statistic along direction k
        :raises InsufficientDataForRegression:
        """
        levels, values = [], []
        for index in self.all_keys():
            if index.axis() == k and self.nb_of_samples(index) >= 2:
                levels.append(index[k])
                values.append(statistic(index))
        return st.fit_rate(levels, values)[0]

    def _rates(self, statistic, default, sign=1):
        rates = np.empty(self.ndims)
        for k in range(self.ndims):
            try:
                rates[k] = sign * self._fit_rate(statistic, k)
            except InsufficientDataForRegression:
                rates[k] = default
        return rates

    def alpha(self):
        """
        Rates of decay of the mean differences, one for each direction
        """
        return self._rates(lambda index: np.max(np.abs(self.mean_diff(index))), self._options.default_alpha)

    def beta(self):
        """
        Rates of decay of the variance of the differences
        """
        return self._rates(lambda index: np.max(self.var_diff(index)), self._options.default_beta)

    def gamma(self):
        """
        Rates of increase of the cost
        """
        return self._rates(self.cost, self._options.default_gamma, sign=-1)

    def samples(self, index):
        """
        Retained values at the index, all shifts concatenated, None without 'save_samples'
        """
        return self._retained(self._data(index).samples)

    def samples_diff(self, index):
        return self._retained(self._data(index).samples_diff)

    def _retained(self, accumulators):
        if not self._options.save_samples:
            return None
        return np.concatenate([acc.samples for acc in accumulators], axis=0)

    ##################
    #     Output     #
    ##################

    def _log(self, msg):
        if self._options.verbose:
            logger.info(msg)
        else:
            logger.debug(msg)

    def _log_iteration(self, tol):
        self._log("tol: {:.5e}, index set: {}, samples: {}, bias: {}, varest: {}".format(
            tol, self.keys(), list(self.nb_of_samples()), self.bias(), self.varest()))

    def history_file(self):
        name = self._options.name if self._options.name else "{}_{}".format(
            self._index_set.__class__.__name__, self._sample_method.__class__.__name__)
        return os.path.join(self._options.folder, name + ".hdf5")

    def _save_history(self):
        os.makedirs(self._options.folder, exist_ok=True)
        HistoryHDF(self.history_file()).save(self.history)
