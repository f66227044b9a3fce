import numpy as np
from mimc.index import Index
from mimc.index_set import AD, IndexSetSize
from mimc.sample_method import QMC


class SampleAccumulator:
    """
    Streaming mean and variance of samples with nb_of_qoi columns, optionally keeps the samples themselves
    """

    def __init__(self, nb_of_qoi, keep_samples=False):
        """
        :param nb_of_qoi: int, number of quantities of interest
        :param keep_samples: bool, if True all appended samples are retained
        """
        self.nb_of_qoi = nb_of_qoi
        self._keep_samples = keep_samples
        self._count = 0
        self._mean = np.zeros(nb_of_qoi)
        self._m2 = np.zeros(nb_of_qoi)
        self._chunks = []

    @property
    def count(self):
        return self._count

    @property
    def mean(self):
        return self._mean.copy()

    @property
    def var(self):
        """
        Unbiased sample variance, zeros for less than two samples
        """
        if self._count < 2:
            return np.zeros(self.nb_of_qoi)
        return self._m2 / (self._count - 1)

    @property
    def keeps_samples(self):
        return self._keep_samples

    @property
    def samples(self):
        """
        :return: np.ndarray, shape (count, nb_of_qoi), None if samples are not kept
        """
        if not self._keep_samples:
            return None
        if not self._chunks:
            return np.empty((0, self.nb_of_qoi))
        return np.concatenate(self._chunks, axis=0)

    def append(self, values):
        """
        Merge a batch of samples, uses the pairwise update of Chan et al.
        :param values: array like, shape (n, nb_of_qoi)
        :return: None
        """
        values = np.asarray(values, dtype=float).reshape(-1, self.nb_of_qoi)
        n = len(values)
        if n == 0:
            return

        batch_mean = np.mean(values, axis=0)
        batch_m2 = np.sum((values - batch_mean) ** 2, axis=0)

        total = self._count + n
        delta = batch_mean - self._mean
        self._mean = self._mean + delta * n / total
        self._m2 = self._m2 + batch_m2 + delta ** 2 * self._count * n / total
        self._count = total

        if self._keep_samples:
            self._chunks.append(values.copy())

    @staticmethod
    def merged(accumulators):
        """
        Pool several accumulators (e.g. all shifts) into a new one, samples are not kept
        """
        result = SampleAccumulator(accumulators[0].nb_of_qoi)
        for acc in accumulators:
            if acc.count == 0:
                continue
            total = result._count + acc._count
            delta = acc._mean - result._mean
            result._mean = result._mean + delta * acc._count / total
            result._m2 = result._m2 + acc._m2 + delta ** 2 * result._count * acc._count / total
            result._count = total
        return result


class IndexData:
    """
    Everything collected at one index: differences and values for each shift, work and time totals
    """

    def __init__(self, nb_of_qoi, nb_of_shifts, keep_samples=False):
        self.samples_diff = [SampleAccumulator(nb_of_qoi, keep_samples) for _ in range(nb_of_shifts)]
        self.samples = [SampleAccumulator(nb_of_qoi, keep_samples) for _ in range(nb_of_shifts)]
        self.total_work = 0.0
        self.total_time = 0.0

    @property
    def nb_of_shifts(self):
        return len(self.samples_diff)

    @property
    def nb_of_samples(self):
        """
        Number of samples per shift
        """
        return min(acc.count for acc in self.samples_diff)

    @property
    def nb_of_evaluations(self):
        return sum(acc.count for acc in self.samples_diff)

    def append(self, shift, values, diffs, work, time):
        """
        :param shift: int
        :param values: array, shape (n, nb_of_qoi)
        :param diffs: array, shape (n, nb_of_qoi)
        :param work: float, total work of the n samples
        :param time: float, total time of the n samples
        :return: None
        """
        self.samples[shift].append(values)
        self.samples_diff[shift].append(diffs)
        self.total_work += work
        self.total_time += time


class IndexArena:
    """
    Dense storage of per index data. Indices known in advance get consecutive positions,
    any other index gets a new position when first accessed.
    """

    def __init__(self, indices, factory):
        """
        :param indices: indices of the largest anticipated search space
        :param factory: callable, Index -> IndexData
        """
        self._factory = factory
        self._positions = {}
        self._slots = []
        for index in sorted(indices):
            self._allocate(index)

    def _allocate(self, index):
        self._positions[index] = len(self._slots)
        self._slots.append(self._factory(index))

    def position(self, index):
        if index not in self._positions:
            self._allocate(index)
        return self._positions[index]

    def __getitem__(self, index):
        return self._slots[self.position(index)]

    def __contains__(self, index):
        return index in self._positions

    def __len__(self):
        return len(self._slots)

    def sampled_keys(self):
        """
        Sorted indices with at least one sample
        """
        return sorted(index for index, pos in self._positions.items() if self._slots[pos].nb_of_samples > 0)


class DefaultInternals:
    """
    Internals shared by all estimators
    """

    def __init__(self, indices, nb_of_qoi, nb_of_shifts, keep_samples):
        """
        :param indices: anticipated search space
        :param nb_of_qoi: int
        :param nb_of_shifts: callable, Index -> int
        :param keep_samples: bool
        """
        self.arena = IndexArena(indices, lambda index: IndexData(nb_of_qoi, nb_of_shifts(index), keep_samples))
        self.current_index_set = set()
        self.index_set_size = IndexSetSize()

    def clear(self):
        self.current_index_set.clear()
        self.index_set_size.reset()


class ADInternals:
    """
    Adaptive index set state
    """

    def __init__(self, ndims, max_search_space):
        self.ndims = ndims
        self.max_search_space = max_search_space
        self.old_set = set()
        self.active_set = {Index.zero(ndims)}
        self.max_index_set = set()
        self.boundary = set(self.active_set)
        self.logbook = []

    def add_to_active_set(self, index):
        self.active_set.add(index)
        self.max_index_set.add(index)

    def remove_from_active_set(self, index):
        self.active_set.discard(index)

    def add_to_old_set(self, index):
        self.old_set.add(index)
        self.max_index_set.add(index)

    def is_admissible(self, index):
        return AD.admissible(index, self.old_set)

    def update_boundary(self):
        self.boundary = set(self.active_set)

    def clear(self):
        self.old_set.clear()
        self.active_set = {Index.zero(self.ndims)}
        self.max_index_set.clear()
        self.boundary = set(self.active_set)
        self.logbook = []


class UInternals:
    """
    Unbiased estimator state, one accumulator of importance weighted differences for each shift
    """

    def __init__(self, nb_of_qoi, max_search_space, keep_samples, nb_of_shifts=1):
        """
        :param nb_of_qoi: int
        :param max_search_space: IndexSet the indices are drawn from
        :param keep_samples: bool
        :param nb_of_shifts: int, one accumulator for plain Monte Carlo
        """
        self.max_search_space = max_search_space
        self.accumulator = [SampleAccumulator(nb_of_qoi, keep_samples) for _ in range(nb_of_shifts)]
        self.probabilities = {}

    @property
    def min_draws(self):
        """
        Draws (per shift) needed before the variance can be estimated
        """
        return 2 if len(self.accumulator) == 1 else 1

    def clear(self):
        self.accumulator = [SampleAccumulator(acc.nb_of_qoi, acc.keeps_samples) for acc in self.accumulator]
        self.probabilities = {}


class MCInternals:
    """
    Monte Carlo points from the estimator's random generator
    """

    def __init__(self, rng, nb_of_uncertainties):
        self._rng = rng
        self._nb_of_uncertainties = nb_of_uncertainties

    def points(self, index, shift, n):
        return self._rng.random((n, self._nb_of_uncertainties))


class QMCInternals:
    """
    One independently randomized point generator for each index and shift
    """

    def __init__(self, sample_method, indices, rng, nb_of_uncertainties):
        self._sample_method = sample_method
        self._rng = rng
        self._nb_of_uncertainties = nb_of_uncertainties
        self.generators = {}
        for index in sorted(indices):
            self._create_generators(index)

    def _create_generators(self, index):
        seeds = self._rng.integers(2 ** 32, size=self._sample_method.nb_of_shifts(index))
        self.generators[index] = [self._sample_method.point_generator(self._nb_of_uncertainties, int(seed))
                                  for seed in seeds]

    def generator(self, index, shift):
        if index not in self.generators:
            self._create_generators(index)
        return self.generators[index][shift]

    def points(self, index, shift, n):
        return self.generator(index, shift).random(n)


class EstimatorInternals:
    """
    Default internals together with the index set and sample method specific ones
    """

    def __init__(self, index_set, sample_method, options, rng, nb_of_uncertainties):
        """
        :param index_set: mimc.index_set.IndexSet
        :param sample_method: configured mimc.sample_method.SampleMethod
        :param options: mimc.options.EstimatorOptions
        :param rng: np.random.Generator
        :param nb_of_uncertainties: int, length of the random input vector
        """
        search_space = options.max_search_space if options.max_search_space is not None else index_set
        indices = search_space.get_index_set(options.max_index_set_param)

        self.default_internals = DefaultInternals(indices, options.nb_of_qoi, sample_method.nb_of_shifts,
                                                  options.save_samples)

        if index_set.is_adaptive:
            self.index_set_internals = ADInternals(index_set.ndims, options.max_search_space)
        elif index_set.is_unbiased:
            nb_of_shifts = min(sample_method.nb_of_shifts(index) for index in indices)
            self.index_set_internals = UInternals(options.nb_of_qoi, options.max_search_space, options.save_samples,
                                                  nb_of_shifts)
        else:
            self.index_set_internals = None

        if isinstance(sample_method, QMC):
            self.sample_method_internals = QMCInternals(sample_method, indices, rng, nb_of_uncertainties)
        else:
            self.sample_method_internals = MCInternals(rng, nb_of_uncertainties)

    @property
    def arena(self):
        return self.default_internals.arena

    @property
    def current_index_set(self):
        return self.default_internals.current_index_set

    @property
    def index_set_size(self):
        return self.default_internals.index_set_size

    def points(self, index, shift, n):
        return self.sample_method_internals.points(index, shift, n)

    def clear(self):
        self.default_internals.clear()
        if self.index_set_internals is not None:
            self.index_set_internals.clear()
