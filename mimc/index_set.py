import itertools
import numpy as np
from abc import ABC, abstractmethod
from typing import Set
from mimc.index import Index
from mimc.errors import ConfigurationError


class IndexSet(ABC):
    """
    Policy deciding which indices belong to the search space of a given size parameter
    """

    valid_keys = ()
    # Estimator options recognized by the index set

    is_adaptive = False
    is_unbiased = False
    is_multigrid = False

    def __init__(self, ndims=1):
        """
        :param ndims: int, dimension of the indices
        """
        if int(ndims) < 1:
            raise ConfigurationError("Index set dimension must be positive, got {}".format(ndims))
        self._ndims = int(ndims)

    @property
    def ndims(self):
        return self._ndims

    @abstractmethod
    def get_index_set(self, size) -> Set[Index]:
        """
        Indices of the search space with size parameter 'size'
        :param size: int, non-negative
        :return: set of Index
        """

    def sorted_index_set(self, size):
        return sorted(self.get_index_set(size))

    def boundary(self, size):
        """
        Indices added when the size parameter grows from size - 1 to size
        :param size: int
        :return: set of Index
        """
        indices = self.get_index_set(size)
        if size <= 0:
            return indices
        return indices - self.get_index_set(size - 1)

    def __repr__(self):
        return "{}({})".format(self.__class__.__name__, self.ndims)


class SL(IndexSet):
    """
    Single level, plain (quasi-)Monte Carlo
    """

    def __init__(self):
        super().__init__(ndims=1)

    def get_index_set(self, size):
        return {Index.zero(1)}

    def __repr__(self):
        return "SL()"


class ML(IndexSet):
    """
    Levels 0, 1, ..., size
    """

    def __init__(self):
        super().__init__(ndims=1)

    def get_index_set(self, size):
        return {Index(level) for level in range(int(size) + 1)}

    def __repr__(self):
        return "ML()"


class _WeightedIndexSet(IndexSet):
    """
    Multi-index set bounding a weighted norm of the index by the size parameter
    """

    EPS = 1e-10

    def __init__(self, ndims=2, weights=None):
        """
        :param ndims: int
        :param weights: positive weights of the individual directions, default ones
        """
        super().__init__(ndims)
        if weights is None:
            weights = np.ones(self.ndims)
        weights = np.atleast_1d(np.array(weights, dtype=float))
        if weights.shape != (self.ndims,):
            raise ConfigurationError("Expected {} index set weights, got {}".format(self.ndims, len(weights)))
        if np.any(weights <= 0):
            raise ConfigurationError("Index set weights must be positive, got {}".format(weights))
        self.weights = weights

    def get_index_set(self, size):
        ranges = [range(self._max_coordinate(size, weight) + 1) for weight in self.weights]
        return {Index(coords) for coords in itertools.product(*ranges)
                if self._contains(np.array(coords, dtype=float), size)}

    @abstractmethod
    def _contains(self, coords, size):
        """
        :param coords: np.ndarray of coordinates
        :param size: int
        :return: bool
        """

    def _max_coordinate(self, size, weight):
        return int(np.floor(size / weight + self.EPS))

    def __repr__(self):
        if np.all(self.weights == 1):
            return "{}({})".format(self.__class__.__name__, self.ndims)
        return "{}({}, weights={})".format(self.__class__.__name__, self.ndims, list(self.weights))


class TD(_WeightedIndexSet):
    """
    Total degree: sum_k w_k i_k <= size
    """

    def _contains(self, coords, size):
        return np.dot(self.weights, coords) <= size + self.EPS


class FT(_WeightedIndexSet):
    """
    Full tensor: max_k w_k i_k <= size
    """

    def _contains(self, coords, size):
        return np.max(self.weights * coords) <= size + self.EPS


class HC(_WeightedIndexSet):
    """
    Hyperbolic cross: prod_k (i_k + 1)^w_k <= size + 1
    """

    def _contains(self, coords, size):
        return np.dot(self.weights, np.log(coords + 1)) <= np.log(size + 1) + self.EPS

    def _max_coordinate(self, size, weight):
        return int(np.floor((size + 1) ** (1 / weight) - 1 + self.EPS))


class AD(IndexSet):
    """
    Adaptive index set, grown index by index during the estimation,
    bounded by the 'max_search_space' option
    """

    valid_keys = ('max_search_space', 'profit_tie_break')
    is_adaptive = True

    def __init__(self, ndims=2):
        super().__init__(ndims)

    def get_index_set(self, size):
        raise NotImplementedError("Adaptive index set is constructed during the estimation")

    @staticmethod
    def admissible(index, old_set):
        """
        Index can be added if all its predecessors are expanded
        :param index: Index
        :param old_set: set of expanded indices
        :return: bool
        """
        return all(pred in old_set for pred in index.predecessors())

    @staticmethod
    def downward_closed(old_set, active_set):
        """
        Check of an adaptive set: predecessors of expanded indices are expanded,
        predecessors of active indices are expanded or active
        :return: bool
        """
        return all(pred in old_set for index in old_set for pred in index.predecessors()) and \
            all(pred in old_set or pred in active_set for index in active_set for pred in index.predecessors())

    def default_search_space(self):
        return TD(self.ndims) if self.ndims > 1 else ML()


class U(IndexSet):
    """
    Unbiased estimator, randomly picks indices of the 'max_search_space' and
    collects importance weighted differences in one accumulator per shift
    """

    valid_keys = ('max_search_space',)
    is_unbiased = True

    def __init__(self, ndims=1):
        super().__init__(ndims)

    def get_index_set(self, size):
        raise NotImplementedError("Unbiased index set uses its 'max_search_space'")

    def default_search_space(self):
        return TD(self.ndims) if self.ndims > 1 else ML()


class MG(IndexSet):
    """
    Multigrid variant of a bounded or adaptive index set. Indices are enumerated by the wrapped
    set, the number of samples at an index only grows geometrically by 'sample_mul_factor',
    so that samples are taken in nested batches.
    """

    is_multigrid = True

    def __init__(self, index_set):
        """
        :param index_set: IndexSet, any but SL, U or another MG
        """
        if not isinstance(index_set, IndexSet) or isinstance(index_set, (SL, MG)) or index_set.is_unbiased:
            raise ConfigurationError("Multigrid needs a multilevel, multi-index or adaptive index set, "
                                     "got {!r}".format(index_set))
        super().__init__(index_set.ndims)
        self.index_set = index_set

    @property
    def valid_keys(self):
        return ('sample_mul_factor',) + tuple(self.index_set.valid_keys)

    @property
    def is_adaptive(self):
        return self.index_set.is_adaptive

    def get_index_set(self, size):
        return self.index_set.get_index_set(size)

    def boundary(self, size):
        return self.index_set.boundary(size)

    def default_search_space(self):
        return self.index_set.default_search_space()

    def __repr__(self):
        return "MG({!r})".format(self.index_set)


class IndexSetSize:
    """
    Size parameter of the current index set together with the largest size reached so far
    """

    def __init__(self, size=0):
        self._current = int(size)
        self._max_reached = int(size)

    @property
    def current(self):
        return self._current

    @property
    def max_reached(self):
        return self._max_reached

    def set(self, size):
        """
        Set current size
        :param size: int
        :return: bool, True if the size is larger than any size before
        """
        size = int(size)
        if size < 0:
            raise ValueError("Index set size must be non-negative, got {}".format(size))
        new_max = size > self._max_reached
        self._current = size
        self._max_reached = max(self._max_reached, size)
        return new_max

    def reset(self):
        self._current = 0

    def __repr__(self):
        return "IndexSetSize(current={}, max_reached={})".format(self._current, self._max_reached)
