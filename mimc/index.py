import numpy as np


class Index(tuple):
    """
    Immutable multi-index of non-negative integers, e.g. Index(2) is level 2 and Index(1, 3) a 2D multi-index.
    Ordering is the lexicographic tuple ordering.
    """

    def __new__(cls, *coords):
        if len(coords) == 1 and not np.isscalar(coords[0]):
            coords = tuple(coords[0])
        coords = tuple(int(c) for c in coords)
        if len(coords) == 0:
            raise ValueError("Index needs at least one coordinate")
        if any(c < 0 for c in coords):
            raise ValueError("Index coordinates must be non-negative, got {}".format(coords))
        return super().__new__(cls, coords)

    @classmethod
    def zero(cls, ndims):
        return cls((0,) * ndims)

    @classmethod
    def unit(cls, ndims, dim, value=1):
        """
        Index with 'value' in direction 'dim' and zeros elsewhere
        """
        coords = [0] * ndims
        coords[dim] = value
        return cls(coords)

    @property
    def ndims(self):
        return len(self)

    def __add__(self, other):
        self._check_ndims(other)
        return Index(a + b for a, b in zip(self, other))

    def __sub__(self, other):
        self._check_ndims(other)
        return Index(a - b for a, b in zip(self, other))

    def _check_ndims(self, other):
        if len(other) != len(self):
            raise ValueError("Index dimensions differ: {} and {}".format(len(self), len(other)))

    def is_zero(self):
        return not any(self)

    def dominates(self, other):
        """
        Component-wise self <= other
        """
        return all(a <= b for a, b in zip(self, other))

    def predecessors(self):
        """
        Backward neighbours, each positive coordinate decremented by one
        :return: List[Index]
        """
        return [Index(self[:k] + (self[k] - 1,) + self[k + 1:]) for k in range(len(self)) if self[k] > 0]

    def successors(self):
        """
        Forward neighbours, each coordinate incremented by one
        :return: List[Index]
        """
        return [Index(self[:k] + (self[k] + 1,) + self[k + 1:]) for k in range(len(self))]

    def axis(self):
        """
        Direction of an index lying on a coordinate axis, None for the root or off-axis indices
        """
        nonzero = [k for k, c in enumerate(self) if c > 0]
        if len(nonzero) == 1:
            return nonzero[0]
        return None

    def __repr__(self):
        return "Index{}".format(tuple(self)).replace(",)", ")")


def as_index(index):
    """
    Convert int or sequence to Index
    """
    if isinstance(index, Index):
        return index
    if np.ndim(index) == 0:
        return Index(int(index))
    return Index(index)
