import copy
import numpy as np
from types import MappingProxyType


class History:
    """
    Append-only log of estimator records, one record for each finished tolerance.
    history[k] is the k-th record, history["mean"] the field of the latest record.
    """

    def __init__(self, records=None):
        self._records = []
        for record in records or []:
            self.append(record)

    def append(self, record):
        """
        Append a record given as a dict, it is stored as read-only mapping
        :param record: dict
        :return: None
        """
        self._records.append(MappingProxyType(copy.deepcopy(dict(record))))

    def record(self, estimator, tol, elapsed, converged):
        """
        Snapshot of the estimator state
        :param estimator: mimc.estimator.Estimator
        :param tol: float, tolerance the estimator was run with
        :param elapsed: float, wall time of the run
        :param converged: bool
        :return: None
        """
        index_set = estimator.index_set
        keys = estimator.keys()
        options = estimator.options

        record = dict(type=index_set.__class__.__name__,
                      sample_method=estimator.sample_method.__class__.__name__,
                      ndims=estimator.ndims,
                      name=options.name,
                      folder=options.folder,
                      elapsed=elapsed,
                      tol=tol,
                      converged=converged,
                      current_index_set=keys,
                      index_set=self._index_set(estimator),
                      mse=estimator.mse(),
                      rmse=estimator.rmse(),
                      mean=estimator.mean(),
                      var=estimator.var(),
                      varest=estimator.varest(),
                      bias=estimator.bias(),
                      E=self._per_index(estimator.mean_value, keys, estimator.nb_of_qoi),
                      V=self._per_index(estimator.var_value, keys, estimator.nb_of_qoi),
                      dE=self._per_index(estimator.mean_diff, keys, estimator.nb_of_qoi),
                      dV=self._per_index(estimator.var_diff, keys, estimator.nb_of_qoi),
                      T=np.array([estimator.time(key) for key in keys], dtype=float),
                      alpha=estimator.alpha(),
                      beta=estimator.beta(),
                      gamma=estimator.gamma(),
                      nb_of_samples=estimator.nb_of_samples())

        if options.cost_model is not None:
            record['W'] = np.array([estimator.cost(key) for key in keys], dtype=float)
        if index_set.is_adaptive:
            record['logbook'] = list(estimator.internals.index_set_internals.logbook)
            record['boundary'] = sorted(estimator.internals.index_set_internals.boundary)
        if options.save_samples:
            record['samples'] = {key: estimator.samples(key) for key in estimator.all_keys()}
            record['samples_diff'] = {key: estimator.samples_diff(key) for key in estimator.all_keys()}

        self.append(record)

    @staticmethod
    def _per_index(statistic, keys, nb_of_qoi):
        if not keys:
            return np.empty((0, nb_of_qoi))
        return np.array([statistic(key) for key in keys], dtype=float)

    @staticmethod
    def _index_set(estimator):
        internals = estimator.internals
        if estimator.index_set.is_adaptive:
            return sorted(internals.index_set_internals.max_index_set | internals.current_index_set)
        if estimator.index_set.is_unbiased:
            return internals.index_set_internals.max_search_space.sorted_index_set(
                estimator.options.max_index_set_param)
        return estimator.index_set.sorted_index_set(internals.index_set_size.max_reached)

    @property
    def records(self):
        return list(self._records)

    def __getitem__(self, item):
        if isinstance(item, str):
            if not self._records:
                raise KeyError("History is empty")
            return self._records[-1][item]
        return self._records[item]

    def __contains__(self, field):
        return bool(self._records) and field in self._records[-1]

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __repr__(self):
        return "History({} records)".format(len(self._records))
