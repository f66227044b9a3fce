import numpy as np
import h5py
from mimc.index import Index
from mimc.history import History


class HistoryHDF:
    """
    Estimator history stored in a HDF5 file, each record in its own group

    Our HDF5 file structure:
        Main Group:
        Attributes:
            version: str
            n_records: int
        Keys:
            <k>: h5py.Group (k - record number, start with 0)
                Attributes:
                    type, sample_method, name, folder: str
                    ndims: int
                    elapsed, tol: float
                    converged: bool
                Keys:
                    current_index_set, index_set, boundary (adaptive only): h5py.Dataset
                        dtype: numpy.int64
                        shape: (N, ndims)
                    mse, rmse, mean, var, varest, bias: h5py.Dataset
                        dtype: numpy.float64
                        shape: (nb_of_qoi,)
                    E, V, dE, dV: h5py.Dataset
                        dtype: numpy.float64
                        shape: (N, nb_of_qoi), N - size of current_index_set
                    T, W, nb_of_samples: h5py.Dataset
                        shape: (N,)
                    alpha, beta, gamma: h5py.Dataset
                        shape: (ndims,)
                    logbook: h5py.Group, adaptive index set only
                        Keys:
                            indices: h5py.Dataset, shape (M, ndims)
                            profits: h5py.Dataset, shape (M,)
                    samples, samples_diff: h5py.Group, with 'save_samples' only
                        Keys:
                            <i_1>_<i_2>...: h5py.Dataset, shape (n, nb_of_qoi)
    """

    VERSION = '1.0.0'
    SCALARS = ('type', 'sample_method', 'name', 'folder', 'ndims', 'elapsed', 'tol', 'converged')
    INDEX_LISTS = ('current_index_set', 'index_set', 'boundary')
    SAMPLE_GROUPS = ('samples', 'samples_diff')

    def __init__(self, file_path):
        """
        :param file_path: hdf5 file path
        """
        self.file_name = file_path

    def save(self, history):
        """
        Write all records, existing file content is replaced
        :param history: mimc.history.History
        :return: None
        """
        with h5py.File(self.file_name, "w") as hdf_file:
            hdf_file.attrs['version'] = HistoryHDF.VERSION
            hdf_file.attrs['n_records'] = len(history)
            for k, record in enumerate(history):
                self._save_record(hdf_file.create_group(str(k)), record)

    def _save_record(self, group, record):
        for name, value in record.items():
            if name in HistoryHDF.SCALARS:
                group.attrs[name] = value
            elif name in HistoryHDF.INDEX_LISTS:
                group.create_dataset(name, data=self._indices_array(value, record['ndims']))
            elif name == 'logbook':
                logbook = group.create_group(name)
                logbook.create_dataset('indices', data=self._indices_array([index for index, _ in value],
                                                                           record['ndims']))
                logbook.create_dataset('profits', data=np.array([profit for _, profit in value], dtype=float))
            elif name in HistoryHDF.SAMPLE_GROUPS:
                samples = group.create_group(name)
                for index, values in value.items():
                    samples.create_dataset(self._index_name(index), data=values)
            else:
                group.create_dataset(name, data=np.asarray(value))

    def load(self):
        """
        Read records back
        :return: mimc.history.History
        """
        history = History()
        with h5py.File(self.file_name, "r") as hdf_file:
            for k in range(int(hdf_file.attrs['n_records'])):
                history.append(self._load_record(hdf_file[str(k)]))
        return history

    def _load_record(self, group):
        record = {}
        for name, value in group.attrs.items():
            record[name] = value.item() if isinstance(value, np.generic) else value

        for name, item in group.items():
            if name in HistoryHDF.INDEX_LISTS:
                record[name] = [Index(row) for row in item[()]]
            elif name == 'logbook':
                record[name] = [(Index(row), float(profit))
                                for row, profit in zip(item['indices'][()], item['profits'][()])]
            elif name in HistoryHDF.SAMPLE_GROUPS:
                record[name] = {self._parse_index_name(key): dset[()] for key, dset in item.items()}
            else:
                record[name] = item[()]
        return record

    @staticmethod
    def _indices_array(indices, ndims):
        return np.array([tuple(index) for index in indices], dtype=np.int64).reshape(-1, ndims)

    @staticmethod
    def _index_name(index):
        return "_".join(str(c) for c in index)

    @staticmethod
    def _parse_index_name(name):
        return Index(int(c) for c in name.split("_"))
