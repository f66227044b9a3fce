import os
import logging
import numpy as np
from mimc import Estimator, ML, TD, AD, MC, QMC, ThreadPool
from mimc.sim.synth_simulation import SynthSampleFunction
from mimc.tool.hdf5 import HistoryHDF


def multilevel(tol=1e-2):
    """
    Multilevel Monte Carlo on a one dimensional synthetic problem
    """
    sample_function = SynthSampleFunction(ndims=1, alpha=2.0, beta=2.0, gamma=1.0, mu=1.0)
    estimator = Estimator(ML(), MC(), sample_function, sample_function.distributions, max_index_set_param=6,
                          cost_model=sample_function.cost, verbose=True, seed=1234)
    history = estimator.run(tol)

    print("mean: {}, rmse: {}".format(history["mean"], history["rmse"]))
    for index, n_samples in zip(history["current_index_set"], history["nb_of_samples"]):
        print("{}: {} samples".format(index, n_samples))
    return history


def multi_index_qmc(tol=5e-2):
    """
    Multi-index quasi-Monte Carlo with a total degree index set, samples evaluated by a thread pool
    """
    sample_function = SynthSampleFunction(ndims=2, alpha=1.0, beta=2.0, gamma=1.0, mu=1.0, cutoff=4)
    with ThreadPool(4) as sampling_pool:
        estimator = Estimator(TD(2), QMC(), sample_function, sample_function.distributions,
                              cost_model=sample_function.cost, sampling_pool=sampling_pool, nb_of_shifts=8, seed=1234)
        history = estimator.run(tol)

    exact = sample_function.exact_mean(TD(2).get_index_set(4))
    print("mean: {}, exact: {}, converged: {}".format(history["mean"], exact, history["converged"]))
    return history


def adaptive(tol=2e-2, work_dir="_example_output"):
    """
    Adaptive multi-index Monte Carlo, history saved to HDF5 after every tolerance
    """
    sample_function = SynthSampleFunction(ndims=2, alpha=1.0, beta=2.0, gamma=1.0, mu=1.0, cutoff=3)
    estimator = Estimator(AD(2), MC(), sample_function, sample_function.distributions,
                          cost_model=sample_function.cost, save=True, folder=work_dir, name="adaptive", seed=1234)
    history = estimator.run(tol)

    for index, profit in history["logbook"]:
        print("{} added, profit {:.3g}".format(index, profit))

    loaded = HistoryHDF(estimator.history_file()).load()
    print("{} records in {}".format(len(loaded), os.path.abspath(estimator.history_file())))
    return history


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    np.set_printoptions(precision=4)
    multilevel()
    multi_index_qmc()
    adaptive()
