import numpy as np
import pytest
from scipy import stats
from mimc.index import Index
from mimc.index_set import SL, ML
from mimc.sample_method import MC
from mimc.sample_task import SampleTask
from mimc.sampling_pool import OneProcessPool, ProcessPool, ThreadPool
from mimc.estimator import Estimator
from mimc.sim.synth_simulation import SynthSampleFunction
from mimc.errors import SamplingFailure


def make_tasks(n):
    x = np.linspace(-2, 2, n)
    return [SampleTask(Index(k % 3), np.array([x[k]])) for k in range(n)]


@pytest.mark.parametrize("pool_factory", [OneProcessPool, lambda: ThreadPool(4), lambda: ProcessPool(2)])
def test_sampling_pools(pool_factory):
    sample_function = SynthSampleFunction(ndims=1, mu=1.0, alpha=1.0, beta=2.0)
    tasks = make_tasks(30)
    with pool_factory() as sampling_pool:
        results = sampling_pool.evaluate(sample_function, tasks)

    assert len(results) == len(tasks)
    for task, result in zip(tasks, results):
        assert result.index == task.index
        assert result.err_msg == ""
        assert result.running_time >= 0
        assert np.allclose(result.result, sample_function(task.index, task.x))


@pytest.mark.parametrize("pool_factory", [OneProcessPool, lambda: ThreadPool(2), lambda: ProcessPool(2)])
def test_sampling_failure(pool_factory):
    sample_function = SynthSampleFunction(ndims=1, fail_index=Index(2))
    with pool_factory() as sampling_pool:
        with pytest.raises(SamplingFailure) as excinfo:
            sampling_pool.evaluate(sample_function, make_tasks(6))
    assert excinfo.value.index == Index(2)
    assert "Sample failed at index Index(2)" in excinfo.value.err_msg
    assert "Traceback" in excinfo.value.err_msg


def test_calculate_sample():
    result = OneProcessPool.calculate_sample(lambda index, x: 2 * x[0], SampleTask(Index(0), np.array([1.5])))
    assert result.result == 3.0
    assert result.err_msg == ""

    result = OneProcessPool.calculate_sample(lambda index, x: 1 / 0, SampleTask(Index(0), np.array([1.5])))
    assert result.result is None
    assert "ZeroDivisionError" in result.err_msg


@pytest.mark.parametrize("pool_factory", [lambda: ThreadPool(4), lambda: ProcessPool(2)])
def test_estimator_with_pool(pool_factory, single_level_function):
    with pool_factory() as sampling_pool:
        estimator = Estimator(SL(), MC(), single_level_function, single_level_function.distributions,
                              sampling_pool=sampling_pool, seed=7, continuate=False)
        history = estimator.run(0.1)
    assert history["converged"]
    assert abs(history["mean"][0] - 3) < 0.5


def test_estimator_sampling_failure():
    sample_function = SynthSampleFunction(ndims=1, fail_index=Index(1))
    estimator = Estimator(ML(), MC(), sample_function, sample_function.distributions, max_index_set_param=3,
                          nb_of_warm_up_samples=5)
    with pytest.raises(SamplingFailure) as excinfo:
        estimator.run(0.1)
    assert excinfo.value.index == Index(1)
    # Nothing from the failed batch is stored
    assert estimator.nb_of_samples(Index(1)) == 0


@pytest.mark.parametrize("sample_function, nb_of_qoi", [
    (lambda index, x: np.nan, 1),
    (lambda index, x: (1.0, np.inf), 1),
    (lambda index, x: 1.0, 2),
    (lambda index, x: (1.0, 1.0, 1.0, 1.0), 1),
    (lambda index, x: (1.0, 1.0, -1.0), 1),
])
def test_invalid_results(sample_function, nb_of_qoi):
    estimator = Estimator(SL(), MC(), sample_function, [stats.norm()], nb_of_qoi=nb_of_qoi)
    with pytest.raises(SamplingFailure):
        estimator.run(0.1)
