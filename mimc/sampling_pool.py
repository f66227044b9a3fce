import sys
import time
import traceback
from abc import ABC, abstractmethod
from typing import List
from multiprocessing import Pool as ProcPool
from multiprocessing import pool
from mimc.errors import SamplingFailure
from mimc.sample_task import SampleTask, SampleResult


class SamplingPool(ABC):
    """
    Determining the runtime environment of samples, eg single process, multiple processes, threads ...
    """

    @abstractmethod
    def evaluate(self, sample_function, tasks: List[SampleTask]) -> List[SampleResult]:
        """
        Evaluate all tasks, results are returned in the order of the tasks
        :param sample_function: callable, (index, x) -> value | (value, diff) | (value, diff, cost)
        :param tasks: list of SampleTask
        :return: list of SampleResult
        :raises SamplingFailure: if any of the samples failed
        """

    @staticmethod
    def calculate_sample(sample_function, task):
        """
        Method for calculating results
        :param sample_function: callable
        :param task: SampleTask
        :return: SampleResult, error message with traceback if the sample failed
        """
        res = None
        err_msg = ""
        running_time = 0

        try:
            start = time.time()
            res = sample_function(task.index, task.x)
            running_time = time.time() - start
        except Exception:
            str_list = traceback.format_exception(*sys.exc_info())
            err_msg = "".join(str_list)

        return SampleResult(task.index, res, err_msg, running_time)

    @staticmethod
    def _collect(results):
        """
        Check the batch for failed samples
        :param results: list of SampleResult
        :return: results
        """
        for result in results:
            if result.err_msg:
                raise SamplingFailure(result.index, result.err_msg)
        return results

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class OneProcessPool(SamplingPool):
    """
    Everything is running in one process
    """

    def evaluate(self, sample_function, tasks):
        results = [SamplingPool.calculate_sample(sample_function, task) for task in tasks]
        return self._collect(results)


class ProcessPool(SamplingPool):
    """
    Suitable for local parallel sampling, the sampling function has to be picklable
    """

    def __init__(self, n_processes):
        self._pool = ProcPool(n_processes)

    def evaluate(self, sample_function, tasks):
        results = self._pool.starmap(SamplingPool.calculate_sample, [(sample_function, task) for task in tasks])
        return self._collect(results)

    def close(self):
        self._pool.close()
        self._pool.join()


class ThreadPool(ProcessPool):
    """
    Suitable for local parallel sampling of functions calling an external program
    """

    def __init__(self, n_thread):
        self._pool = pool.ThreadPool(n_thread)
