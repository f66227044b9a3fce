import attr
import numpy as np
from typing import Any
from mimc.index import Index


@attr.s(auto_attribs=True)
class SampleTask:
    """
    One evaluation of the sampling function, passed from the Estimator to a SamplingPool
    User shouldn't change this class
    """
    index: Index
    # Index the sample is taken at

    x: np.ndarray
    # Random inputs, one entry for each distribution

    shift: int = 0
    # Shift the point belongs to (QMC), always 0 for MC


@attr.s(auto_attribs=True)
class SampleResult:
    """
    Outcome of a SampleTask
    """
    index: Index

    result: Any = None
    # Return value of the sampling function

    err_msg: str = ""
    # Formatted traceback if the sampling function raised

    running_time: float = 0.0
