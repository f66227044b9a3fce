class ConfigurationError(ValueError):
    """
    Unrecognized, missing or conflicting estimator option
    """


class SamplingFailure(RuntimeError):
    """
    The user sampling function failed to produce a sample
    """

    def __init__(self, index, err_msg):
        """
        :param index: mimc.index.Index, where the sample was requested
        :param err_msg: str, formatted traceback of the original exception
        """
        self.index = index
        self.err_msg = err_msg
        super().__init__("Sample at index {} failed:\n{}".format(index, err_msg))


class InsufficientDataForRegression(ValueError):
    """
    Not enough sampled indices to fit a rate
    """


class IndexSetExhausted(RuntimeError):
    """
    The index set reached its configured bound before the tolerance was met
    """
