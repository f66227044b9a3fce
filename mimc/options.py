"""
Estimator options: allow-list, defaults, validation and loading from a YAML file
"""
import attr
import numbers
from ruamel.yaml import YAML
from typing import Any, Callable
from mimc.errors import ConfigurationError
from mimc.index_set import IndexSet, SL
from mimc.sample_method import sobol_generator

CORE_KEYS = ('nb_of_warm_up_samples', 'nb_of_qoi', 'max_index_set_param', 'nb_of_tols', 'continuation_mul_factor',
             'sample_mul_factor', 'min_splitting', 'max_splitting', 'continuate', 'save_samples',
             'conservative_bias_estimate', 'do_mse_splitting', 'do_regression', 'verbose', 'save', 'folder', 'name',
             'cost_model', 'max_level', 'default_alpha', 'default_beta', 'default_gamma', 'sampling_pool', 'seed')


def _positive_int(instance, attribute, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise ConfigurationError("Option '{}' must be a positive integer, got {!r}".format(attribute.name, value))


def _non_negative_int(instance, attribute, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 0:
        raise ConfigurationError("Option '{}' must be a non-negative integer, got {!r}".format(attribute.name, value))


def _real(instance, attribute, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigurationError("Option '{}' must be a real number, got {!r}".format(attribute.name, value))


def _flag(instance, attribute, value):
    if not isinstance(value, bool):
        raise ConfigurationError("Option '{}' must be True or False, got {!r}".format(attribute.name, value))


def _string(instance, attribute, value):
    if not isinstance(value, str):
        raise ConfigurationError("Option '{}' must be a string, got {!r}".format(attribute.name, value))


def _optional_callable(instance, attribute, value):
    if value is not None and not callable(value):
        raise ConfigurationError("Option '{}' must be callable, got {!r}".format(attribute.name, value))


def _callable(instance, attribute, value):
    if not callable(value):
        raise ConfigurationError("Option '{}' must be callable, got {!r}".format(attribute.name, value))


def _optional_non_negative_int(instance, attribute, value):
    if value is not None:
        _non_negative_int(instance, attribute, value)


def _shifts(instance, attribute, value):
    if not callable(value):
        _positive_int(instance, attribute, value)
        if value < 2:
            raise ConfigurationError("At least two shifts are needed to estimate the variance, got {}".format(value))


def _search_space(instance, attribute, value):
    if value is None:
        return
    if not isinstance(value, IndexSet) or value.is_adaptive or value.is_unbiased:
        raise ConfigurationError("Option 'max_search_space' must be a bounded index set, got {!r}".format(value))


def _tie_break(instance, attribute, value):
    if value not in ("smallest", "largest"):
        raise ConfigurationError("Option 'profit_tie_break' must be 'smallest' or 'largest', got {!r}".format(value))


def _sampling_pool(instance, attribute, value):
    if value is not None and not hasattr(value, 'evaluate'):
        raise ConfigurationError("Option 'sampling_pool' must provide 'evaluate', got {!r}".format(value))


@attr.s(auto_attribs=True, frozen=True, kw_only=True)
class EstimatorOptions:
    """
    Validated estimator options, see 'default_settings' for defaults depending on the strategies
    """
    nb_of_warm_up_samples: int = attr.ib(default=20, validator=_positive_int)
    # Samples taken at every newly added index
    nb_of_qoi: int = attr.ib(default=1, validator=_positive_int)
    # Number of quantities of interest returned by the sampling function
    max_index_set_param: int = attr.ib(default=10, validator=_non_negative_int)
    nb_of_tols: int = attr.ib(default=10, validator=_positive_int)
    continuation_mul_factor: float = attr.ib(default=1.2, validator=_real)
    sample_mul_factor: float = attr.ib(default=2, validator=_real)
    min_splitting: float = attr.ib(default=0.5, validator=_real)
    max_splitting: float = attr.ib(default=0.99, validator=_real)
    continuate: bool = attr.ib(default=True, validator=_flag)
    save_samples: bool = attr.ib(default=False, validator=_flag)
    conservative_bias_estimate: bool = attr.ib(default=False, validator=_flag)
    do_mse_splitting: bool = attr.ib(default=True, validator=_flag)
    do_regression: bool = attr.ib(default=True, validator=_flag)
    verbose: bool = attr.ib(default=False, validator=_flag)
    save: bool = attr.ib(default=False, validator=_flag)
    folder: str = attr.ib(default=".", validator=_string)
    name: str = attr.ib(default="", validator=_string)
    cost_model: Callable = attr.ib(default=None, validator=_optional_callable)
    # Cost of one sample at an index, index -> float
    max_level: int = attr.ib(default=None, validator=_optional_non_negative_int)
    # Largest coordinate an adaptive index may have
    default_alpha: float = attr.ib(default=1.0, validator=_real)
    default_beta: float = attr.ib(default=1.0, validator=_real)
    default_gamma: float = attr.ib(default=1.0, validator=_real)
    sampling_pool: Any = attr.ib(default=None, validator=_sampling_pool)
    seed: int = attr.ib(default=None, validator=_optional_non_negative_int)

    ### Index set and sample method options ###
    max_search_space: IndexSet = attr.ib(default=None, validator=_search_space)
    profit_tie_break: str = attr.ib(default="smallest", validator=_tie_break)
    nb_of_shifts: Any = attr.ib(default=10, validator=_shifts)
    point_generator: Callable = attr.ib(default=sobol_generator, validator=_callable)

    def __attrs_post_init__(self):
        if not 0 < self.min_splitting <= self.max_splitting < 1:
            raise ConfigurationError("Expected 0 < min_splitting <= max_splitting < 1, got {} and {}".format(
                self.min_splitting, self.max_splitting))
        if self.continuation_mul_factor < 1:
            raise ConfigurationError("Option 'continuation_mul_factor' must be at least 1, got {}".format(
                self.continuation_mul_factor))
        if self.sample_mul_factor <= 1:
            raise ConfigurationError("Option 'sample_mul_factor' must be larger than 1, got {}".format(
                self.sample_mul_factor))


def valid_keys(index_set, sample_method):
    """
    Allowed option names for the combination of strategies
    :param index_set: mimc.index_set.IndexSet
    :param sample_method: mimc.sample_method.SampleMethod
    :return: set of str
    """
    return set(CORE_KEYS) | set(index_set.valid_keys) | set(sample_method.valid_keys)


def default_settings(index_set, sample_method):
    """
    Defaults depending on the strategies
    :return: dict
    """
    settings = dict(nb_of_warm_up_samples=sample_method.default_warm_up_samples,
                    max_index_set_param=0 if isinstance(index_set, SL) else 10)
    if index_set.is_adaptive or index_set.is_unbiased:
        settings['max_search_space'] = index_set.default_search_space()
    return settings


def parse_options(index_set, sample_method, settings):
    """
    Check option names and values
    :param index_set: mimc.index_set.IndexSet
    :param sample_method: mimc.sample_method.SampleMethod
    :param settings: dict of user options
    :return: EstimatorOptions
    """
    unknown = set(settings) - valid_keys(index_set, sample_method)
    if unknown:
        raise ConfigurationError("Unknown option(s) {} for {} index set with {} sample method".format(
            sorted(unknown), index_set, sample_method))

    options = default_settings(index_set, sample_method)
    options.update(settings)
    options = EstimatorOptions(**options)

    if options.nb_of_warm_up_samples < sample_method.min_warm_up_samples:
        raise ConfigurationError("{} needs at least {} warm up samples to estimate variances, got {}".format(
            sample_method, sample_method.min_warm_up_samples, options.nb_of_warm_up_samples))
    if options.max_search_space is None:
        if index_set.is_adaptive or index_set.is_unbiased:
            raise ConfigurationError("Index set {!r} needs option 'max_search_space'".format(index_set))
    elif options.max_search_space.ndims != index_set.ndims:
        raise ConfigurationError("Search space {!r} does not match the dimension of {!r}".format(
            options.max_search_space, index_set))
    return options


def load_settings(path):
    """
    Read plain option values from a YAML file, e.g.
        nb_of_warm_up_samples: 10
        max_index_set_param: 6
        continuate: false
    :param path: str
    :return: dict
    """
    yaml = YAML(typ='safe')
    with open(path) as file:
        settings = yaml.load(file)

    if settings is None:
        return {}
    if not isinstance(settings, dict):
        raise ConfigurationError("Settings file {} must contain a mapping, got {}".format(path, type(settings)))
    return dict(settings)
