"""
Common test configuration for all test subdirectories.
Put here only those things that can not be done through command line options and pytest.ini file.
"""
import sys
import os
import pytest

# Modify sys.path to have path to the source dir. This allow to run tests from sources
# without virtual environment and without installation of the package.
this_source_dir = os.path.dirname(os.path.realpath(__file__))
rel_paths = [".."]
for rel_path in rel_paths:
    sys.path.append(os.path.realpath(os.path.join(this_source_dir, rel_path)))
sys.path = [x for x in sys.path if x not in {this_source_dir, ''}]

from mimc.sim.synth_simulation import SynthSampleFunction


@pytest.fixture
def single_level_function():
    # Q = 3 + x, x ~ N(0, 1)
    return SynthSampleFunction(ndims=1, mu=3.0, sigma=1.0)


@pytest.fixture
def multilevel_function():
    return SynthSampleFunction(ndims=1, alpha=2.0, beta=2.0, gamma=1.0, mu=1.0, amplitude=1.0, sigma=1.0)


@pytest.fixture
def multi_index_function():
    # Mean differences vanish for indices with sum of coordinates above 3
    return SynthSampleFunction(ndims=2, alpha=1.0, beta=2.0, gamma=1.0, mu=1.0, amplitude=1.0, sigma=1.0, cutoff=3)
