"""
The mimc package provides adaptive Multilevel and Multi-Index (quasi-)Monte Carlo estimators.

.. currentmodule:: mimc

Subpackages
===========

.. autosummary::
     :toctree: generated
    sim
    tool


Classes
=======


Estimator
^^^^^^^^^
.. currentmodule:: mimc.estimator

.. autosummary::
    :toctree: generated

   Estimator

IndexSet
^^^^^^^^
.. currentmodule:: mimc.index_set

.. autosummary::
    :toctree: generated

   SL
   ML
   TD
   FT
   HC
   AD
   U
   MG

SampleMethod
^^^^^^^^^^^^
.. currentmodule:: mimc.sample_method

.. autosummary::
    :toctree: generated

   MC
   QMC

SamplingPool
^^^^^^^^^^^^
.. currentmodule:: mimc.sampling_pool

.. autosummary::
    :toctree: generated

   SamplingPool
   OneProcessPool
   ProcessPool
   ThreadPool

History
^^^^^^^
.. currentmodule:: mimc.history

.. autosummary::
    :toctree: generated

   History

"""

from mimc.index import Index
from mimc.index_set import SL, ML, TD, FT, HC, AD, U, MG
from mimc.sample_method import MC, QMC
from mimc.estimator import Estimator
from mimc.history import History
from mimc.options import load_settings
from mimc.sampling_pool import SamplingPool, OneProcessPool, ProcessPool, ThreadPool
from mimc.errors import ConfigurationError, SamplingFailure, InsufficientDataForRegression, IndexSetExhausted
from mimc.sim.synth_simulation import SynthSampleFunction
