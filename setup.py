#!/usr/bin/env python3
# -*- encoding: utf-8 -*-

import io
import re
from os.path import dirname
from os.path import join

from setuptools import setup

__version__ = '0.1.0'


# For long description:
def read(*names, **kwargs):
    return io.open(
        join(dirname(__file__), *names),
        encoding=kwargs.get('encoding', 'utf8')
    ).read()

long_description='%s\n%s' % (
    re.compile('^.. start-badges.*^.. end-badges', re.M | re.S).sub('', read('README.rst')),
    re.sub(':[a-z]+:`~?(.*?)`', r'``\1``', read('CHANGES.rst'))
)

setup(
    # Project (package) name
    name='mimc',
    version=__version__,
    license='GPL 3.0',
    description='Adaptive Multilevel and Multi-Index (quasi-)Monte Carlo estimators.',
    long_description=long_description,
    classifiers=[
        # complete classifier list: http://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Operating System :: Unix',
        'Operating System :: POSIX',
        'Operating System :: Microsoft :: Windows',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: Scientific/Engineering',
    ],
    keywords=[
        'multilevel monte carlo', 'multi-index monte carlo', 'quasi-monte carlo', 'uncertainty quantification',
    ],
    packages=['mimc', 'mimc.sim', 'mimc.tool'],
    # include automatically all files in the template MANIFEST.in
    include_package_data=True,
    zip_safe=False,
    python_requires='>=3.7',
    install_requires=['numpy', 'scipy>=1.7', 'h5py>=3.1.0', 'ruamel.yaml', 'attrs'],
    extras_require={
        'test': ['pytest'],
    },
)
