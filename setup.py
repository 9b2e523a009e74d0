#!/usr/bin/env python
"""
ybstats - YugabyteDB Cluster Statistics Collector

A command-line tool that captures diagnostic and performance data from
every node of a YugabyteDB cluster over HTTP, stores it as numbered
snapshots, and reports the difference between two points in time.
"""

import os
from setuptools import setup, find_packages

# Read the README for long description
here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# Version
VERSION = '0.4.0'

setup(
    name='ybstats',
    version=VERSION,
    description='Cluster statistics snapshot and diff tool for YugabyteDB',
    long_description=long_description,
    long_description_content_type='text/markdown',

    license='MIT',

    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'Intended Audience :: Information Technology',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Database',
        'Topic :: System :: Monitoring',
    ],

    keywords='yugabytedb statistics snapshot diff metrics textfsm',

    packages=find_packages(exclude=['tests', 'tests.*']),

    python_requires='>=3.10',

    install_requires=[
        'PyYAML>=6.0',
        'textfsm>=1.1',
        'requests>=2.30.0',
        'urllib3>=1.26',
    ],

    extras_require={
        'dev': [
            'pytest>=7.0',
        ],
    },

    # Include package data (non-Python files)
    include_package_data=True,
    package_data={
        'ybstats': [
            'adapters/templates/*.textfsm',
        ],
    },

    # Entry points for CLI commands
    entry_points={
        'console_scripts': [
            'ybstats=ybstats.cli.main:main',
        ],
    },
)
