#!/usr/bin/env python
"""Installation script for hypersearch."""
import os

from setuptools import setup

repo_root = os.path.dirname(os.path.abspath(__file__))

with open(os.path.join(repo_root, "tests", "requirements.txt")) as f:
    tests_require = [line.strip() for line in f if line.strip()]

packages = [  # Packages must be sorted alphabetically to ease maintenance and merges.
    "hypersearch.core",
    "hypersearch.core.cli",
    "hypersearch.core.io",
    "hypersearch.core.io.database",
    "hypersearch.core.utils",
    "hypersearch.core.worker",
    "hypersearch.storage",
    "hypersearch.strategy",
    "hypersearch.testing",
]

extras_require = {
    "test": tests_require,
}
extras_require["all"] = sorted(set(sum(extras_require.values(), [])))

setup_args = dict(
    name="hypersearch",
    version="0.3.0",
    description="Distributed hyperparameter search workers",
    long_description=open(
        os.path.join(repo_root, "README.rst"), encoding="utf8"
    ).read(),
    license="BSD-3-Clause",
    author="hypersearch developers",
    author_email="hypersearch@users.noreply.github.com",
    url="https://github.com/hypersearch/hypersearch",
    packages=packages,
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "hypersearch = hypersearch.core.cli:main",
        ],
        "BaseSearchStrategy": [
            "gridsearch = hypersearch.strategy.gridsearch:GridSearch",
            "randomsearch = hypersearch.strategy.randomsearch:RandomSearch",
        ],
        "BaseModel": [
            "dummymodel = hypersearch.core.worker.dummy_runner:DummyModel",
        ],
        "Database": [
            "ephemeraldb = hypersearch.core.io.database.ephemeraldb:EphemeralDB",
            "pickleddb = hypersearch.core.io.database.pickleddb:PickledDB",
            "mongodb = hypersearch.core.io.database.mongodb:MongoDB",
        ],
        "BaseJobStore": [
            "jobsdb = hypersearch.storage.jobsdb:JobsDB",
        ],
    },
    install_requires=[
        "PyYAML",
        "pymongo>=3",
        "numpy",
        "filelock",
        "tabulate",
        "AppDirs",
        "pandas",
        "psutil",
    ],
    tests_require=tests_require,
    setup_requires=["setuptools", "appdirs"],
    extras_require=extras_require,
    # "Zipped eggs don't play nicely with namespace packaging"
    # from https://github.com/pypa/sample-namespace-packages
    zip_safe=False,
)

setup_args["keywords"] = [
    "Machine Learning",
    "Hyperparameter Search",
    "Distributed",
    "Time Series",
]

setup_args["platforms"] = ["Linux"]

setup_args["classifiers"] = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "License :: OSI Approved :: BSD License",
    "Operating System :: POSIX",
    "Operating System :: Unix",
    "Programming Language :: Python",
    "Topic :: Scientific/Engineering",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
] + [("Programming Language :: Python :: %s" % x) for x in "3 3.10 3.11 3.12".split()]

if __name__ == "__main__":
    setup(**setup_args)
