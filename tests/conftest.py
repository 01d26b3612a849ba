#!/usr/bin/env python
"""Common fixtures and utils for unittests and functional tests."""
import copy

import pytest

import hypersearch.core
from hypersearch.core.io.database.ephemeraldb import EphemeralDB
from hypersearch.storage.jobsdb import JobsDB

# So that assert messages show up in tests defined outside testing suite.
pytest.register_assert_rewrite("hypersearch.testing")
from hypersearch import testing  # noqa: E402


def pytest_addoption(parser):
    parser.addoption(
        "--mongodb",
        action="store_true",
        default=False,
        help="Include MongoDB tests. They need a MongoDB server listening on localhost.",
    )


@pytest.fixture(scope="session", autouse=True)
def shield_from_user_config(request):
    """Do not read user's yaml global config."""
    _pop_out_yaml_from_config(hypersearch.core.config)


def _pop_out_yaml_from_config(config):
    """Remove any configuration fetch from yaml file"""
    for key in config._config.keys():
        config._config[key].pop("yaml", None)

    for key in config._subconfigs.keys():
        _pop_out_yaml_from_config(config._subconfigs[key])


def _snapshot_config(config):
    return (
        copy.deepcopy(config._config),
        {key: _snapshot_config(sub) for key, sub in config._subconfigs.items()},
    )


def _restore_config(config, snapshot):
    settings, subconfigs = snapshot
    config._config.clear()
    config._config.update(settings)
    for key, sub_snapshot in subconfigs.items():
        _restore_config(config._subconfigs[key], sub_snapshot)


@pytest.fixture(autouse=True)
def restore_global_config():
    """Undo changes commands and tests make to the global configuration"""
    snapshot = _snapshot_config(hypersearch.core.config)
    yield
    _restore_config(hypersearch.core.config, snapshot)


@pytest.fixture()
def database():
    """Empty in-memory database"""
    return EphemeralDB()


@pytest.fixture()
def job_store(database):
    """Job store over an empty in-memory database"""
    return JobsDB(database)


@pytest.fixture()
def job_stores(database):
    """Three job stores sharing one database, as three workers would"""
    return testing.create_job_stores(3, database)


@pytest.fixture()
def records():
    """Sawtooth series of 200 records"""
    return testing.generate_records(200)


@pytest.fixture()
def job_params():
    """Params of a grid search over three moving average windows"""
    return copy.deepcopy(testing.base_job_params)


@pytest.fixture()
def job_id(job_store, job_params):
    """Id of a job inserted with `job_params`"""
    return testing.insert_job(job_store, job_params)
