#!/usr/bin/env python
"""Example usage and tests for :mod:`hypersearch.core.io.config`."""
import argparse
import os

import pytest
import yaml

import hypersearch.core
from hypersearch.core.io.config import Configuration, ConfigurationError


@pytest.fixture
def yaml_config():
    """Create a simple yaml config file"""
    return {"batch_size": 5, "worker": {"client": "yaml_client"}}


@pytest.fixture
def yaml_path(yaml_config, tmp_path):
    """Write the yaml config in a file"""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(yaml_config))
    return str(path)


@pytest.fixture
def config():
    """Configuration with a sub-configuration"""
    config = Configuration()
    config.add_option("batch_size", option_type=int, default=10, env_var="HS_TEST_BATCH")
    config.add_option("enabled", option_type=bool, default=False, env_var="HS_TEST_ENABLED")

    worker = Configuration()
    worker.add_option("client", option_type=str, default="host")
    config.worker = worker

    return config


def test_default(config):
    """Defaults are returned when nothing else is set"""
    assert config.batch_size == 10
    assert config.worker.client == "host"


def test_precedence(config, yaml_path, monkeypatch):
    """Value > env var > yaml > default"""
    config.load_yaml(yaml_path)
    assert config.batch_size == 5
    assert config.worker.client == "yaml_client"

    monkeypatch.setenv("HS_TEST_BATCH", "3")
    assert config.batch_size == 3

    config.batch_size = 1
    assert config.batch_size == 1


def test_bool_from_env_var(config, monkeypatch):
    """Strings of environment variables are cast to bool"""
    monkeypatch.setenv("HS_TEST_ENABLED", "true")
    assert config.enabled is True

    monkeypatch.setenv("HS_TEST_ENABLED", "0")
    assert config.enabled is False


def test_empty_yaml(config, tmp_path):
    """An empty file changes nothing"""
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config.load_yaml(str(path))
    assert config.batch_size == 10


def test_unknown_yaml_key(config, tmp_path):
    """Keys without option are reported"""
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.dump({"bad_size": 2}))

    with pytest.raises(ConfigurationError) as exc:
        config.load_yaml(str(path))

    assert "bad_size" in str(exc.value)


def test_unknown_attribute(config):
    """Reading an unknown option raises ConfigurationError"""
    with pytest.raises(ConfigurationError):
        config.nope


def test_no_default():
    """Reading an option with no value raises ConfigurationError"""
    config = Configuration()
    config.add_option("required", option_type=str)

    with pytest.raises(ConfigurationError):
        config.required


def test_bad_type(config):
    """Values are validated against the option type"""
    with pytest.raises(TypeError):
        config.batch_size = "not a number"


def test_set_unknown_option(config):
    """Only configurations can be set on unknown keys"""
    with pytest.raises(TypeError):
        config.new_option = 1


def test_duplicate_option(config):
    """Options cannot be defined twice"""
    with pytest.raises(ValueError):
        config.add_option("batch_size", option_type=int)


def test_dotted_access(config):
    """Options can be read and set with dotted keys"""
    config["worker.client"] = "set"
    assert config["worker.client"] == "set"
    assert config.worker.client == "set"


def test_help(config):
    """Default values are appended to the help"""
    assert config.help("batch_size") == "Undocumented (default: 10)"


def test_to_dict_and_from_dict(config):
    """from_dict sets given options and unsets the others"""
    config.batch_size = 2
    assert config.to_dict() == {
        "batch_size": 2,
        "enabled": False,
        "worker": {"client": "host"},
    }

    config.from_dict({"worker": {"client": "other"}})
    assert config.batch_size == 10
    assert config.worker.client == "other"


def test_add_arguments(config):
    """Options become command line arguments without default"""
    parser = argparse.ArgumentParser()
    config.add_arguments(parser)

    args = vars(parser.parse_args(["--batch-size", "4"]))
    assert args == {"batch_size": 4, "enabled": None}


def test_global_config_sections():
    """Global configuration defines storage, worker and runner sections"""
    config = hypersearch.core.config
    assert config.storage.type == "jobsdb"
    assert config.storage.database.type == "PickledDB"
    assert config.worker.batch_size == 10
    assert config.runner.first_job_results_period == 2
    assert config.debug is False


def test_global_config_env_var(monkeypatch, tmp_path):
    """Storage can be redirected through environment variables"""
    host = os.path.join(str(tmp_path), "db.pkl")
    monkeypatch.setenv("HYPERSEARCH_DB_ADDRESS", host)
    assert hypersearch.core.config.storage.database.host == host


def test_option_without_env_var(config, yaml_path):
    """Options without environment variable fall back on yaml and default"""
    assert config.worker.client == "host"

    config.load_yaml(yaml_path)
    assert config.worker.client == "yaml_client"


def test_global_runner_config_to_dict(monkeypatch):
    """Runner options without environment variable resolve to their defaults"""
    monkeypatch.delenv("HYPERSEARCH_ENABLE_MATURITY", raising=False)
    runner_config = hypersearch.core.config.runner.to_dict()

    assert runner_config["model_update_period"] == 100
    assert runner_config["maturity_max_change"] == 0.005
    assert runner_config["enable_maturity"] is True
