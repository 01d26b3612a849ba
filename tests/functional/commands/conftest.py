#!/usr/bin/env python
"""Common fixtures for functional tests of the commands."""
import pytest
import yaml

from hypersearch.core.io.database.pickleddb import PickledDB
from hypersearch.storage.jobsdb import JobsDB


@pytest.fixture()
def config_file(tmp_path):
    """Configuration storing jobs in a pickled file and outputs in `tmp_path`"""
    config = {
        "storage": {
            "type": "jobsdb",
            "database": {"type": "pickleddb", "host": str(tmp_path / "db.pkl")},
        },
        "worker": {
            "output_dir": str(tmp_path / "predictions"),
            "checkpoint_dir": str(tmp_path / "checkpoints"),
            "client": "functional",
        },
    }
    path = tmp_path / "hypersearch_config.yaml"
    path.write_text(yaml.safe_dump(config))

    return str(path)


@pytest.fixture()
def storage(tmp_path):
    """Store reading the same file as the commands"""
    return JobsDB(PickledDB(host=str(tmp_path / "db.pkl")))
