"""
Common testing support module
=============================

Common testing support module providing defaults, functions and mocks.

Workers simulated in one process each get their own
:class:`hypersearch.storage.jobsdb.JobsDB`, hence their own connection id, over
one shared database.

"""
import copy
import os

import hypersearch.core
from hypersearch.core.io.checkpoints import CheckpointStore
from hypersearch.core.io.database.ephemeraldb import EphemeralDB
from hypersearch.core.io.predictions import PredictionWriter
from hypersearch.storage.jobsdb import JobsDB

PREDICTED_FIELD = "consumption"

base_description = {
    "model": {"type": "movingaverage", "window": 3},
    "control": {
        "predicted_field": PREDICTED_FIELD,
        "iteration_count": -1,
        "iteration_count_infer_only": 0,
        "metrics": [{"metric": "aae", "window": 100}],
        "logged_metrics": [".*"],
        "optimize_key": "aae",
    },
}

base_job_params = {
    "description": base_description,
    "strategy": {"type": "gridsearch", "permutations": {"model.window": [1, 2, 4]}},
}


def generate_records(num, period=10, field=PREDICTED_FIELD):
    """Generate a periodic sawtooth series of `num` records"""
    return [{"timestamp": i, field: float(i % period)} for i in range(num)]


def dummy_job_params(permutations=None, **dummy_model):
    """Return params of a job run with dummy models

    Parameters
    ----------
    permutations: dict, optional
        Dummy model params to try, default tries three metric values.
    **dummy_model
        Params shared by all the dummy models.

    """
    if permutations is None:
        permutations = {"metric_value": [3.0, 1.0, 2.0]}

    return {
        "dummy_model": dict(dummy_model),
        "strategy": {"type": "gridsearch", "permutations": dict(permutations)},
    }


def runner_config(**overrides):
    """Return the runner configuration with defaults and the given overrides"""
    config = copy.deepcopy(hypersearch.core.config.runner.to_dict())
    config.update(overrides)
    return config


def create_job_stores(num, database=None):
    """Return `num` stores sharing one database, EphemeralDB by default"""
    if database is None:
        database = EphemeralDB()

    return [JobsDB(database) for _ in range(num)]


def runner_options(tmp_dir, job_id, **config_overrides):
    """Return the keyword arguments of runners writing into `tmp_dir`"""
    return dict(
        checkpoint_store=CheckpointStore(os.path.join(tmp_dir, "checkpoints")),
        prediction_writer=PredictionWriter(os.path.join(tmp_dir, "predictions"), job_id),
        runner_config=runner_config(**config_overrides),
    )


def insert_job(job_store, params=None, **kwargs):
    """Insert a job with default params and return its id"""
    if params is None:
        params = base_job_params

    return job_store.job_insert(
        client=kwargs.pop("client", "test"),
        cmd_line=kwargs.pop("cmd_line", ""),
        params=params,
        **kwargs,
    )
