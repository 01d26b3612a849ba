#!/usr/bin/env python
"""Perform functional tests of the worker command."""
import json
import os

import hypersearch.core.cli
from hypersearch import testing
from hypersearch.core.worker.job_results import JobResults
from hypersearch.storage.base import (
    CMPL_REASON_SUCCESS,
    STATUS_COMPLETED,
)


def insert_dummy_job(storage, **dummy_model):
    return testing.insert_job(
        storage, testing.dummy_job_params(**dummy_model), client="functional"
    )


def test_worker_job_id(config_file, storage, tmp_path, capsys):
    """A worker runs all the models and keeps the outputs of the best one"""
    job_id = insert_dummy_job(storage, iterations=5)

    returncode = hypersearch.core.cli.main(
        ["worker", "-c", config_file, "--jobID", str(job_id)]
    )

    assert returncode == 0
    assert capsys.readouterr().out.strip() == str(job_id)

    job = storage.job_info(job_id)
    assert job["status"] == STATUS_COMPLETED
    assert job["completion_reason"] == CMPL_REASON_SUCCESS

    job_results = JobResults.parse(job["results"])
    assert job_results.best_value == 1.0
    assert job_results.saved is True

    best = job_results.best_model
    predictions = os.listdir(tmp_path / "predictions" / f"job_{job_id}")
    assert predictions == [f"model_{best}.csv"]
    assert os.listdir(tmp_path / "checkpoints") == [f"functional_{job_id}_{best}.pkl"]


def test_workers_one_after_the_other(config_file, storage):
    """Later workers find the job done"""
    job_id = insert_dummy_job(storage)

    for worker_id in ["w1", "w2"]:
        assert (
            hypersearch.core.cli.main(
                ["worker", "-c", config_file, "--jobID", str(job_id), "--workerID", worker_id]
            )
            == 0
        )

    models = storage.job_get_models(job_id)
    assert len(models) == 3
    assert len({model["worker_conn_id"] for model in models}) == 1


def test_worker_params(config_file, storage, capsys):
    """A worker given params runs its own job"""
    params = json.dumps(testing.dummy_job_params({"metric_value": [2.0, 0.5]}))

    returncode = hypersearch.core.cli.main(
        ["worker", "-c", config_file, "--params", params, "--batch-size", "1"]
    )

    assert returncode == 0
    job_id = int(capsys.readouterr().out.strip())
    job = storage.job_info(job_id)
    assert job["status"] == STATUS_COMPLETED
    assert JobResults.parse(job["results"]).best_value == 0.5


def test_worker_model_id(config_file, storage):
    """A worker given a model id only runs that model"""
    job_id = insert_dummy_job(storage)
    model_id, _ = storage.model_insert_and_start(job_id, {"metric_value": 1.0}, "h")

    returncode = hypersearch.core.cli.main(
        ["worker", "-c", config_file, "--jobID", str(job_id), "--modelID", str(model_id)]
    )

    assert returncode == 0
    models = storage.job_get_models(job_id)
    assert len(models) == 1
    assert models[0]["status"] == STATUS_COMPLETED


def test_worker_unknown_job(config_file, capsys):
    """Unknown jobs are reported"""
    returncode = hypersearch.core.cli.main(["worker", "-c", config_file, "--jobID", "42"])

    assert returncode == 1
    assert "No job found with id 42" in capsys.readouterr().err
