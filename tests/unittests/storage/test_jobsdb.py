#!/usr/bin/env python
"""Collection of tests for :mod:`hypersearch.storage.jobsdb`."""
import json

import pytest

import hypersearch.core
from hypersearch import testing
from hypersearch.core.io.database.ephemeraldb import EphemeralDB
from hypersearch.core.io.database.pickleddb import PickledDB
from hypersearch.core.utils.exceptions import NoJobError
from hypersearch.storage.base import (
    CMPL_REASON_EOF,
    CMPL_REASON_SUCCESS,
    STATUS_COMPLETED,
    STATUS_NOTSTARTED,
    STATUS_RUNNING,
    FailedUpdate,
    setup_storage,
)
from hypersearch.storage.jobsdb import JobsDB


@pytest.fixture
def model_id(job_store, job_id):
    """Id of a model inserted in the job"""
    model_id, owned = job_store.model_insert_and_start(job_id, {"model.window": 1}, "h1")
    assert owned
    return model_id


class TestConnection:
    """Test connection ids"""

    def test_unique_per_store(self, job_stores):
        """Each store sharing the database gets its own id"""
        ids = [store.get_connection_id() for store in job_stores]
        assert sorted(ids) == [1, 2, 3]

    def test_stable(self, job_store):
        """The id of a store never changes"""
        assert job_store.get_connection_id() == job_store.get_connection_id()

    def test_indexes(self, job_store):
        """Unique indexes protect job hashes and model hashes"""
        indexes = job_store.database.index_information("models")
        assert "job_id_1_params_hash_1" in indexes
        assert "job_id_1_particle_hash_1" in indexes
        assert "job_hash_1" in job_store.database.index_information("jobs")


class TestJobs:
    """Test job operations"""

    def test_insert(self, job_store, job_params):
        """A new job is not started and has no results"""
        job_id = testing.insert_job(job_store, job_params, maximum_workers=4)
        job = job_store.job_info(job_id)

        assert job_id == 1
        assert job["status"] == STATUS_NOTSTARTED
        assert job["worker_completion_reason"] == CMPL_REASON_SUCCESS
        assert job["cancel"] is False
        assert job["results"] is None
        assert job["start_time"] is None
        assert job["maximum_workers"] == 4
        assert json.loads(job["params"]) == job_params

    def test_insert_running(self, job_store, job_params):
        """Jobs inserted by workers are already running"""
        job_id = testing.insert_job(job_store, job_params, already_running=True)
        job = job_store.job_info(job_id)

        assert job["status"] == STATUS_RUNNING
        assert job["start_time"] is not None

    def test_ids_increase(self, job_store):
        """Job ids come from a counter"""
        assert [testing.insert_job(job_store) for _ in range(3)] == [1, 2, 3]
        assert [job["_id"] for job in job_store.jobs_info()] == [1, 2, 3]

    def test_missing_job(self, job_store):
        """Unknown ids raise NoJobError"""
        with pytest.raises(NoJobError) as exc:
            job_store.job_info(42)

        assert "42" in str(exc.value)

    def test_get_and_set_fields(self, job_store, job_id):
        """Fields are read in the requested order"""
        job_store.job_set_fields(job_id, {"cancel": True, "completion_msg": "msg"})
        assert job_store.job_get_fields(job_id, ["completion_msg", "cancel"]) == [
            "msg",
            True,
        ]

    def test_set_unchanged_fields(self, job_store, job_id):
        """Setting unchanged fields fails unless ignored"""
        with pytest.raises(FailedUpdate):
            job_store.job_set_fields(job_id, {"cancel": False})

        job_store.job_set_fields(job_id, {"cancel": False}, ignore_unchanged=True)

    def test_set_fields_missing_job(self, job_store):
        """Unknown jobs cannot be updated"""
        with pytest.raises(FailedUpdate):
            job_store.job_set_fields(42, {"cancel": True}, ignore_unchanged=True)

    def test_set_field_if_equal(self, job_store, job_id):
        """Conditional write only succeeds on the expected current value"""
        assert job_store.job_set_field_if_equal(job_id, "results", None, "first")
        assert not job_store.job_set_field_if_equal(job_id, "results", None, "second")
        assert job_store.job_set_field_if_equal(job_id, "results", "first", "second")
        assert job_store.job_get_fields(job_id, ["results"]) == ["second"]

    def test_set_field_if_equal_racing_stores(self, job_stores, job_id):
        """Only one of many stores wins a conditional write on the same value"""
        wins = [
            store.job_set_field_if_equal(job_id, "status", STATUS_NOTSTARTED, STATUS_RUNNING)
            for store in job_stores
        ]
        assert wins == [True, False, False]

    def test_set_completed(self, job_store, job_id):
        """Completion sets the status, reason and end time"""
        job_store.job_set_completed(job_id, CMPL_REASON_SUCCESS, "done")
        job = job_store.job_info(job_id)

        assert job["status"] == STATUS_COMPLETED
        assert job["completion_reason"] == CMPL_REASON_SUCCESS
        assert job["completion_msg"] == "done"
        assert job["end_time"] is not None


class TestModels:
    """Test model operations"""

    def test_insert(self, job_store, job_id, model_id):
        """A new model is running and owned by the inserting store"""
        model = job_store.job_get_models(job_id)[0]

        assert model["_id"] == model_id
        assert model["status"] == STATUS_RUNNING
        assert model["params"] == {"model.window": 1}
        assert model["params_hash"] == model["particle_hash"] == "h1"
        assert model["update_counter"] == 0
        assert model["worker_conn_id"] == job_store.get_connection_id()

    def test_insert_same_store_again(self, job_store, job_id, model_id):
        """A store inserting its own model again still owns it"""
        assert job_store.model_insert_and_start(job_id, {"model.window": 1}, "h1") == (
            model_id,
            True,
        )

    def test_insert_race(self, job_stores, job_id):
        """Only the first store inserting a hash owns the model"""
        claims = [
            store.model_insert_and_start(job_id, {"model.window": 1}, "h1")
            for store in job_stores
        ]
        assert claims == [(1, True), (1, False), (1, False)]
        assert len(job_stores[0].job_get_models(job_id)) == 1

    def test_insert_same_particle(self, job_stores, job_id):
        """Particle hashes are unique too"""
        job_stores[0].model_insert_and_start(job_id, {"a": 1}, "h1", particle_hash="p")
        model_id, owned = job_stores[1].model_insert_and_start(
            job_id, {"a": 2}, "h2", particle_hash="p"
        )
        assert (model_id, owned) == (1, False)

    def test_same_hash_other_job(self, job_store, job_id, model_id):
        """Hashes are only unique inside a job"""
        other_job = testing.insert_job(job_store)
        other_model, owned = job_store.model_insert_and_start(
            other_job, {"model.window": 1}, "h1"
        )
        assert owned
        assert other_model != model_id

    def test_update_counters(self, job_store, job_id, model_id):
        """Every update of the results increments the counter"""
        job_store.model_insert_and_start(job_id, {"model.window": 2}, "h2")
        job_store.model_update_results(model_id, results={"a": 1}, metric_value=0.5)
        job_store.model_update_results(model_id, num_records=10)

        assert job_store.models_get_update_counters(job_id) == [(model_id, 2), (2, 0)]

    def test_update_results(self, job_store, model_id):
        """Results are stored serialized and returned parsed"""
        job_store.model_update_results(
            model_id, results={"metrics": {"m": 0.5}}, metric_value=0.5, num_records=10
        )
        status = job_store.models_get_result_and_status([model_id])[0]

        assert status["model_id"] == model_id
        assert status["params_hash"] == "h1"
        assert status["results"] == {"metrics": {"m": 0.5}}
        assert status["optimized_metric"] == 0.5
        assert status["num_records"] == 10
        assert status["update_counter"] == 1
        assert status["matured"] is False

    def test_update_results_not_owner(self, job_stores, job_id):
        """Only the owner of a model can update its results"""
        model_id, _ = job_stores[0].model_insert_and_start(job_id, {}, "h1")

        with pytest.raises(FailedUpdate):
            job_stores[1].model_update_results(model_id, num_records=1)

        assert job_stores[0].model_update_timestamp(model_id)
        assert not job_stores[1].model_update_timestamp(model_id)

    def test_get_params(self, job_store, job_id, model_id):
        """Params are returned parsed, in the requested order"""
        other, _ = job_store.model_insert_and_start(job_id, {"model.window": 2}, "h2")
        params = job_store.models_get_params([other, model_id])

        assert [entry["model_id"] for entry in params] == [other, model_id]
        assert params[0]["params"] == {"model.window": 2}
        assert params[1]["params_hash"] == "h1"

    def test_get_fields(self, job_store, job_id, model_id):
        """Single ids return the values, lists return pairs"""
        assert job_store.models_get_fields(model_id, ["status", "stop"]) == [
            STATUS_RUNNING,
            None,
        ]
        assert job_store.models_get_fields([model_id], ["stop"]) == [(model_id, [None])]

        with pytest.raises(FailedUpdate):
            job_store.models_get_fields(42, ["stop"])

    def test_set_fields(self, job_store, model_id):
        """Setting unchanged fields fails unless ignored"""
        job_store.model_set_fields(model_id, {"stop": "killed"})
        assert job_store.models_get_fields(model_id, ["stop"]) == ["killed"]

        with pytest.raises(FailedUpdate):
            job_store.model_set_fields(model_id, {"stop": "killed"})
        job_store.model_set_fields(model_id, {"stop": "killed"}, ignore_unchanged=True)

    def test_set_completed(self, job_store, model_id):
        """Completion bumps the update counter"""
        job_store.model_set_completed(model_id, CMPL_REASON_EOF)
        status = job_store.models_get_result_and_status([model_id])[0]

        assert status["status"] == STATUS_COMPLETED
        assert status["completion_reason"] == CMPL_REASON_EOF
        assert status["update_counter"] == 1

    def test_set_completed_not_owner(self, job_stores, job_id):
        """Other stores can only complete a model without connection check"""
        model_id, _ = job_stores[0].model_insert_and_start(job_id, {}, "h1")

        with pytest.raises(FailedUpdate):
            job_stores[1].model_set_completed(model_id, CMPL_REASON_EOF)

        job_stores[1].model_set_completed(model_id, CMPL_REASON_EOF, use_connection_id=False)

    def test_clear_all(self, job_store, job_id, model_id):
        """All models of all jobs are deleted"""
        job_store.model_insert_and_start(testing.insert_job(job_store), {}, "h2")

        assert job_store.models_clear_all() == 2
        assert job_store.job_get_models(job_id) == []


class TestSetupStorage:
    """Test creating stores from configuration"""

    def test_debug(self):
        """Debug mode uses an in-memory database"""
        store = setup_storage(debug=True)

        assert isinstance(store, JobsDB)
        assert isinstance(store.database, EphemeralDB)

    def test_pickleddb(self, tmp_path):
        """Database type and host come from the configuration"""
        host = str(tmp_path / "db.pkl")
        store = setup_storage(
            {"type": "jobsdb", "database": {"type": "pickleddb", "host": host}}
        )

        assert isinstance(store.database, PickledDB)
        assert store.database.host == host

    def test_global_config(self):
        """Global configuration is used by default"""
        hypersearch.core.config.storage.database.type = "ephemeraldb"
        assert isinstance(setup_storage().database, EphemeralDB)

    def test_shared_pickled_file(self, tmp_path):
        """Stores over the same file share jobs"""
        host = str(tmp_path / "db.pkl")
        config = {"type": "jobsdb", "database": {"type": "pickleddb", "host": host}}
        first, second = setup_storage(config), setup_storage(config)
        job_id = testing.insert_job(first)

        assert second.job_info(job_id)["_id"] == job_id
        assert first.get_connection_id() != second.get_connection_id()
