"""
Database job store
==================

Job store keeping jobs and models as documents of a
:class:`hypersearch.core.io.database.Database`.

Integer ids come from a ``counters`` collection incremented atomically.
Uniqueness of models inside a job is enforced by unique indexes, which makes
inserting a model the race point between workers.

"""
import datetime
import json
import logging
import uuid

import hypersearch.core
from hypersearch.core.io.database import Database, DuplicateKeyError, database_factory
from hypersearch.core.utils.exceptions import NoJobError
from hypersearch.storage.base import (
    CMPL_REASON_SUCCESS,
    STATUS_COMPLETED,
    STATUS_NOTSTARTED,
    STATUS_RUNNING,
    BaseJobStore,
    FailedUpdate,
)

log = logging.getLogger(__name__)


def setup_database(config=None):
    """Create the Database instance from a configuration.

    Parameters
    ----------
    config: dict
        Configuration for the database backend. If not defined, global configuration
        is used.

    """
    if config is None:
        config = hypersearch.core.config.storage.database.to_dict()

    db_opts = dict(config)
    dbtype = db_opts.pop("type")

    log.debug("Creating %s database client with args: %s", dbtype, db_opts)

    return database_factory.create(dbtype, **db_opts)


def _dumps(value):
    if value is None or isinstance(value, str):
        return value

    return json.dumps(value, sort_keys=True)


def _loads(value):
    if value is None:
        return None

    return json.loads(value)


class JobsDB(BaseJobStore):
    """Job store over a document database

    Parameters
    ----------
    database: dict or Database, optional
        Configuration of the database, see
        :class:`hypersearch.core.io.database.Database`, or an already created
        database. Workers simulated in one process share a database object,
        each through its own ``JobsDB`` and connection id.
    setup: bool
        Setup the database (create indexes)

    """

    def __init__(self, database=None, setup=True):
        if isinstance(database, Database):
            self._db = database
        else:
            self._db = setup_database(database)

        self._connection_id = None

        if setup:
            self._setup_db()

    def __repr__(self) -> str:
        return f"{type(self).__qualname__}(database={self._db})"

    @property
    def database(self):
        """Underlying database"""
        return self._db

    def _setup_db(self):
        """Database index setup"""
        self._db.ensure_index("jobs", "job_hash", unique=True)
        self._db.ensure_index(
            "models",
            [("job_id", Database.ASCENDING), ("params_hash", Database.ASCENDING)],
            unique=True,
        )
        self._db.ensure_index(
            "models",
            [("job_id", Database.ASCENDING), ("particle_hash", Database.ASCENDING)],
            unique=True,
        )
        self._db.ensure_index("models", "job_id")

    def _next_id(self, sequence):
        """Atomically increment the counter of a sequence and return the new value"""
        while True:
            counter = self._db.read_and_write(
                "counters", query={"_id": sequence}, data={}, increment={"seq": 1}
            )
            if counter is not None:
                return counter["seq"]

            try:
                self._db.write("counters", {"_id": sequence, "seq": 0})
            except DuplicateKeyError:
                log.debug("Counter %s created by another connection", sequence)

    def get_connection_id(self):
        """See :meth:`hypersearch.storage.base.BaseJobStore.get_connection_id`"""
        if self._connection_id is None:
            self._connection_id = self._next_id("connections")
            log.debug("Connection id %s", self._connection_id)

        return self._connection_id

    def job_insert(
        self,
        client,
        cmd_line,
        params,
        job_hash=None,
        already_running=False,
        minimum_workers=1,
        maximum_workers=1,
    ):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_insert`"""
        now = datetime.datetime.utcnow()
        job = dict(
            _id=self._next_id("jobs"),
            client=client,
            cmd_line=cmd_line,
            params=_dumps(params),
            job_hash=job_hash or uuid.uuid4().hex,
            status=STATUS_RUNNING if already_running else STATUS_NOTSTARTED,
            completion_reason=None,
            completion_msg=None,
            worker_completion_reason=CMPL_REASON_SUCCESS,
            worker_completion_msg=None,
            cancel=False,
            results=None,
            start_time=now if already_running else None,
            end_time=None,
            last_update_time=now,
            minimum_workers=minimum_workers,
            maximum_workers=maximum_workers,
        )
        self._db.write("jobs", job)
        log.info("Inserted job %s for client %s", job["_id"], client)

        return job["_id"]

    def job_info(self, job_id):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_info`"""
        jobs = self._db.read("jobs", {"_id": job_id})
        if not jobs:
            raise NoJobError(job_id)

        return jobs[0]

    def jobs_info(self):
        """See :meth:`hypersearch.storage.base.BaseJobStore.jobs_info`"""
        return sorted(self._db.read("jobs"), key=lambda job: job["_id"])

    def job_get_fields(self, job_id, fields):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_get_fields`"""
        job = self.job_info(job_id)
        return [job.get(field) for field in fields]

    def job_set_fields(self, job_id, fields, ignore_unchanged=False):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_set_fields`"""
        if not ignore_unchanged:
            current = self.job_get_fields(job_id, list(fields.keys()))
            if current == list(fields.values()):
                raise FailedUpdate(f"Job {job_id} fields already set to {fields}")

        data = dict(fields, last_update_time=datetime.datetime.utcnow())
        if not self._db.write("jobs", data, query={"_id": job_id}):
            raise FailedUpdate(f"Job {job_id} not found")

    def job_set_field_if_equal(self, job_id, field, cur_value, new_value):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_set_field_if_equal`"""
        data = {field: new_value, "last_update_time": datetime.datetime.utcnow()}
        updated = self._db.write("jobs", data, query={"_id": job_id, field: cur_value})
        log.debug(
            "Conditional write of job %s field %s: %s", job_id, field, bool(updated)
        )

        return updated == 1

    def job_set_completed(self, job_id, completion_reason, completion_msg=None):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_set_completed`"""
        now = datetime.datetime.utcnow()
        data = dict(
            status=STATUS_COMPLETED,
            completion_reason=completion_reason,
            completion_msg=completion_msg,
            end_time=now,
            last_update_time=now,
        )
        if not self._db.write("jobs", data, query={"_id": job_id}):
            raise FailedUpdate(f"Job {job_id} not found")

    def model_insert_and_start(self, job_id, params, params_hash, particle_hash=None):
        """See :meth:`hypersearch.storage.base.BaseJobStore.model_insert_and_start`"""
        if particle_hash is None:
            particle_hash = params_hash

        now = datetime.datetime.utcnow()
        model = dict(
            _id=self._next_id("models"),
            job_id=job_id,
            params=_dumps(params),
            params_hash=params_hash,
            particle_hash=particle_hash,
            status=STATUS_RUNNING,
            completion_reason=None,
            completion_msg=None,
            results=None,
            optimized_metric=None,
            update_counter=0,
            num_records=0,
            matured=False,
            stop=None,
            checkpoint_id=None,
            worker_conn_id=self.get_connection_id(),
            start_time=now,
            end_time=None,
            last_update_time=now,
        )

        try:
            self._db.write("models", model)
        except DuplicateKeyError:
            existing = self._db.read(
                "models", {"job_id": job_id, "params_hash": params_hash}
            ) or self._db.read(
                "models", {"job_id": job_id, "particle_hash": particle_hash}
            )
            if not existing:
                raise

            model_id = existing[0]["_id"]
            owned_by_us = existing[0]["worker_conn_id"] == self.get_connection_id()
            log.debug(
                "Model with params hash %s already inserted as %s, owned by us: %s",
                params_hash,
                model_id,
                owned_by_us,
            )
            return model_id, owned_by_us

        return model["_id"], True

    def models_get_update_counters(self, job_id):
        """See :meth:`hypersearch.storage.base.BaseJobStore.models_get_update_counters`"""
        models = self._db.read(
            "models", {"job_id": job_id}, selection={"update_counter": 1}
        )
        return sorted((model["_id"], model["update_counter"]) for model in models)

    def _read_models(self, model_ids, selection=None):
        models = self._db.read("models", {"_id": {"$in": list(model_ids)}}, selection)
        by_id = {model["_id"]: model for model in models}
        return [by_id[model_id] for model_id in model_ids if model_id in by_id]

    def models_get_result_and_status(self, model_ids):
        """See :meth:`hypersearch.storage.base.BaseJobStore.models_get_result_and_status`"""
        return [
            dict(
                model_id=model["_id"],
                params_hash=model["params_hash"],
                results=_loads(model["results"]),
                status=model["status"],
                update_counter=model["update_counter"],
                num_records=model["num_records"],
                completion_reason=model["completion_reason"],
                completion_msg=model["completion_msg"],
                matured=model["matured"],
                optimized_metric=model["optimized_metric"],
            )
            for model in self._read_models(model_ids)
        ]

    def models_get_params(self, model_ids):
        """See :meth:`hypersearch.storage.base.BaseJobStore.models_get_params`"""
        return [
            dict(
                model_id=model["_id"],
                params=_loads(model["params"]),
                params_hash=model["params_hash"],
                particle_hash=model["particle_hash"],
            )
            for model in self._read_models(
                model_ids, selection={"params": 1, "params_hash": 1, "particle_hash": 1}
            )
        ]

    def models_get_fields(self, model_ids, fields):
        """See :meth:`hypersearch.storage.base.BaseJobStore.models_get_fields`"""
        single = isinstance(model_ids, int)
        ids = [model_ids] if single else list(model_ids)

        rows = [
            (model["_id"], [model.get(field) for field in fields])
            for model in self._read_models(ids)
        ]

        if single:
            if not rows:
                raise FailedUpdate(f"Model {model_ids} not found")
            return rows[0][1]

        return rows

    def model_set_fields(self, model_id, fields, ignore_unchanged=False):
        """See :meth:`hypersearch.storage.base.BaseJobStore.model_set_fields`"""
        if not ignore_unchanged:
            current = self.models_get_fields(model_id, list(fields.keys()))
            if current == list(fields.values()):
                raise FailedUpdate(f"Model {model_id} fields already set to {fields}")

        if not self._db.write("models", dict(fields), query={"_id": model_id}):
            raise FailedUpdate(f"Model {model_id} not found")

    def model_update_results(
        self, model_id, results=None, metric_value=None, num_records=None
    ):
        """See :meth:`hypersearch.storage.base.BaseJobStore.model_update_results`"""
        data = {"last_update_time": datetime.datetime.utcnow()}
        if results is not None:
            data["results"] = _dumps(results)
        if metric_value is not None:
            data["optimized_metric"] = float(metric_value)
        if num_records is not None:
            data["num_records"] = num_records

        updated = self._db.write(
            "models",
            data,
            query={"_id": model_id, "worker_conn_id": self.get_connection_id()},
            increment={"update_counter": 1},
        )
        if not updated:
            raise FailedUpdate(
                f"Model {model_id} is not owned by connection {self.get_connection_id()}"
            )

    def model_update_timestamp(self, model_id):
        """See :meth:`hypersearch.storage.base.BaseJobStore.model_update_timestamp`"""
        return bool(
            self._db.write(
                "models",
                {"last_update_time": datetime.datetime.utcnow()},
                query={"_id": model_id, "worker_conn_id": self.get_connection_id()},
            )
        )

    def model_set_completed(
        self, model_id, completion_reason, completion_msg=None, use_connection_id=True
    ):
        """See :meth:`hypersearch.storage.base.BaseJobStore.model_set_completed`"""
        now = datetime.datetime.utcnow()
        data = dict(
            status=STATUS_COMPLETED,
            completion_reason=completion_reason,
            completion_msg=completion_msg,
            end_time=now,
            last_update_time=now,
        )
        query = {"_id": model_id}
        if use_connection_id:
            query["worker_conn_id"] = self.get_connection_id()

        if not self._db.write(
            "models", data, query=query, increment={"update_counter": 1}
        ):
            raise FailedUpdate(f"Model {model_id} could not be completed")

        log.info("Model %s completed with reason %s", model_id, completion_reason)

    def models_clear_all(self):
        """See :meth:`hypersearch.storage.base.BaseJobStore.models_clear_all`"""
        deleted = self._db.remove("models", {})
        log.info("Deleted %s models", deleted)
        return deleted

    def job_get_models(self, job_id):
        """See :meth:`hypersearch.storage.base.BaseJobStore.job_get_models`"""
        models = self._db.read("models", {"job_id": job_id})
        for model in models:
            model["params"] = _loads(model["params"])
            model["results"] = _loads(model["results"])

        return sorted(models, key=lambda model: model["_id"])
