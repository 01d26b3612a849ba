"""
Generic job store protocol
==========================

Interface through which workers share jobs and models.

A *job* is one search run, owning many *models*, each one a candidate
configuration under evaluation. Workers never talk to each other; all
coordination goes through the store with guarded writes and atomic counters.

Examples
--------
>>> storage_factory.create('jobsdb', database={'type': 'ephemeraldb'})

"""
from __future__ import annotations

import copy
import logging

import hypersearch.core
from hypersearch.core.utils import GenericFactory

log = logging.getLogger(__name__)

STATUS_NOTSTARTED = "notStarted"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"

STATUSES = (STATUS_NOTSTARTED, STATUS_RUNNING, STATUS_COMPLETED)

CMPL_REASON_SUCCESS = "success"
CMPL_REASON_CANCELLED = "cancel"
CMPL_REASON_ERROR = "error"
CMPL_REASON_EOF = "eof"
CMPL_REASON_STOPPED = "stopped"
CMPL_REASON_KILLED = "killed"
CMPL_REASON_ORPHAN = "orphan"

STOP_REASON_KILLED = "killed"
STOP_REASON_STOPPED = "stopped"


class FailedUpdate(Exception):
    """Exception raised when a guarded update found nothing to update"""


class BaseJobStore:
    """Job store protocol, interface of the shared record store of workers

    Job and model fields are plain dictionaries. Serialized fields (job
    ``params`` and ``results``, model ``params`` and ``results``) are JSON strings
    in the store; model params and results are returned parsed while job
    ``results`` is always returned as the raw string, since it is the field
    compared byte for byte by :meth:`job_set_field_if_equal`.

    """

    def get_connection_id(self) -> int:
        """Return the identifier of this store connection, unique among workers"""
        raise NotImplementedError()

    def job_insert(
        self,
        client: str,
        cmd_line: str,
        params: dict | str,
        job_hash: str | None = None,
        already_running: bool = False,
        minimum_workers: int = 1,
        maximum_workers: int = 1,
    ) -> int:
        """Insert a new job and return its id

        Parameters
        ----------
        client: str
            Name of the client inserting the job.
        cmd_line: str
            Command line of the workers to launch for this job.
        params: dict or str
            Search parameters, serialized to JSON if not already a string.
        job_hash: str, optional
            Unique hash of the job. A random one is generated if not given.
        already_running: bool, optional
            Insert the job as running, used when the inserting worker runs it itself.

        Raises
        ------
        DuplicateKeyError
            If a job with the same hash already exists.

        """
        raise NotImplementedError()

    def job_info(self, job_id: int) -> dict:
        """Return all the fields of a job

        Raises
        ------
        NoJobError
            If the job does not exist.

        """
        raise NotImplementedError()

    def jobs_info(self) -> list[dict]:
        """Return all the jobs"""
        raise NotImplementedError()

    def job_get_fields(self, job_id: int, fields: list[str]) -> list:
        """Return the values of `fields` for a job, in the same order"""
        raise NotImplementedError()

    def job_set_fields(
        self, job_id: int, fields: dict, ignore_unchanged: bool = False
    ) -> None:
        """Set fields of a job

        Raises
        ------
        FailedUpdate
            If the job does not exist, or if no field would change and
            `ignore_unchanged` is False.

        """
        raise NotImplementedError()

    def job_set_field_if_equal(
        self, job_id: int, field: str, cur_value, new_value
    ) -> bool:
        """Set a field of a job to `new_value` only if it currently equals `cur_value`

        Returns
        -------
        bool
            True if the field was written.

        """
        raise NotImplementedError()

    def job_set_completed(
        self, job_id: int, completion_reason: str, completion_msg: str | None = None
    ) -> None:
        """Mark a job as completed with the given reason"""
        raise NotImplementedError()

    def model_insert_and_start(
        self,
        job_id: int,
        params: dict | str,
        params_hash: str,
        particle_hash: str | None = None,
    ) -> tuple[int, bool]:
        """Insert a running model owned by this connection, unless it already exists

        Models are unique per job by `params_hash` and by `particle_hash`. When an
        equivalent model already exists, nothing is inserted.

        Returns
        -------
        tuple
            ``(model_id, owned_by_us)``. `owned_by_us` is False if another
            connection inserted the model first.

        """
        raise NotImplementedError()

    def models_get_update_counters(self, job_id: int) -> list[tuple[int, int]]:
        """Return ``(model_id, update_counter)`` of every model of a job, sorted by id"""
        raise NotImplementedError()

    def models_get_result_and_status(self, model_ids: list[int]) -> list[dict]:
        """Return results, status, params hash, completion reason, maturity and number of records"""
        raise NotImplementedError()

    def models_get_params(self, model_ids: list[int]) -> list[dict]:
        """Return the params and params hash of the given models"""
        raise NotImplementedError()

    def models_get_fields(self, model_ids: int | list[int], fields: list[str]) -> list:
        """Return values of `fields`, for one model id or ``(model_id, values)`` for many"""
        raise NotImplementedError()

    def model_set_fields(
        self, model_id: int, fields: dict, ignore_unchanged: bool = False
    ) -> None:
        """Set fields of a model"""
        raise NotImplementedError()

    def model_update_results(
        self,
        model_id: int,
        results: dict | None = None,
        metric_value: float | None = None,
        num_records: int | None = None,
    ) -> None:
        """Write model progress, bump its update counter and heartbeat

        Raises
        ------
        FailedUpdate
            If the model is not owned by this connection.

        """
        raise NotImplementedError()

    def model_update_timestamp(self, model_id: int) -> bool:
        """Refresh the heartbeat of a model owned by this connection"""
        raise NotImplementedError()

    def model_set_completed(
        self,
        model_id: int,
        completion_reason: str,
        completion_msg: str | None = None,
        use_connection_id: bool = True,
    ) -> None:
        """Mark a model as completed and bump its update counter"""
        raise NotImplementedError()

    def models_clear_all(self) -> int:
        """Delete all the models, return how many were deleted"""
        raise NotImplementedError()

    def job_get_models(self, job_id: int) -> list[dict]:
        """Return every model of a job, sorted by id"""
        raise NotImplementedError()


storage_factory = GenericFactory(BaseJobStore)


def setup_storage(storage=None, debug=False):
    """Create the job store instance from a configuration.

    Parameters
    ----------
    storage: dict, optional
        Configuration for the storage backend. If not defined, global configuration
        is used.
    debug: bool, optional
        If using in debug mode, the storage config is overridden with jobsdb:EphemeralDB.
        Defaults to False.

    """
    if storage is None:
        storage = hypersearch.core.config.storage.to_dict()

    storage = copy.deepcopy(storage)

    if debug or hypersearch.core.config.debug:
        storage = {"type": "jobsdb", "database": {"type": "EphemeralDB"}}

    storage_type = storage.pop("type", "jobsdb")

    log.debug("Creating %s storage client with args: %s", storage_type, storage)
    return storage_factory.create(of_type=storage_type, **storage)
